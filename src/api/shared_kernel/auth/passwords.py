"""Password hashing with bcrypt."""

import bcrypt

# Cost factor used for every stored password
BCRYPT_ROUNDS = 10


def hash_password(password: str) -> str:
    """Hash a password using bcrypt.

    Args:
        password: The plaintext password

    Returns:
        The bcrypt hash as a string
    """
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Check a plaintext password against a stored bcrypt hash.

    Returns False, rather than raising, for hashes bcrypt cannot parse.
    """
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        return False
