"""SQLAlchemy ORM models for the storage bounded context.

Master models live in the master database only. Tenant models are created
in every store schema by schema provisioning.
"""

from storage.infrastructure.models.master import SystemUserModel, VirtualStoreModel
from storage.infrastructure.models.tenant import (
    AutoResponseModel,
    ConversationModel,
    CustomerModel,
    MessageModel,
    OrderHistoryModel,
    OrderItemModel,
    OrderModel,
    ProductCategoryModel,
    ProductModel,
    StoreSettingsModel,
    UserModel,
)

__all__ = [
    "AutoResponseModel",
    "ConversationModel",
    "CustomerModel",
    "MessageModel",
    "OrderHistoryModel",
    "OrderItemModel",
    "OrderModel",
    "ProductCategoryModel",
    "ProductModel",
    "StoreSettingsModel",
    "SystemUserModel",
    "UserModel",
    "VirtualStoreModel",
]
