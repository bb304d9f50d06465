"""
Database models package initialization.

Models are imported here to ensure they are registered with the Base
metadata for Alembic and for ``create_all`` in tests.
"""

from supplyhub.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from supplyhub.database.models.delivery import Delivery, DeliveryStatus
from supplyhub.database.models.notification import Notification, NotificationType
from supplyhub.database.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from supplyhub.database.models.product import Address, Product
from supplyhub.database.models.quote import Quote, QuoteItem, QuoteStatus
from supplyhub.database.models.user import User, UserRole

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "Address",
    "Delivery",
    "DeliveryStatus",
    "Notification",
    "NotificationType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "Product",
    "Quote",
    "QuoteItem",
    "QuoteStatus",
    "User",
    "UserRole",
]
