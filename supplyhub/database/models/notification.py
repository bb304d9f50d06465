"""
In-app notification model.

Rows are written by the notification dispatcher after the operation that
caused them has committed.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum as SQLEnum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from supplyhub.database.base import BaseModel


class NotificationType(str, enum.Enum):
    """Notification type enumeration."""

    QUOTE_SUBMITTED = "QUOTE_SUBMITTED"
    QUOTE_LOCKED = "QUOTE_LOCKED"
    QUOTE_PRICED = "QUOTE_PRICED"
    QUOTE_APPROVED = "QUOTE_APPROVED"
    QUOTE_REJECTED = "QUOTE_REJECTED"
    QUOTE_CONVERTED = "QUOTE_CONVERTED"
    DELIVERY_ASSIGNED = "DELIVERY_ASSIGNED"
    DELIVERY_STATUS_CHANGED = "DELIVERY_STATUS_CHANGED"
    DELIVERY_VERIFIED = "DELIVERY_VERIFIED"
    DELIVERY_CONFIRMED = "DELIVERY_CONFIRMED"

    @classmethod
    def from_string(cls, value: str) -> "NotificationType":
        """
        Convert string to NotificationType enum.

        Raises:
            ValueError: If value is not a valid notification type
        """
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"Invalid notification type: {value}")


class Notification(BaseModel):
    __tablename__ = "notifications"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    type: Mapped[NotificationType] = mapped_column(
        SQLEnum(NotificationType, name="notification_type", native_enum=False, length=32),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "read"),
    )
