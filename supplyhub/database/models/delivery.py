"""
Delivery model with the three-party verification fields.

One delivery per order. The agent reports progress, the client verifies
receipt with the delivery code, and a manager confirms completion.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Index, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column

from supplyhub.database.base import BaseModel


class DeliveryStatus(str, enum.Enum):
    """
    Delivery lifecycle status.

    Agents drive ASSIGNED through DELIVERED; CLIENT_VERIFIED and
    MANAGER_CONFIRMED are reachable only through the verification
    handshake.
    """

    ASSIGNED = "ASSIGNED"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CLIENT_VERIFIED = "CLIENT_VERIFIED"
    MANAGER_CONFIRMED = "MANAGER_CONFIRMED"

    @classmethod
    def from_string(cls, value: str) -> "DeliveryStatus":
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"Invalid delivery status: {value}")


class Delivery(BaseModel):
    __tablename__ = "deliveries"

    order_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    agent_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    status: Mapped[DeliveryStatus] = mapped_column(
        SQLEnum(DeliveryStatus, name="delivery_status", native_enum=False, length=32),
        nullable=False,
        default=DeliveryStatus.ASSIGNED,
        index=True,
    )

    delivery_code: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Encrypted verification token",
    )

    code_generated_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False)

    current_lat: Mapped[Optional[Decimal]] = mapped_column(Numeric(9, 6), nullable=True)
    current_lng: Mapped[Optional[Decimal]] = mapped_column(Numeric(9, 6), nullable=True)
    delivery_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    estimated_delivery: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    actual_delivery: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

    client_verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    client_verified_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    manager_confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    manager_confirmed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_deliveries_agent_status", "agent_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Delivery(id={self.id}, order_id={self.order_id}, status={self.status})>"
