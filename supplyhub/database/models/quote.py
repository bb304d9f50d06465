"""
Quote and quote item models.

A quote is a client's request for prices on a list of products. Managers
price it under a time-boxed lock; the client then approves it and converts
it into an order.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from supplyhub.database.base import BaseModel


class QuoteStatus(str, enum.Enum):
    """
    Quote lifecycle status.

    Attributes:
        PENDING_ITEMS: Created, client still editing the item list
        PENDING_PRICING: Submitted, waiting for a manager
        IN_PRICING: A manager holds the pricing lock
        AWAITING_CLIENT_APPROVAL: Priced, waiting for the client
        APPROVED: Client accepted the prices
        REJECTED: Client declined, or the approval expired
        CONVERTED_TO_ORDER: An order was created from the quote
    """

    PENDING_ITEMS = "PENDING_ITEMS"
    PENDING_PRICING = "PENDING_PRICING"
    IN_PRICING = "IN_PRICING"
    AWAITING_CLIENT_APPROVAL = "AWAITING_CLIENT_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CONVERTED_TO_ORDER = "CONVERTED_TO_ORDER"

    @classmethod
    def from_string(cls, value: str) -> "QuoteStatus":
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"Invalid quote status: {value}")

    @property
    def is_terminal(self) -> bool:
        return self in (QuoteStatus.REJECTED, QuoteStatus.CONVERTED_TO_ORDER)

    @property
    def is_deletable(self) -> bool:
        """Statuses in which the owning client may delete an unlocked quote."""
        return self in (
            QuoteStatus.PENDING_ITEMS,
            QuoteStatus.PENDING_PRICING,
            QuoteStatus.AWAITING_CLIENT_APPROVAL,
        )


class Quote(BaseModel):
    """
    Client quote with pricing lock fields.

    ``locked_by_id``, ``locked_at`` and ``lock_expires_at`` are either all
    set (status IN_PRICING) or all NULL.
    """

    __tablename__ = "quotes"

    client_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="Owning client",
    )

    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Manager who priced the quote",
    )

    status: Mapped[QuoteStatus] = mapped_column(
        SQLEnum(QuoteStatus, name="quote_status", native_enum=False, length=32),
        nullable=False,
        default=QuoteStatus.PENDING_ITEMS,
        index=True,
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Sum of item subtotals",
    )

    sourcing_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    locked_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="Manager currently holding the pricing lock",
    )

    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

    lock_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(),
        nullable=True,
    )

    valid_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(),
        nullable=True,
        comment="Deadline for approval (when priced) or conversion (when approved)",
    )

    items: Mapped[list["QuoteItem"]] = relationship(
        "QuoteItem",
        back_populates="quote",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="QuoteItem.created_at",
    )

    __table_args__ = (
        Index("ix_quotes_status_lock_expiry", "status", "lock_expires_at"),
        Index("ix_quotes_status_valid_until", "status", "valid_until"),
        CheckConstraint("total_amount >= 0", name="ck_quotes_total_non_negative"),
    )

    def is_locked_by_other(self, manager_id: uuid.UUID) -> bool:
        return self.locked_by_id is not None and self.locked_by_id != manager_id

    def lock_expired(self, now: datetime) -> bool:
        return self.lock_expires_at is not None and self.lock_expires_at < now

    def __repr__(self) -> str:
        return f"<Quote(id={self.id}, status={self.status}, client_id={self.client_id})>"


class QuoteItem(BaseModel):
    """Line of a quote. ``unit_price`` stays 0 until a manager prices it."""

    __tablename__ = "quote_items"

    quote_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("quotes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
    )

    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
    )

    quote: Mapped["Quote"] = relationship("Quote", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_quote_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_quote_items_price_non_negative"),
    )
