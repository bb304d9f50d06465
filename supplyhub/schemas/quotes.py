"""
Quote workflow Pydantic schemas for API request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from supplyhub.database.models.quote import QuoteStatus


class QuoteCreateRequest(BaseModel):
    """Create an empty quote."""

    model_config = ConfigDict(str_strip_whitespace=True)

    notes: Optional[str] = Field(
        None,
        max_length=2000,
        description="Free-text sourcing notes from the client",
    )


class QuoteItemRequest(BaseModel):
    """Requested product and quantity."""

    product_id: UUID = Field(..., description="Catalogue product")
    quantity: int = Field(..., gt=0, le=100000, description="Requested quantity")


class QuoteItemsRequest(BaseModel):
    """Full replacement of a quote's item list."""

    items: list[QuoteItemRequest] = Field(..., min_length=1)


class PricedItemRequest(BaseModel):
    product_id: UUID
    quantity: int = Field(..., gt=0, le=100000)
    unit_price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)


class QuotePricingRequest(BaseModel):
    """Manager pricing for every line of a locked quote."""

    model_config = ConfigDict(str_strip_whitespace=True)

    items: list[PricedItemRequest] = Field(..., min_length=1)
    sourcing_notes: Optional[str] = Field(None, max_length=2000)


class QuoteRejectRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    reason: Optional[str] = Field(None, max_length=1000)


class QuoteConvertRequest(BaseModel):
    address_id: UUID = Field(..., description="Client delivery address")


class QuoteItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


class QuoteResponse(BaseModel):
    """Quote with items and lock fields."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    manager_id: Optional[UUID] = None
    status: QuoteStatus
    total_amount: Decimal
    sourcing_notes: Optional[str] = None
    locked_by_id: Optional[UUID] = None
    locked_at: Optional[datetime] = None
    lock_expires_at: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    items: list[QuoteItemResponse] = Field(default_factory=list)


class LockStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    quote_id: UUID
    status: QuoteStatus
    is_locked: bool = Field(..., description="Held by a manager other than the caller")
    is_locked_by_me: bool
    is_expired: bool
    can_take_over: bool
    locked_by_id: Optional[UUID] = None
    locked_at: Optional[datetime] = None
    lock_expires_at: Optional[datetime] = None

