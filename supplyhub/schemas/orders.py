"""
Order Pydantic schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from supplyhub.database.models.order import OrderStatus, PaymentStatus


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    address_id: UUID
    quote_id: Optional[UUID] = None
    total: Decimal
    status: OrderStatus
    payment_status: PaymentStatus
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: list[OrderItemResponse] = Field(default_factory=list)


class PaymentConfirmationRequest(BaseModel):
    """Provider confirmation recorded against an order."""

    model_config = ConfigDict(str_strip_whitespace=True)

    reference: Optional[str] = Field(
        None,
        max_length=255,
        description="Payment provider transaction reference",
    )
