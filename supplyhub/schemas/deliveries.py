"""
Delivery Pydantic schemas for API request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from supplyhub.database.models.delivery import DeliveryStatus


class AssignAgentRequest(BaseModel):
    order_id: UUID = Field(..., description="Paid order to deliver")
    agent_id: UUID = Field(..., description="Active delivery agent")


class DeliveryStatusUpdateRequest(BaseModel):
    """
    Agent progress report.

    Latitude and longitude must be sent together.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    status: DeliveryStatus
    latitude: Optional[Decimal] = Field(None, ge=-90, le=90)
    longitude: Optional[Decimal] = Field(None, ge=-180, le=180)
    notes: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def validate_location_pair(self) -> "DeliveryStatusUpdateRequest":
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be provided together")
        return self


class VerifyDeliveryRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(
        ...,
        min_length=1,
        max_length=4096,
        description="Scanned QR token or 6-digit short code",
    )


class DeliveryResponse(BaseModel):
    """Delivery without its encrypted code."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: UUID
    agent_id: UUID
    status: DeliveryStatus
    current_lat: Optional[Decimal] = None
    current_lng: Optional[Decimal] = None
    delivery_notes: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    client_verified_at: Optional[datetime] = None
    manager_confirmed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class DeliveryCodeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    delivery_id: UUID
    short_code: str = Field(..., description="6-digit code to read out to the client")
    qr_data: dict[str, Any]
    expires_at: datetime
    client_name: Optional[str] = None
    client_phone: Optional[str] = None


class DeliveryTrackingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: UUID
    delivery_id: UUID
    status: DeliveryStatus
    agent_id: UUID
    agent_name: Optional[str] = None
    agent_phone: Optional[str] = None
    current_lat: Optional[Decimal] = None
    current_lng: Optional[Decimal] = None
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
