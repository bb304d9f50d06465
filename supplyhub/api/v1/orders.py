"""
Order API endpoints.

Orders are only created by quote conversion; this router exposes reads and
the payment confirmation recorded on behalf of the payment provider.
"""

from uuid import UUID

from fastapi import APIRouter

from supplyhub.api.deps import CurrentUser, PaymentServiceDep, StaffUser
from supplyhub.core.logging import get_logger
from supplyhub.schemas.orders import OrderResponse, PaymentConfirmationRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
)
async def get_order(
    order_id: UUID,
    current_user: CurrentUser,
    service: PaymentServiceDep,
) -> OrderResponse:
    order = await service.get_order(order_id, current_user)
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/payment-confirmation",
    response_model=OrderResponse,
    summary="Record confirmed payment",
    description="Move an order awaiting payment to PAID once the provider confirmed it",
)
async def confirm_payment(
    order_id: UUID,
    request: PaymentConfirmationRequest,
    current_user: StaffUser,
    service: PaymentServiceDep,
) -> OrderResponse:
    order = await service.record_confirmed_payment(order_id, reference=request.reference)
    logger.info(
        "Payment confirmation recorded",
        order_id=str(order_id),
        recorded_by=str(current_user.id),
    )
    return OrderResponse.model_validate(order)
