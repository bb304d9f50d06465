"""
Delivery API endpoints.

Managers assign agents to paid orders, agents report progress and read the
delivery code to the client, clients verify receipt with the code and
managers confirm completion.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request, status

from supplyhub.api.deps import (
    AdminUser,
    AgentUser,
    ClientUser,
    CurrentUser,
    DeliveryServiceDep,
    ManagerUser,
    StaffUser,
)
from supplyhub.api.rate_limit import limiter, verification_rate_limit
from supplyhub.core.logging import get_logger
from supplyhub.database.models.delivery import DeliveryStatus
from supplyhub.schemas.deliveries import (
    AssignAgentRequest,
    DeliveryCodeResponse,
    DeliveryResponse,
    DeliveryStatusUpdateRequest,
    DeliveryTrackingResponse,
    VerifyDeliveryRequest,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@router.post(
    "",
    response_model=DeliveryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Assign delivery agent",
    description="Assign an agent to a paid order and issue the delivery code",
)
async def assign_agent(
    request: AssignAgentRequest,
    current_user: StaffUser,
    service: DeliveryServiceDep,
) -> DeliveryResponse:
    delivery = await service.assign_agent(
        request.order_id, request.agent_id, assigned_by=current_user.id
    )
    return DeliveryResponse.model_validate(delivery)


@router.get(
    "/agent",
    response_model=list[DeliveryResponse],
    summary="Deliveries assigned to the caller",
)
async def list_agent_deliveries(
    current_user: AgentUser,
    service: DeliveryServiceDep,
    status_filter: Optional[DeliveryStatus] = Query(None, alias="status"),
) -> list[DeliveryResponse]:
    deliveries = await service.list_agent_deliveries(current_user.id, status_filter)
    return [DeliveryResponse.model_validate(delivery) for delivery in deliveries]


@router.get(
    "/client",
    response_model=list[DeliveryResponse],
    summary="Deliveries of the caller's orders",
)
async def list_client_deliveries(
    current_user: ClientUser,
    service: DeliveryServiceDep,
) -> list[DeliveryResponse]:
    deliveries = await service.list_client_deliveries(current_user.id)
    return [DeliveryResponse.model_validate(delivery) for delivery in deliveries]


@router.get(
    "/all",
    response_model=list[DeliveryResponse],
    summary="All deliveries",
)
async def list_all_deliveries(
    current_user: AdminUser,
    service: DeliveryServiceDep,
    status_filter: Optional[DeliveryStatus] = Query(None, alias="status"),
) -> list[DeliveryResponse]:
    deliveries = await service.list_all_deliveries(status_filter)
    return [DeliveryResponse.model_validate(delivery) for delivery in deliveries]


@router.get(
    "/tracking/{order_id}",
    response_model=DeliveryTrackingResponse,
    summary="Track delivery of an order",
)
async def track_order(
    order_id: UUID,
    current_user: ClientUser,
    service: DeliveryServiceDep,
) -> DeliveryTrackingResponse:
    tracking = await service.get_tracking(order_id, current_user.id)
    return DeliveryTrackingResponse.model_validate(tracking)


@router.get(
    "/{delivery_id}",
    response_model=DeliveryResponse,
    summary="Get delivery",
)
async def get_delivery(
    delivery_id: UUID,
    current_user: CurrentUser,
    service: DeliveryServiceDep,
) -> DeliveryResponse:
    delivery = await service.get_delivery(delivery_id, current_user)
    return DeliveryResponse.model_validate(delivery)


@router.put(
    "/{delivery_id}/status",
    response_model=DeliveryResponse,
    summary="Report delivery progress",
)
async def update_delivery_status(
    delivery_id: UUID,
    request: DeliveryStatusUpdateRequest,
    current_user: AgentUser,
    service: DeliveryServiceDep,
) -> DeliveryResponse:
    delivery = await service.update_status(
        delivery_id,
        current_user.id,
        request.status,
        latitude=request.latitude,
        longitude=request.longitude,
        notes=request.notes,
    )
    return DeliveryResponse.model_validate(delivery)


@router.get(
    "/{delivery_id}/code",
    response_model=DeliveryCodeResponse,
    summary="Delivery code for the assigned agent",
)
async def get_delivery_code(
    delivery_id: UUID,
    current_user: AgentUser,
    service: DeliveryServiceDep,
) -> DeliveryCodeResponse:
    code = await service.get_delivery_code(delivery_id, current_user.id)
    return DeliveryCodeResponse.model_validate(code)


@router.post(
    "/{delivery_id}/verify",
    response_model=DeliveryResponse,
    summary="Verify receipt with the delivery code",
)
@limiter.limit(verification_rate_limit)
async def verify_delivery(
    request: Request,
    delivery_id: UUID,
    payload: VerifyDeliveryRequest,
    current_user: ClientUser,
    service: DeliveryServiceDep,
) -> DeliveryResponse:
    delivery = await service.verify_by_client(delivery_id, current_user.id, payload.code)
    return DeliveryResponse.model_validate(delivery)


@router.post(
    "/{delivery_id}/confirm",
    response_model=DeliveryResponse,
    summary="Confirm client-verified delivery",
)
async def confirm_delivery(
    delivery_id: UUID,
    current_user: ManagerUser,
    service: DeliveryServiceDep,
) -> DeliveryResponse:
    delivery = await service.confirm_by_manager(delivery_id, current_user.id)
    return DeliveryResponse.model_validate(delivery)
