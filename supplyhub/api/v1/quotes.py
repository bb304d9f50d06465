"""
Quote workflow API endpoints.

Clients create quotes, edit their items, submit them for pricing and then
approve, reject or convert the priced quote. Managers lock a submitted quote,
price it and release it. Application errors propagate to the central
exception handler.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from supplyhub.api.deps import (
    ClientUser,
    CurrentUser,
    ManagerUser,
    QuoteServiceDep,
    StaffUser,
)
from supplyhub.core.logging import get_logger
from supplyhub.database.models.quote import QuoteStatus
from supplyhub.schemas.orders import OrderResponse
from supplyhub.schemas.quotes import (
    LockStatusResponse,
    QuoteConvertRequest,
    QuoteCreateRequest,
    QuoteItemsRequest,
    QuotePricingRequest,
    QuoteRejectRequest,
    QuoteResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/quotes", tags=["quotes"])


# Manager queues


@router.get(
    "/manager/available",
    response_model=list[QuoteResponse],
    summary="Quotes open for pricing",
    description="Submitted quotes, plus quotes whose pricing lock has expired",
)
async def list_available_quotes(
    current_user: StaffUser,
    service: QuoteServiceDep,
) -> list[QuoteResponse]:
    quotes = await service.list_available_quotes()
    return [QuoteResponse.model_validate(quote) for quote in quotes]


@router.get(
    "/manager/locked",
    response_model=list[QuoteResponse],
    summary="Quotes locked by the caller",
)
async def list_locked_quotes(
    current_user: ManagerUser,
    service: QuoteServiceDep,
) -> list[QuoteResponse]:
    quotes = await service.list_locked_by_me(current_user.id)
    return [QuoteResponse.model_validate(quote) for quote in quotes]


@router.get(
    "/manager/awaiting-approval",
    response_model=list[QuoteResponse],
    summary="Priced quotes waiting on the client",
)
async def list_awaiting_approval(
    current_user: StaffUser,
    service: QuoteServiceDep,
) -> list[QuoteResponse]:
    quotes = await service.list_awaiting_approval()
    return [QuoteResponse.model_validate(quote) for quote in quotes]


@router.get(
    "/manager/all",
    response_model=list[QuoteResponse],
    summary="All quotes",
)
async def list_all_quotes(
    current_user: StaffUser,
    service: QuoteServiceDep,
    status_filter: Optional[QuoteStatus] = Query(None, alias="status"),
) -> list[QuoteResponse]:
    quotes = await service.list_all_quotes(status_filter)
    return [QuoteResponse.model_validate(quote) for quote in quotes]


# Client operations


@router.post(
    "",
    response_model=QuoteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create quote",
    description="Create an empty quote in PENDING_ITEMS",
)
async def create_quote(
    request: QuoteCreateRequest,
    current_user: ClientUser,
    service: QuoteServiceDep,
) -> QuoteResponse:
    quote = await service.create_quote(current_user.id, notes=request.notes)
    return QuoteResponse.model_validate(quote)


@router.get(
    "",
    response_model=list[QuoteResponse],
    summary="List my quotes",
)
async def list_my_quotes(
    current_user: ClientUser,
    service: QuoteServiceDep,
    status_filter: Optional[QuoteStatus] = Query(None, alias="status"),
) -> list[QuoteResponse]:
    quotes = await service.list_client_quotes(current_user.id, status_filter)
    return [QuoteResponse.model_validate(quote) for quote in quotes]


@router.get(
    "/{quote_id}",
    response_model=QuoteResponse,
    summary="Get quote",
)
async def get_quote(
    quote_id: UUID,
    current_user: CurrentUser,
    service: QuoteServiceDep,
) -> QuoteResponse:
    quote = await service.get_quote(quote_id, current_user)
    return QuoteResponse.model_validate(quote)


@router.delete(
    "/{quote_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete quote",
    description="Only before approval, and never while a manager is pricing it",
)
async def delete_quote(
    quote_id: UUID,
    current_user: ClientUser,
    service: QuoteServiceDep,
) -> None:
    await service.delete_quote(quote_id, current_user.id)


@router.put(
    "/{quote_id}/items",
    response_model=QuoteResponse,
    summary="Replace quote items",
)
async def replace_items(
    quote_id: UUID,
    request: QuoteItemsRequest,
    current_user: ClientUser,
    service: QuoteServiceDep,
) -> QuoteResponse:
    quote = await service.replace_items(quote_id, current_user.id, request.items)
    return QuoteResponse.model_validate(quote)


@router.post(
    "/{quote_id}/submit",
    response_model=QuoteResponse,
    summary="Submit quote for pricing",
)
async def submit_quote(
    quote_id: UUID,
    current_user: ClientUser,
    service: QuoteServiceDep,
) -> QuoteResponse:
    quote = await service.submit(quote_id, current_user.id)
    return QuoteResponse.model_validate(quote)


@router.post(
    "/{quote_id}/approve",
    response_model=QuoteResponse,
    summary="Approve priced quote",
)
async def approve_quote(
    quote_id: UUID,
    current_user: ClientUser,
    service: QuoteServiceDep,
) -> QuoteResponse:
    quote = await service.approve(quote_id, current_user.id)
    return QuoteResponse.model_validate(quote)


@router.post(
    "/{quote_id}/reject",
    response_model=QuoteResponse,
    summary="Reject priced quote",
)
async def reject_quote(
    quote_id: UUID,
    request: QuoteRejectRequest,
    current_user: ClientUser,
    service: QuoteServiceDep,
) -> QuoteResponse:
    quote = await service.reject(quote_id, current_user.id, reason=request.reason)
    return QuoteResponse.model_validate(quote)


@router.post(
    "/{quote_id}/convert",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Convert approved quote to order",
)
async def convert_quote(
    quote_id: UUID,
    request: QuoteConvertRequest,
    current_user: ClientUser,
    service: QuoteServiceDep,
) -> OrderResponse:
    order = await service.convert_to_order(quote_id, current_user.id, request.address_id)
    logger.info(
        "Quote converted via API",
        quote_id=str(quote_id),
        order_id=str(order.id),
        user_id=str(current_user.id),
    )
    return OrderResponse.model_validate(order)


# Manager pricing


@router.post(
    "/{quote_id}/lock",
    response_model=QuoteResponse,
    summary="Lock quote for pricing",
)
async def lock_quote(
    quote_id: UUID,
    current_user: ManagerUser,
    service: QuoteServiceDep,
) -> QuoteResponse:
    quote = await service.lock_quote(quote_id, current_user.id)
    return QuoteResponse.model_validate(quote)


@router.delete(
    "/{quote_id}/lock",
    response_model=QuoteResponse,
    summary="Release pricing lock",
)
async def release_lock(
    quote_id: UUID,
    current_user: ManagerUser,
    service: QuoteServiceDep,
) -> QuoteResponse:
    quote = await service.release_lock(quote_id, current_user.id)
    return QuoteResponse.model_validate(quote)


@router.get(
    "/{quote_id}/lock",
    response_model=LockStatusResponse,
    summary="Pricing lock status",
)
async def get_lock_status(
    quote_id: UUID,
    current_user: StaffUser,
    service: QuoteServiceDep,
) -> LockStatusResponse:
    lock_status = await service.lock_status(quote_id, current_user.id)
    return LockStatusResponse.model_validate(lock_status)


@router.put(
    "/{quote_id}/pricing",
    response_model=QuoteResponse,
    summary="Price locked quote",
)
async def update_pricing(
    quote_id: UUID,
    request: QuotePricingRequest,
    current_user: ManagerUser,
    service: QuoteServiceDep,
) -> QuoteResponse:
    quote = await service.update_pricing(
        quote_id,
        current_user.id,
        request.items,
        sourcing_notes=request.sourcing_notes,
    )
    return QuoteResponse.model_validate(quote)
