"""
Quote workflow service.

Orchestrates the quote lifecycle for clients and managers: item
submission, pricing under a lock, approval and conversion into an order.
Every mutating operation is one unit of work: validate through the state
machine, persist with conditional writes, commit, then dispatch the
notifications collected in the outbox.
"""

import uuid
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from supplyhub.core.clock import Clock, utcnow
from supplyhub.core.config import Settings, get_settings
from supplyhub.core.errors import ConflictError, InvalidInputError, NotFoundError
from supplyhub.core.logging import get_logger
from supplyhub.database.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from supplyhub.database.models.quote import Quote, QuoteItem, QuoteStatus
from supplyhub.database.models.user import User
from supplyhub.schemas.quotes import PricedItemRequest, QuoteItemRequest
from supplyhub.services.notifications.events import EventOutbox, NotificationEvent
from supplyhub.services.notifications.service import dispatch_after_commit
from supplyhub.services.quotes.lock_manager import LockManager, LockStatus
from supplyhub.services.quotes.repository import QuoteRepository, compute_total
from supplyhub.services.quotes.state_machine import (
    QuoteEvent,
    QuoteStateMachine,
    TransitionContext,
)

logger = get_logger(__name__)

CENT = Decimal("0.01")

# Largest value a Numeric(12, 2) column holds
MAX_AMOUNT = Decimal("9999999999.99")


def build_state_machine(settings: Settings) -> QuoteStateMachine:
    return QuoteStateMachine(
        lock_duration=timedelta(minutes=settings.quote_lock_minutes),
        pricing_validity=timedelta(days=settings.quote_pricing_validity_days),
        approval_validity=timedelta(days=settings.quote_approval_validity_days),
    )


class QuoteService:
    """
    Service for the quote pricing-and-locking workflow.

    Args:
        session: Database session; the service commits its own units of work
        settings: Application settings (durations of locks and validities)
        clock: Source of the current time
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.clock = clock
        self.outbox = EventOutbox()
        self.repository = QuoteRepository(session)
        self.state_machine = build_state_machine(self.settings)
        self.lock_manager = LockManager(
            session,
            self.state_machine,
            outbox=self.outbox,
            clock=clock,
        )

    # Client operations

    async def create_quote(self, client_id: uuid.UUID, notes: Optional[str] = None) -> Quote:
        quote = Quote(
            client_id=client_id,
            status=QuoteStatus.PENDING_ITEMS,
            total_amount=Decimal("0"),
            sourcing_notes=notes,
            items=[],
        )
        await self.repository.add(quote)
        await self._commit()

        logger.info("Quote created", quote_id=str(quote.id), client_id=str(client_id))
        return quote

    async def replace_items(
        self,
        quote_id: uuid.UUID,
        client_id: uuid.UUID,
        items: Sequence[QuoteItemRequest],
    ) -> Quote:
        """
        Replace the whole item list of a quote still being edited.

        Raises:
            NotFoundError: Quote absent or not owned by the client
            ConflictError: Quote no longer accepts item changes
            InvalidInputError: Empty list, non-positive quantity, or unknown
                or inactive product
        """
        self._validate_quantities(items)

        context = TransitionContext(actor_id=client_id, now=self.clock())
        await self.repository.transition(
            self.state_machine,
            quote_id,
            QuoteEvent.REPLACE_ITEMS,
            context,
            extra_values={"total_amount": Decimal("0")},
        )

        products = await self.repository.get_products([item.product_id for item in items])
        unavailable = [
            str(item.product_id)
            for item in items
            if item.product_id not in products or not products[item.product_id].active
        ]
        if unavailable:
            await self.session.rollback()
            raise InvalidInputError(
                "Some products are not available",
                product_ids=", ".join(unavailable),
            )

        await self.repository.replace_items(
            quote_id,
            [
                QuoteItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=Decimal("0"),
                    subtotal=Decimal("0"),
                )
                for item in items
            ],
        )
        await self._commit()

        logger.info("Quote items replaced", quote_id=str(quote_id), item_count=len(items))
        return await self._reload(quote_id)

    async def submit(self, quote_id: uuid.UUID, client_id: uuid.UUID) -> Quote:
        """
        Submit a quote for manager pricing.

        Raises:
            InvalidInputError: If the quote has no items
        """
        context = TransitionContext(actor_id=client_id, now=self.clock())
        await self.repository.transition(
            self.state_machine, quote_id, QuoteEvent.SUBMIT, context
        )
        self.outbox.append(
            NotificationEvent.QUOTE_SUBMITTED, quote_id=quote_id, client_id=client_id
        )
        await self._commit()

        logger.info("Quote submitted for pricing", quote_id=str(quote_id))
        return await self._reload(quote_id)

    async def approve(self, quote_id: uuid.UUID, client_id: uuid.UUID) -> Quote:
        context = TransitionContext(actor_id=client_id, now=self.clock())
        await self.repository.transition(
            self.state_machine, quote_id, QuoteEvent.APPROVE, context
        )
        quote = await self._reload(quote_id)
        self.outbox.append(
            NotificationEvent.QUOTE_APPROVED,
            quote_id=quote_id,
            manager_id=quote.manager_id,
        )
        await self._commit()

        logger.info("Quote approved", quote_id=str(quote_id), valid_until=quote.valid_until.isoformat())
        return quote

    async def reject(
        self,
        quote_id: uuid.UUID,
        client_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Quote:
        context = TransitionContext(actor_id=client_id, now=self.clock(), reason=reason)
        await self.repository.transition(
            self.state_machine, quote_id, QuoteEvent.REJECT, context
        )
        quote = await self._reload(quote_id)
        self.outbox.append(
            NotificationEvent.QUOTE_REJECTED,
            quote_id=quote_id,
            manager_id=quote.manager_id,
            reason=reason,
        )
        await self._commit()

        logger.info("Quote rejected", quote_id=str(quote_id), has_reason=bool(reason))
        return quote

    async def convert_to_order(
        self,
        quote_id: uuid.UUID,
        client_id: uuid.UUID,
        address_id: uuid.UUID,
    ) -> Order:
        """
        Create an order from an approved quote.

        The order, its items and the quote status flip are written in one
        transaction; any failure rolls all of them back.

        Raises:
            NotFoundError: Quote absent or not owned by the client
            ConflictError: Quote not approved, approval expired, or already
                converted
            InvalidInputError: Address missing or owned by someone else
        """
        context = TransitionContext(actor_id=client_id, now=self.clock())
        transition = self.state_machine.transition(
            await self._get_or_404(quote_id), QuoteEvent.CONVERT, context
        )

        address = await self.repository.get_client_address(address_id, client_id)
        if address is None:
            raise InvalidInputError("Invalid delivery address", address_id=address_id)

        await self.repository.transition(
            self.state_machine, quote_id, QuoteEvent.CONVERT, context
        )
        quote = await self._reload(quote_id)

        order = Order(
            client_id=client_id,
            address_id=address.id,
            quote_id=quote.id,
            total=quote.total_amount,
            status=OrderStatus.AWAITING_PAYMENT,
            payment_status=PaymentStatus.PENDING,
            notes=quote.sourcing_notes,
            items=[
                OrderItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    subtotal=item.subtotal,
                )
                for item in quote.items
            ],
        )
        try:
            await self.repository.add_order(order)
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning(
                "Quote conversion rejected by constraint",
                quote_id=str(quote_id),
                error=str(e.orig),
            )
            raise ConflictError(
                "An order already exists for this quote", quote_id=quote_id
            ) from e

        self.outbox.append(
            NotificationEvent.QUOTE_CONVERTED,
            quote_id=quote_id,
            order_id=order.id,
            manager_id=quote.manager_id,
        )
        await self._commit()

        logger.info(
            "Quote converted to order",
            quote_id=str(quote_id),
            order_id=str(order.id),
            transition=f"{transition.from_status.value}->{transition.to_status.value}",
            total=str(order.total),
        )
        return order

    async def delete_quote(self, quote_id: uuid.UUID, client_id: uuid.UUID) -> None:
        """
        Delete an unlocked quote that has not been approved yet.

        Raises:
            NotFoundError: Quote absent or not owned by the client
            ConflictError: Quote locked by a manager or past approval
        """
        now = self.clock()
        quote = await self._get_or_404(quote_id)
        self.state_machine.check_deletable(quote, client_id, now)

        if not await self.repository.delete_if_deletable(quote_id, client_id, now):
            await self.session.rollback()
            current = await self._get_or_404(quote_id)
            self.state_machine.check_deletable(current, client_id, now)
            raise ConflictError("Quote was modified concurrently, please retry", quote_id=quote_id)

        self.session.expunge(quote)
        await self._commit()
        logger.info("Quote deleted", quote_id=str(quote_id), client_id=str(client_id))

    # Manager operations

    async def lock_quote(self, quote_id: uuid.UUID, manager_id: uuid.UUID) -> Quote:
        quote = await self.lock_manager.acquire(quote_id, manager_id)
        await self._commit()
        return quote

    async def release_lock(self, quote_id: uuid.UUID, manager_id: uuid.UUID) -> Quote:
        quote = await self.lock_manager.release(quote_id, manager_id)
        await self._commit()
        return quote

    async def lock_status(self, quote_id: uuid.UUID, manager_id: uuid.UUID) -> LockStatus:
        return await self.lock_manager.status(quote_id, manager_id)

    async def update_pricing(
        self,
        quote_id: uuid.UUID,
        manager_id: uuid.UUID,
        items: Sequence[PricedItemRequest],
        sourcing_notes: Optional[str] = None,
    ) -> Quote:
        """
        Price every line of a quote the manager holds the lock on.

        Replaces the item list, recomputes the total, assigns the manager,
        clears the lock and moves the quote to AWAITING_CLIENT_APPROVAL.

        Raises:
            ForbiddenError: Caller does not hold the lock
            ConflictError: Lock expired or quote not in pricing
            InvalidInputError: Bad quantities, negative prices or unknown
                products
        """
        self._validate_quantities(items)
        negative = [str(item.product_id) for item in items if item.unit_price < 0]
        if negative:
            raise InvalidInputError(
                "Unit prices must not be negative", product_ids=", ".join(negative)
            )

        priced_items = [
            QuoteItem(
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=Decimal(item.unit_price).quantize(CENT, ROUND_HALF_UP),
                subtotal=(Decimal(item.unit_price) * item.quantity).quantize(
                    CENT, ROUND_HALF_UP
                ),
            )
            for item in items
        ]
        total = compute_total(priced_items)
        oversized = [
            str(item.product_id) for item in priced_items if item.subtotal > MAX_AMOUNT
        ]
        if oversized or total > MAX_AMOUNT:
            raise InvalidInputError(
                f"Line subtotals and the quote total must not exceed {MAX_AMOUNT}",
                product_ids=", ".join(oversized),
                total_amount=str(total),
            )

        extra_values = {"total_amount": total}
        if sourcing_notes is not None:
            extra_values["sourcing_notes"] = sourcing_notes

        context = TransitionContext(actor_id=manager_id, now=self.clock())
        await self.repository.transition(
            self.state_machine,
            quote_id,
            QuoteEvent.SET_PRICING,
            context,
            extra_values=extra_values,
        )

        products = await self.repository.get_products([item.product_id for item in items])
        unknown = [str(item.product_id) for item in items if item.product_id not in products]
        if unknown:
            await self.session.rollback()
            raise InvalidInputError("Unknown products", product_ids=", ".join(unknown))

        await self.repository.replace_items(quote_id, priced_items)
        quote = await self._reload(quote_id)
        self.outbox.append(
            NotificationEvent.QUOTE_PRICED,
            quote_id=quote_id,
            client_id=quote.client_id,
            manager_id=manager_id,
            total_amount=str(total),
        )
        await self._commit()

        logger.info(
            "Quote priced",
            quote_id=str(quote_id),
            manager_id=str(manager_id),
            total_amount=str(total),
            item_count=len(priced_items),
        )
        return quote

    # Queries

    async def get_quote(self, quote_id: uuid.UUID, user: User) -> Quote:
        """Clients see their own quotes; managers and admins see all."""
        quote = await self._get_or_404(quote_id)
        if not user.role.is_staff and quote.client_id != user.id:
            raise NotFoundError("Quote not found", quote_id=quote_id)
        return quote

    async def list_client_quotes(
        self, client_id: uuid.UUID, status: Optional[QuoteStatus] = None
    ) -> Sequence[Quote]:
        return await self.repository.list_for_client(client_id, status)

    async def list_available_quotes(self) -> Sequence[Quote]:
        return await self.repository.list_available(self.clock())

    async def list_locked_by_me(self, manager_id: uuid.UUID) -> Sequence[Quote]:
        return await self.repository.list_locked_by(manager_id)

    async def list_awaiting_approval(self) -> Sequence[Quote]:
        return await self.repository.list_all(QuoteStatus.AWAITING_CLIENT_APPROVAL)

    async def list_all_quotes(self, status: Optional[QuoteStatus] = None) -> Sequence[Quote]:
        return await self.repository.list_all(status)

    # System operations

    async def cleanup_expired_locks(self) -> int:
        return await self.lock_manager.cleanup_expired_locks()

    async def expire_approved_quotes(self) -> int:
        """Reject approved quotes whose conversion deadline passed."""
        count = await self.repository.expire_approvals(self.clock())
        await self._commit()
        if count:
            logger.info("Expired approved quotes rejected", count=count)
        return count

    # Helpers

    @staticmethod
    def _validate_quantities(items: Sequence[Union[QuoteItemRequest, PricedItemRequest]]) -> None:
        if not items:
            raise InvalidInputError("At least one item is required")
        invalid = [str(item.product_id) for item in items if item.quantity <= 0]
        if invalid:
            raise InvalidInputError(
                "Quantities must be positive integers", product_ids=", ".join(invalid)
            )

    async def _get_or_404(self, quote_id: uuid.UUID) -> Quote:
        quote = await self.repository.get(quote_id)
        if quote is None:
            raise NotFoundError("Quote not found", quote_id=quote_id)
        return quote

    async def _reload(self, quote_id: uuid.UUID) -> Quote:
        return await self._get_or_404(quote_id)

    async def _commit(self) -> None:
        await dispatch_after_commit(self.session, self.outbox)
