"""
Quote data access repository.

Writes that change a quote's status are conditional UPDATEs whose WHERE
clause restates the state the decision was taken on (status, owner, lock
holder, expiry). The affected row count tells the caller whether the write
won; zero rows means another actor changed the quote in between.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import ColumnElement, and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from supplyhub.core.errors import ConflictError, NotFoundError
from supplyhub.core.logging import get_logger
from supplyhub.database.models.order import Order
from supplyhub.database.models.product import Address, Product
from supplyhub.database.models.quote import Quote, QuoteItem, QuoteStatus
from supplyhub.services.quotes.state_machine import (
    CLEARED_LOCK,
    TRANSITIONS,
    QuoteEvent,
    QuoteStateMachine,
    QuoteTransition,
    TransitionContext,
)

logger = get_logger(__name__)


class QuoteRepository:
    """
    Repository for quote data access operations.

    Args:
        session: Async database session shared with the calling service
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # Reads

    async def get(self, quote_id: uuid.UUID) -> Optional[Quote]:
        """Load a quote with its items, overwriting any stale identity-map copy."""
        stmt = (
            select(Quote)
            .where(Quote.id == quote_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_client(
        self, client_id: uuid.UUID, status: Optional[QuoteStatus] = None
    ) -> Sequence[Quote]:
        stmt = select(Quote).where(Quote.client_id == client_id)
        if status is not None:
            stmt = stmt.where(Quote.status == status)
        result = await self.session.execute(stmt.order_by(Quote.created_at.desc()))
        return result.scalars().all()

    async def list_available(self, now: datetime) -> Sequence[Quote]:
        """Quotes a manager can pick up: unlocked or holding an expired lock."""
        stmt = (
            select(Quote)
            .where(
                or_(
                    Quote.status == QuoteStatus.PENDING_PRICING,
                    and_(
                        Quote.status == QuoteStatus.IN_PRICING,
                        Quote.lock_expires_at < now,
                    ),
                )
            )
            .order_by(Quote.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_locked_by(self, manager_id: uuid.UUID) -> Sequence[Quote]:
        stmt = (
            select(Quote)
            .where(
                Quote.status == QuoteStatus.IN_PRICING,
                Quote.locked_by_id == manager_id,
            )
            .order_by(Quote.locked_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_all(self, status: Optional[QuoteStatus] = None) -> Sequence[Quote]:
        stmt = select(Quote)
        if status is not None:
            stmt = stmt.where(Quote.status == status)
        result = await self.session.execute(stmt.order_by(Quote.created_at.desc()))
        return result.scalars().all()

    async def get_products(self, product_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, Product]:
        if not product_ids:
            return {}
        result = await self.session.execute(
            select(Product).where(Product.id.in_(set(product_ids)))
        )
        return {product.id: product for product in result.scalars().all()}

    async def get_client_address(
        self, address_id: uuid.UUID, client_id: uuid.UUID
    ) -> Optional[Address]:
        result = await self.session.execute(
            select(Address).where(
                Address.id == address_id,
                Address.user_id == client_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_order_for_quote(self, quote_id: uuid.UUID) -> Optional[Order]:
        result = await self.session.execute(
            select(Order).where(Order.quote_id == quote_id)
        )
        return result.scalar_one_or_none()

    # Writes

    async def transition(
        self,
        state_machine: QuoteStateMachine,
        quote_id: uuid.UUID,
        event: QuoteEvent,
        context: TransitionContext,
        extra_values: Optional[dict[str, Any]] = None,
    ) -> QuoteTransition:
        """
        Validate ``event`` on the current row and persist it atomically.

        When the conditional UPDATE matches nothing, another actor changed
        the quote after it was read: the transaction is rolled back and the
        event is re-validated against the fresh row so the caller gets the
        specific reason (live foreign lock, new status, ...).

        Raises:
            NotFoundError: If the quote does not exist
            SupplyHubError: Whatever the state machine raises for the event
        """
        quote = await self.get(quote_id)
        if quote is None:
            raise NotFoundError("Quote not found", quote_id=quote_id)

        transition = state_machine.transition(quote, event, context)
        if await self.apply_transition(transition, extra_values):
            return transition

        await self.session.rollback()
        current = await self.get(quote_id)
        if current is None:
            raise NotFoundError("Quote not found", quote_id=quote_id)
        state_machine.transition(current, event, context)
        raise ConflictError(
            "Quote was modified concurrently, please retry",
            quote_id=quote_id,
            quote_event=event.value,
        )

    async def add(self, quote: Quote) -> Quote:
        self.session.add(quote)
        await self.session.flush()
        return quote

    async def apply_transition(
        self,
        transition: QuoteTransition,
        extra_values: Optional[dict[str, Any]] = None,
    ) -> bool:
        """
        Persist a validated transition with a conditional UPDATE.

        Args:
            transition: Transition produced by the state machine
            extra_values: Additional columns to write, such as a new total

        Returns:
            True if the row still matched the state the transition was
            computed from and has been updated
        """
        values = {**transition.values, **(extra_values or {})}
        stmt = (
            update(Quote)
            .where(Quote.id == transition.quote_id, *self._preconditions(transition))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)

        applied = result.rowcount == 1
        logger.debug(
            "Quote transition persisted" if applied else "Quote transition lost race",
            quote_id=str(transition.quote_id),
            quote_event=transition.event.value,
            transition=f"{transition.from_status.value}->{transition.to_status.value}",
        )
        return applied

    def _preconditions(self, transition: QuoteTransition) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = [Quote.status == transition.from_status]
        actor_id = transition.actor_id
        now = transition.now

        if transition.event == QuoteEvent.LOCK:
            conditions.append(
                or_(
                    Quote.locked_by_id.is_(None),
                    Quote.locked_by_id == actor_id,
                    Quote.lock_expires_at < now,
                )
            )
        elif transition.event == QuoteEvent.RELEASE_LOCK:
            conditions.append(Quote.locked_by_id == actor_id)
        elif transition.event == QuoteEvent.SET_PRICING:
            conditions.extend(
                [Quote.locked_by_id == actor_id, Quote.lock_expires_at >= now]
            )
        elif transition.event in (
            QuoteEvent.REPLACE_ITEMS,
            QuoteEvent.SUBMIT,
            QuoteEvent.APPROVE,
            QuoteEvent.REJECT,
        ):
            conditions.append(Quote.client_id == actor_id)
        elif transition.event == QuoteEvent.CONVERT:
            conditions.extend(
                [
                    Quote.client_id == actor_id,
                    or_(Quote.valid_until.is_(None), Quote.valid_until >= now),
                ]
            )
        return conditions

    async def replace_items(
        self, quote_id: uuid.UUID, items: Sequence[QuoteItem]
    ) -> None:
        """Delete every item of the quote and insert ``items`` in their place."""
        await self.session.execute(
            delete(QuoteItem)
            .where(QuoteItem.quote_id == quote_id)
            .execution_options(synchronize_session="fetch")
        )
        for item in items:
            item.quote_id = quote_id
        self.session.add_all(items)
        await self.session.flush()

    async def delete_if_deletable(
        self, quote_id: uuid.UUID, client_id: uuid.UUID, now: datetime
    ) -> bool:
        """Delete an unlocked, pre-approval quote owned by ``client_id``."""
        stmt = (
            delete(Quote)
            .where(
                Quote.id == quote_id,
                Quote.client_id == client_id,
                Quote.status.in_(
                    [status for status in QuoteStatus if status.is_deletable]
                ),
                or_(Quote.locked_by_id.is_(None), Quote.lock_expires_at < now),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            return False

        await self.session.execute(
            delete(QuoteItem)
            .where(QuoteItem.quote_id == quote_id)
            .execution_options(synchronize_session=False)
        )
        return True

    async def expire_locks(self, now: datetime) -> int:
        """Return every IN_PRICING quote whose lock expired to PENDING_PRICING."""
        target = TRANSITIONS[(QuoteStatus.IN_PRICING, QuoteEvent.EXPIRE_LOCK)]
        stmt = (
            update(Quote)
            .where(
                Quote.status == QuoteStatus.IN_PRICING,
                Quote.lock_expires_at < now,
            )
            .values(status=target, updated_at=now, **CLEARED_LOCK)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def expire_approvals(self, now: datetime) -> int:
        """Reject every APPROVED quote whose conversion deadline passed."""
        target = TRANSITIONS[(QuoteStatus.APPROVED, QuoteEvent.EXPIRE_APPROVAL)]
        stmt = (
            update(Quote)
            .where(
                Quote.status == QuoteStatus.APPROVED,
                Quote.valid_until < now,
            )
            .values(
                status=target,
                updated_at=now,
                sourcing_notes=func.coalesce(Quote.sourcing_notes + "\n", "")
                + "Quote expired",
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def add_order(self, order: Order) -> Order:
        self.session.add(order)
        await self.session.flush()
        return order


def compute_total(items: Sequence[QuoteItem]) -> Decimal:
    return sum((item.subtotal for item in items), Decimal("0"))
