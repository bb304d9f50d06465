"""
Time-boxed pricing lock over a quote.

A manager must hold the lock before pricing a quote. Locks expire after a
fixed duration; an expired lock may be taken over by another manager and
is reclaimed in bulk by the lock reaper.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from supplyhub.core.clock import Clock, utcnow
from supplyhub.core.errors import NotFoundError
from supplyhub.core.logging import get_logger
from supplyhub.database.models.quote import Quote, QuoteStatus
from supplyhub.services.notifications.events import EventOutbox, NotificationEvent
from supplyhub.services.quotes.repository import QuoteRepository
from supplyhub.services.quotes.state_machine import (
    QuoteEvent,
    QuoteStateMachine,
    TransitionContext,
)

logger = get_logger(__name__)


@dataclass
class LockStatus:
    """Lock view of a quote from one manager's point of view."""

    quote_id: uuid.UUID
    status: QuoteStatus
    is_locked: bool
    is_locked_by_me: bool
    is_expired: bool
    can_take_over: bool
    locked_by_id: Optional[uuid.UUID]
    locked_at: Optional[datetime]
    lock_expires_at: Optional[datetime]


class LockManager:
    """
    Acquire, release and inspect pricing locks.

    Acquire and release are single conditional UPDATEs, so two managers
    racing for the same quote cannot both win. Conflicts are reported to
    the caller, never retried here.
    """

    def __init__(
        self,
        session: AsyncSession,
        state_machine: QuoteStateMachine,
        outbox: Optional[EventOutbox] = None,
        clock: Clock = utcnow,
    ):
        self.session = session
        self.repository = QuoteRepository(session)
        self.state_machine = state_machine
        self.outbox = outbox if outbox is not None else EventOutbox()
        self.clock = clock

    @property
    def lock_duration(self) -> timedelta:
        return self.state_machine.lock_duration

    async def acquire(self, quote_id: uuid.UUID, manager_id: uuid.UUID) -> Quote:
        """
        Lock a quote for pricing, or refresh the caller's own lock.

        Raises:
            NotFoundError: If the quote does not exist
            ConflictError: If another manager holds a live lock, or the
                quote is not waiting for pricing
        """
        await self._transition(quote_id, QuoteEvent.LOCK, manager_id)
        quote = await self.repository.get(quote_id)

        logger.info(
            "Quote locked",
            quote_id=str(quote_id),
            manager_id=str(manager_id),
            lock_expires_at=quote.lock_expires_at.isoformat(),
        )
        self.outbox.append(
            NotificationEvent.QUOTE_LOCKED,
            quote_id=quote.id,
            manager_id=manager_id,
            client_id=quote.client_id,
        )
        return quote

    async def release(self, quote_id: uuid.UUID, manager_id: uuid.UUID) -> Quote:
        """
        Release the caller's lock and return the quote to PENDING_PRICING.

        Raises:
            NotFoundError: If the quote does not exist
            ForbiddenError: If the caller does not hold the lock
        """
        await self._transition(quote_id, QuoteEvent.RELEASE_LOCK, manager_id)
        quote = await self.repository.get(quote_id)

        logger.info(
            "Quote lock released",
            quote_id=str(quote_id),
            manager_id=str(manager_id),
        )
        return quote

    async def status(self, quote_id: uuid.UUID, manager_id: uuid.UUID) -> LockStatus:
        quote = await self.repository.get(quote_id)
        if quote is None:
            raise NotFoundError("Quote not found", quote_id=quote_id)
        return self.describe(quote, manager_id)

    def describe(self, quote: Quote, manager_id: uuid.UUID) -> LockStatus:
        now = self.clock()
        is_locked = quote.is_locked_by_other(manager_id)
        is_expired = quote.lock_expired(now)
        return LockStatus(
            quote_id=quote.id,
            status=quote.status,
            is_locked=is_locked,
            is_locked_by_me=(
                quote.locked_by_id is not None and quote.locked_by_id == manager_id
            ),
            is_expired=is_expired,
            can_take_over=is_locked and is_expired,
            locked_by_id=quote.locked_by_id,
            locked_at=quote.locked_at,
            lock_expires_at=quote.lock_expires_at,
        )

    async def cleanup_expired_locks(self) -> int:
        """
        Reset every quote whose lock expired back to PENDING_PRICING.

        Idempotent. Database failures are logged and reported as nothing
        reclaimed.

        Returns:
            Number of quotes reset
        """
        now = self.clock()
        try:
            count = await self.repository.expire_locks(now)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Expired lock cleanup failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return 0

        if count:
            logger.info("Expired quote locks reclaimed", count=count)
        return count

    async def _transition(
        self, quote_id: uuid.UUID, event: QuoteEvent, manager_id: uuid.UUID
    ) -> None:
        context = TransitionContext(actor_id=manager_id, now=self.clock())
        await self.repository.transition(self.state_machine, quote_id, event, context)
