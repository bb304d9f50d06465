"""
Periodic background sweeps over quotes.

``LockReaper`` reclaims expired pricing locks (every 5 minutes by
default). ``QuoteExpirySweeper`` rejects approved quotes that were never
converted before their deadline (daily by default). Both are started from
the application lifespan and log failures instead of dying, so one bad run
never stops the loop.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supplyhub.core.clock import Clock, utcnow
from supplyhub.core.config import Settings, get_settings
from supplyhub.core.logging import get_logger, log_performance
from supplyhub.database.connection import get_session_factory
from supplyhub.services.quotes.service import QuoteService

logger = get_logger(__name__)

SessionFactory = Callable[[], async_sessionmaker[AsyncSession]]


class _PeriodicSweep(ABC):
    name = "sweep"

    def __init__(
        self,
        interval_seconds: float,
        session_factory: SessionFactory = get_session_factory,
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
    ):
        self.interval_seconds = interval_seconds
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.clock = clock

    @abstractmethod
    async def sweep(self, service: QuoteService) -> int:
        """Apply one pass of the sweep and return the rows affected."""

    async def run_once(self) -> int:
        """Run one sweep in a fresh session. Returns the rows affected, 0 on failure."""
        try:
            async with self.session_factory()() as session:
                service = QuoteService(session, settings=self.settings, clock=self.clock)
                with log_performance(logger, self.name):
                    return await self.sweep(service)
        except Exception as e:
            logger.error(
                f"{self.name} failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return 0

    async def run_forever(self) -> None:
        logger.info(f"{self.name} started", interval_seconds=self.interval_seconds)
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)


class LockReaper(_PeriodicSweep):
    name = "expired_lock_cleanup"

    async def sweep(self, service: QuoteService) -> int:
        return await service.cleanup_expired_locks()


class QuoteExpirySweeper(_PeriodicSweep):
    name = "approved_quote_expiry"

    async def sweep(self, service: QuoteService) -> int:
        return await service.expire_approved_quotes()


def build_background_sweeps(settings: Optional[Settings] = None) -> list[_PeriodicSweep]:
    settings = settings or get_settings()
    return [
        LockReaper(settings.lock_cleanup_interval_seconds, settings=settings),
        QuoteExpirySweeper(settings.quote_expiry_sweep_interval_seconds, settings=settings),
    ]
