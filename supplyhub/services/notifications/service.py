"""
In-app notifications and the post-commit event dispatcher.

``NotificationService`` is the read/write API over a user's notifications.
``NotificationDispatcher`` turns drained outbox events into notification
rows. Dispatch is best effort: failures are logged and swallowed so they
can never undo or fail the operation that emitted the event.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from supplyhub.core.clock import Clock, utcnow
from supplyhub.core.errors import NotFoundError
from supplyhub.core.logging import get_logger
from supplyhub.database.models.notification import Notification, NotificationType
from supplyhub.database.models.user import User, UserRole
from supplyhub.services.notifications.events import (
    EventOutbox,
    NotificationEvent,
    OutboxEntry,
)

logger = get_logger(__name__)


class NotificationService:
    """
    Notification persistence and inbox queries for one user at a time.

    Args:
        session: Database session for persistence
        clock: Source of the current time
    """

    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self.session = session
        self.clock = clock

    def build(
        self,
        user_id: uuid.UUID,
        notification_type: NotificationType,
        title: str,
        message: str,
        link: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            link=link,
            read=False,
        )
        self.session.add(notification)
        return notification

    async def list_unread(self, user_id: uuid.UUID, limit: int = 50) -> Sequence[Notification]:
        result = await self.session.execute(
            select(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )
        return result.scalars().all()

    async def count_unread(self, user_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
        )
        return result.scalar_one()

    async def mark_as_read(
        self, notification_id: uuid.UUID, user_id: uuid.UUID
    ) -> Notification:
        """
        Mark one of the user's notifications as read.

        Raises:
            NotFoundError: If the notification does not exist or belongs to
                another user
        """
        notification = await self.session.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError("Notification not found", notification_id=notification_id)

        if not notification.read:
            notification.read = True
            notification.read_at = self.clock()
            await self.session.commit()
        return notification

    async def mark_all_as_read(self, user_id: uuid.UUID) -> int:
        now = self.clock()
        result = await self.session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True, read_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount


@dataclass
class _Message:
    notification_type: NotificationType
    title: str
    message: str
    link: Optional[str]


class NotificationDispatcher:
    """
    Fan outbox events out to their recipients as in-app notifications.

    Recipient rules:
        quote_submitted          all active managers
        quote_locked             all active admins
        quote_priced             owning client
        quote_approved/rejected/converted   pricing manager
        delivery_assigned        agent and client
        delivery_status_changed  client
        delivery_verified        all active managers
        delivery_confirmed       client and agent
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.notifications = NotificationService(session)

    async def dispatch(self, outbox: EventOutbox) -> int:
        """
        Drain ``outbox`` and persist a notification per recipient.

        Must be called after the core transaction committed. Never raises.

        Returns:
            Number of notifications written
        """
        entries = outbox.drain()
        if not entries:
            return 0

        try:
            written = 0
            for entry in entries:
                written += await self._dispatch_entry(entry)
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            logger.error(
                "Notification dispatch failed",
                events=[entry.event.value for entry in entries],
                error=str(e),
                error_type=type(e).__name__,
            )
            return 0

        logger.debug("Notifications dispatched", count=written, events=len(entries))
        return written

    async def _dispatch_entry(self, entry: OutboxEntry) -> int:
        recipients = await self._resolve_recipients(entry)
        message = self._render(entry)
        for user_id in recipients:
            self.notifications.build(
                user_id=user_id,
                notification_type=message.notification_type,
                title=message.title,
                message=message.message,
                link=message.link,
            )
        return len(recipients)

    async def _resolve_recipients(self, entry: OutboxEntry) -> list[uuid.UUID]:
        payload = entry.payload
        event = entry.event

        if event in (NotificationEvent.QUOTE_SUBMITTED, NotificationEvent.DELIVERY_VERIFIED):
            return await self._users_with_role(UserRole.MANAGER)
        if event == NotificationEvent.QUOTE_LOCKED:
            return await self._users_with_role(UserRole.ADMIN)
        if event in (
            NotificationEvent.QUOTE_PRICED,
            NotificationEvent.DELIVERY_STATUS_CHANGED,
        ):
            return _present(payload.get("client_id"))
        if event in (
            NotificationEvent.QUOTE_APPROVED,
            NotificationEvent.QUOTE_REJECTED,
            NotificationEvent.QUOTE_CONVERTED,
        ):
            return _present(payload.get("manager_id"))
        if event in (
            NotificationEvent.DELIVERY_ASSIGNED,
            NotificationEvent.DELIVERY_CONFIRMED,
        ):
            return _present(payload.get("agent_id"), payload.get("client_id"))
        return []

    async def _users_with_role(self, role: UserRole) -> list[uuid.UUID]:
        result = await self.session.execute(
            select(User.id).where(User.role == role, User.is_active.is_(True))
        )
        return list(result.scalars().all())

    @staticmethod
    def _render(entry: OutboxEntry) -> _Message:
        payload: dict[str, Any] = entry.payload
        quote_link = f"/quotes/{payload.get('quote_id')}"
        delivery_link = f"/deliveries/{payload.get('delivery_id')}"

        templates = {
            NotificationEvent.QUOTE_SUBMITTED: _Message(
                NotificationType.QUOTE_SUBMITTED,
                "New quote request",
                "A client submitted a quote request waiting for pricing.",
                quote_link,
            ),
            NotificationEvent.QUOTE_LOCKED: _Message(
                NotificationType.QUOTE_LOCKED,
                "Quote locked for pricing",
                f"Manager {payload.get('manager_id')} started pricing a quote.",
                quote_link,
            ),
            NotificationEvent.QUOTE_PRICED: _Message(
                NotificationType.QUOTE_PRICED,
                "Your quote is ready",
                f"Your quote has been priced at {payload.get('total_amount')}. "
                "Please review and approve it.",
                quote_link,
            ),
            NotificationEvent.QUOTE_APPROVED: _Message(
                NotificationType.QUOTE_APPROVED,
                "Quote approved",
                "The client approved the quote you priced.",
                quote_link,
            ),
            NotificationEvent.QUOTE_REJECTED: _Message(
                NotificationType.QUOTE_REJECTED,
                "Quote rejected",
                "The client rejected the quote you priced."
                + (f" Reason: {payload['reason']}" if payload.get("reason") else ""),
                quote_link,
            ),
            NotificationEvent.QUOTE_CONVERTED: _Message(
                NotificationType.QUOTE_CONVERTED,
                "Quote converted to order",
                "The client converted the quote you priced into an order.",
                f"/orders/{payload.get('order_id')}",
            ),
            NotificationEvent.DELIVERY_ASSIGNED: _Message(
                NotificationType.DELIVERY_ASSIGNED,
                "Delivery assigned",
                "A delivery agent has been assigned to your order.",
                delivery_link,
            ),
            NotificationEvent.DELIVERY_STATUS_CHANGED: _Message(
                NotificationType.DELIVERY_STATUS_CHANGED,
                "Delivery update",
                f"Your delivery is now {payload.get('status')}.",
                delivery_link,
            ),
            NotificationEvent.DELIVERY_VERIFIED: _Message(
                NotificationType.DELIVERY_VERIFIED,
                "Delivery verified by client",
                "A client confirmed receipt. The delivery awaits your confirmation.",
                delivery_link,
            ),
            NotificationEvent.DELIVERY_CONFIRMED: _Message(
                NotificationType.DELIVERY_CONFIRMED,
                "Delivery completed",
                "The delivery has been confirmed by a manager.",
                delivery_link,
            ),
        }
        return templates[entry.event]


def _present(*user_ids: Optional[uuid.UUID]) -> list[uuid.UUID]:
    return [user_id for user_id in dict.fromkeys(user_ids) if user_id is not None]


async def dispatch_after_commit(session: AsyncSession, outbox: EventOutbox) -> None:
    """
    Commit the core unit of work, then deliver its notifications.

    Dispatch runs in its own session on the same engine, so a failed
    dispatch rolls back only the notification rows and leaves the objects
    of the core session loaded.
    """
    await session.commit()
    if not len(outbox):
        return

    async with AsyncSession(bind=session.bind, expire_on_commit=False) as dispatch_session:
        await NotificationDispatcher(dispatch_session).dispatch(outbox)
