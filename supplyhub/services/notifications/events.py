"""
Outbound notification events.

Core services record what happened by appending events to an outbox that
lives as long as one unit of work. The dispatcher drains it only after the
core transaction has committed, so a notification never describes a change
that was rolled back.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from supplyhub.core.logging import get_logger

logger = get_logger(__name__)


class NotificationEvent(str, Enum):
    QUOTE_SUBMITTED = "quote_submitted"
    QUOTE_LOCKED = "quote_locked"
    QUOTE_PRICED = "quote_priced"
    QUOTE_APPROVED = "quote_approved"
    QUOTE_REJECTED = "quote_rejected"
    QUOTE_CONVERTED = "quote_converted"
    DELIVERY_ASSIGNED = "delivery_assigned"
    DELIVERY_STATUS_CHANGED = "delivery_status_changed"
    DELIVERY_VERIFIED = "delivery_verified"
    DELIVERY_CONFIRMED = "delivery_confirmed"


@dataclass(frozen=True)
class OutboxEntry:
    event: NotificationEvent
    payload: dict[str, Any] = field(default_factory=dict)


class EventOutbox:
    """In-memory, per-unit-of-work list of pending events."""

    def __init__(self) -> None:
        self._entries: list[OutboxEntry] = []

    def append(self, event: NotificationEvent, **payload: Any) -> None:
        self._entries.append(OutboxEntry(event=event, payload=payload))
        logger.debug("Notification event queued", notification_event=event.value)

    def drain(self) -> list[OutboxEntry]:
        """Return and forget all pending events."""
        entries, self._entries = self._entries, []
        return entries

    def clear(self) -> None:
        """Drop pending events, e.g. after the core transaction rolled back."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
