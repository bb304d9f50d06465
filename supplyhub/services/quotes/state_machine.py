"""Quote lifecycle state machine.

Every legality decision about a quote (ownership, lock holding, the
transition table and per-event guards) is taken by
``QuoteStateMachine.transition``. It never touches the database: it returns
a ``QuoteTransition`` describing the target status and the column values to
write, and the repository persists it with a conditional UPDATE.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional

from supplyhub.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from supplyhub.core.logging import get_logger
from supplyhub.database.models.quote import Quote, QuoteStatus

logger = get_logger(__name__)


class QuoteEvent(str, Enum):
    """Events that move a quote through its lifecycle."""

    REPLACE_ITEMS = "REPLACE_ITEMS"
    SUBMIT = "SUBMIT"
    LOCK = "LOCK"
    RELEASE_LOCK = "RELEASE_LOCK"
    EXPIRE_LOCK = "EXPIRE_LOCK"
    SET_PRICING = "SET_PRICING"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    CONVERT = "CONVERT"
    EXPIRE_APPROVAL = "EXPIRE_APPROVAL"


TRANSITIONS: Dict[tuple[QuoteStatus, QuoteEvent], QuoteStatus] = {
    (QuoteStatus.PENDING_ITEMS, QuoteEvent.REPLACE_ITEMS): QuoteStatus.PENDING_ITEMS,
    (QuoteStatus.PENDING_ITEMS, QuoteEvent.SUBMIT): QuoteStatus.PENDING_PRICING,
    (QuoteStatus.PENDING_PRICING, QuoteEvent.LOCK): QuoteStatus.IN_PRICING,
    (QuoteStatus.IN_PRICING, QuoteEvent.LOCK): QuoteStatus.IN_PRICING,
    (QuoteStatus.IN_PRICING, QuoteEvent.RELEASE_LOCK): QuoteStatus.PENDING_PRICING,
    (QuoteStatus.IN_PRICING, QuoteEvent.EXPIRE_LOCK): QuoteStatus.PENDING_PRICING,
    (QuoteStatus.IN_PRICING, QuoteEvent.SET_PRICING): QuoteStatus.AWAITING_CLIENT_APPROVAL,
    (QuoteStatus.AWAITING_CLIENT_APPROVAL, QuoteEvent.APPROVE): QuoteStatus.APPROVED,
    (QuoteStatus.AWAITING_CLIENT_APPROVAL, QuoteEvent.REJECT): QuoteStatus.REJECTED,
    (QuoteStatus.APPROVED, QuoteEvent.CONVERT): QuoteStatus.CONVERTED_TO_ORDER,
    (QuoteStatus.APPROVED, QuoteEvent.EXPIRE_APPROVAL): QuoteStatus.REJECTED,
}

# Events only the owning client may trigger
CLIENT_EVENTS = frozenset(
    {
        QuoteEvent.REPLACE_ITEMS,
        QuoteEvent.SUBMIT,
        QuoteEvent.APPROVE,
        QuoteEvent.REJECT,
        QuoteEvent.CONVERT,
    }
)

# Item list is editable only in PENDING_ITEMS
ITEMS_LOCKED_MESSAGES: Dict[QuoteStatus, str] = {
    QuoteStatus.PENDING_PRICING: (
        "Quote is already submitted and awaiting manager pricing. "
        "You cannot add more items at this stage."
    ),
    QuoteStatus.IN_PRICING: (
        "Quote is currently being priced by a manager. "
        "You cannot modify items at this stage."
    ),
    QuoteStatus.AWAITING_CLIENT_APPROVAL: (
        "Quote has been priced and is awaiting your approval. "
        "You cannot modify items at this stage."
    ),
    QuoteStatus.APPROVED: (
        "Quote has already been approved. You cannot modify items."
    ),
    QuoteStatus.REJECTED: (
        "Quote has been rejected. Please create a new quote."
    ),
    QuoteStatus.CONVERTED_TO_ORDER: (
        "Quote has already been converted to an order. You cannot modify items."
    ),
}

# Lock fields cleared whenever a quote leaves IN_PRICING
CLEARED_LOCK = {"locked_by_id": None, "locked_at": None, "lock_expires_at": None}


@dataclass
class TransitionContext:
    """Who triggers an event, when, and with which event arguments."""

    actor_id: Optional[uuid.UUID]
    now: datetime
    reason: Optional[str] = None
    item_count: Optional[int] = None


@dataclass
class QuoteTransition:
    """Outcome of a legal transition: target status plus columns to write."""

    quote_id: uuid.UUID
    event: QuoteEvent
    from_status: QuoteStatus
    to_status: QuoteStatus
    actor_id: Optional[uuid.UUID]
    now: datetime
    changes: Dict[str, Any] = field(default_factory=dict)

    @property
    def values(self) -> Dict[str, Any]:
        return {"status": self.to_status, **self.changes}


class QuoteStateMachine:
    """State machine for the quote pricing workflow.

    Guards raise the domain error describing why an event is refused;
    side effects return the extra column values a transition writes.
    """

    def __init__(
        self,
        lock_duration: timedelta = timedelta(minutes=30),
        pricing_validity: timedelta = timedelta(days=7),
        approval_validity: timedelta = timedelta(days=30),
    ):
        self.lock_duration = lock_duration
        self.pricing_validity = pricing_validity
        self.approval_validity = approval_validity
        self._guards: Dict[
            QuoteEvent, Callable[[Quote, TransitionContext], None]
        ] = {
            QuoteEvent.SUBMIT: self._guard_submit,
            QuoteEvent.LOCK: self._guard_lock,
            QuoteEvent.EXPIRE_LOCK: self._guard_lock_expired,
            QuoteEvent.SET_PRICING: self._guard_set_pricing,
            QuoteEvent.APPROVE: self._guard_approve,
            QuoteEvent.CONVERT: self._guard_convert,
            QuoteEvent.EXPIRE_APPROVAL: self._guard_approval_expired,
        }
        self._side_effects: Dict[
            QuoteEvent, Callable[[Quote, TransitionContext], Dict[str, Any]]
        ] = {
            QuoteEvent.LOCK: self._effect_lock,
            QuoteEvent.RELEASE_LOCK: self._effect_clear_lock,
            QuoteEvent.EXPIRE_LOCK: self._effect_clear_lock,
            QuoteEvent.SET_PRICING: self._effect_priced,
            QuoteEvent.APPROVE: self._effect_approved,
            QuoteEvent.REJECT: self._effect_rejected,
            QuoteEvent.EXPIRE_APPROVAL: self._effect_approval_expired,
        }

    @classmethod
    def allowed_events(cls, status: QuoteStatus) -> set[QuoteEvent]:
        return {event for (source, event) in TRANSITIONS if source == status}

    def transition(
        self,
        quote: Quote,
        event: QuoteEvent,
        context: TransitionContext,
    ) -> QuoteTransition:
        """Validate ``event`` against ``quote`` and describe the result.

        Args:
            quote: Current persisted state of the quote
            event: Event to apply
            context: Actor, time and event arguments

        Returns:
            QuoteTransition with the target status and column changes

        Raises:
            NotFoundError: Client event by someone other than the owner
            ForbiddenError: Lock operation by someone other than the holder
            ConflictError: Event not allowed in the current status, or a
                blocking condition such as a live foreign lock
            InvalidInputError: Event arguments violate a guard
        """
        current = quote.status

        if event in CLIENT_EVENTS and quote.client_id != context.actor_id:
            raise NotFoundError("Quote not found", quote_id=quote.id)

        self._check_lock_holder(quote, event, context)

        target = TRANSITIONS.get((current, event))
        if target is None:
            raise ConflictError(
                self._illegal_transition_message(current, event),
                quote_id=quote.id,
                current_status=current.value,
                event=event.value,
            )

        guard = self._guards.get(event)
        if guard is not None:
            guard(quote, context)

        changes: Dict[str, Any] = {"updated_at": context.now}
        effect = self._side_effects.get(event)
        if effect is not None:
            changes.update(effect(quote, context))

        logger.debug(
            "Quote transition validated",
            quote_id=str(quote.id),
            transition=f"{current.value}->{target.value}",
            quote_event=event.value,
            actor_id=str(context.actor_id) if context.actor_id else None,
        )

        return QuoteTransition(
            quote_id=quote.id,
            event=event,
            from_status=current,
            to_status=target,
            actor_id=context.actor_id,
            now=context.now,
            changes=changes,
        )

    def check_deletable(self, quote: Quote, client_id: uuid.UUID, now: datetime) -> None:
        """Raise unless the owning client may delete ``quote`` right now."""
        if quote.client_id != client_id:
            raise NotFoundError("Quote not found", quote_id=quote.id)
        if not quote.status.is_deletable:
            raise ConflictError(
                f"Quote in status {quote.status.value} cannot be deleted",
                quote_id=quote.id,
                current_status=quote.status.value,
            )
        if quote.locked_by_id is not None and not quote.lock_expired(now):
            raise ConflictError(
                "Quote is locked by a manager and cannot be deleted",
                quote_id=quote.id,
                locked_by_id=quote.locked_by_id,
                lock_expires_at=quote.lock_expires_at,
            )

    def _check_lock_holder(
        self, quote: Quote, event: QuoteEvent, context: TransitionContext
    ) -> None:
        if event == QuoteEvent.RELEASE_LOCK and quote.locked_by_id != context.actor_id:
            raise ForbiddenError(
                "You do not hold the lock on this quote",
                quote_id=quote.id,
                locked_by_id=quote.locked_by_id,
            )
        if (
            event == QuoteEvent.SET_PRICING
            and quote.status in (QuoteStatus.PENDING_PRICING, QuoteStatus.IN_PRICING)
            and quote.locked_by_id != context.actor_id
        ):
            raise ForbiddenError(
                "You do not have an active lock on this quote. Please lock it first.",
                quote_id=quote.id,
                locked_by_id=quote.locked_by_id,
            )

    @staticmethod
    def _illegal_transition_message(status: QuoteStatus, event: QuoteEvent) -> str:
        if event == QuoteEvent.REPLACE_ITEMS and status in ITEMS_LOCKED_MESSAGES:
            return ITEMS_LOCKED_MESSAGES[status]
        if event == QuoteEvent.SUBMIT:
            return f"Quote cannot be submitted in status {status.value}"
        if event == QuoteEvent.LOCK:
            return f"Quote cannot be locked in status {status.value}"
        if event == QuoteEvent.SET_PRICING:
            return f"Quote cannot be priced in status {status.value}"
        if event in (QuoteEvent.APPROVE, QuoteEvent.REJECT):
            return f"Quote is not awaiting approval (status {status.value})"
        if event == QuoteEvent.CONVERT:
            return f"Only approved quotes can be converted to orders (status {status.value})"
        return f"Event {event.value} is not allowed in status {status.value}"

    # Transition Guards

    def _guard_submit(self, quote: Quote, context: TransitionContext) -> None:
        item_count = (
            context.item_count if context.item_count is not None else len(quote.items)
        )
        if item_count < 1:
            raise InvalidInputError(
                "Quote must have at least one item before submission",
                quote_id=quote.id,
            )

    def _guard_lock(self, quote: Quote, context: TransitionContext) -> None:
        if quote.is_locked_by_other(context.actor_id) and not quote.lock_expired(
            context.now
        ):
            raise ConflictError(
                "This quote is currently being handled by another manager "
                f"({quote.locked_by_id}) until {quote.lock_expires_at.isoformat()}",
                quote_id=quote.id,
                locked_by_id=quote.locked_by_id,
                lock_expires_at=quote.lock_expires_at,
            )

    def _guard_lock_expired(self, quote: Quote, context: TransitionContext) -> None:
        if not quote.lock_expired(context.now):
            raise ConflictError(
                "Quote lock has not expired",
                quote_id=quote.id,
                lock_expires_at=quote.lock_expires_at,
            )

    def _guard_set_pricing(self, quote: Quote, context: TransitionContext) -> None:
        if quote.lock_expired(context.now):
            raise ConflictError(
                f"Your lock on this quote expired at {quote.lock_expires_at.isoformat()}. "
                "Please lock it again.",
                quote_id=quote.id,
                lock_expires_at=quote.lock_expires_at,
            )

    def _guard_approve(self, quote: Quote, context: TransitionContext) -> None:
        if quote.valid_until is not None and quote.valid_until < context.now:
            raise ConflictError(
                f"Quote pricing expired on {quote.valid_until.isoformat()}",
                quote_id=quote.id,
                valid_until=quote.valid_until,
            )

    def _guard_convert(self, quote: Quote, context: TransitionContext) -> None:
        if quote.valid_until is not None and quote.valid_until < context.now:
            raise ConflictError(
                f"Quote approval expired on {quote.valid_until.isoformat()}",
                quote_id=quote.id,
                valid_until=quote.valid_until,
            )

    def _guard_approval_expired(self, quote: Quote, context: TransitionContext) -> None:
        if quote.valid_until is None or quote.valid_until >= context.now:
            raise ConflictError(
                "Quote approval has not expired",
                quote_id=quote.id,
                valid_until=quote.valid_until,
            )

    # Side Effects

    def _effect_lock(self, quote: Quote, context: TransitionContext) -> Dict[str, Any]:
        return {
            "locked_by_id": context.actor_id,
            "locked_at": context.now,
            "lock_expires_at": context.now + self.lock_duration,
        }

    def _effect_clear_lock(self, quote: Quote, context: TransitionContext) -> Dict[str, Any]:
        return dict(CLEARED_LOCK)

    def _effect_priced(self, quote: Quote, context: TransitionContext) -> Dict[str, Any]:
        return {
            **CLEARED_LOCK,
            "manager_id": context.actor_id,
            "valid_until": context.now + self.pricing_validity,
        }

    def _effect_approved(self, quote: Quote, context: TransitionContext) -> Dict[str, Any]:
        return {"valid_until": context.now + self.approval_validity}

    def _effect_rejected(self, quote: Quote, context: TransitionContext) -> Dict[str, Any]:
        if not context.reason:
            return {}
        notes = f"{quote.sourcing_notes or ''}\nRejection reason: {context.reason}"
        return {"sourcing_notes": notes.strip()}

    def _effect_approval_expired(
        self, quote: Quote, context: TransitionContext
    ) -> Dict[str, Any]:
        notes = f"{quote.sourcing_notes or ''}\nQuote expired"
        return {"sourcing_notes": notes.strip()}
