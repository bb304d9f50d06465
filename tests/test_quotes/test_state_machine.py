"""
Tests for QuoteStateMachine.

Covers the transition table, ownership and lock-holder checks, guards and
the column changes each transition describes. No database involved.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import pytest

from supplyhub.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from supplyhub.database.models.quote import Quote, QuoteItem, QuoteStatus
from supplyhub.services.quotes.state_machine import (
    TRANSITIONS,
    QuoteEvent,
    QuoteStateMachine,
    TransitionContext,
)

NOW = datetime(2026, 3, 2, 9, 0, 0)
CLIENT_ID = uuid4()
MANAGER_A = uuid4()
MANAGER_B = uuid4()


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def state_machine() -> QuoteStateMachine:
    return QuoteStateMachine()


def make_quote(
    status: QuoteStatus = QuoteStatus.PENDING_ITEMS,
    item_count: int = 1,
    locked_by: Optional[UUID] = None,
    locked_at: Optional[datetime] = None,
    valid_until: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> Quote:
    quote = Quote(
        id=uuid4(),
        client_id=CLIENT_ID,
        status=status,
        total_amount=Decimal("0"),
        sourcing_notes=notes,
        valid_until=valid_until,
        items=[
            QuoteItem(product_id=uuid4(), quantity=1, unit_price=Decimal("0"), subtotal=Decimal("0"))
            for _ in range(item_count)
        ],
    )
    if locked_by is not None:
        locked_at = locked_at or NOW
        quote.locked_by_id = locked_by
        quote.locked_at = locked_at
        quote.lock_expires_at = locked_at + timedelta(minutes=30)
    return quote


def ctx(actor: UUID, now: datetime = NOW, **kwargs) -> TransitionContext:
    return TransitionContext(actor_id=actor, now=now, **kwargs)


# ============================================================================
# Transition Table Tests
# ============================================================================


class TestTransitionTable:
    def test_table_has_every_documented_transition(self) -> None:
        assert len(TRANSITIONS) == 11
        assert TRANSITIONS[(QuoteStatus.PENDING_ITEMS, QuoteEvent.SUBMIT)] == (
            QuoteStatus.PENDING_PRICING
        )
        assert TRANSITIONS[(QuoteStatus.IN_PRICING, QuoteEvent.SET_PRICING)] == (
            QuoteStatus.AWAITING_CLIENT_APPROVAL
        )
        assert TRANSITIONS[(QuoteStatus.APPROVED, QuoteEvent.EXPIRE_APPROVAL)] == (
            QuoteStatus.REJECTED
        )

    def test_terminal_states_allow_nothing(self) -> None:
        assert QuoteStateMachine.allowed_events(QuoteStatus.REJECTED) == set()
        assert QuoteStateMachine.allowed_events(QuoteStatus.CONVERTED_TO_ORDER) == set()

    @pytest.mark.parametrize(
        "status,event",
        [
            (QuoteStatus.PENDING_PRICING, QuoteEvent.SUBMIT),
            (QuoteStatus.AWAITING_CLIENT_APPROVAL, QuoteEvent.CONVERT),
            (QuoteStatus.APPROVED, QuoteEvent.APPROVE),
            (QuoteStatus.REJECTED, QuoteEvent.APPROVE),
            (QuoteStatus.CONVERTED_TO_ORDER, QuoteEvent.CONVERT),
            (QuoteStatus.PENDING_ITEMS, QuoteEvent.LOCK),
        ],
    )
    def test_unlisted_transition_is_conflict(
        self, state_machine: QuoteStateMachine, status: QuoteStatus, event: QuoteEvent
    ) -> None:
        quote = make_quote(status=status)
        actor = CLIENT_ID if event != QuoteEvent.LOCK else MANAGER_A

        with pytest.raises(ConflictError):
            state_machine.transition(quote, event, ctx(actor))

        assert quote.status == status

    def test_items_locked_message_names_the_stage(
        self, state_machine: QuoteStateMachine
    ) -> None:
        quote = make_quote(status=QuoteStatus.PENDING_PRICING)

        with pytest.raises(ConflictError, match="awaiting manager pricing"):
            state_machine.transition(quote, QuoteEvent.REPLACE_ITEMS, ctx(CLIENT_ID))


# ============================================================================
# Client Event Tests
# ============================================================================


class TestClientEvents:
    def test_submit_moves_to_pending_pricing(self, state_machine: QuoteStateMachine) -> None:
        transition = state_machine.transition(make_quote(), QuoteEvent.SUBMIT, ctx(CLIENT_ID))

        assert transition.from_status == QuoteStatus.PENDING_ITEMS
        assert transition.to_status == QuoteStatus.PENDING_PRICING

    def test_submit_without_items_is_invalid(self, state_machine: QuoteStateMachine) -> None:
        quote = make_quote(item_count=0)

        with pytest.raises(InvalidInputError, match="at least one item"):
            state_machine.transition(quote, QuoteEvent.SUBMIT, ctx(CLIENT_ID))

    def test_foreign_client_gets_not_found(self, state_machine: QuoteStateMachine) -> None:
        with pytest.raises(NotFoundError):
            state_machine.transition(make_quote(), QuoteEvent.SUBMIT, ctx(uuid4()))

    def test_approve_sets_conversion_deadline(self, state_machine: QuoteStateMachine) -> None:
        quote = make_quote(
            status=QuoteStatus.AWAITING_CLIENT_APPROVAL,
            valid_until=NOW + timedelta(days=7),
        )

        transition = state_machine.transition(quote, QuoteEvent.APPROVE, ctx(CLIENT_ID))

        assert transition.to_status == QuoteStatus.APPROVED
        assert transition.changes["valid_until"] == NOW + timedelta(days=30)

    def test_approve_after_pricing_validity_is_conflict(
        self, state_machine: QuoteStateMachine
    ) -> None:
        quote = make_quote(
            status=QuoteStatus.AWAITING_CLIENT_APPROVAL,
            valid_until=NOW - timedelta(minutes=1),
        )

        with pytest.raises(ConflictError, match="expired"):
            state_machine.transition(quote, QuoteEvent.APPROVE, ctx(CLIENT_ID))

    def test_reject_appends_reason_to_notes(self, state_machine: QuoteStateMachine) -> None:
        quote = make_quote(status=QuoteStatus.AWAITING_CLIENT_APPROVAL, notes="Need by Friday")

        transition = state_machine.transition(
            quote, QuoteEvent.REJECT, ctx(CLIENT_ID, reason="Too expensive")
        )

        assert transition.to_status == QuoteStatus.REJECTED
        assert transition.changes["sourcing_notes"] == (
            "Need by Friday\nRejection reason: Too expensive"
        )

    def test_reject_without_reason_keeps_notes(self, state_machine: QuoteStateMachine) -> None:
        quote = make_quote(status=QuoteStatus.AWAITING_CLIENT_APPROVAL, notes="keep")

        transition = state_machine.transition(quote, QuoteEvent.REJECT, ctx(CLIENT_ID))

        assert "sourcing_notes" not in transition.changes

    def test_convert_after_deadline_is_conflict(self, state_machine: QuoteStateMachine) -> None:
        quote = make_quote(status=QuoteStatus.APPROVED, valid_until=NOW - timedelta(seconds=1))

        with pytest.raises(ConflictError):
            state_machine.transition(quote, QuoteEvent.CONVERT, ctx(CLIENT_ID))


# ============================================================================
# Lock Event Tests
# ============================================================================


class TestLockEvents:
    def test_lock_sets_holder_and_expiry(self, state_machine: QuoteStateMachine) -> None:
        quote = make_quote(status=QuoteStatus.PENDING_PRICING)

        transition = state_machine.transition(quote, QuoteEvent.LOCK, ctx(MANAGER_A))

        assert transition.to_status == QuoteStatus.IN_PRICING
        assert transition.changes["locked_by_id"] == MANAGER_A
        assert transition.changes["locked_at"] == NOW
        assert transition.changes["lock_expires_at"] == NOW + timedelta(minutes=30)

    def test_live_foreign_lock_blocks_with_holder_in_message(
        self, state_machine: QuoteStateMachine
    ) -> None:
        quote = make_quote(status=QuoteStatus.IN_PRICING, locked_by=MANAGER_A)

        with pytest.raises(ConflictError) as exc_info:
            state_machine.transition(
                quote, QuoteEvent.LOCK, ctx(MANAGER_B, now=NOW + timedelta(minutes=29))
            )

        assert str(MANAGER_A) in exc_info.value.message
        assert exc_info.value.context["locked_by_id"] == MANAGER_A

    def test_expired_foreign_lock_can_be_taken_over(
        self, state_machine: QuoteStateMachine
    ) -> None:
        quote = make_quote(status=QuoteStatus.IN_PRICING, locked_by=MANAGER_A)
        later = NOW + timedelta(minutes=31)

        transition = state_machine.transition(quote, QuoteEvent.LOCK, ctx(MANAGER_B, now=later))

        assert transition.changes["locked_by_id"] == MANAGER_B
        assert transition.changes["lock_expires_at"] == later + timedelta(minutes=30)

    def test_holder_can_refresh_own_lock(self, state_machine: QuoteStateMachine) -> None:
        quote = make_quote(status=QuoteStatus.IN_PRICING, locked_by=MANAGER_A)
        later = NOW + timedelta(minutes=10)

        transition = state_machine.transition(quote, QuoteEvent.LOCK, ctx(MANAGER_A, now=later))

        assert transition.to_status == QuoteStatus.IN_PRICING
        assert transition.changes["lock_expires_at"] == later + timedelta(minutes=30)

    def test_release_by_non_holder_is_forbidden(self, state_machine: QuoteStateMachine) -> None:
        quote = make_quote(status=QuoteStatus.IN_PRICING, locked_by=MANAGER_A)

        with pytest.raises(ForbiddenError):
            state_machine.transition(quote, QuoteEvent.RELEASE_LOCK, ctx(MANAGER_B))

    def test_release_clears_lock(self, state_machine: QuoteStateMachine) -> None:
        quote = make_quote(status=QuoteStatus.IN_PRICING, locked_by=MANAGER_A)

        transition = state_machine.transition(quote, QuoteEvent.RELEASE_LOCK, ctx(MANAGER_A))

        assert transition.to_status == QuoteStatus.PENDING_PRICING
        assert transition.changes["locked_by_id"] is None
        assert transition.changes["lock_expires_at"] is None

    def test_expire_lock_requires_expiry(self, state_machine: QuoteStateMachine) -> None:
        quote = make_quote(status=QuoteStatus.IN_PRICING, locked_by=MANAGER_A)

        with pytest.raises(ConflictError):
            state_machine.transition(quote, QuoteEvent.EXPIRE_LOCK, ctx(None))

        transition = state_machine.transition(
            quote, QuoteEvent.EXPIRE_LOCK, ctx(None, now=NOW + timedelta(minutes=31))
        )
        assert transition.to_status == QuoteStatus.PENDING_PRICING


# ============================================================================
# Pricing Event Tests
# ============================================================================


class TestPricing:
    def test_pricing_clears_lock_and_sets_validity(
        self, state_machine: QuoteStateMachine
    ) -> None:
        quote = make_quote(status=QuoteStatus.IN_PRICING, locked_by=MANAGER_A)
        later = NOW + timedelta(minutes=5)

        transition = state_machine.transition(
            quote, QuoteEvent.SET_PRICING, ctx(MANAGER_A, now=later)
        )

        assert transition.to_status == QuoteStatus.AWAITING_CLIENT_APPROVAL
        assert transition.changes["manager_id"] == MANAGER_A
        assert transition.changes["locked_by_id"] is None
        assert transition.changes["valid_until"] == later + timedelta(days=7)

    def test_pricing_without_lock_is_forbidden(self, state_machine: QuoteStateMachine) -> None:
        quote = make_quote(status=QuoteStatus.PENDING_PRICING)

        with pytest.raises(ForbiddenError, match="Please lock it first"):
            state_machine.transition(quote, QuoteEvent.SET_PRICING, ctx(MANAGER_A))

    def test_pricing_by_other_manager_is_forbidden(
        self, state_machine: QuoteStateMachine
    ) -> None:
        quote = make_quote(status=QuoteStatus.IN_PRICING, locked_by=MANAGER_A)

        with pytest.raises(ForbiddenError):
            state_machine.transition(quote, QuoteEvent.SET_PRICING, ctx(MANAGER_B))

    def test_pricing_with_expired_lock_is_conflict(
        self, state_machine: QuoteStateMachine
    ) -> None:
        quote = make_quote(status=QuoteStatus.IN_PRICING, locked_by=MANAGER_A)

        with pytest.raises(ConflictError, match="Please lock it again"):
            state_machine.transition(
                quote, QuoteEvent.SET_PRICING, ctx(MANAGER_A, now=NOW + timedelta(minutes=31))
            )


# ============================================================================
# Deletion Tests
# ============================================================================


class TestCheckDeletable:
    @pytest.mark.parametrize(
        "status",
        [QuoteStatus.APPROVED, QuoteStatus.REJECTED, QuoteStatus.CONVERTED_TO_ORDER],
    )
    def test_post_approval_statuses_cannot_be_deleted(
        self, state_machine: QuoteStateMachine, status: QuoteStatus
    ) -> None:
        with pytest.raises(ConflictError):
            state_machine.check_deletable(make_quote(status=status), CLIENT_ID, NOW)

    def test_live_lock_blocks_deletion(self, state_machine: QuoteStateMachine) -> None:
        quote = make_quote(status=QuoteStatus.IN_PRICING, locked_by=MANAGER_A)

        with pytest.raises(ConflictError):
            state_machine.check_deletable(quote, CLIENT_ID, NOW)

    def test_pending_quote_is_deletable_by_owner(self, state_machine: QuoteStateMachine) -> None:
        state_machine.check_deletable(make_quote(), CLIENT_ID, NOW)

        with pytest.raises(NotFoundError):
            state_machine.check_deletable(make_quote(), uuid4(), NOW)
