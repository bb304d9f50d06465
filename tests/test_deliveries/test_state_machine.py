"""
Tests for the delivery state machine.
"""

from datetime import datetime
from uuid import uuid4

import pytest

from supplyhub.core.errors import ConflictError, ForbiddenError
from supplyhub.database.models import Delivery, DeliveryStatus
from supplyhub.services.deliveries.state_machine import (
    AGENT_TRANSITIONS,
    DeliveryEvent,
    DeliveryStateMachine,
)

NOW = datetime(2026, 3, 2, 15, 30, 0)
AGENT_ID = uuid4()


def make_delivery(status: DeliveryStatus = DeliveryStatus.ASSIGNED, **kwargs) -> Delivery:
    return Delivery(
        id=uuid4(),
        order_id=uuid4(),
        agent_id=kwargs.pop("agent_id", AGENT_ID),
        status=status,
        delivery_code="token",
        code_generated_at=NOW,
        **kwargs,
    )


@pytest.fixture
def machine() -> DeliveryStateMachine:
    return DeliveryStateMachine()


# ============================================================================
# Agent Update Tests
# ============================================================================


class TestAgentUpdates:
    @pytest.mark.parametrize(
        "current,target",
        [
            (DeliveryStatus.ASSIGNED, DeliveryStatus.PICKED_UP),
            (DeliveryStatus.PICKED_UP, DeliveryStatus.IN_TRANSIT),
            (DeliveryStatus.IN_TRANSIT, DeliveryStatus.DELIVERED),
            (DeliveryStatus.IN_TRANSIT, DeliveryStatus.IN_TRANSIT),
        ],
    )
    def test_allowed_steps(self, machine, current, target) -> None:
        transition = machine.transition(
            make_delivery(current), DeliveryEvent.AGENT_UPDATE, AGENT_ID, NOW, target
        )

        assert transition.from_status == current
        assert transition.to_status == target
        assert transition.values["status"] == target
        assert transition.values["updated_at"] == NOW

    @pytest.mark.parametrize(
        "current,target",
        [
            (DeliveryStatus.ASSIGNED, DeliveryStatus.IN_TRANSIT),
            (DeliveryStatus.ASSIGNED, DeliveryStatus.DELIVERED),
            (DeliveryStatus.IN_TRANSIT, DeliveryStatus.PICKED_UP),
            (DeliveryStatus.CLIENT_VERIFIED, DeliveryStatus.DELIVERED),
        ],
    )
    def test_skipping_or_going_back_conflicts(self, machine, current, target) -> None:
        with pytest.raises(ConflictError):
            machine.transition(
                make_delivery(current), DeliveryEvent.AGENT_UPDATE, AGENT_ID, NOW, target
            )

    @pytest.mark.parametrize(
        "target", [DeliveryStatus.CLIENT_VERIFIED, DeliveryStatus.MANAGER_CONFIRMED]
    )
    def test_agent_cannot_set_verification_statuses(self, machine, target) -> None:
        with pytest.raises(ForbiddenError):
            machine.transition(
                make_delivery(DeliveryStatus.DELIVERED),
                DeliveryEvent.AGENT_UPDATE,
                AGENT_ID,
                NOW,
                target,
            )

    def test_other_agent_is_forbidden(self, machine) -> None:
        with pytest.raises(ForbiddenError):
            machine.transition(
                make_delivery(),
                DeliveryEvent.AGENT_UPDATE,
                uuid4(),
                NOW,
                DeliveryStatus.PICKED_UP,
            )

    def test_delivered_stamps_actual_delivery_once(self, machine) -> None:
        first = machine.transition(
            make_delivery(DeliveryStatus.IN_TRANSIT),
            DeliveryEvent.AGENT_UPDATE,
            AGENT_ID,
            NOW,
            DeliveryStatus.DELIVERED,
        )
        repeat = machine.transition(
            make_delivery(DeliveryStatus.DELIVERED, actual_delivery=NOW),
            DeliveryEvent.AGENT_UPDATE,
            AGENT_ID,
            NOW,
            DeliveryStatus.DELIVERED,
        )

        assert first.changes["actual_delivery"] == NOW
        assert "actual_delivery" not in repeat.changes

    def test_transition_table_has_no_verification_targets(self) -> None:
        targets = {target for _, target in AGENT_TRANSITIONS}

        assert DeliveryStatus.CLIENT_VERIFIED not in targets
        assert DeliveryStatus.MANAGER_CONFIRMED not in targets


# ============================================================================
# Handshake Tests
# ============================================================================


class TestHandshake:
    def test_client_verify_from_delivered(self, machine) -> None:
        client_id = uuid4()

        transition = machine.transition(
            make_delivery(DeliveryStatus.DELIVERED),
            DeliveryEvent.CLIENT_VERIFY,
            client_id,
            NOW,
        )

        assert transition.to_status == DeliveryStatus.CLIENT_VERIFIED
        assert transition.changes["client_verified_at"] == NOW
        assert transition.changes["client_verified_by"] == client_id

    def test_client_verify_before_delivery_conflicts(self, machine) -> None:
        with pytest.raises(ConflictError):
            machine.transition(
                make_delivery(DeliveryStatus.IN_TRANSIT),
                DeliveryEvent.CLIENT_VERIFY,
                uuid4(),
                NOW,
            )

    def test_second_client_verify_conflicts(self, machine) -> None:
        verified = make_delivery(
            DeliveryStatus.CLIENT_VERIFIED, client_verified_at=NOW, client_verified_by=uuid4()
        )

        with pytest.raises(ConflictError) as exc_info:
            machine.transition(verified, DeliveryEvent.CLIENT_VERIFY, uuid4(), NOW)

        assert "already been verified" in exc_info.value.message

    def test_manager_confirm_requires_client_verification(self, machine) -> None:
        with pytest.raises(ConflictError):
            machine.transition(
                make_delivery(DeliveryStatus.DELIVERED),
                DeliveryEvent.MANAGER_CONFIRM,
                uuid4(),
                NOW,
            )

    def test_manager_confirm_from_client_verified(self, machine) -> None:
        manager_id = uuid4()

        transition = machine.transition(
            make_delivery(DeliveryStatus.CLIENT_VERIFIED, client_verified_at=NOW),
            DeliveryEvent.MANAGER_CONFIRM,
            manager_id,
            NOW,
        )

        assert transition.to_status == DeliveryStatus.MANAGER_CONFIRMED
        assert transition.changes["manager_confirmed_by"] == manager_id

    def test_second_manager_confirm_conflicts(self, machine) -> None:
        confirmed = make_delivery(
            DeliveryStatus.MANAGER_CONFIRMED,
            client_verified_at=NOW,
            manager_confirmed_at=NOW,
        )

        with pytest.raises(ConflictError):
            machine.transition(confirmed, DeliveryEvent.MANAGER_CONFIRM, uuid4(), NOW)
