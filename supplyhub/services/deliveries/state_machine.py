"""Delivery verification state machine.

Agents move a delivery forward one step at a time from ASSIGNED to
DELIVERED and may re-report the current step to refresh location or
notes. CLIENT_VERIFIED and MANAGER_CONFIRMED are reachable only through
the client verification and manager confirmation events, each exactly
once.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from supplyhub.core.errors import ConflictError, ForbiddenError
from supplyhub.core.logging import get_logger
from supplyhub.database.models.delivery import Delivery, DeliveryStatus

logger = get_logger(__name__)


class DeliveryEvent(str, Enum):
    AGENT_UPDATE = "AGENT_UPDATE"
    CLIENT_VERIFY = "CLIENT_VERIFY"
    MANAGER_CONFIRM = "MANAGER_CONFIRM"


AGENT_STATUSES = (
    DeliveryStatus.ASSIGNED,
    DeliveryStatus.PICKED_UP,
    DeliveryStatus.IN_TRANSIT,
    DeliveryStatus.DELIVERED,
)

# Agent may stay on the current step or advance exactly one
AGENT_TRANSITIONS: frozenset[tuple[DeliveryStatus, DeliveryStatus]] = frozenset(
    [(status, status) for status in AGENT_STATUSES]
    + list(zip(AGENT_STATUSES, AGENT_STATUSES[1:]))
)

HANDSHAKE_TRANSITIONS: Dict[DeliveryEvent, tuple[DeliveryStatus, DeliveryStatus]] = {
    DeliveryEvent.CLIENT_VERIFY: (DeliveryStatus.DELIVERED, DeliveryStatus.CLIENT_VERIFIED),
    DeliveryEvent.MANAGER_CONFIRM: (
        DeliveryStatus.CLIENT_VERIFIED,
        DeliveryStatus.MANAGER_CONFIRMED,
    ),
}


@dataclass
class DeliveryTransition:
    delivery_id: uuid.UUID
    event: DeliveryEvent
    from_status: DeliveryStatus
    to_status: DeliveryStatus
    actor_id: uuid.UUID
    changes: Dict[str, Any] = field(default_factory=dict)

    @property
    def values(self) -> Dict[str, Any]:
        return {"status": self.to_status, **self.changes}


class DeliveryStateMachine:
    """Single place deciding whether a delivery event is legal."""

    def transition(
        self,
        delivery: Delivery,
        event: DeliveryEvent,
        actor_id: uuid.UUID,
        now: datetime,
        target_status: Optional[DeliveryStatus] = None,
    ) -> DeliveryTransition:
        """
        Validate ``event`` and describe the resulting status and stamps.

        Args:
            delivery: Current persisted delivery
            event: Event to apply
            actor_id: User triggering the event
            now: Current time
            target_status: Requested status for agent updates

        Raises:
            ForbiddenError: Agent update by someone else, or an agent trying
                to set a verification status
            ConflictError: Transition not allowed from the current status,
                or verification already done
        """
        if event == DeliveryEvent.AGENT_UPDATE:
            target = self._check_agent_update(delivery, actor_id, target_status)
        else:
            target = self._check_handshake(delivery, event)

        changes: Dict[str, Any] = {"updated_at": now}
        if target == DeliveryStatus.DELIVERED and delivery.actual_delivery is None:
            changes["actual_delivery"] = now
        elif event == DeliveryEvent.CLIENT_VERIFY:
            changes.update(client_verified_at=now, client_verified_by=actor_id)
        elif event == DeliveryEvent.MANAGER_CONFIRM:
            changes.update(manager_confirmed_at=now, manager_confirmed_by=actor_id)

        logger.debug(
            "Delivery transition validated",
            delivery_id=str(delivery.id),
            transition=f"{delivery.status.value}->{target.value}",
            delivery_event=event.value,
        )
        return DeliveryTransition(
            delivery_id=delivery.id,
            event=event,
            from_status=delivery.status,
            to_status=target,
            actor_id=actor_id,
            changes=changes,
        )

    @staticmethod
    def _check_agent_update(
        delivery: Delivery,
        actor_id: uuid.UUID,
        target_status: Optional[DeliveryStatus],
    ) -> DeliveryStatus:
        if delivery.agent_id != actor_id:
            raise ForbiddenError(
                "This delivery is not assigned to you", delivery_id=delivery.id
            )
        if target_status not in AGENT_STATUSES:
            raise ForbiddenError(
                f"Agents cannot set delivery status {getattr(target_status, 'value', target_status)}",
                delivery_id=delivery.id,
            )
        if (delivery.status, target_status) not in AGENT_TRANSITIONS:
            raise ConflictError(
                f"Cannot move delivery from {delivery.status.value} to {target_status.value}",
                delivery_id=delivery.id,
                current_status=delivery.status.value,
            )
        return target_status

    @staticmethod
    def _check_handshake(delivery: Delivery, event: DeliveryEvent) -> DeliveryStatus:
        source, target = HANDSHAKE_TRANSITIONS[event]

        if event == DeliveryEvent.CLIENT_VERIFY and delivery.client_verified_at is not None:
            raise ConflictError(
                "Delivery has already been verified", delivery_id=delivery.id
            )
        if event == DeliveryEvent.MANAGER_CONFIRM and delivery.manager_confirmed_at is not None:
            raise ConflictError(
                "Delivery has already been confirmed", delivery_id=delivery.id
            )
        if delivery.status != source:
            raise ConflictError(
                f"Delivery must be {source.value} (currently {delivery.status.value})",
                delivery_id=delivery.id,
                current_status=delivery.status.value,
            )
        return target
