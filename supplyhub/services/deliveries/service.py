"""
Delivery service: agent assignment, progress reporting and the three-way
verification handshake (agent delivers, client verifies with the delivery
code, manager confirms).
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from supplyhub.core.clock import Clock, utcnow
from supplyhub.core.config import Settings, get_settings
from supplyhub.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from supplyhub.core.logging import get_logger
from supplyhub.database.models.delivery import Delivery, DeliveryStatus
from supplyhub.database.models.order import Order, OrderStatus
from supplyhub.database.models.user import User, UserRole
from supplyhub.services.deliveries.codes import DeliveryCodeService, derive_short_code
from supplyhub.services.deliveries.repository import DeliveryRepository
from supplyhub.services.deliveries.state_machine import (
    DeliveryEvent,
    DeliveryStateMachine,
    DeliveryTransition,
)
from supplyhub.services.notifications.events import EventOutbox, NotificationEvent
from supplyhub.services.notifications.service import dispatch_after_commit
from supplyhub.services.payments.service import PaymentService

logger = get_logger(__name__)


@dataclass
class DeliveryCodeView:
    """What the assigned agent sees to hand the code over to the client."""

    delivery_id: uuid.UUID
    short_code: str
    qr_data: dict[str, Any]
    expires_at: datetime
    client_name: Optional[str]
    client_phone: Optional[str]


@dataclass
class DeliveryTracking:
    order_id: uuid.UUID
    delivery_id: uuid.UUID
    status: DeliveryStatus
    agent_id: uuid.UUID
    agent_name: Optional[str]
    agent_phone: Optional[str]
    current_lat: Optional[Decimal]
    current_lng: Optional[Decimal]
    estimated_delivery: Optional[datetime]
    actual_delivery: Optional[datetime]


class DeliveryService:
    """
    Service for the delivery verification workflow.

    Args:
        session: Database session; the service commits its own units of work
        settings: Application settings (code key, validity windows)
        clock: Source of the current time
        payments: Payment predicate used to gate assignment
        codes: Delivery code generator and verifier
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
        payments: Optional[PaymentService] = None,
        codes: Optional[DeliveryCodeService] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.clock = clock
        self.payments = payments or PaymentService(session, clock=clock)
        self.codes = codes or DeliveryCodeService(self.settings)
        self.repository = DeliveryRepository(session)
        self.state_machine = DeliveryStateMachine()
        self.outbox = EventOutbox()

    async def assign_agent(
        self,
        order_id: uuid.UUID,
        agent_id: uuid.UUID,
        assigned_by: Optional[uuid.UUID] = None,
    ) -> Delivery:
        """
        Assign a delivery agent to a paid order and issue its delivery code.

        Raises:
            NotFoundError: If the order does not exist
            ConflictError: If the order is not paid or already has a delivery
            InvalidInputError: If the agent is not an active delivery agent
        """
        now = self.clock()
        order = await self._get_order_or_404(order_id)

        if order.status != OrderStatus.PAID or not self.payments.has_confirmed_payment(order):
            raise ConflictError(
                "Order must be paid before a delivery agent can be assigned "
                f"(status {order.status.value}, payment {order.payment_status.value})",
                order_id=order_id,
            )

        if await self.repository.get_for_order(order_id) is not None:
            raise ConflictError("Delivery already assigned for this order", order_id=order_id)

        agent = await self.repository.get_user(agent_id)
        if agent is None or agent.role != UserRole.DELIVERY_AGENT or not agent.is_active:
            raise InvalidInputError("Invalid delivery agent", agent_id=agent_id)

        if not await self.repository.set_order_status(
            order_id, OrderStatus.PAID, OrderStatus.IN_TRANSIT, now
        ):
            await self.session.rollback()
            raise ConflictError("Order changed while assigning the delivery", order_id=order_id)

        delivery_id = uuid.uuid4()
        code = self.codes.generate(delivery_id, order_id, order.client_id, now)
        delivery = Delivery(
            id=delivery_id,
            order_id=order_id,
            agent_id=agent_id,
            status=DeliveryStatus.ASSIGNED,
            delivery_code=code.token,
            code_generated_at=code.generated_at,
            estimated_delivery=now + timedelta(hours=self.settings.delivery_eta_hours),
        )
        try:
            await self.repository.add(delivery)
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError(
                "Delivery already assigned for this order", order_id=order_id
            ) from e

        self.outbox.append(
            NotificationEvent.DELIVERY_ASSIGNED,
            delivery_id=delivery_id,
            order_id=order_id,
            agent_id=agent_id,
            client_id=order.client_id,
        )
        await self._commit()

        logger.info(
            "Delivery agent assigned",
            delivery_id=str(delivery_id),
            order_id=str(order_id),
            agent_id=str(agent_id),
            assigned_by=str(assigned_by) if assigned_by else None,
        )
        return delivery

    async def update_status(
        self,
        delivery_id: uuid.UUID,
        agent_id: uuid.UUID,
        status: DeliveryStatus,
        latitude: Optional[Decimal] = None,
        longitude: Optional[Decimal] = None,
        notes: Optional[str] = None,
    ) -> Delivery:
        """
        Record agent progress, optionally with the current location.

        Raises:
            NotFoundError: If the delivery does not exist
            ForbiddenError: If the caller is not the assigned agent, or asks
                for a verification status
            ConflictError: If the step is not the current or next one
        """
        extra: dict[str, Any] = {}
        if latitude is not None and longitude is not None:
            extra.update(current_lat=latitude, current_lng=longitude)
        if notes is not None:
            extra["delivery_notes"] = notes

        delivery = await self._apply(
            delivery_id,
            DeliveryEvent.AGENT_UPDATE,
            agent_id,
            target_status=status,
            extra_values=extra,
        )
        order = await self._get_order_or_404(delivery.order_id)
        self.outbox.append(
            NotificationEvent.DELIVERY_STATUS_CHANGED,
            delivery_id=delivery_id,
            client_id=order.client_id,
            status=status.value,
        )
        await self._commit()

        logger.info(
            "Delivery status updated",
            delivery_id=str(delivery_id),
            agent_id=str(agent_id),
            status=status.value,
        )
        return delivery

    async def get_delivery_code(
        self, delivery_id: uuid.UUID, agent_id: uuid.UUID
    ) -> DeliveryCodeView:
        """Short code and QR data for the assigned agent only."""
        delivery = await self._get_or_404(delivery_id)
        if delivery.agent_id != agent_id:
            raise ForbiddenError("This delivery is not assigned to you", delivery_id=delivery_id)

        order = await self._get_order_or_404(delivery.order_id)
        client = await self.repository.get_user(order.client_id)
        expires_at = delivery.code_generated_at + self.codes.ttl
        return DeliveryCodeView(
            delivery_id=delivery.id,
            short_code=derive_short_code(delivery.id, delivery.order_id),
            qr_data=self.codes.qr_payload(delivery.id, delivery.delivery_code, expires_at),
            expires_at=expires_at,
            client_name=client.name if client else None,
            client_phone=client.phone if client else None,
        )

    async def verify_by_client(
        self, delivery_id: uuid.UUID, client_id: uuid.UUID, code: str
    ) -> Delivery:
        """
        Client confirms receipt with the code shown by the agent.

        Single use. A wrong, tampered or expired code leaves the delivery
        untouched.

        Raises:
            NotFoundError: Delivery absent or its order not the client's
            ConflictError: Already verified, or not yet DELIVERED
            InvalidCodeError: Code mismatch, tampering or expiry
        """
        now = self.clock()
        delivery = await self._get_or_404(delivery_id)
        order = await self._get_order_or_404(delivery.order_id)
        if order.client_id != client_id:
            raise NotFoundError("Delivery not found", delivery_id=delivery_id)

        self.state_machine.transition(delivery, DeliveryEvent.CLIENT_VERIFY, client_id, now)
        self.codes.verify(
            submitted_code=code,
            stored_token=delivery.delivery_code,
            delivery_id=delivery.id,
            order_id=order.id,
            client_id=client_id,
            generated_at=delivery.code_generated_at,
            now=now,
        )

        delivery = await self._apply(delivery_id, DeliveryEvent.CLIENT_VERIFY, client_id)
        self.outbox.append(
            NotificationEvent.DELIVERY_VERIFIED,
            delivery_id=delivery_id,
            order_id=order.id,
            client_id=client_id,
        )
        await self._commit()

        logger.info("Delivery verified by client", delivery_id=str(delivery_id))
        return delivery

    async def confirm_by_manager(
        self, delivery_id: uuid.UUID, manager_id: uuid.UUID
    ) -> Delivery:
        """
        Manager closes a client-verified delivery; the order becomes DELIVERED.

        Raises:
            NotFoundError: If the delivery does not exist
            ConflictError: Already confirmed, or not client-verified
        """
        delivery = await self._apply(delivery_id, DeliveryEvent.MANAGER_CONFIRM, manager_id)
        order_id = delivery.order_id

        if not await self.repository.set_order_status(
            order_id, OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED, self.clock()
        ):
            await self.session.rollback()
            raise ConflictError("Order is not in transit", order_id=order_id)

        order = await self._get_order_or_404(order_id)
        self.outbox.append(
            NotificationEvent.DELIVERY_CONFIRMED,
            delivery_id=delivery_id,
            order_id=order.id,
            agent_id=delivery.agent_id,
            client_id=order.client_id,
        )
        await self._commit()

        logger.info(
            "Delivery confirmed by manager",
            delivery_id=str(delivery_id),
            order_id=str(order.id),
            manager_id=str(manager_id),
        )
        return delivery

    # Queries

    async def get_delivery(self, delivery_id: uuid.UUID, user: User) -> Delivery:
        delivery = await self._get_or_404(delivery_id)
        if user.role.is_staff:
            return delivery
        if user.role == UserRole.DELIVERY_AGENT and delivery.agent_id == user.id:
            return delivery
        if user.role == UserRole.CLIENT:
            order = await self._get_order_or_404(delivery.order_id)
            if order.client_id == user.id:
                return delivery
        raise NotFoundError("Delivery not found", delivery_id=delivery_id)

    async def list_agent_deliveries(
        self, agent_id: uuid.UUID, status: Optional[DeliveryStatus] = None
    ) -> Sequence[Delivery]:
        return await self.repository.list_for_agent(agent_id, status)

    async def list_client_deliveries(self, client_id: uuid.UUID) -> Sequence[Delivery]:
        return await self.repository.list_for_client(client_id)

    async def list_all_deliveries(
        self, status: Optional[DeliveryStatus] = None
    ) -> Sequence[Delivery]:
        return await self.repository.list_all(status)

    async def get_tracking(self, order_id: uuid.UUID, client_id: uuid.UUID) -> DeliveryTracking:
        order = await self.repository.get_order(order_id)
        if order is None or order.client_id != client_id:
            raise NotFoundError("Order not found", order_id=order_id)

        delivery = await self.repository.get_for_order(order_id)
        if delivery is None:
            raise NotFoundError("No delivery assigned for this order yet", order_id=order_id)

        agent = await self.repository.get_user(delivery.agent_id)
        return DeliveryTracking(
            order_id=order_id,
            delivery_id=delivery.id,
            status=delivery.status,
            agent_id=delivery.agent_id,
            agent_name=agent.name if agent else None,
            agent_phone=agent.phone if agent else None,
            current_lat=delivery.current_lat,
            current_lng=delivery.current_lng,
            estimated_delivery=delivery.estimated_delivery,
            actual_delivery=delivery.actual_delivery,
        )

    # Helpers

    async def _apply(
        self,
        delivery_id: uuid.UUID,
        event: DeliveryEvent,
        actor_id: uuid.UUID,
        target_status: Optional[DeliveryStatus] = None,
        extra_values: Optional[dict[str, Any]] = None,
    ) -> Delivery:
        now = self.clock()
        delivery = await self._get_or_404(delivery_id)
        transition: DeliveryTransition = self.state_machine.transition(
            delivery, event, actor_id, now, target_status=target_status
        )

        if not await self.repository.apply_transition(transition, extra_values):
            await self.session.rollback()
            current = await self._get_or_404(delivery_id)
            self.state_machine.transition(
                current, event, actor_id, now, target_status=target_status
            )
            raise ConflictError(
                "Delivery was modified concurrently, please retry",
                delivery_id=delivery_id,
            )

        return await self._get_or_404(delivery_id)

    async def _get_or_404(self, delivery_id: uuid.UUID) -> Delivery:
        delivery = await self.repository.get(delivery_id)
        if delivery is None:
            raise NotFoundError("Delivery not found", delivery_id=delivery_id)
        return delivery

    async def _get_order_or_404(self, order_id: uuid.UUID) -> Order:
        order = await self.repository.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found", order_id=order_id)
        return order

    async def _commit(self) -> None:
        await dispatch_after_commit(self.session, self.outbox)
