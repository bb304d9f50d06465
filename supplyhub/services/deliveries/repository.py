"""
Delivery data access repository.

Status changes go through conditional UPDATEs keyed on the status the
decision was taken on; a zero row count means the delivery moved in the
meantime.
"""

import uuid
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from supplyhub.database.models.delivery import Delivery, DeliveryStatus
from supplyhub.database.models.order import Order, OrderStatus
from supplyhub.database.models.user import User
from supplyhub.services.deliveries.state_machine import DeliveryEvent, DeliveryTransition


class DeliveryRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, delivery_id: uuid.UUID) -> Optional[Delivery]:
        result = await self.session.execute(
            select(Delivery)
            .where(Delivery.id == delivery_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_order(self, order_id: uuid.UUID) -> Optional[Delivery]:
        result = await self.session.execute(
            select(Delivery)
            .where(Delivery.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_order(self, order_id: uuid.UUID) -> Optional[Order]:
        result = await self.session.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def list_for_agent(
        self, agent_id: uuid.UUID, status: Optional[DeliveryStatus] = None
    ) -> Sequence[Delivery]:
        stmt = select(Delivery).where(Delivery.agent_id == agent_id)
        if status is not None:
            stmt = stmt.where(Delivery.status == status)
        result = await self.session.execute(stmt.order_by(Delivery.created_at.desc()))
        return result.scalars().all()

    async def list_for_client(self, client_id: uuid.UUID) -> Sequence[Delivery]:
        result = await self.session.execute(
            select(Delivery)
            .join(Order, Order.id == Delivery.order_id)
            .where(Order.client_id == client_id)
            .order_by(Delivery.created_at.desc())
        )
        return result.scalars().all()

    async def list_all(self, status: Optional[DeliveryStatus] = None) -> Sequence[Delivery]:
        stmt = select(Delivery)
        if status is not None:
            stmt = stmt.where(Delivery.status == status)
        result = await self.session.execute(stmt.order_by(Delivery.created_at.desc()))
        return result.scalars().all()

    async def add(self, delivery: Delivery) -> Delivery:
        self.session.add(delivery)
        await self.session.flush()
        return delivery

    async def apply_transition(
        self,
        transition: DeliveryTransition,
        extra_values: Optional[dict[str, Any]] = None,
    ) -> bool:
        conditions = [
            Delivery.id == transition.delivery_id,
            Delivery.status == transition.from_status,
        ]
        if transition.event == DeliveryEvent.AGENT_UPDATE:
            conditions.append(Delivery.agent_id == transition.actor_id)
        elif transition.event == DeliveryEvent.CLIENT_VERIFY:
            conditions.append(Delivery.client_verified_at.is_(None))
        elif transition.event == DeliveryEvent.MANAGER_CONFIRM:
            conditions.append(Delivery.manager_confirmed_at.is_(None))

        result = await self.session.execute(
            update(Delivery)
            .where(*conditions)
            .values(**transition.values, **(extra_values or {}))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_order_status(
        self,
        order_id: uuid.UUID,
        expected: OrderStatus,
        target: OrderStatus,
        now: datetime,
    ) -> bool:
        result = await self.session.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == expected)
            .values(status=target, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
