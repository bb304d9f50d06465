"""
Payment state of orders.

The payment provider integration lives outside this service. It records
the provider's confirmation on the order; delivery assignment only asks
whether a confirmed payment exists.
"""

import uuid
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from supplyhub.core.clock import Clock, utcnow
from supplyhub.core.errors import ConflictError, NotFoundError
from supplyhub.core.logging import get_logger
from supplyhub.database.models.order import Order, OrderStatus, PaymentStatus
from supplyhub.database.models.user import User

logger = get_logger(__name__)


class PaymentService:
    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self.session = session
        self.clock = clock

    async def get_order(self, order_id: uuid.UUID, user: User) -> Order:
        """Clients see their own orders; managers and admins see all."""
        order = await self.session.get(Order, order_id)
        if order is None or (not user.role.is_staff and order.client_id != user.id):
            raise NotFoundError("Order not found", order_id=order_id)
        return order

    @staticmethod
    def has_confirmed_payment(order: Order) -> bool:
        """True once the provider confirmed payment for ``order``."""
        return order.payment_status == PaymentStatus.CONFIRMED

    async def record_confirmed_payment(
        self, order_id: uuid.UUID, reference: Optional[str] = None
    ) -> Order:
        """
        Mark an order awaiting payment as paid.

        Raises:
            NotFoundError: If the order does not exist
            ConflictError: If the order is not awaiting payment
        """
        order = await self.session.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found", order_id=order_id)
        current_status = order.status

        result = await self.session.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.AWAITING_PAYMENT)
            .values(
                status=OrderStatus.PAID,
                payment_status=PaymentStatus.CONFIRMED,
                payment_reference=reference,
                updated_at=self.clock(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.session.rollback()
            raise ConflictError(
                f"Order is not awaiting payment (status {current_status.value})",
                order_id=order_id,
                current_status=current_status.value,
            )

        await self.session.commit()
        await self.session.refresh(order)

        logger.info(
            "Payment confirmed for order",
            order_id=str(order_id),
            payment_reference=reference,
        )
        return order
