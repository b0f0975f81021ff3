"""Payment order manager: mints gateway orders and tracks them locally."""

import re
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from app.entities import OrderStatus, PaymentOrder, utcnow
from app.logging_config import get_logger
from app.services.payments.base import PaymentGateway
from app.stores.base import OrderStore

logger = get_logger("payment_service")


class PaymentOrderManager:
    def __init__(
        self,
        orders: OrderStore,
        gateway: PaymentGateway,
        public_base_url: str,
        allow_multiple_pending_orders: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.orders = orders
        self.gateway = gateway
        self.public_base_url = public_base_url.rstrip("/")
        self.allow_multiple_pending_orders = allow_multiple_pending_orders
        self._clock = clock

    async def create_order(
        self,
        user_id: str,
        amount_minor_units: int,
        currency: str,
        analysis_snapshot: Optional[dict] = None,
    ) -> PaymentOrder:
        """Mint a gateway order and persist it with status created.

        Unless multiple pending orders are allowed, an existing created order
        of the user is returned instead. Gateway failures propagate as
        UpstreamError and nothing is persisted.
        """
        if not self.allow_multiple_pending_orders:
            existing = self.orders.get_active_for_user(user_id)
            if existing:
                logger.info(
                    "Reusing pending order",
                    extra={"context": {"user_id": user_id, "order_id": existing.order_id}},
                )
                return existing

        now = self._clock()
        season = ((analysis_snapshot or {}).get("personal_profile") or {}).get("season")
        receipt = f"color_analysis_{re.sub(r'[^0-9A-Za-z]', '', user_id)}_{int(now.timestamp() * 1000)}"
        order_id = await self.gateway.create_order(
            amount_minor_units,
            currency,
            receipt,
            notes={
                "phone_number": user_id,
                "service": "Korean Color Analysis PDF",
                "season": season or "",
                "timestamp": now.isoformat(),
            },
        )

        order = PaymentOrder(
            order_id=order_id,
            user_id=user_id,
            amount_minor_units=amount_minor_units,
            currency=currency,
            status=OrderStatus.CREATED,
            receipt=receipt,
            created_at=now,
            analysis_snapshot=analysis_snapshot,
        )
        self.orders.add(order)
        logger.info(
            "Payment order created",
            extra={"context": {"user_id": user_id, "order_id": order_id, "amount": amount_minor_units}},
        )
        return order

    def get_order(self, order_id: str) -> Optional[PaymentOrder]:
        return self.orders.get(order_id)

    def get_active_order_for_user(self, user_id: str) -> Optional[PaymentOrder]:
        return self.orders.get_active_for_user(user_id)

    def list_orders_for_user(self, user_id: str) -> List[PaymentOrder]:
        return self.orders.list_for_user(user_id)

    def payment_link(self, order: PaymentOrder) -> str:
        return f"{self.public_base_url}/pay/{order.order_id}"

    def stats(self) -> dict:
        orders = self.orders.all()
        today = self._clock().date()
        completed = [order for order in orders if order.status == OrderStatus.COMPLETED]
        return {
            "total": len(orders),
            "completed": len(completed),
            "pending": sum(1 for order in orders if order.status == OrderStatus.CREATED),
            "failed": sum(1 for order in orders if order.status == OrderStatus.FAILED),
            "total_revenue": sum(order.amount_minor_units for order in completed),
            "today_revenue": sum(
                order.amount_minor_units
                for order in completed
                if order.completed_at and order.completed_at.date() == today
            ),
        }

    def export(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[dict]:
        """Orders created within [start, end], oldest first."""
        selected = []
        for order in sorted(self.orders.all(), key=lambda order: order.created_at):
            if start and order.created_at < start:
                continue
            if end and order.created_at > end:
                continue
            data = order.to_dict()
            data.pop("analysis_snapshot", None)
            selected.append(data)
        return selected

    def cleanup(self, retention: timedelta, now: Optional[datetime] = None) -> int:
        """Drop non-completed orders older than the retention window."""
        cutoff = (now or self._clock()) - retention
        removed = 0
        for order in self.orders.all():
            if order.status != OrderStatus.COMPLETED and order.created_at < cutoff:
                if self.orders.delete(order.order_id):
                    removed += 1
        if removed:
            logger.info(f"Cleaned up {removed} stale payment orders")
        return removed
