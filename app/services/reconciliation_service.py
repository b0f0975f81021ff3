"""Payment reconciliation: the single point where order status changes.

Webhooks (push), gateway polling (pull) and checkout callbacks all funnel
into `apply_gateway_event`, which compare-and-sets the order out of
`created`. Listeners are notified only by the caller whose transition won.
"""

import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from app.entities import OrderStatus, PaymentOrder, utcnow
from app.errors import PaymentVerificationFailure, SignatureInvalid, UpstreamError
from app.logging_config import get_logger
from app.services.payments.base import PaymentGateway
from app.services.result import Result
from app.stores.base import OrderStore

logger = get_logger("reconciliation_service")

PaymentListener = Callable[[PaymentOrder], Awaitable[None]]


@dataclass
class ReconcileOutcome:
    order_id: str
    status: OrderStatus
    transitioned: bool
    order: Optional[PaymentOrder] = None


def verify_webhook_signature(raw: bytes, signature_header: Optional[str], secret: Optional[str]) -> bool:
    """HMAC-SHA256 hex digest of the raw body, compared in constant time."""
    if not secret or not signature_header:
        return False
    expected = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature_header.strip())


def verify_checkout_signature(order_id: str, payment_id: str, signature: Optional[str], secret: Optional[str]) -> bool:
    """Checkout callback signature over "order_id|payment_id"."""
    if not secret or not signature or not order_id or not payment_id:
        return False
    expected = hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip())


class PaymentReconciler:
    def __init__(
        self,
        orders: OrderStore,
        gateway: PaymentGateway,
        webhook_secret: str = "",
        key_secret: str = "",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.orders = orders
        self.gateway = gateway
        self.webhook_secret = webhook_secret
        self.key_secret = key_secret
        self._clock = clock
        self._listeners: List[PaymentListener] = []

    def add_listener(self, listener: PaymentListener) -> None:
        self._listeners.append(listener)

    verify_webhook_signature = staticmethod(verify_webhook_signature)
    verify_checkout_signature = staticmethod(verify_checkout_signature)

    async def handle_webhook(self, raw: bytes, signature: Optional[str]) -> Result[Optional[ReconcileOutcome]]:
        if not verify_webhook_signature(raw, signature, self.webhook_secret):
            logger.warning(
                "Payment webhook rejected: invalid signature",
                extra={"context": {"bytes": len(raw), "has_signature": bool(signature)}},
            )
            return Result.from_error(SignatureInvalid("Invalid webhook signature"))

        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning("Payment webhook rejected: body is not JSON")
            return Result.failure("Malformed webhook body", "invalid_payload")
        if not isinstance(payload, dict):
            return Result.failure("Malformed webhook body", "invalid_payload")

        event = self.gateway.parse_webhook(payload)
        if event is None:
            return Result.success(None)

        logger.info(
            f"Payment webhook received: {event.event}",
            extra={"context": {"order_id": event.order_id, "status": event.status.value}},
        )
        return await self.apply_gateway_event(
            event.order_id,
            event.status,
            {"payment_id": event.payment_id, "failure_reason": event.failure_reason},
        )

    async def apply_gateway_event(
        self,
        order_id: str,
        reported_status: OrderStatus,
        details: Optional[dict] = None,
        notify: bool = True,
    ) -> Result[ReconcileOutcome]:
        """Move a created order to the reported terminal status, at most once."""
        details = details or {}
        order = self.orders.get(order_id)
        if order is None:
            logger.warning(f"Gateway event for unknown order {order_id}")
            return Result.failure(f"Unknown order {order_id}", "order_not_found")

        if reported_status == OrderStatus.CREATED or order.is_terminal:
            if order.is_terminal and reported_status != OrderStatus.CREATED:
                logger.info(
                    "Gateway event already applied",
                    extra={"context": {"order_id": order_id, "status": order.status.value}},
                )
            return Result.success(ReconcileOutcome(order_id, order.status, False, order))

        now = self._clock()
        if reported_status == OrderStatus.COMPLETED:
            fields = {"completed_at": now, "payment_id": details.get("payment_id")}
        else:
            fields = {"failed_at": now, "failure_reason": details.get("failure_reason") or "Unknown error"}

        updated = self.orders.transition(order_id, OrderStatus.CREATED, reported_status, **fields)
        if updated is None:
            # Another path won the race.
            current = self.orders.get(order_id)
            return Result.success(ReconcileOutcome(order_id, current.status, False, current))

        logger.info(
            f"Order {order_id} {reported_status.value}",
            extra={"context": {"order_id": order_id, "user_id": updated.user_id, "payment_id": updated.payment_id}},
        )
        if notify:
            await self._notify(updated)
        return Result.success(ReconcileOutcome(order_id, updated.status, True, updated))

    async def _notify(self, order: PaymentOrder) -> None:
        for listener in self._listeners:
            try:
                await listener(order)
            except Exception as e:
                # The transition is durable; the health sweep re-drives the session.
                logger.error(
                    f"Payment listener failed: {e}",
                    extra={"context": {"order_id": order.order_id, "user_id": order.user_id}},
                )

    async def reconcile_by_polling(self, order_id: str, notify: bool = True) -> Result[ReconcileOutcome]:
        order = self.orders.get(order_id)
        if order is None:
            return Result.failure(f"Unknown order {order_id}", "order_not_found")
        if order.is_terminal:
            return Result.success(ReconcileOutcome(order_id, order.status, False, order))

        try:
            reported = await self.gateway.fetch_order_status(order_id)
        except UpstreamError as e:
            logger.warning(
                f"Polling order {order_id} failed: {e.message}",
                extra={"context": {"order_id": order_id, "service": e.service}},
            )
            return Result.from_error(e)

        return await self.apply_gateway_event(
            order_id,
            reported.status,
            {"payment_id": reported.payment_id, "failure_reason": reported.failure_reason},
            notify=notify,
        )

    async def verify_checkout(self, order_id: str, payment_id: str, signature: str) -> Result[ReconcileOutcome]:
        """Checkout callback: a valid signature proves the payment was captured."""
        if not verify_checkout_signature(order_id, payment_id, signature, self.key_secret):
            logger.warning("Checkout verification failed: invalid signature", extra={"context": {"order_id": order_id}})
            return Result.from_error(PaymentVerificationFailure("Invalid payment signature"))

        result = await self.reconcile_by_polling(order_id)
        if result.ok and result.value.status != OrderStatus.CREATED:
            return result
        if not result.ok and result.error_code == "order_not_found":
            return result
        return await self.apply_gateway_event(order_id, OrderStatus.COMPLETED, {"payment_id": payment_id})

    async def reconcile_pending(self, min_age: timedelta, now: Optional[datetime] = None) -> dict:
        """Poll every created order older than min_age."""
        cutoff = (now or self._clock()) - min_age
        report = {"checked": 0, "transitioned": 0, "errors": 0}
        for order in self.orders.all():
            if order.status != OrderStatus.CREATED or order.created_at > cutoff:
                continue
            report["checked"] += 1
            result = await self.reconcile_by_polling(order.order_id)
            if not result.ok:
                report["errors"] += 1
            elif result.value.transitioned:
                report["transitioned"] += 1
        if report["checked"]:
            logger.info("Pending orders reconciled", extra={"context": report})
        return report
