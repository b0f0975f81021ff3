from typing import Optional

import httpx

from app.entities import OrderStatus
from app.logging_config import get_logger
from app.services.payments.base import GatewayEvent, GatewayStatus, PaymentGateway
from app.services.upstream import check_response, upstream_errors

logger = get_logger("payments.razorpay")

COMPLETED_EVENTS = {"payment.captured", "order.paid"}
FAILED_EVENTS = {"payment.failed"}


class RazorpayProvider(PaymentGateway):
    """Razorpay Orders API provider."""

    def __init__(self, key_id: str, key_secret: str, timeout_seconds: float = 20.0):
        self.key_id = key_id
        self.key_secret = key_secret
        self.timeout_seconds = timeout_seconds
        self.base_url = "https://api.razorpay.com/v1"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, auth=(self.key_id, self.key_secret))

    async def create_order(self, amount: int, currency: str, receipt: str, notes: Optional[dict] = None) -> str:
        payload = {
            "amount": amount,
            "currency": currency,
            # Razorpay caps receipts at 40 chars.
            "receipt": receipt[:40],
            "payment_capture": 1,
            "notes": notes or {},
        }
        async with upstream_errors("razorpay"):
            async with self._client() as client:
                response = await client.post(f"{self.base_url}/orders", json=payload)
        data = check_response(response, "razorpay").json()
        logger.info("Razorpay order created", extra={"context": {"order_id": data.get("id"), "amount": amount}})
        return data["id"]

    async def fetch_order_status(self, order_id: str) -> GatewayStatus:
        async with upstream_errors("razorpay"):
            async with self._client() as client:
                order = check_response(await client.get(f"{self.base_url}/orders/{order_id}"), "razorpay").json()
                if order.get("status") != "paid":
                    return GatewayStatus(status=OrderStatus.CREATED)
                payments = check_response(
                    await client.get(f"{self.base_url}/orders/{order_id}/payments"), "razorpay"
                ).json()

        for payment in payments.get("items") or []:
            if payment.get("status") == "captured":
                return GatewayStatus(status=OrderStatus.COMPLETED, payment_id=payment.get("id"))
        return GatewayStatus(status=OrderStatus.CREATED)

    def parse_webhook(self, payload: dict) -> Optional[GatewayEvent]:
        event = payload.get("event") or ""
        body = payload.get("payload") or {}
        payment = (body.get("payment") or {}).get("entity") or {}
        order = (body.get("order") or {}).get("entity") or {}
        order_id = payment.get("order_id") or order.get("id")

        if not order_id:
            logger.info(f"Webhook without order id ignored: {event}")
            return None
        if event in COMPLETED_EVENTS:
            return GatewayEvent(event=event, order_id=order_id, status=OrderStatus.COMPLETED, payment_id=payment.get("id"))
        if event in FAILED_EVENTS:
            return GatewayEvent(
                event=event,
                order_id=order_id,
                status=OrderStatus.FAILED,
                payment_id=payment.get("id"),
                failure_reason=payment.get("error_description") or payment.get("error_reason") or "Unknown error",
            )
        logger.info(f"Webhook event ignored: {event}", extra={"context": {"order_id": order_id}})
        return None
