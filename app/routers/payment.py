"""Payment gateway webhook, checkout verification and order status."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from app.dependencies import Services, get_services
from app.logging_config import get_logger
from app.schemas.payment import CheckoutVerifyRequest, PaymentOrderResponse, PaymentWebhookResponse

logger = get_logger("payment_router")

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/webhook", response_model=PaymentWebhookResponse)
async def payment_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(default=None, alias="X-Razorpay-Signature"),
    services: Services = Depends(get_services),
):
    # Signature is computed over the exact bytes received.
    raw = await request.body()
    result = await services.reconciler.handle_webhook(raw, x_razorpay_signature)
    if not result.ok:
        return PaymentWebhookResponse(success=False, message="Webhook not accepted")
    outcome = result.value
    if outcome is None:
        return PaymentWebhookResponse(success=True, message="Ignored")
    return PaymentWebhookResponse(
        success=True,
        message="Applied" if outcome.transitioned else "Already applied",
        order_id=outcome.order_id,
        status=outcome.status.value,
    )


@router.post("/verify", response_model=PaymentWebhookResponse)
async def verify_checkout(data: CheckoutVerifyRequest, services: Services = Depends(get_services)):
    result = await services.reconciler.verify_checkout(
        data.razorpay_order_id,
        data.razorpay_payment_id,
        data.razorpay_signature,
    )
    if not result.ok:
        logger.info(
            "Checkout verification rejected",
            extra={"context": {"order_id": data.razorpay_order_id, "code": result.error_code}},
        )
        return PaymentWebhookResponse(success=False, message="Payment verification failed", order_id=data.razorpay_order_id)
    return PaymentWebhookResponse(
        success=True,
        message="Payment verified",
        order_id=result.value.order_id,
        status=result.value.status.value,
    )


@router.get("/{order_id}", response_model=PaymentOrderResponse)
async def get_payment_order(order_id: str, services: Services = Depends(get_services)):
    order = services.payments.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return PaymentOrderResponse(
        order_id=order.order_id,
        status=order.status.value,
        amount_minor_units=order.amount_minor_units,
        currency=order.currency,
        created_at=order.created_at,
        completed_at=order.completed_at,
        failure_reason=order.failure_reason,
        payment_link=None if order.is_terminal else services.payments.payment_link(order),
    )
