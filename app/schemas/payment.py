from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class CheckoutVerifyRequest(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class PaymentWebhookResponse(BaseModel):
    success: bool
    message: str
    order_id: Optional[str] = None
    status: Optional[str] = None


class PaymentOrderResponse(BaseModel):
    order_id: str
    status: str
    amount_minor_units: int
    currency: str
    created_at: datetime
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    payment_link: Optional[str] = None
