from app.schemas.events import InboundEvent, MenuOption, OutboundCommand, send_options, send_text
from app.schemas.payment import CheckoutVerifyRequest, PaymentOrderResponse, PaymentWebhookResponse
from app.schemas.webhook import WebhookResponse

__all__ = [
    "InboundEvent",
    "MenuOption",
    "OutboundCommand",
    "send_options",
    "send_text",
    "CheckoutVerifyRequest",
    "PaymentOrderResponse",
    "PaymentWebhookResponse",
    "WebhookResponse",
]
