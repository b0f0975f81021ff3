from app.services.payments.base import GatewayEvent, GatewayStatus, PaymentGateway

__all__ = ["GatewayEvent", "GatewayStatus", "PaymentGateway"]
