from app.services.messaging.base import MediaPayload, MessagingGateway

__all__ = ["MediaPayload", "MessagingGateway"]
