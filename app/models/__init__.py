from app.models.conversation_session import ConversationSessionRecord
from app.models.payment_order import PaymentOrderRecord

__all__ = [
    "ConversationSessionRecord",
    "PaymentOrderRecord",
]
