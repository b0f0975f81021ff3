from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

from app.entities import ConversationSession, OrderStatus, PaymentOrder


class SessionStore(ABC):
    """Keyed storage for conversation sessions."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[ConversationSession]:
        pass

    @abstractmethod
    def create(self, user_id: str, profile: Optional[dict] = None) -> ConversationSession:
        """Create a session in state initial. Raises SessionExistsError if present."""
        pass

    @abstractmethod
    def save(self, session: ConversationSession) -> ConversationSession:
        """Persist the full record, touch last_active and bump message_count."""
        pass

    @abstractmethod
    def delete(self, user_id: str) -> bool:
        pass

    @abstractmethod
    def all(self) -> List[ConversationSession]:
        pass

    @abstractmethod
    def cleanup(self, retention: timedelta, now: Optional[datetime] = None) -> int:
        """Remove idle sessions that never reached an analysis or a payment."""
        pass

    def flush(self) -> None:
        """Write buffered changes. Backends that write through do nothing."""

    def backup(self) -> Optional[Path]:
        return None


class OrderStore(ABC):
    """Keyed storage for payment orders."""

    @abstractmethod
    def get(self, order_id: str) -> Optional[PaymentOrder]:
        pass

    @abstractmethod
    def add(self, order: PaymentOrder) -> PaymentOrder:
        pass

    @abstractmethod
    def list_for_user(self, user_id: str) -> List[PaymentOrder]:
        """Orders of a user, oldest first."""
        pass

    @abstractmethod
    def all(self) -> List[PaymentOrder]:
        pass

    @abstractmethod
    def transition(
        self,
        order_id: str,
        expected: OrderStatus,
        new_status: OrderStatus,
        **fields,
    ) -> Optional[PaymentOrder]:
        """Atomically move an order from expected to new_status.

        Returns the updated order, or None when the stored status was not
        `expected` (or the order does not exist).
        """
        pass

    @abstractmethod
    def set_document_ref(self, order_id: str, document_ref: str) -> None:
        pass

    @abstractmethod
    def delete(self, order_id: str) -> bool:
        pass

    def get_active_for_user(self, user_id: str) -> Optional[PaymentOrder]:
        active = [order for order in self.list_for_user(user_id) if order.status == OrderStatus.CREATED]
        return active[-1] if active else None

    def flush(self) -> None:
        """Write buffered changes. Backends that write through do nothing."""

    def backup(self) -> Optional[Path]:
        return None


def is_disposable(session: ConversationSession, cutoff: datetime) -> bool:
    """True when cleanup may drop the session."""
    if session.last_active >= cutoff:
        return False
    if session.analysis or session.has_completed_payment:
        return False
    if session.active_payment_order_id:
        return False
    return True
