from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from app.entities import OrderStatus


@dataclass
class GatewayStatus:
    """Order status as reported by the gateway. CREATED means still pending."""

    status: OrderStatus
    payment_id: Optional[str] = None
    failure_reason: Optional[str] = None


@dataclass
class GatewayEvent:
    event: str
    order_id: str
    status: OrderStatus
    payment_id: Optional[str] = None
    failure_reason: Optional[str] = None


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    @abstractmethod
    async def create_order(self, amount: int, currency: str, receipt: str, notes: Optional[dict] = None) -> str:
        """Mint a gateway-side order and return its id."""
        pass

    @abstractmethod
    async def fetch_order_status(self, order_id: str) -> GatewayStatus:
        pass

    @abstractmethod
    def parse_webhook(self, payload: dict) -> Optional[GatewayEvent]:
        """Map a verified webhook body to an event, None for events we ignore."""
        pass
