"""Domain records persisted by the session and order stores."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class SessionState(str, Enum):
    INITIAL = "initial"
    GUIDE_SHOWN = "guide_shown"
    WAITING_FOR_PHOTO = "waiting_for_photo"
    ANALYZING = "analyzing"
    RESULTS_SHOWN = "results_shown"
    PAYMENT_PENDING = "payment_pending"
    COMPLETED = "completed"


# States in which a stored analysis is allowed.
ANALYSIS_STATES = {SessionState.RESULTS_SHOWN, SessionState.PAYMENT_PENDING, SessionState.COMPLETED}


class OrderStatus(str, Enum):
    CREATED = "created"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_ORDER_STATUSES = {OrderStatus.COMPLETED, OrderStatus.FAILED}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _dt_from_str(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return _as_aware(value)
    return _as_aware(datetime.fromisoformat(value))


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class ConversationSession:
    user_id: str
    state: SessionState = SessionState.INITIAL
    profile: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    last_active: datetime = field(default_factory=utcnow)
    message_count: int = 0
    analysis: Optional[dict] = None
    analyzed_at: Optional[datetime] = None
    analysis_generation: int = 0
    analysis_started_at: Optional[datetime] = None
    active_payment_order_id: Optional[str] = None
    pdf_delivered: bool = False
    # Sticky: survives a restart so paying users are never cleaned up.
    has_paid: bool = False
    document_ref: Optional[str] = None
    completed_at: Optional[datetime] = None

    _DATETIME_FIELDS = ("created_at", "last_active", "analyzed_at", "analysis_started_at", "completed_at")

    def to_dict(self) -> dict:
        data = asdict(self)
        data["state"] = self.state.value
        for name in self._DATETIME_FIELDS:
            data[name] = _dt_to_str(getattr(self, name))
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationSession":
        values = dict(data)
        values["state"] = SessionState(values.get("state", SessionState.INITIAL.value))
        for name in cls._DATETIME_FIELDS:
            if name in values:
                values[name] = _dt_from_str(values[name])
        known = set(cls.__dataclass_fields__)
        return cls(**{key: value for key, value in values.items() if key in known})

    @property
    def has_completed_payment(self) -> bool:
        return self.has_paid or self.pdf_delivered or self.state == SessionState.COMPLETED


@dataclass
class PaymentOrder:
    order_id: str
    user_id: str
    amount_minor_units: int
    currency: str
    status: OrderStatus = OrderStatus.CREATED
    receipt: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    payment_id: Optional[str] = None
    failed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    analysis_snapshot: Optional[dict] = None
    document_ref: Optional[str] = None

    _DATETIME_FIELDS = ("created_at", "completed_at", "failed_at")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        for name in self._DATETIME_FIELDS:
            data[name] = _dt_to_str(getattr(self, name))
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentOrder":
        values = dict(data)
        values["status"] = OrderStatus(values.get("status", OrderStatus.CREATED.value))
        for name in cls._DATETIME_FIELDS:
            if name in values:
                values[name] = _dt_from_str(values[name])
        known = set(cls.__dataclass_fields__)
        return cls(**{key: value for key, value in values.items() if key in known})
