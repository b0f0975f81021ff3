"""SQLAlchemy-backed stores. Every save is written through."""

from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.entities import ConversationSession, OrderStatus, PaymentOrder, utcnow
from app.errors import SessionExistsError
from app.logging_config import get_logger
from app.models import ConversationSessionRecord, PaymentOrderRecord
from app.stores.base import OrderStore, SessionStore, is_disposable

logger = get_logger("stores.sql")

SESSION_COLUMNS = [column.name for column in ConversationSessionRecord.__table__.columns]
ORDER_COLUMNS = [column.name for column in PaymentOrderRecord.__table__.columns]


def _session_from_record(record: ConversationSessionRecord) -> ConversationSession:
    return ConversationSession.from_dict({name: getattr(record, name) for name in SESSION_COLUMNS})


def _order_from_record(record: PaymentOrderRecord) -> PaymentOrder:
    return PaymentOrder.from_dict({name: getattr(record, name) for name in ORDER_COLUMNS})


def _apply_session(record: ConversationSessionRecord, session: ConversationSession) -> None:
    record.state = session.state.value
    record.profile = dict(session.profile or {})
    record.created_at = session.created_at
    record.last_active = session.last_active
    record.message_count = session.message_count
    record.analysis = session.analysis
    record.analyzed_at = session.analyzed_at
    record.analysis_generation = session.analysis_generation
    record.analysis_started_at = session.analysis_started_at
    record.active_payment_order_id = session.active_payment_order_id
    record.pdf_delivered = session.pdf_delivered
    record.has_paid = session.has_paid
    record.document_ref = session.document_ref
    record.completed_at = session.completed_at


class SqlSessionStore(SessionStore):
    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    def get(self, user_id: str) -> Optional[ConversationSession]:
        with self._session_factory() as db:
            record = db.get(ConversationSessionRecord, user_id)
            return _session_from_record(record) if record else None

    def create(self, user_id: str, profile: Optional[dict] = None) -> ConversationSession:
        now = self._clock()
        session = ConversationSession(user_id=user_id, profile=dict(profile or {}), created_at=now, last_active=now)
        record = ConversationSessionRecord(user_id=user_id)
        _apply_session(record, session)
        with self._session_factory() as db:
            db.add(record)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise SessionExistsError(user_id)
        return session

    def save(self, session: ConversationSession) -> ConversationSession:
        session.last_active = self._clock()
        session.message_count += 1
        with self._session_factory() as db:
            record = db.get(ConversationSessionRecord, session.user_id)
            if record is None:
                record = ConversationSessionRecord(user_id=session.user_id)
                db.add(record)
            _apply_session(record, session)
            db.commit()
        return session

    def delete(self, user_id: str) -> bool:
        with self._session_factory() as db:
            record = db.get(ConversationSessionRecord, user_id)
            if record is None:
                return False
            db.delete(record)
            db.commit()
            return True

    def all(self) -> List[ConversationSession]:
        with self._session_factory() as db:
            return [_session_from_record(record) for record in db.query(ConversationSessionRecord).all()]

    def cleanup(self, retention: timedelta, now: Optional[datetime] = None) -> int:
        cutoff = (now or self._clock()) - retention
        removed = 0
        with self._session_factory() as db:
            candidates = (
                db.query(ConversationSessionRecord)
                .filter(ConversationSessionRecord.last_active < cutoff)
                .all()
            )
            for record in candidates:
                if is_disposable(_session_from_record(record), cutoff):
                    db.delete(record)
                    removed += 1
            db.commit()
        if removed:
            logger.info(f"Cleaned up {removed} idle sessions")
        return removed


class SqlOrderStore(OrderStore):
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, order_id: str) -> Optional[PaymentOrder]:
        with self._session_factory() as db:
            record = db.get(PaymentOrderRecord, order_id)
            return _order_from_record(record) if record else None

    def add(self, order: PaymentOrder) -> PaymentOrder:
        values = order.to_dict()
        values["status"] = order.status.value
        for name in PaymentOrder._DATETIME_FIELDS:
            values[name] = getattr(order, name)
        with self._session_factory() as db:
            db.add(PaymentOrderRecord(**values))
            db.commit()
        return order

    def list_for_user(self, user_id: str) -> List[PaymentOrder]:
        with self._session_factory() as db:
            records = (
                db.query(PaymentOrderRecord)
                .filter(PaymentOrderRecord.user_id == user_id)
                .order_by(PaymentOrderRecord.created_at)
                .all()
            )
            return [_order_from_record(record) for record in records]

    def all(self) -> List[PaymentOrder]:
        with self._session_factory() as db:
            return [_order_from_record(record) for record in db.query(PaymentOrderRecord).all()]

    def transition(
        self,
        order_id: str,
        expected: OrderStatus,
        new_status: OrderStatus,
        **fields,
    ) -> Optional[PaymentOrder]:
        # Conditional UPDATE: only one concurrent writer can match the expected status.
        stmt = (
            update(PaymentOrderRecord)
            .where(PaymentOrderRecord.order_id == order_id, PaymentOrderRecord.status == expected.value)
            .values(status=new_status.value, **fields)
        )
        with self._session_factory() as db:
            result = db.execute(stmt)
            db.commit()
            if result.rowcount != 1:
                return None
            record = db.get(PaymentOrderRecord, order_id)
            return _order_from_record(record)

    def set_document_ref(self, order_id: str, document_ref: str) -> None:
        with self._session_factory() as db:
            db.execute(
                update(PaymentOrderRecord)
                .where(PaymentOrderRecord.order_id == order_id)
                .values(document_ref=document_ref)
            )
            db.commit()

    def delete(self, order_id: str) -> bool:
        with self._session_factory() as db:
            record = db.get(PaymentOrderRecord, order_id)
            if record is None:
                return False
            db.delete(record)
            db.commit()
            return True
