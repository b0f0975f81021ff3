"""In-memory stores with an optional JSON snapshot on disk.

Without a path they are plain in-memory fakes. With a path the snapshot is
loaded at boot, saves are buffered, and `flush()` writes the snapshot
atomically (the scheduler flushes periodically and on shutdown).
"""

import copy
import json
import os
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional

from app.entities import ConversationSession, OrderStatus, PaymentOrder, utcnow
from app.errors import SessionExistsError
from app.logging_config import get_logger
from app.stores.base import OrderStore, SessionStore, is_disposable

logger = get_logger("stores.memory")


class _JsonSnapshot:
    def __init__(self, path: Optional[Path]):
        self.path = Path(path) if path else None
        self.dirty = False

    def load(self) -> list:
        if not self.path or not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load snapshot {self.path}: {e}")
            return []
        return data if isinstance(data, list) else []

    def write(self, records: list, target: Optional[Path] = None) -> Optional[Path]:
        target = target or self.path
        if not target:
            return None
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_suffix(target.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(records, handle, ensure_ascii=False, indent=2)
        os.replace(tmp_path, target)
        return target

    def backup_path(self) -> Optional[Path]:
        if not self.path:
            return None
        stamp = utcnow().strftime("%Y-%m-%dT%H-%M-%S-%f")
        return self.path.with_name(f"{self.path.stem}-backup-{stamp}{self.path.suffix}")


class MemorySessionStore(SessionStore):
    def __init__(self, path: Optional[Path] = None, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot = _JsonSnapshot(path)
        self._sessions: Dict[str, ConversationSession] = {}
        for raw in self._snapshot.load():
            session = ConversationSession.from_dict(raw)
            self._sessions[session.user_id] = session
        if self._snapshot.path:
            logger.info(f"Loaded {len(self._sessions)} sessions from {self._snapshot.path}")

    def get(self, user_id: str) -> Optional[ConversationSession]:
        with self._lock:
            session = self._sessions.get(user_id)
            return copy.deepcopy(session) if session else None

    def create(self, user_id: str, profile: Optional[dict] = None) -> ConversationSession:
        with self._lock:
            if user_id in self._sessions:
                raise SessionExistsError(user_id)
            now = self._clock()
            session = ConversationSession(user_id=user_id, profile=dict(profile or {}), created_at=now, last_active=now)
            self._sessions[user_id] = session
            self._snapshot.dirty = True
            return copy.deepcopy(session)

    def save(self, session: ConversationSession) -> ConversationSession:
        with self._lock:
            session.last_active = self._clock()
            session.message_count += 1
            self._sessions[session.user_id] = copy.deepcopy(session)
            self._snapshot.dirty = True
            return session

    def delete(self, user_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(user_id, None) is not None
            if removed:
                self._snapshot.dirty = True
        if removed:
            self.flush()
        return removed

    def all(self) -> List[ConversationSession]:
        with self._lock:
            return [copy.deepcopy(session) for session in self._sessions.values()]

    def cleanup(self, retention: timedelta, now: Optional[datetime] = None) -> int:
        cutoff = (now or self._clock()) - retention
        with self._lock:
            doomed = [user_id for user_id, session in self._sessions.items() if is_disposable(session, cutoff)]
            for user_id in doomed:
                del self._sessions[user_id]
            if doomed:
                self._snapshot.dirty = True
        if doomed:
            logger.info(f"Cleaned up {len(doomed)} idle sessions")
            self.flush()
        return len(doomed)

    def flush(self) -> None:
        with self._lock:
            if not self._snapshot.path or not self._snapshot.dirty:
                return
            records = [session.to_dict() for session in self._sessions.values()]
            self._snapshot.write(records)
            self._snapshot.dirty = False
        logger.info(f"Saved {len(records)} sessions to disk")

    def backup(self) -> Optional[Path]:
        with self._lock:
            target = self._snapshot.backup_path()
            if not target:
                return None
            records = [session.to_dict() for session in self._sessions.values()]
            return self._snapshot.write(records, target)


class MemoryOrderStore(OrderStore):
    def __init__(self, path: Optional[Path] = None):
        self._lock = threading.Lock()
        self._snapshot = _JsonSnapshot(path)
        self._orders: Dict[str, PaymentOrder] = {}
        for raw in self._snapshot.load():
            order = PaymentOrder.from_dict(raw)
            self._orders[order.order_id] = order

    def get(self, order_id: str) -> Optional[PaymentOrder]:
        with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order else None

    def add(self, order: PaymentOrder) -> PaymentOrder:
        with self._lock:
            self._orders[order.order_id] = copy.deepcopy(order)
            self._snapshot.dirty = True
        # Orders are money: write through even in snapshot mode.
        self.flush()
        return order

    def list_for_user(self, user_id: str) -> List[PaymentOrder]:
        with self._lock:
            orders = [copy.deepcopy(order) for order in self._orders.values() if order.user_id == user_id]
        return sorted(orders, key=lambda order: order.created_at)

    def all(self) -> List[PaymentOrder]:
        with self._lock:
            return [copy.deepcopy(order) for order in self._orders.values()]

    def transition(
        self,
        order_id: str,
        expected: OrderStatus,
        new_status: OrderStatus,
        **fields,
    ) -> Optional[PaymentOrder]:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.status != expected:
                return None
            order.status = new_status
            for name, value in fields.items():
                setattr(order, name, value)
            self._snapshot.dirty = True
            updated = copy.deepcopy(order)
        self.flush()
        return updated

    def set_document_ref(self, order_id: str, document_ref: str) -> None:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return
            order.document_ref = document_ref
            self._snapshot.dirty = True
        self.flush()

    def delete(self, order_id: str) -> bool:
        with self._lock:
            removed = self._orders.pop(order_id, None) is not None
            if removed:
                self._snapshot.dirty = True
        if removed:
            self.flush()
        return removed

    def flush(self) -> None:
        with self._lock:
            if not self._snapshot.path or not self._snapshot.dirty:
                return
            self._snapshot.write([order.to_dict() for order in self._orders.values()])
            self._snapshot.dirty = False

    def backup(self) -> Optional[Path]:
        with self._lock:
            target = self._snapshot.backup_path()
            if not target:
                return None
            return self._snapshot.write([order.to_dict() for order in self._orders.values()], target)
