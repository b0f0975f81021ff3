import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from app.entities import OrderStatus
from app.errors import UpstreamError
from app.services.payment_service import PaymentOrderManager
from app.stores.memory import MemoryOrderStore
from conftest import SAMPLE_ANALYSIS, FakePaymentGateway

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _manager(allow_multiple=False, gateway=None):
    return PaymentOrderManager(
        MemoryOrderStore(),
        gateway or FakePaymentGateway(),
        "https://colorbot.test/",
        allow_multiple_pending_orders=allow_multiple,
        clock=lambda: NOW,
    )


class TestCreateOrder:
    def test_creates_local_order(self):
        manager = _manager()
        order = asyncio.run(manager.create_order("919800000001", 69900, "INR", SAMPLE_ANALYSIS))

        assert order.order_id == "order_0001"
        assert order.status == OrderStatus.CREATED
        assert order.analysis_snapshot == SAMPLE_ANALYSIS
        assert manager.get_order("order_0001").user_id == "919800000001"

    def test_sends_receipt_and_notes_to_gateway(self):
        gateway = FakePaymentGateway()
        manager = _manager(gateway=gateway)
        asyncio.run(manager.create_order("+91 98000 00001", 69900, "INR", SAMPLE_ANALYSIS))

        created = gateway.created[0]
        assert created["amount"] == 69900
        assert created["receipt"].startswith("color_analysis_919800000001_")
        assert created["notes"]["season"] == "Soft Autumn"

    def test_reuses_pending_order_by_default(self):
        gateway = FakePaymentGateway()
        manager = _manager(gateway=gateway)

        first = asyncio.run(manager.create_order("u1", 69900, "INR"))
        second = asyncio.run(manager.create_order("u1", 69900, "INR"))

        assert first.order_id == second.order_id
        assert len(gateway.created) == 1

    def test_multiple_pending_orders_when_allowed(self):
        manager = _manager(allow_multiple=True)
        first = asyncio.run(manager.create_order("u1", 69900, "INR"))
        second = asyncio.run(manager.create_order("u1", 69900, "INR"))

        assert first.order_id != second.order_id
        assert len(manager.list_orders_for_user("u1")) == 2

    def test_new_order_after_failure(self):
        manager = _manager()
        first = asyncio.run(manager.create_order("u1", 69900, "INR"))
        manager.orders.transition(first.order_id, OrderStatus.CREATED, OrderStatus.FAILED)

        second = asyncio.run(manager.create_order("u1", 69900, "INR"))
        assert second.order_id != first.order_id
        assert manager.get_active_order_for_user("u1").order_id == second.order_id

    def test_gateway_failure_persists_nothing(self):
        gateway = FakePaymentGateway()
        gateway.fail_create = True
        manager = _manager(gateway=gateway)

        with pytest.raises(UpstreamError):
            asyncio.run(manager.create_order("u1", 69900, "INR"))
        assert manager.list_orders_for_user("u1") == []


class TestPaymentLink:
    def test_link_uses_public_base_url(self):
        manager = _manager()
        order = asyncio.run(manager.create_order("u1", 69900, "INR"))
        assert manager.payment_link(order) == "https://colorbot.test/pay/order_0001"


class TestStatsAndCleanup:
    def _populate(self, manager):
        completed = asyncio.run(manager.create_order("u1", 69900, "INR"))
        manager.orders.transition(completed.order_id, OrderStatus.CREATED, OrderStatus.COMPLETED, completed_at=NOW)
        failed = asyncio.run(manager.create_order("u2", 69900, "INR"))
        manager.orders.transition(failed.order_id, OrderStatus.CREATED, OrderStatus.FAILED)
        asyncio.run(manager.create_order("u3", 69900, "INR"))

    def test_stats(self):
        manager = _manager()
        self._populate(manager)

        stats = manager.stats()
        assert stats == {
            "total": 3,
            "completed": 1,
            "pending": 1,
            "failed": 1,
            "total_revenue": 69900,
            "today_revenue": 69900,
        }

    def test_cleanup_keeps_completed_orders(self):
        manager = _manager()
        self._populate(manager)

        removed = manager.cleanup(timedelta(days=7), now=NOW + timedelta(days=8))
        assert removed == 2
        assert [order.status for order in manager.orders.all()] == [OrderStatus.COMPLETED]

    def test_export_filters_by_date(self):
        manager = _manager()
        self._populate(manager)

        assert len(manager.export(start=NOW - timedelta(days=1))) == 3
        assert manager.export(end=NOW - timedelta(days=1)) == []
        assert "analysis_snapshot" not in manager.export()[0]
