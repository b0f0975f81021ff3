import asyncio
from datetime import timedelta

from app.entities import OrderStatus, SessionState, utcnow
from app.services.health_service import check_and_heal_sessions, get_system_health
from conftest import SAMPLE_ANALYSIS, drive_to_payment, text_event

USER = "919876543210"
WATCHDOG = timedelta(minutes=5)


def _stuck_session(services, started_minutes_ago: int):
    asyncio.run(services.conversations.handle_event(text_event(USER, "hi")))
    session = services.sessions.get(USER)
    session.state = SessionState.ANALYZING
    session.analysis_generation = 1
    session.analysis_started_at = utcnow() - timedelta(minutes=started_minutes_ago)
    services.sessions.save(session)


class TestCheckAndHealSessions:
    def test_resets_stuck_analysis(self, services, messaging):
        _stuck_session(services, started_minutes_ago=10)

        result = asyncio.run(check_and_heal_sessions(services.conversations, WATCHDOG))

        assert result["healed_count"] == 1
        assert result["details"][0]["issue"] == "analyzing_stuck"
        session = services.sessions.get(USER)
        assert session.state == SessionState.WAITING_FOR_PHOTO
        assert session.analysis_started_at is None
        assert "took too long" in messaging.texts()[-1]

    def test_recent_analysis_left_alone(self, services):
        _stuck_session(services, started_minutes_ago=1)

        result = asyncio.run(check_and_heal_sessions(services.conversations, WATCHDOG))

        assert result["healed_count"] == 0
        assert services.sessions.get(USER).state == SessionState.ANALYZING

    def test_completes_paid_but_pending(self, services, documents):
        asyncio.run(drive_to_payment(services.conversations, USER))
        services.orders.transition("order_0001", OrderStatus.CREATED, OrderStatus.COMPLETED, completed_at=utcnow())

        result = asyncio.run(check_and_heal_sessions(services.conversations, WATCHDOG))

        assert result["healed_count"] == 1
        assert result["details"][0]["issue"] == "paid_but_pending"
        session = services.sessions.get(USER)
        assert session.state == SessionState.COMPLETED
        assert session.pdf_delivered is True
        assert documents.calls == ["order_0001"]

    def test_reports_violations(self, services):
        asyncio.run(services.conversations.handle_event(text_event(USER, "hi")))
        session = services.sessions.get(USER)
        session.analysis = SAMPLE_ANALYSIS
        services.sessions.save(session)

        result = asyncio.run(check_and_heal_sessions(services.conversations, WATCHDOG))

        assert result["healed_count"] == 0
        assert result["violations"] == [{"user_id": USER, "issues": ["guide_shown_with_analysis"]}]

    def test_no_healing_needed(self, services):
        asyncio.run(drive_to_payment(services.conversations, USER))

        result = asyncio.run(check_and_heal_sessions(services.conversations, WATCHDOG))

        assert result["healed_count"] == 0
        assert result["details"] == []
        assert result["violations"] == []
        assert "checked_at" in result


class TestGetSystemHealth:
    def test_counts_sessions_and_orders(self, services):
        asyncio.run(drive_to_payment(services.conversations, USER))
        asyncio.run(services.conversations.handle_event(text_event("919000000001", "hi")))

        result = get_system_health(services.conversations)

        assert result["sessions"]["payment_pending"] == 1
        assert result["sessions"]["guide_shown"] == 1
        assert result["sessions"]["completed"] == 0
        assert result["payments"]["pending"] == 1
        assert "checked_at" in result
