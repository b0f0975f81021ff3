from datetime import datetime, timedelta
from typing import Optional

from app.entities import OrderStatus, SessionState, utcnow
from app.errors import AnalysisErrorKind, AnalysisFailure
from app.logging_config import get_logger
from app.services.state_service import check_invariants

logger = get_logger("health_service")


async def check_and_heal_sessions(service, watchdog: timedelta, now: Optional[datetime] = None) -> dict:
    """Check session invariants and repair the states a lost callback can leave behind."""
    now = now or utcnow()
    healed = []
    violations = []

    for session in service.sessions.all():
        # Invariant 1: analyzing never outlives the watchdog window.
        if session.state == SessionState.ANALYZING:
            started = session.analysis_started_at or session.last_active
            if started <= now - watchdog:
                applied = await service.apply_analysis_result(
                    session.user_id,
                    session.analysis_generation,
                    failure=AnalysisFailure("Analysis watchdog expired", AnalysisErrorKind.TIMEOUT),
                )
                if applied:
                    healed.append(
                        {"user_id": session.user_id, "issue": "analyzing_stuck", "action": "reset_to_waiting_for_photo"}
                    )
                    logger.warning(f"Healed session {session.user_id}: analysis stuck since {started.isoformat()}")
            continue

        # Invariant 2: a paid order moves its session out of payment_pending.
        if session.state == SessionState.PAYMENT_PENDING and session.active_payment_order_id:
            order = service.payments.get_order(session.active_payment_order_id)
            if order and order.status == OrderStatus.COMPLETED:
                await service.on_payment_event(order)
                healed.append(
                    {"user_id": session.user_id, "issue": "paid_but_pending", "action": "completed_purchase"}
                )
                logger.warning(f"Healed session {session.user_id}: order {order.order_id} paid but session pending")
                continue

        issues = check_invariants(session)
        if issues:
            violations.append({"user_id": session.user_id, "issues": issues})
            logger.warning(f"Session {session.user_id} violates invariants: {', '.join(issues)}")

    return {
        "healed_count": len(healed),
        "details": healed,
        "violations": violations,
        "checked_at": now.isoformat(),
    }


def get_system_health(service) -> dict:
    sessions = service.sessions.all()
    states = {state.value: 0 for state in SessionState}
    for session in sessions:
        states[session.state.value] += 1
    return {
        "sessions": states,
        "payments": service.payments.stats(),
        "checked_at": utcnow().isoformat(),
    }
