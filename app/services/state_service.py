from typing import List

from app.entities import ANALYSIS_STATES, ConversationSession, SessionState


def check_invariants(session: ConversationSession) -> List[str]:
    """Return the names of the session invariants the record violates."""
    issues = []

    if not isinstance(session.state, SessionState):
        issues.append("unknown_state")
        return issues

    # Analysis is only kept once results were shown.
    if session.analysis is not None and session.state not in ANALYSIS_STATES:
        issues.append(f"{session.state.value}_with_analysis")

    if session.state in (SessionState.RESULTS_SHOWN, SessionState.PAYMENT_PENDING) and not session.analysis:
        issues.append(f"{session.state.value}_without_analysis")

    if session.state == SessionState.ANALYZING and session.analysis_started_at is None:
        issues.append("analyzing_without_start_time")

    if session.state == SessionState.PAYMENT_PENDING and not session.active_payment_order_id:
        issues.append("payment_pending_without_order")

    # The order link is cleared once payment is resolved or the analysis reset.
    if session.state != SessionState.PAYMENT_PENDING and session.active_payment_order_id:
        issues.append("order_outside_payment_pending")

    if session.state == SessionState.COMPLETED and session.completed_at is None:
        issues.append("completed_without_timestamp")

    if session.pdf_delivered and not session.document_ref:
        issues.append("delivered_without_document")

    return issues
