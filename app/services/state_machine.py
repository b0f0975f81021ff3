from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from app.entities import SessionState
from app.schemas.events import InboundEvent, OutboundCommand, send_options, send_text
from app.services import templates
from app.services.intent_service import Intent, classify_intent, detect_intents, intent_for_reply

VALID_TRANSITIONS = {
    SessionState.INITIAL: [SessionState.GUIDE_SHOWN],
    SessionState.GUIDE_SHOWN: [SessionState.WAITING_FOR_PHOTO],
    SessionState.WAITING_FOR_PHOTO: [SessionState.ANALYZING],
    SessionState.ANALYZING: [SessionState.RESULTS_SHOWN, SessionState.WAITING_FOR_PHOTO],
    SessionState.RESULTS_SHOWN: [SessionState.PAYMENT_PENDING, SessionState.GUIDE_SHOWN],
    SessionState.PAYMENT_PENDING: [SessionState.COMPLETED],
    SessionState.COMPLETED: [SessionState.GUIDE_SHOWN],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: SessionState, to_state: SessionState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def can_transition(from_state: SessionState, to_state: SessionState) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(from_state: SessionState, to_state: SessionState) -> SessionState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


class Effect(str, Enum):
    START_ANALYSIS = "start_analysis"
    CREATE_ORDER = "create_order"
    RENEW_ORDER = "renew_order"
    CHECK_PAYMENT = "check_payment"
    CLEAR_ANALYSIS = "clear_analysis"
    REDELIVER_DOCUMENT = "redeliver_document"


@dataclass
class Decision:
    next_state: SessionState
    commands: list[OutboundCommand] = field(default_factory=list)
    effects: list[Effect] = field(default_factory=list)
    intent: Optional[Intent] = None


def resolve_intent(state: SessionState, event: InboundEvent) -> Intent:
    if event.kind == "interactive":
        return intent_for_reply(event.reply_id, state)
    if event.kind == "text":
        numbered = intent_for_reply(event.text, state)
        if numbered != Intent.UNKNOWN:
            return numbered
        return classify_intent(event.text)
    return Intent.UNKNOWN


def _has(event: InboundEvent, intent: Intent, resolved: Intent) -> bool:
    """True if the event expresses `intent`, even when another intent ranks higher."""
    if resolved == intent:
        return True
    return event.kind == "text" and intent in detect_intents(event.text)


def decide(session, event: InboundEvent, price_text: str = "") -> Decision:
    """Map (session, event) to the next state, outbound commands and effects.

    Pure: no I/O, no mutation. Effects are executed by the conversation service.
    """
    state = session.state
    user_id = session.user_id

    if event.kind == "image":
        if state == SessionState.WAITING_FOR_PHOTO:
            return Decision(
                next_state=transition(state, SessionState.ANALYZING),
                commands=[send_text(user_id, templates.MSG_ANALYZING_ACK)],
                effects=[Effect.START_ANALYSIS],
            )
        text = templates.MSG_PHOTO_WHILE_ANALYZING if state == SessionState.ANALYZING else templates.MSG_PHOTO_NOT_EXPECTED
        return Decision(next_state=state, commands=[send_text(user_id, text)])

    intent = resolve_intent(state, event)

    if state == SessionState.INITIAL:
        # First contact: whatever was said, greet and move on.
        return Decision(
            next_state=transition(state, SessionState.GUIDE_SHOWN),
            commands=[send_options(user_id, templates.MSG_WELCOME, templates.WELCOME_OPTIONS)],
            intent=intent,
        )

    if state == SessionState.GUIDE_SHOWN:
        if _has(event, Intent.CONFIRM, intent):
            return Decision(
                next_state=transition(state, SessionState.WAITING_FOR_PHOTO),
                commands=[send_text(user_id, templates.MSG_PHOTO_INSTRUCTIONS)],
                intent=Intent.CONFIRM,
            )
        return Decision(
            next_state=state,
            commands=[send_options(user_id, templates.MSG_GUIDE, templates.GUIDE_OPTIONS)],
            intent=intent,
        )

    if state == SessionState.WAITING_FOR_PHOTO:
        return Decision(next_state=state, commands=[send_text(user_id, templates.MSG_WAITING_FOR_PHOTO)], intent=intent)

    if state == SessionState.ANALYZING:
        return Decision(next_state=state, commands=[send_text(user_id, templates.MSG_STILL_ANALYZING)], intent=intent)

    if state == SessionState.RESULTS_SHOWN:
        if intent == Intent.BUY:
            if not session.analysis:
                return Decision(next_state=state, commands=[send_text(user_id, templates.MSG_NO_ANALYSIS)], intent=intent)
            return Decision(
                next_state=transition(state, SessionState.PAYMENT_PENDING),
                commands=[send_text(user_id, templates.format_payment_offer(price_text))],
                effects=[Effect.CREATE_ORDER],
                intent=intent,
            )
        if intent == Intent.RESTART:
            return _restart(session, intent)
        if intent == Intent.SHARE:
            return Decision(
                next_state=state,
                commands=[send_text(user_id, templates.format_share_text(session.analysis))],
                intent=intent,
            )
        return Decision(
            next_state=state,
            commands=[send_options(user_id, templates.MSG_RESULTS_OPTIONS, templates.RESULTS_OPTIONS)],
            intent=intent,
        )

    if state == SessionState.PAYMENT_PENDING:
        if _has(event, Intent.CHECK_PAYMENT, intent):
            return Decision(
                next_state=state,
                commands=[send_text(user_id, templates.MSG_CHECKING_PAYMENT)],
                effects=[Effect.CHECK_PAYMENT],
                intent=Intent.CHECK_PAYMENT,
            )
        if intent == Intent.BUY:
            return Decision(next_state=state, effects=[Effect.RENEW_ORDER], intent=intent)
        return Decision(next_state=state, commands=[send_text(user_id, templates.MSG_PAYMENT_REMINDER)], intent=intent)

    # SessionState.COMPLETED
    if intent == Intent.RESTART:
        return _restart(session, intent)
    if not session.pdf_delivered:
        return Decision(next_state=state, effects=[Effect.REDELIVER_DOCUMENT], intent=intent)
    return Decision(next_state=state, commands=[send_text(user_id, templates.MSG_COMPLETED)], intent=intent)


def _restart(session, intent: Intent) -> Decision:
    return Decision(
        next_state=transition(session.state, SessionState.GUIDE_SHOWN),
        commands=[
            send_text(session.user_id, templates.MSG_RESTART),
            send_options(session.user_id, templates.MSG_GUIDE, templates.GUIDE_OPTIONS),
        ],
        effects=[Effect.CLEAR_ANALYSIS],
        intent=intent,
    )
