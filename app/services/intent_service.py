import re
from enum import Enum
from typing import Optional

from app.entities import SessionState


class Intent(str, Enum):
    START = "start"  # greeting / wants to begin
    CONFIRM = "confirm"  # ready to send a photo
    BUY = "buy"  # wants the paid guide
    RESTART = "restart"  # wants a new analysis
    CHECK_PAYMENT = "check_payment"  # says they paid
    SHARE = "share"  # wants a shareable summary
    UNKNOWN = "unknown"


INTENT_KEYWORDS = {
    Intent.START: ("start", "begin", "hi", "hello"),
    Intent.CONFIRM: ("ready", "yes", "continue"),
    Intent.BUY: ("pdf", "guide", "buy"),
    Intent.RESTART: ("new", "another", "again"),
    Intent.CHECK_PAYMENT: ("paid", "payment", "done"),
    Intent.SHARE: ("share",),
}

# First match wins when a message carries several intents.
INTENT_PRIORITY = (
    Intent.CHECK_PAYMENT,
    Intent.BUY,
    Intent.RESTART,
    Intent.SHARE,
    Intent.CONFIRM,
    Intent.START,
)

INTENT_PATTERNS = {
    intent: re.compile(r"\b(" + "|".join(re.escape(word) for word in words) + r")\b")
    for intent, words in INTENT_KEYWORDS.items()
}

REPLY_ID_INTENTS = {
    "start_analysis": Intent.CONFIRM,
    "get_pdf": Intent.BUY,
    "new_analysis": Intent.RESTART,
    "share_results": Intent.SHARE,
    "check_payment": Intent.CHECK_PAYMENT,
}

# Numbered menus shown in each state ("Reply with the number of your choice").
MENU_NUMBER_INTENTS = {
    SessionState.INITIAL: {"1": Intent.START},
    SessionState.GUIDE_SHOWN: {"1": Intent.CONFIRM},
    SessionState.RESULTS_SHOWN: {"1": Intent.BUY, "2": Intent.RESTART, "3": Intent.SHARE},
}


def normalize_text(text: Optional[str]) -> str:
    return re.sub(r"\s+", " ", (text or "").casefold()).strip()


def detect_intents(text: Optional[str]) -> frozenset:
    """All intents whose keywords appear as whole words in the text."""
    normalized = normalize_text(text)
    if not normalized:
        return frozenset()
    return frozenset(intent for intent, pattern in INTENT_PATTERNS.items() if pattern.search(normalized))


def classify_intent(text: Optional[str]) -> Intent:
    """Single intent for a free-text message, UNKNOWN when nothing matches."""
    found = detect_intents(text)
    for intent in INTENT_PRIORITY:
        if intent in found:
            return intent
    return Intent.UNKNOWN


def intent_for_reply(reply_id: Optional[str], state: SessionState) -> Intent:
    """Map an interactive reply id (button/list id or menu number) to an intent."""
    key = normalize_text(reply_id)
    if key in REPLY_ID_INTENTS:
        return REPLY_ID_INTENTS[key]
    return MENU_NUMBER_INTENTS.get(state, {}).get(key, Intent.UNKNOWN)
