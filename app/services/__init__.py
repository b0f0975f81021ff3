from app.services.intent_service import Intent, classify_intent, detect_intents
from app.services.result import Result
from app.services.state_machine import (
    Decision,
    Effect,
    InvalidTransitionError,
    can_transition,
    decide,
    transition,
)
