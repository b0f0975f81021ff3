"""Error taxonomy shared by the conversation and payment layers."""

from enum import Enum
from typing import Optional


class AppError(Exception):
    code = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class EventValidationError(AppError):
    """Malformed inbound event. Dropped and logged, the session is untouched."""

    code = "invalid_event"


class UpstreamError(AppError):
    """A collaborator call failed."""

    code = "upstream_error"

    def __init__(self, message: str, service: Optional[str] = None):
        self.service = service
        super().__init__(message)


class UpstreamTimeout(UpstreamError):
    code = "upstream_timeout"


class SignatureInvalid(AppError):
    code = "signature_invalid"


class AnalysisErrorKind(str, Enum):
    TIMEOUT = "timeout"
    INVALID_FORMAT = "invalid_format"
    RATE_LIMITED = "rate_limited"
    UNKNOWN = "unknown"


class AnalysisFailure(AppError):
    code = "analysis_failure"

    def __init__(self, message: str, kind: AnalysisErrorKind = AnalysisErrorKind.UNKNOWN):
        self.kind = kind
        super().__init__(message)


class PaymentVerificationFailure(AppError):
    code = "payment_verification_failure"


class SessionExistsError(AppError):
    code = "session_exists"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Session already exists for {user_id}")
