"""Error taxonomy and provider error classification."""

import re
from enum import Enum

QUOTA_EXCEEDED_MESSAGE = "답변 요청 한도를 초과했습니다. 잠시 후 다시 시도해 주세요."
SERVICE_FAILURE_MESSAGE = (
    "죄송합니다. 현재 서비스에 일시적인 문제가 발생했습니다. 잠시 후 다시 시도해 주세요."
)


class ErrorKind(str, Enum):
    """How a provider failure should be treated."""

    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    AUTHENTICATION = "authentication"
    GENERIC = "generic"


class ChatbotError(Exception):
    """Base class for application errors."""


class AnalysisFailure(ChatbotError):
    """Remote question analysis failed or returned unusable output."""


class NoCredentialAvailable(ChatbotError):
    """No active, under-quota API key exists."""


class CorpusLoadFailure(ChatbotError):
    """The precomputed corpus artifact is missing or corrupt."""


class ProviderError(ChatbotError):
    """A failure reported by the model provider."""

    kind: ErrorKind = ErrorKind.GENERIC


class RateLimited(ProviderError):
    kind = ErrorKind.RATE_LIMITED


class QuotaExceeded(ProviderError):
    kind = ErrorKind.QUOTA_EXCEEDED


class AuthenticationFailure(ProviderError):
    kind = ErrorKind.AUTHENTICATION


class GenericProviderFailure(ProviderError):
    kind = ErrorKind.GENERIC


_RATE_LIMIT_STATUS = re.compile(r"\b429\b")
_AUTH_STATUS = re.compile(r"\b40[13]\b")
_RATE_LIMIT_SIGNATURES = ("rate_limit_exceeded", "rate limit", "too many requests")
_QUOTA_SIGNATURES = ("quota", "resource_exhausted", "resource exhausted")
_AUTH_SIGNATURES = (
    "unauthenticated",
    "permission_denied",
    "api_key_invalid",
    "api key not valid",
)


def classify_error(error: BaseException) -> ErrorKind:
    """Map an arbitrary provider exception to an :class:`ErrorKind`.

    Our own ``ProviderError`` subclasses carry their kind. Anything else is
    classified from an integer ``code``/``status_code`` attribute when one
    is present, then from signatures in the message text.
    """
    if isinstance(error, ProviderError):
        return error.kind

    code = getattr(error, "code", None)
    if not isinstance(code, int):
        code = getattr(error, "status_code", None)
    if code in (401, 403):
        return ErrorKind.AUTHENTICATION

    message = str(error).lower()
    if (
        code == 429
        or _RATE_LIMIT_STATUS.search(message)
        or any(sig in message for sig in _RATE_LIMIT_SIGNATURES)
    ):
        # Gemini reports daily quota exhaustion as a 429 naming a PerDay metric
        if "quota" in message and ("perday" in message or "per day" in message):
            return ErrorKind.QUOTA_EXCEEDED
        return ErrorKind.RATE_LIMITED
    if any(sig in message for sig in _QUOTA_SIGNATURES):
        return ErrorKind.QUOTA_EXCEEDED
    if _AUTH_STATUS.search(message) or any(sig in message for sig in _AUTH_SIGNATURES):
        return ErrorKind.AUTHENTICATION
    return ErrorKind.GENERIC


def is_limit_error(error: BaseException) -> bool:
    """True for rate-limit and quota-exhaustion failures."""
    return classify_error(error) in (ErrorKind.RATE_LIMITED, ErrorKind.QUOTA_EXCEEDED)


def user_message_for(error: BaseException) -> str:
    """Pick the user-facing message for an unrecoverable failure."""
    if is_limit_error(error):
        return QUOTA_EXCEEDED_MESSAGE
    return SERVICE_FAILURE_MESSAGE
