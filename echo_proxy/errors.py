"""Error taxonomy and upstream failure classification."""

from enum import Enum
from typing import Any, Dict, List, Optional


class FailureClass(Enum):
    """How a failed upstream call should be backed off."""
    RATE_LIMITED = "rate_limited"
    FORBIDDEN = "forbidden"
    OTHER = "other"


RATE_LIMIT_FRAGMENTS = (
    "http error 429",
    "too many requests",
    "rate limit",
)

FORBIDDEN_FRAGMENTS = (
    "http error 403",
    "forbidden",
    "sign in to confirm you",
)


# yt-dlp wraps errors several layers deep: DownloadError -> ExtractorError -> HTTPError
MAX_WRAP_DEPTH = 5


def _wrapped(exc: BaseException) -> List[BaseException]:
    """Exceptions directly wrapped by ``exc``."""
    wrapped = []
    # yt-dlp keeps the original exception in exc_info
    exc_info = getattr(exc, "exc_info", None)
    if isinstance(exc_info, tuple) and len(exc_info) > 1:
        wrapped.append(exc_info[1])
    wrapped.append(getattr(exc, "cause", None))
    wrapped.append(exc.__cause__)
    return [inner for inner in wrapped if isinstance(inner, BaseException) and inner is not exc]


def _status_of(exc: BaseException, depth: int = 0) -> Optional[int]:
    """Best-effort HTTP status carried by an exception or anything it wraps."""
    for candidate in (exc, getattr(exc, "response", None)):
        if candidate is None:
            continue
        for attr in ("status_code", "status", "code"):
            value = getattr(candidate, attr, None)
            if isinstance(value, int):
                return value

    if depth >= MAX_WRAP_DEPTH:
        return None
    for inner in _wrapped(exc):
        status = _status_of(inner, depth + 1)
        if status is not None:
            return status
    return None


def classify_failure(exc: BaseException) -> FailureClass:
    """Categorize an upstream error. Status codes win over message text."""
    status = _status_of(exc)
    if status == 429:
        return FailureClass.RATE_LIMITED
    if status == 403:
        return FailureClass.FORBIDDEN

    lowered = str(exc).lower()
    if any(fragment in lowered for fragment in RATE_LIMIT_FRAGMENTS):
        return FailureClass.RATE_LIMITED
    if any(fragment in lowered for fragment in FORBIDDEN_FRAGMENTS):
        return FailureClass.FORBIDDEN
    return FailureClass.OTHER


class ProxyError(Exception):
    """Base class for failures surfaced to HTTP callers."""

    category = "internal"
    status_code = 500

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "category": self.category,
        }
        if self.detail:
            payload["message"] = self.detail
        return payload


class NotReadyError(ProxyError):
    """Raised when the catalog gateway has not finished initializing."""

    category = "not_ready"
    status_code = 503


class ValidationError(ProxyError):
    """Raised when required input is missing; no upstream call is made."""

    category = "validation"
    status_code = 400


class UpstreamError(ProxyError):
    """Raised once every internal retry and fallback has been exhausted."""

    category = "upstream"
    status_code = 500


class NotFoundError(ProxyError):
    category = "not_found"
    status_code = 404


class RateLimitedError(ProxyError):
    """Raised by local admission control before any upstream call."""

    category = "rate_limited"
    status_code = 429


class ImageFetchError(UpstreamError):
    """Raised when the image proxy cannot fetch the origin image."""

    status_code = 502
