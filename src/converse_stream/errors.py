"""Error taxonomy and failure classification.

Every failure the client surfaces is a ``ConverseStreamError`` whose
``kind`` is one of the ``ErrorKind`` members, so callers never need to
inspect raw transport errors.  The body markers below are the only place
that knows how the backend words its errors.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass

import httpx


class ErrorKind(enum.Enum):
    """Actionable failure categories."""

    CONTEXT_WINDOW_OVERFLOW = "context_window_overflow"
    MODEL_OVERLOADED = "model_overloaded"
    THROTTLING = "throttling"
    MONTHLY_LIMIT_REACHED = "monthly_limit_reached"
    MODEL_NOT_AVAILABLE = "model_not_available"
    INVALID_MODEL = "invalid_model"
    MESSAGE_CONVERSION = "message_conversion"
    API_ERROR = "api_error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorClass:
    """Result of ``classify_error_kind``.

    ``reason_code`` is only set for ``ErrorKind.UNKNOWN``.
    """

    kind: ErrorKind
    reason_code: str | None = None


class ConverseStreamError(Exception):
    """A classified failure of a send or of a stream in progress."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str = "",
        *,
        reason_code: str | None = None,
        status_code: int | None = None,
        request_id: str | None = None,
        model_id: str | None = None,
    ) -> None:
        self.kind = kind
        self.reason_code = reason_code
        self.status_code = status_code
        self.request_id = request_id
        self.model_id = model_id
        detail = message or kind.value
        if reason_code:
            detail = f"{detail} (reason: {reason_code})"
        super().__init__(f"[{kind.value}] {detail}")

    @classmethod
    def from_class(
        cls,
        error_class: ErrorClass,
        message: str = "",
        **kwargs,
    ) -> ConverseStreamError:
        return cls(
            error_class.kind,
            message,
            reason_code=error_class.reason_code,
            **kwargs,
        )


class ToolUseProtocolError(ConverseStreamError):
    """Tool-use wire events arrived out of order (adapter or backend bug)."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorKind.API_ERROR, message, reason_code="ToolUseProtocol")


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

_CONTEXT_OVERFLOW_MARKER = b"Input is too long."
_CAPACITY_MARKER = b"INSUFFICIENT_MODEL_CAPACITY"
_HIGH_LOAD_MARKER = (
    b"Encountered unexpectedly high load when processing the request, "
    b"please try again."
)
_MONTHLY_LIMIT_MARKER = b"MONTHLY_REQUEST_COUNT"

_ERROR_TYPE_HEADER = "x-amzn-errortype"

# Nominal HTTP status of exception events delivered inside a stream
STREAM_EXCEPTION_STATUS: dict[str, int] = {
    "throttlingException": 429,
    "internalServerException": 500,
    "serviceUnavailableException": 503,
    "validationException": 400,
    "modelStreamErrorException": 424,
}


def classify_error_kind(
    status_code: int | None,
    body: bytes,
    model_id: str | None = None,
    error: BaseException | None = None,
    *,
    reason_code: str | None = None,
) -> ErrorClass:
    """Map a failed response to an ``ErrorClass``.

    The checks run in a fixed order and the first match wins.  Capacity
    errors are checked before throttling because both can arrive as 429.
    """
    if _CONTEXT_OVERFLOW_MARKER in body:
        return ErrorClass(ErrorKind.CONTEXT_WINDOW_OVERFLOW)

    overloaded = _CAPACITY_MARKER in body or (
        model_id is not None
        and status_code == 500
        and _HIGH_LOAD_MARKER in body
    )
    if overloaded:
        return ErrorClass(ErrorKind.MODEL_OVERLOADED)

    if status_code == 429:
        return ErrorClass(ErrorKind.THROTTLING)

    if _MONTHLY_LIMIT_MARKER in body:
        return ErrorClass(ErrorKind.MONTHLY_LIMIT_REACHED)

    return ErrorClass(
        ErrorKind.UNKNOWN,
        reason_code=reason_code or error_reason_code(error),
    )


def error_reason_code(error: BaseException | None) -> str:
    """Derive an opaque reason code from an underlying error.

    Prefers the service's error-type header, then a ``__type`` / ``code``
    field in a JSON body, then the exception class name.
    """
    if error is None:
        return "Unknown"

    response = getattr(error, "response", None)
    if isinstance(response, httpx.Response):
        header = response.headers.get(_ERROR_TYPE_HEADER)
        if header:
            return header.split(":", 1)[0]
        code = _code_from_body(response_body(response))
        if code:
            return code

    return type(error).__name__


def response_body(response: httpx.Response) -> bytes:
    """Return the response body if it has been read, else ``b""``."""
    try:
        return response.content
    except httpx.ResponseNotRead:
        return b""


def _code_from_body(body: bytes) -> str | None:
    if not body:
        return None
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    for key in ("__type", "code"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value.rsplit("#", 1)[-1]
    return None


__all__ = [
    "ConverseStreamError",
    "ErrorClass",
    "ErrorKind",
    "STREAM_EXCEPTION_STATUS",
    "ToolUseProtocolError",
    "classify_error_kind",
    "error_reason_code",
    "response_body",
]
