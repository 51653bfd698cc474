"""Tests for error classification."""

from __future__ import annotations

import httpx
import pytest

from converse_stream.errors import (
    ConverseStreamError,
    ErrorClass,
    ErrorKind,
    ToolUseProtocolError,
    classify_error_kind,
    error_reason_code,
    response_body,
)

MODEL = "openai.gpt-oss-120b-1:0"
HIGH_LOAD = (
    b"Encountered unexpectedly high load when processing the request, "
    b"please try again."
)


def _status_error(
    status: int,
    body: bytes = b"",
    headers: dict[str, str] | None = None,
) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://bedrock-runtime.us-east-1.amazonaws.com/")
    response = httpx.Response(status, content=body, headers=headers, request=request)
    return httpx.HTTPStatusError("failed", request=request, response=response)


class TestClassifyErrorKind:
    def test_context_window_overflow(self):
        result = classify_error_kind(400, b"Input is too long.", MODEL)
        assert result == ErrorClass(ErrorKind.CONTEXT_WINDOW_OVERFLOW)

    def test_context_overflow_wins_over_everything(self):
        body = b"Input is too long. INSUFFICIENT_MODEL_CAPACITY MONTHLY_REQUEST_COUNT"
        result = classify_error_kind(429, body, MODEL)
        assert result.kind is ErrorKind.CONTEXT_WINDOW_OVERFLOW

    def test_capacity_marker_with_500(self):
        result = classify_error_kind(500, b"INSUFFICIENT_MODEL_CAPACITY", MODEL)
        assert result.kind is ErrorKind.MODEL_OVERLOADED

    def test_capacity_beats_throttling_on_429(self):
        result = classify_error_kind(429, b"INSUFFICIENT_MODEL_CAPACITY", MODEL)
        assert result.kind is ErrorKind.MODEL_OVERLOADED

    def test_capacity_marker_without_model(self):
        result = classify_error_kind(503, b"INSUFFICIENT_MODEL_CAPACITY")
        assert result.kind is ErrorKind.MODEL_OVERLOADED

    def test_high_load_needs_500_and_model(self):
        assert classify_error_kind(500, HIGH_LOAD, MODEL).kind is ErrorKind.MODEL_OVERLOADED
        assert classify_error_kind(500, HIGH_LOAD).kind is ErrorKind.UNKNOWN
        assert classify_error_kind(503, HIGH_LOAD, MODEL).kind is ErrorKind.UNKNOWN

    def test_throttling(self):
        result = classify_error_kind(429, b"Too many requests", MODEL)
        assert result == ErrorClass(ErrorKind.THROTTLING)

    def test_throttling_beats_monthly_limit(self):
        result = classify_error_kind(429, b"MONTHLY_REQUEST_COUNT", MODEL)
        assert result.kind is ErrorKind.THROTTLING

    def test_monthly_limit(self):
        result = classify_error_kind(400, b'{"reason":"MONTHLY_REQUEST_COUNT"}', MODEL)
        assert result.kind is ErrorKind.MONTHLY_LIMIT_REACHED

    def test_unknown_carries_reason_code(self):
        error = _status_error(400, b'{"__type":"com.amazon#ValidationException"}')
        result = classify_error_kind(400, b"something else", MODEL, error)
        assert result.kind is ErrorKind.UNKNOWN
        assert result.reason_code == "ValidationException"

    def test_unknown_without_error(self):
        result = classify_error_kind(None, b"")
        assert result == ErrorClass(ErrorKind.UNKNOWN, reason_code="Unknown")

    def test_explicit_reason_code(self):
        result = classify_error_kind(400, b"", reason_code="validationException")
        assert result.reason_code == "validationException"

    def test_reason_code_only_for_unknown(self):
        error = _status_error(429, b"", {"x-amzn-errortype": "ThrottlingException"})
        result = classify_error_kind(429, b"", MODEL, error)
        assert result.reason_code is None


class TestErrorReasonCode:
    def test_error_type_header(self):
        error = _status_error(
            400, b"", {"x-amzn-errortype": "AccessDeniedException:http://internal/"},
        )
        assert error_reason_code(error) == "AccessDeniedException"

    def test_body_code(self):
        error = _status_error(403, b'{"code":"Forbidden","message":"no"}')
        assert error_reason_code(error) == "Forbidden"

    def test_non_json_body_falls_back_to_class_name(self):
        error = _status_error(502, b"<html>bad gateway</html>")
        assert error_reason_code(error) == "HTTPStatusError"

    def test_transport_error(self):
        error = httpx.ConnectTimeout("timed out")
        assert error_reason_code(error) == "ConnectTimeout"

    def test_none(self):
        assert error_reason_code(None) == "Unknown"

    def test_unread_streaming_body(self):
        request = httpx.Request("POST", "http://test")
        response = httpx.Response(
            500, stream=httpx.ByteStream(b"x"), request=request,
        )
        assert response_body(response) == b""


class TestConverseStreamError:
    def test_message_format(self):
        err = ConverseStreamError(
            ErrorKind.UNKNOWN, "boom", reason_code="ValidationException",
        )
        assert str(err) == "[unknown] boom (reason: ValidationException)"
        assert err.kind is ErrorKind.UNKNOWN

    def test_default_message(self):
        err = ConverseStreamError(ErrorKind.THROTTLING)
        assert str(err) == "[throttling] throttling"

    def test_from_class(self):
        err = ConverseStreamError.from_class(
            ErrorClass(ErrorKind.UNKNOWN, "Boom"),
            "failed",
            status_code=418,
            model_id=MODEL,
        )
        assert err.reason_code == "Boom"
        assert err.status_code == 418
        assert err.model_id == MODEL

    def test_tool_use_protocol_error(self):
        err = ToolUseProtocolError("out of order")
        assert isinstance(err, ConverseStreamError)
        assert err.kind is ErrorKind.API_ERROR
        with pytest.raises(ConverseStreamError):
            raise err
