"""HTTP transport shared by the live backends.

Opens a streaming POST with retry on transient failures.  Retries only
cover getting a response started; once events are flowing, a failure is
surfaced to the caller and the whole turn has to be resent.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from converse_stream.config import ClientConfig
from converse_stream.errors import (
    ConverseStreamError,
    ErrorKind,
    classify_error_kind,
)

from .encoder import dump_payload
from .streams import REQUEST_ID_HEADER

_logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class HttpTransport:
    """Streaming POST client with bounded, capped exponential backoff."""

    def __init__(
        self,
        config: ClientConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout)
        self._headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if config.api_key:
            self._headers["Authorization"] = f"Bearer {config.api_key}"

    @property
    def config(self) -> ClientConfig:
        return self._config

    async def open_stream(
        self,
        path: str,
        payload: dict[str, Any],
        *,
        model_id: str | None = None,
    ) -> httpx.Response:
        """POST *payload* and return the response with its body unread.

        ``api_timeout_ms`` bounds the whole call, retries and backoff
        included.  Raises ``ConverseStreamError`` once retries or the time
        budget are exhausted, or on a non-retryable status.
        """
        body = dump_payload(payload)
        url = f"{self._config.base_url}{path}"
        attempts = max(1, self._config.max_attempts)
        budget = self._config.api_timeout_ms / 1000
        deadline = time.monotonic() + budget
        status: int | None = None
        error_body = b""
        request_id: str | None = None
        last_error: Exception | None = None

        for attempt in range(attempts):
            remaining = deadline - time.monotonic()
            if attempt and remaining <= 0:
                break
            remaining = max(remaining, 0.0)
            request = self._client.build_request(
                "POST", url, content=body, headers=self._headers,
                timeout=httpx.Timeout(min(remaining, budget)),
            )
            try:
                resp = await asyncio.wait_for(
                    self._client.send(request, stream=True), remaining,
                )
            except asyncio.TimeoutError as e:
                _logger.warning("%s timed out after %.1fs", path, budget)
                status, error_body, request_id, last_error = None, b"", None, e
                break
            except httpx.TransportError as e:
                status, error_body, request_id, last_error = None, b"", None, e
                if not await self._backoff(path, str(e), attempt, attempts, deadline):
                    break
                continue

            if resp.status_code < 400:
                _logger.debug("%s opened stream (attempt %d/%d)", path, attempt + 1, attempts)
                return resp

            await resp.aread()
            await resp.aclose()
            status = resp.status_code
            error_body = resp.content
            request_id = resp.headers.get(REQUEST_ID_HEADER)
            try:
                resp.raise_for_status()
            except httpx.HTTPStatusError as e:
                last_error = e

            if status not in _RETRYABLE_STATUS:
                break
            if not await self._backoff(path, f"returned {status}", attempt, attempts, deadline):
                break

        raise self._failure(status, error_body, last_error, model_id, request_id) from last_error

    async def _backoff(
        self,
        path: str,
        reason: str,
        attempt: int,
        attempts: int,
        deadline: float,
    ) -> bool:
        """Sleep before the next attempt; False when no attempt should follow."""
        if attempt >= attempts - 1:
            return False
        delay = self._config.backoff_delay(attempt)
        if time.monotonic() + delay >= deadline:
            _logger.warning(
                "%s %s (attempt %d/%d), no time left to retry",
                path, reason, attempt + 1, attempts,
            )
            return False
        _logger.warning(
            "%s %s (attempt %d/%d), retrying...",
            path, reason, attempt + 1, attempts,
        )
        await asyncio.sleep(delay)
        return True

    def _failure(
        self,
        status: int | None,
        body: bytes,
        error: Exception | None,
        model_id: str | None,
        request_id: str | None,
    ) -> ConverseStreamError:
        if status == 404:
            _logger.error(
                "Model %s is not available in region %s",
                model_id, self._config.region or "unknown",
            )
            return ConverseStreamError(
                ErrorKind.MODEL_NOT_AVAILABLE,
                f"model {model_id} is not available in region {self._config.region}",
                status_code=status,
                request_id=request_id,
                model_id=model_id,
            )

        error_class = classify_error_kind(status, body, model_id, error)
        detail = body.decode("utf-8", errors="replace")[:500] if body else str(error)
        _logger.error("Request failed (%s): %s", status or "no response", detail)
        return ConverseStreamError.from_class(
            error_class,
            detail,
            status_code=status,
            request_id=request_id,
            model_id=model_id,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
