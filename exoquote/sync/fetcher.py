"""Resilient GET against the Exo API.

Each attempt is classified into a typed ``AttemptResult`` and the retry loop
is a small explicit state machine:

    Attempting -> success  -> Succeeded
               -> end      -> Succeeded (END_OF_PAGES)
               -> retryable and attempts left -> Backoff -> Attempting
               -> retryable, no attempts left -> Exhausted (raise)
               -> fatal    -> raise

Backoff before attempt ``n + 1`` is ``base_backoff * n`` seconds (linear).
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Collection, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
import structlog

from exoquote.config import Settings

logger = structlog.get_logger()

MAX_LOGGED_BODY = 800


class _EndOfPages:
    def __repr__(self) -> str:
        return "END_OF_PAGES"


END_OF_PAGES: Any = _EndOfPages()


class AttemptKind(Enum):
    SUCCESS = "success"
    END = "end"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class AttemptResult:
    kind: AttemptKind
    body: Any = None
    status: int | None = None
    error: str | None = None


class UpstreamError(Exception):
    """Raised when a fetch fails fatally or runs out of attempts."""

    def __init__(self, message: str, *, status: int | None = None, attempts: int = 1) -> None:
        super().__init__(message)
        self.status = status
        self.attempts = attempts


_TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)


def classify_response(
    response: httpx.Response,
    *,
    end_on_404: bool = False,
    fail_fast_statuses: Collection[int] = (),
) -> AttemptResult:
    status = response.status_code
    if status == 404 and end_on_404:
        return AttemptResult(AttemptKind.END, status=status)
    if status in fail_fast_statuses:
        return AttemptResult(AttemptKind.FATAL, status=status, error=f"HTTP {status}")
    if status >= 500:
        return AttemptResult(AttemptKind.RETRYABLE, status=status, error=f"HTTP {status}")
    if status >= 400:
        return AttemptResult(AttemptKind.FATAL, status=status, error=f"HTTP {status}")
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return AttemptResult(AttemptKind.FATAL, status=status, error="invalid_json")
    return AttemptResult(AttemptKind.SUCCESS, body=body, status=status)


def classify_exception(exc: httpx.HTTPError) -> AttemptResult:
    kind = AttemptKind.RETRYABLE if isinstance(exc, _TRANSIENT_ERRORS) else AttemptKind.FATAL
    return AttemptResult(kind, error=type(exc).__name__)


class UpstreamFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        retries: int = 5,
        base_backoff: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self.retries = max(1, retries)
        self.base_backoff = base_backoff
        self._sleep = sleep

    async def _attempt(
        self,
        path: str,
        params: Mapping[str, Any] | None,
        end_on_404: bool,
        fail_fast_statuses: Collection[int],
    ) -> tuple[AttemptResult, str]:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            return classify_exception(exc), str(exc)
        result = classify_response(
            response, end_on_404=end_on_404, fail_fast_statuses=fail_fast_statuses
        )
        return result, response.text if result.kind is not AttemptKind.SUCCESS else ""

    async def fetch(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        *,
        end_on_404: bool = False,
        fail_fast_statuses: Collection[int] = (),
    ) -> Any:
        """Return the decoded JSON body, or END_OF_PAGES for a 404 list page."""
        attempt = 1
        while True:
            result, detail = await self._attempt(path, params, end_on_404, fail_fast_statuses)
            if result.kind is AttemptKind.SUCCESS:
                return result.body
            if result.kind is AttemptKind.END:
                logger.debug("upstream_end_of_pages", path=path, params=dict(params or {}))
                return END_OF_PAGES

            logger.warning(
                "upstream_attempt_failed",
                path=path,
                params=dict(params or {}),
                attempt=attempt,
                retries=self.retries,
                status=result.status,
                error_code=result.error,
                retryable=result.kind is AttemptKind.RETRYABLE,
                body=detail[:MAX_LOGGED_BODY],
            )
            if result.kind is AttemptKind.FATAL:
                raise UpstreamError(
                    f"GET {path} failed: {result.error}", status=result.status, attempts=attempt
                )
            if attempt >= self.retries:
                raise UpstreamError(
                    f"GET {path} failed after {attempt} attempts: {result.error}",
                    status=result.status,
                    attempts=attempt,
                )
            await self._sleep(self.base_backoff * attempt)
            attempt += 1


def build_upstream_client(settings: Settings) -> httpx.AsyncClient:
    """httpx client carrying the Exo base URL, basic auth and vendor key headers."""
    headers = {"Accept": "application/json"}
    if settings.exo_api_key:
        headers["x-myobapi-key"] = settings.exo_api_key
    if settings.exo_token:
        headers["x-myobapi-exotoken"] = settings.exo_token
    auth = None
    if settings.exo_username:
        auth = httpx.BasicAuth(settings.exo_username, settings.exo_password)
    return httpx.AsyncClient(
        base_url=settings.exo_base_url.rstrip("/"),
        auth=auth,
        headers=headers,
        timeout=settings.exo_timeout_seconds,
    )
