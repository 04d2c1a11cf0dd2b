"""Tests for the resilient upstream GET: classification, retries and backoff."""

import httpx
import pytest

from exoquote.config import Settings
from exoquote.sync.fetcher import (
    END_OF_PAGES,
    MAX_LOGGED_BODY,
    AttemptKind,
    UpstreamError,
    UpstreamFetcher,
    build_upstream_client,
    classify_exception,
    classify_response,
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://exo.test")


class _Sequence:
    """Handler that answers with a scripted sequence of responses or exceptions."""

    def __init__(self, *steps):
        self.steps = list(steps)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        step = self.steps[min(self.calls, len(self.steps) - 1)]
        self.calls += 1
        if isinstance(step, Exception):
            raise step
        return step


class TestClassifyResponse:
    """Mapping of HTTP outcomes onto attempt kinds."""

    def test_success_decodes_json(self):
        result = classify_response(httpx.Response(200, json={"id": 1}))
        assert result.kind is AttemptKind.SUCCESS
        assert result.body == {"id": 1}

    def test_404_is_end_only_when_requested(self):
        assert classify_response(httpx.Response(404), end_on_404=True).kind is AttemptKind.END
        assert classify_response(httpx.Response(404)).kind is AttemptKind.FATAL

    def test_5xx_is_retryable(self):
        assert classify_response(httpx.Response(503)).kind is AttemptKind.RETRYABLE

    def test_fail_fast_status_overrides_retry(self):
        result = classify_response(httpx.Response(504), fail_fast_statuses=(504,))
        assert result.kind is AttemptKind.FATAL
        assert result.status == 504

    def test_other_4xx_is_fatal(self):
        assert classify_response(httpx.Response(401)).kind is AttemptKind.FATAL

    def test_invalid_json_is_fatal(self):
        result = classify_response(httpx.Response(200, text="<html>oops</html>"))
        assert result.kind is AttemptKind.FATAL
        assert result.error == "invalid_json"

    def test_transport_errors(self):
        assert classify_exception(httpx.ConnectTimeout("slow")).kind is AttemptKind.RETRYABLE
        assert classify_exception(httpx.ConnectError("refused")).kind is AttemptKind.RETRYABLE
        assert classify_exception(httpx.UnsupportedProtocol("ftp")).kind is AttemptKind.FATAL


class TestUpstreamFetcher:
    """Retry loop behaviour against a mocked transport."""

    @pytest.mark.asyncio
    async def test_returns_body_on_first_success(self, sleeper):
        handler = _Sequence(httpx.Response(200, json=[{"id": "A"}]))
        async with _client(handler) as client:
            body = await UpstreamFetcher(client, sleep=sleeper).fetch("/stockitem")
        assert body == [{"id": "A"}]
        assert handler.calls == 1
        assert sleeper.calls == []

    @pytest.mark.asyncio
    async def test_retries_with_linear_backoff(self, sleeper):
        handler = _Sequence(
            httpx.Response(500),
            httpx.Response(502),
            httpx.Response(200, json={"ok": True}),
        )
        async with _client(handler) as client:
            fetcher = UpstreamFetcher(client, retries=5, base_backoff=2.0, sleep=sleeper)
            body = await fetcher.fetch("/stockitem/A")
        assert body == {"ok": True}
        assert handler.calls == 3
        assert sleeper.calls == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_exhaustion_raises_with_attempt_count(self, sleeper):
        handler = _Sequence(httpx.Response(503, text="busy"))
        async with _client(handler) as client:
            fetcher = UpstreamFetcher(client, retries=3, base_backoff=1.0, sleep=sleeper)
            with pytest.raises(UpstreamError) as exc_info:
                await fetcher.fetch("/stockitem/A")
        assert exc_info.value.status == 503
        assert exc_info.value.attempts == 3
        assert handler.calls == 3
        assert sleeper.calls == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self, sleeper):
        request = httpx.Request("GET", "https://exo.test/stockitem/A")
        handler = _Sequence(
            httpx.ConnectError("refused", request=request),
            httpx.Response(200, json={"id": "A"}),
        )
        async with _client(handler) as client:
            body = await UpstreamFetcher(client, sleep=sleeper).fetch("/stockitem/A")
        assert body == {"id": "A"}
        assert sleeper.calls == [2.0]

    @pytest.mark.asyncio
    async def test_fatal_status_is_not_retried(self, sleeper):
        handler = _Sequence(httpx.Response(401, text="denied"))
        async with _client(handler) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await UpstreamFetcher(client, sleep=sleeper).fetch("/stockitem")
        assert exc_info.value.status == 401
        assert exc_info.value.attempts == 1
        assert handler.calls == 1
        assert sleeper.calls == []

    @pytest.mark.asyncio
    async def test_fail_fast_status_skips_backoff(self, sleeper):
        handler = _Sequence(httpx.Response(504))
        async with _client(handler) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await UpstreamFetcher(client, sleep=sleeper).fetch(
                    "/stockitem", fail_fast_statuses=(504,)
                )
        assert exc_info.value.status == 504
        assert handler.calls == 1
        assert sleeper.calls == []

    @pytest.mark.asyncio
    async def test_404_end_of_pages(self, sleeper):
        handler = _Sequence(httpx.Response(404))
        async with _client(handler) as client:
            body = await UpstreamFetcher(client, sleep=sleeper).fetch(
                "/stockitem", {"page": 9, "pagesize": 50}, end_on_404=True
            )
        assert body is END_OF_PAGES

    @pytest.mark.asyncio
    async def test_query_params_are_sent(self, sleeper):
        seen = []

        def handler(request):
            seen.append(dict(request.url.params))
            return httpx.Response(200, json=[])

        async with _client(handler) as client:
            await UpstreamFetcher(client, sleep=sleeper).fetch(
                "/stockitem", {"page": 2, "pagesize": 25}
            )
        assert seen == [{"page": "2", "pagesize": "25"}]

    @pytest.mark.asyncio
    async def test_retries_floor_at_one_attempt(self, sleeper):
        handler = _Sequence(httpx.Response(500))
        async with _client(handler) as client:
            with pytest.raises(UpstreamError):
                await UpstreamFetcher(client, retries=0, sleep=sleeper).fetch("/x")
        assert handler.calls == 1

    def test_logged_body_limit(self):
        assert MAX_LOGGED_BODY == 800


class TestBuildUpstreamClient:
    """Client construction from settings."""

    @pytest.mark.asyncio
    async def test_headers_and_auth(self):
        config = Settings(
            _env_file=None,
            exo_base_url="https://exo.test/api/",
            exo_username="svc",
            exo_password="pw",
            exo_api_key="key-1",
            exo_token="tok-1",
            exo_timeout_seconds=12,
        )
        async with build_upstream_client(config) as client:
            assert str(client.base_url) == "https://exo.test/api/"
            assert client.headers["x-myobapi-key"] == "key-1"
            assert client.headers["x-myobapi-exotoken"] == "tok-1"
            assert client.headers["accept"] == "application/json"
            assert isinstance(client.auth, httpx.BasicAuth)
            assert client.timeout.read == 12

    @pytest.mark.asyncio
    async def test_optional_headers_omitted(self):
        config = Settings(_env_file=None, exo_api_key="", exo_token="", exo_username="")
        async with build_upstream_client(config) as client:
            assert "x-myobapi-key" not in client.headers
            assert "x-myobapi-exotoken" not in client.headers
            assert client.auth is None
