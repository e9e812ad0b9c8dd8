"""Tests for the rate-limit retry transport."""

import asyncio

import httpx
import pytest

from src.spotify.errors import RateLimitError, SpotifyAPIError
from src.spotify.retry import DEFAULT_RETRY_AFTER, RetryTransport, retry_duration


class FakeSleep:
    """Records requested waits instead of sleeping."""

    def __init__(self) -> None:
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


def scripted(*responses: httpx.Response):
    """Handler answering with the given responses in order."""
    queue = list(responses)
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return queue.pop(0)

    return handler, seen


def rate_limited(retry_after: str | None = None) -> httpx.Response:
    headers = {"Retry-After": retry_after} if retry_after is not None else {}
    return httpx.Response(429, headers=headers)


def make_request() -> httpx.Request:
    return httpx.Request("GET", "https://api.spotify.com/v1/me/tracks")


class TestRetryDuration:
    """Tests for the wait derived from a 429 response."""

    def test_uses_retry_after_seconds(self):
        """Test a numeric Retry-After header is used as-is."""
        assert retry_duration(rate_limited("7")) == 7

    def test_zero_is_valid(self):
        """Test Retry-After: 0 means resubmit immediately."""
        assert retry_duration(rate_limited("0")) == 0

    @pytest.mark.parametrize("value", [None, "", "soon", "1.5", "-3", "Wed, 21 Oct 2015 07:28:00 GMT"])
    def test_falls_back_to_default(self, value):
        """Test missing or malformed headers fall back to 5 seconds."""
        assert retry_duration(rate_limited(value)) == DEFAULT_RETRY_AFTER == 5


class TestRetryTransport:
    """Tests for RetryTransport."""

    @pytest.mark.asyncio
    async def test_waits_retry_after_then_resubmits_same_request(self):
        """Test a 429 with Retry-After: N waits N seconds and resends the request."""
        handler, seen = scripted(rate_limited("3"), httpx.Response(200, json={"ok": True}))
        sleep = FakeSleep()
        transport = RetryTransport(httpx.MockTransport(handler), sleep=sleep)

        request = make_request()
        response = await transport.handle_async_request(request)

        assert response.status_code == 200
        assert sleep.waits == [3]
        assert len(seen) == 2
        assert seen[0] is request
        assert seen[1] is request

    @pytest.mark.asyncio
    async def test_missing_header_waits_five_seconds(self):
        """Test the fallback wait when Spotify omits Retry-After."""
        handler, seen = scripted(rate_limited(), httpx.Response(200))
        sleep = FakeSleep()
        transport = RetryTransport(httpx.MockTransport(handler), sleep=sleep)

        await transport.handle_async_request(make_request())

        assert sleep.waits == [5]

    @pytest.mark.asyncio
    async def test_malformed_header_waits_five_seconds(self):
        """Test a non-numeric Retry-After does not fail the request."""
        handler, seen = scripted(rate_limited("later"), httpx.Response(204))
        sleep = FakeSleep()
        transport = RetryTransport(httpx.MockTransport(handler), sleep=sleep)

        response = await transport.handle_async_request(make_request())

        assert response.status_code == 204
        assert sleep.waits == [5]

    @pytest.mark.asyncio
    async def test_retries_without_budget(self):
        """Test repeated 429s keep being retried until one succeeds."""
        handler, seen = scripted(
            *[rate_limited("1") for _ in range(12)],
            httpx.Response(200),
        )
        sleep = FakeSleep()
        transport = RetryTransport(httpx.MockTransport(handler), sleep=sleep)

        response = await transport.handle_async_request(make_request())

        assert response.status_code == 200
        assert len(seen) == 13
        assert sleep.waits == [1] * 12

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 403, 404, 500, 503])
    async def test_other_failures_are_not_retried(self, status):
        """Test non-429 responses are returned after a single attempt."""
        handler, seen = scripted(httpx.Response(status))
        sleep = FakeSleep()
        transport = RetryTransport(httpx.MockTransport(handler), sleep=sleep)

        response = await transport.handle_async_request(make_request())

        assert response.status_code == status
        assert len(seen) == 1
        assert sleep.waits == []

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        """Test connection errors surface unchanged and are not retried."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        sleep = FakeSleep()
        transport = RetryTransport(httpx.MockTransport(handler), sleep=sleep)

        with pytest.raises(httpx.ConnectError):
            await transport.handle_async_request(make_request())

        assert len(attempts) == 1
        assert sleep.waits == []

    @pytest.mark.asyncio
    async def test_cancellation_aborts_pending_retry(self):
        """Test cancelling the caller during the wait stops further attempts."""
        handler, seen = scripted(rate_limited("60"), httpx.Response(200))
        sleeping = asyncio.Event()

        async def blocking_sleep(seconds: float) -> None:
            sleeping.set()
            await asyncio.Event().wait()

        transport = RetryTransport(httpx.MockTransport(handler), sleep=blocking_sleep)
        task = asyncio.create_task(transport.handle_async_request(make_request()))

        await sleeping.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(seen) == 1


class TestClientRetry:
    """Tests for retry behaviour seen through SpotifyClient."""

    @pytest.mark.asyncio
    async def test_rate_limit_is_invisible_to_caller(self, make_client):
        """Test a rate-limited call returns the eventual success."""
        handler, seen = scripted(
            rate_limited("2"),
            httpx.Response(200, json={"id": "cat1", "name": "Party"}),
        )
        sleep = FakeSleep()
        client, _ = make_client(
            handler,
            transport=RetryTransport(httpx.MockTransport(handler), sleep=sleep),
        )

        category = await client.get_category("cat1")

        assert category.name == "Party"
        assert sleep.waits == [2]
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_default_client_retries_post(self, make_client):
        """Test retry=True wraps the transport and resends the same body."""
        handler, seen = scripted(
            rate_limited("0"),
            httpx.Response(201, json={"snapshot_id": "snap-1"}),
        )
        client, remote = make_client(handler, retry=True)

        snapshot = await client.add_tracks_to_playlist("pl1", ["t1", "t2"])

        assert snapshot == "snap-1"
        assert len(seen) == 2
        assert [r.method for r in seen] == ["POST", "POST"]
        assert seen[0].content == seen[1].content
        assert remote.last_json() == {"uris": ["spotify:track:t1", "spotify:track:t2"]}

    @pytest.mark.asyncio
    async def test_server_error_raises_once(self, make_client):
        """Test a 500 produces exactly one error and no retry."""
        handler, seen = scripted(
            httpx.Response(500, json={"error": {"status": 500, "message": "boom"}}),
        )
        sleep = FakeSleep()
        client, _ = make_client(
            handler,
            transport=RetryTransport(httpx.MockTransport(handler), sleep=sleep),
        )

        with pytest.raises(SpotifyAPIError) as exc_info:
            await client.get_category("cat1")

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "boom"
        assert len(seen) == 1
        assert sleep.waits == []

    @pytest.mark.asyncio
    async def test_retry_disabled_surfaces_rate_limit(self, make_client):
        """Test a client built with retry=False raises RateLimitError."""
        client, remote = make_client(lambda request: rate_limited("9"))

        with pytest.raises(RateLimitError) as exc_info:
            await client.get_category("cat1")

        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 9
        assert len(remote.requests) == 1
