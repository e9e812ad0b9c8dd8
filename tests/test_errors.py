"""Tests for the error decoder."""

import json

import httpx
import pytest

from src.spotify.errors import (
    MAX_ERROR_BODY,
    RateLimitError,
    SpotifyAPIError,
    decode_error,
    raise_for_spotify_error,
)


def envelope(message: str, status: int) -> bytes:
    return json.dumps({"error": {"status": status, "message": message}}).encode()


class TestDecodeError:
    """Tests for decode_error."""

    def test_remote_message_is_used(self):
        """Test the message from the error envelope is surfaced."""
        error = decode_error(404, envelope("Non existing id", 404))

        assert isinstance(error, SpotifyAPIError)
        assert error.message == "Non existing id"
        assert str(error) == "Non existing id"
        assert error.status_code == 404

    def test_empty_body_403(self):
        """Test an empty 403 mentions the code and reason phrase."""
        error = decode_error(403, b"")

        assert "403" in error.message
        assert "Forbidden" in error.message
        assert "body empty" in error.message
        assert error.status_code == 403

    def test_empty_message_is_synthesized(self):
        """Test an envelope without a message still yields a readable error."""
        error = decode_error(414, envelope("", 414))

        assert error.message
        assert "414" in error.message
        assert "empty error" in error.message

    def test_envelope_without_error_key(self):
        """Test a JSON object lacking the error key counts as an empty error."""
        error = decode_error(502, b'{"detail": "upstream"}')

        assert "502" in error.message
        assert "Bad Gateway" in error.message
        assert "empty error" in error.message

    @pytest.mark.parametrize("body", [b"<html>oops</html>", b"[1, 2]", b'{"error": "invalid_client"}'])
    def test_undecodable_body(self, body):
        """Test bodies that are not an error envelope are echoed back."""
        error = decode_error(400, body)

        assert "couldn't decode error" in error.message
        assert f"({len(body)})" in error.message
        assert body.decode() in error.message
        assert error.status_code == 400

    def test_undecodable_body_is_capped(self):
        """Test huge bodies are truncated in the message."""
        body = b"x" * (MAX_ERROR_BODY * 4)

        error = decode_error(500, body)

        assert f"({len(body)})" in error.message
        assert "x" * MAX_ERROR_BODY + "..." in error.message
        assert "x" * (MAX_ERROR_BODY + 1) not in error.message

    def test_rate_limit_error_type(self):
        """Test 429 decodes into RateLimitError."""
        error = decode_error(429, envelope("API rate limit exceeded", 429))

        assert isinstance(error, RateLimitError)
        assert error.status_code == 429


class TestResponseHook:
    """Tests for raise_for_spotify_error."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [200, 201, 204])
    async def test_success_passes_through(self, status):
        """Test 2xx responses are left alone."""
        response = httpx.Response(status, content=b"")

        await raise_for_spotify_error(response)

    @pytest.mark.asyncio
    async def test_failure_raises(self):
        """Test non-2xx responses raise with the decoded message."""
        response = httpx.Response(401, content=envelope("The access token expired", 401))

        with pytest.raises(SpotifyAPIError) as exc_info:
            await raise_for_spotify_error(response)

        assert exc_info.value.message == "The access token expired"
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self):
        """Test the Retry-After hint is attached to RateLimitError."""
        response = httpx.Response(429, headers={"Retry-After": "12"})

        with pytest.raises(RateLimitError) as exc_info:
            await raise_for_spotify_error(response)

        assert exc_info.value.retry_after == 12


class TestClientErrors:
    """Tests for errors surfaced by SpotifyClient calls."""

    @pytest.mark.asyncio
    async def test_empty_403_through_client(self, make_client):
        """Test an empty 403 reaches the caller as one SpotifyAPIError."""
        client, remote = make_client(lambda request: httpx.Response(403))

        with pytest.raises(SpotifyAPIError) as exc_info:
            await client.get_artist("0OdUWJ0sBjDrqHygGUXeCF")

        assert "403" in str(exc_info.value)
        assert "Forbidden" in str(exc_info.value)
        assert len(remote.requests) == 1

    @pytest.mark.asyncio
    async def test_transport_error_propagates_unchanged(self, make_client):
        """Test connection failures are not wrapped."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client, _ = make_client(handler)

        with pytest.raises(httpx.ReadTimeout):
            await client.get_artist("0OdUWJ0sBjDrqHygGUXeCF")
