"""Spotify API exceptions and the response error decoder."""

import json

import httpx

from .retry import retry_duration

# Upper bound on raw body bytes echoed into an undecodable error message
MAX_ERROR_BODY = 512


class SpotifyError(Exception):
    """Base exception for Spotify client errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SpotifyAPIError(SpotifyError):
    """Error returned by the Spotify Web API."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message, status_code)


class RateLimitError(SpotifyAPIError):
    """Rate limit exceeded and the client is not retrying."""

    def __init__(self, message: str, retry_after: int | None = None):
        super().__init__(message, 429)
        self.retry_after = retry_after


class InvalidRequestError(SpotifyError, ValueError):
    """Request rejected locally before anything was sent."""

    pass


class NoMorePagesError(SpotifyError):
    """The page has no link in the requested direction."""

    pass


class NotTokenBackedError(SpotifyError):
    """The client has no token source to read a token from."""

    pass


class AuthenticationError(SpotifyError):
    """Token endpoint refused the grant."""

    pass


def _reason(status_code: int) -> str:
    return httpx.codes.get_reason_phrase(status_code) or "Unknown Status"


def _echo_body(body: bytes) -> str:
    shown = body[:MAX_ERROR_BODY].decode("utf-8", errors="replace")
    if len(body) > MAX_ERROR_BODY:
        shown += "..."
    return shown


def decode_error(status_code: int, body: bytes) -> SpotifyAPIError:
    """Build the exception for a failed response.

    The returned error always carries a non-empty message, synthesized from
    the status code when the remote gave none.

    Args:
        status_code: HTTP status of the failed response
        body: Raw response body

    Returns:
        SpotifyAPIError (RateLimitError for 429)
    """
    if not body:
        message = f"spotify: HTTP {status_code}: {_reason(status_code)} (body empty)"
    else:
        try:
            envelope = json.loads(body)
        except ValueError:
            envelope = None

        error = (envelope.get("error") or {}) if isinstance(envelope, dict) else None
        if not isinstance(error, dict):
            message = f"spotify: couldn't decode error: ({len(body)}) [{_echo_body(body)}]"
        else:
            message = str(error.get("message") or "")
            if not message:
                # A code with no explanation, e.g. when the query string got too long
                message = (
                    f"spotify: unexpected HTTP {status_code}: "
                    f"{_reason(status_code)} (empty error)"
                )

    if status_code == 429:
        return RateLimitError(message)
    return SpotifyAPIError(message, status_code)


async def raise_for_spotify_error(response: httpx.Response) -> None:
    """httpx response hook turning non-2xx responses into SpotifyAPIError."""
    if response.is_success:
        return

    body = await response.aread()
    error = decode_error(response.status_code, body)
    if isinstance(error, RateLimitError):
        error.retry_after = retry_duration(response)
    raise error
