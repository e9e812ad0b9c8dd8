"""Rate-limit retry for the Spotify transport."""

import asyncio
from collections.abc import Awaitable, Callable

import httpx

# Spotify sometimes answers 429 without telling us how long to wait
DEFAULT_RETRY_AFTER = 5  # seconds


def retry_duration(response: httpx.Response) -> int:
    """Seconds to wait before resubmitting a rate-limited request.

    Uses the Retry-After header when it holds a non-negative integer,
    DEFAULT_RETRY_AFTER otherwise.
    """
    raw = response.headers.get("Retry-After", "").strip()
    if not (raw.isascii() and raw.isdigit()):
        return DEFAULT_RETRY_AFTER
    return int(raw)


class RetryTransport(httpx.AsyncBaseTransport):
    """Transport wrapper that resubmits requests answered with HTTP 429.

    There is no retry budget: the loop ends on the first non-429 response,
    on a transport error, or when the calling task is cancelled during the
    wait.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self._sleep = sleep

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        while True:
            response = await self.transport.handle_async_request(request)
            if response.status_code != httpx.codes.TOO_MANY_REQUESTS:
                return response

            wait = retry_duration(response)
            await response.aclose()
            await self._sleep(wait)

    async def aclose(self) -> None:
        await self.transport.aclose()
