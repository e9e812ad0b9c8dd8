"""Shared fixtures: a mock Spotify remote behind httpx.MockTransport."""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from src.spotify.auth import StaticTokenSource
from src.spotify.client import SpotifyClient


class MockRemote:
    """Records every request and answers it with a handler."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> Any:
        return json.loads(self.last.content)


@pytest.fixture
async def make_client():
    """Build SpotifyClients wired to a MockRemote; closes them afterwards."""
    clients: list[SpotifyClient] = []

    def factory(
        handler: Callable[[httpx.Request], httpx.Response],
        **kwargs: Any,
    ) -> tuple[SpotifyClient, MockRemote]:
        remote = MockRemote(handler)
        kwargs.setdefault("auth", StaticTokenSource("test-token"))
        kwargs.setdefault("transport", httpx.MockTransport(remote))
        # Retry tests inject their own RetryTransport with a fake sleep
        kwargs.setdefault("retry", False)
        client = SpotifyClient(**kwargs)
        clients.append(client)
        return client, remote

    yield factory

    for client in clients:
        await client.close()
