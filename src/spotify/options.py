"""Optional query parameters accepted by Spotify endpoints.

Each endpoint documents which options it supports, e.g.::

    await client.get_playlist_tracks(playlist_id, limit(50), market("GB"))
"""

from collections.abc import Callable
from datetime import datetime

from .models import TIMESTAMP_LAYOUT

RequestOption = Callable[[dict[str, str]], None]


def _set(name: str, value: str) -> RequestOption:
    def apply(params: dict[str, str]) -> None:
        params[name] = value

    return apply


def limit(amount: int) -> RequestOption:
    """Maximum number of items to return."""
    return _set("limit", str(amount))


def offset(amount: int) -> RequestOption:
    """Index of the first item to return (0-based)."""
    return _set("offset", str(amount))


def market(code: str) -> RequestOption:
    """ISO 3166-1 alpha-2 market code, or "from_token"."""
    return _set("market", code)


def country(code: str) -> RequestOption:
    """ISO 3166-1 alpha-2 country code."""
    return _set("country", code)


def locale(code: str) -> RequestOption:
    """Language and country, e.g. "es_MX"."""
    return _set("locale", code)


def timestamp(value: datetime | str) -> RequestOption:
    """User's local time, used to tailor featured playlists."""
    if isinstance(value, datetime):
        value = value.strftime(TIMESTAMP_LAYOUT)
    return _set("timestamp", value)


def fields(selector: str) -> RequestOption:
    """Comma-separated field filter for playlist responses."""
    return _set("fields", selector)


def process_options(*opts: RequestOption) -> dict[str, str]:
    """Collect option setters into a fresh query parameter mapping."""
    params: dict[str, str] = {}
    for opt in opts:
        opt(params)
    return params
