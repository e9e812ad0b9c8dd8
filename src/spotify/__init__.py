"""Spotify Web API integration."""

from .auth import (
    BearerAuth,
    ClientCredentialsTokenSource,
    RefreshTokenSource,
    StaticTokenSource,
    Token,
    TokenSource,
)
from .client import SpotifyClient
from .errors import (
    InvalidRequestError,
    NoMorePagesError,
    NotTokenBackedError,
    RateLimitError,
    SpotifyAPIError,
    SpotifyError,
)
from .models import FullAlbum, FullArtist, FullPlaylist, FullTrack, Page

__all__ = [
    "BearerAuth",
    "ClientCredentialsTokenSource",
    "RefreshTokenSource",
    "StaticTokenSource",
    "Token",
    "TokenSource",
    "SpotifyClient",
    "InvalidRequestError",
    "NoMorePagesError",
    "NotTokenBackedError",
    "RateLimitError",
    "SpotifyAPIError",
    "SpotifyError",
    "FullAlbum",
    "FullArtist",
    "FullPlaylist",
    "FullTrack",
    "Page",
]
