"""Pydantic models for Spotify Web API responses."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, BinaryIO, Generic, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import SpotifyAPIError

# Layout of Spotify date strings such as a user's birthdate
DATE_LAYOUT = "%Y-%m-%d"
# ISO 8601 UTC timestamps such as a playlist track's added_at
TIMESTAMP_LAYOUT = "%Y-%m-%dT%H:%M:%SZ"

# Base-62 identifier for an artist, track, album, etc.
ID = str
# Resource URI, e.g. spotify:track:6rqhFgbbKwnb9MLmUQDhG6
URI = str

T = TypeVar("T")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a Spotify timestamp, returning None when absent or malformed."""
    if not value:
        return None
    try:
        return datetime.strptime(value, TIMESTAMP_LAYOUT)
    except ValueError:
        return None


class _Expanded(BaseModel):
    """Full variant of a resource that nests its simple variant.

    The API returns one flat object; the simple fields are read from it into
    the ``simple`` field and the remaining fields live on the full model.
    """

    @model_validator(mode="before")
    @classmethod
    def _nest_simple(cls, data: Any) -> Any:
        if isinstance(data, dict) and "simple" not in data:
            return {**data, "simple": data}
        return data


class Image(BaseModel):
    """Image associated with an artist, album, playlist or category."""

    height: int | None = None
    width: int | None = None
    url: str

    async def download(
        self,
        dst: BinaryIO,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Download the image and write its bytes to dst.

        Raises:
            SpotifyAPIError: If the image host answers with an error status
        """
        async with httpx.AsyncClient(transport=transport) as client:
            async with client.stream("GET", self.url) as response:
                if response.is_error:
                    raise SpotifyAPIError(
                        f"spotify: couldn't download image: HTTP {response.status_code}",
                        response.status_code,
                    )
                async for chunk in response.aiter_bytes():
                    dst.write(chunk)


class Followers(BaseModel):
    """Follower count of an artist, playlist or user."""

    total: int = 0
    href: str | None = None


class User(BaseModel):
    """Public profile of a Spotify user."""

    id: str
    display_name: str | None = None
    href: str | None = None
    uri: URI | None = None
    external_urls: dict[str, str] = Field(default_factory=dict)
    followers: Followers | None = None
    images: list[Image] = Field(default_factory=list)


class Copyright(BaseModel):
    """Copyright statement of an album."""

    text: str
    type: str


class AlbumType(str, Enum):
    """Album groups accepted by the artist albums endpoint."""

    ALBUM = "album"
    SINGLE = "single"
    APPEARS_ON = "appears_on"
    COMPILATION = "compilation"


class Page(BaseModel, Generic[T]):
    """One slice of a remote list plus links to the adjacent slices."""

    href: str = ""
    items: list[T] = Field(default_factory=list)
    total: int = 0
    limit: int = 0
    offset: int = 0
    previous: str | None = None
    next: str | None = None

    @property
    def has_next(self) -> bool:
        return bool(self.next)

    @property
    def has_previous(self) -> bool:
        return bool(self.previous)


# Artists


class SimpleArtist(BaseModel):
    """Basic info about an artist."""

    id: ID
    name: str
    uri: URI | None = None
    href: str | None = None
    external_urls: dict[str, str] = Field(default_factory=dict)


class FullArtist(_Expanded):
    """Artist with popularity, genres, followers and images."""

    simple: SimpleArtist
    popularity: int = 0
    genres: list[str] = Field(default_factory=list)
    followers: Followers = Field(default_factory=Followers)
    images: list[Image] = Field(default_factory=list)

    @property
    def id(self) -> ID:
        return self.simple.id

    @property
    def name(self) -> str:
        return self.simple.name

    @property
    def uri(self) -> URI | None:
        return self.simple.uri


# Albums


class SimpleAlbum(BaseModel):
    """Basic info about an album."""

    id: ID
    name: str
    album_type: str | None = None
    album_group: str | None = None
    artists: list[SimpleArtist] = Field(default_factory=list)
    available_markets: list[str] = Field(default_factory=list)
    external_urls: dict[str, str] = Field(default_factory=dict)
    href: str | None = None
    images: list[Image] = Field(default_factory=list)
    release_date: str | None = None
    release_date_precision: str | None = None
    total_tracks: int = 0
    uri: URI | None = None

    @property
    def release_datetime(self) -> datetime | None:
        """Release date, honouring year or month precision."""
        if not self.release_date:
            return None
        layouts = {"year": "%Y", "month": "%Y-%m", "day": DATE_LAYOUT}
        layout = layouts.get(self.release_date_precision or "day", DATE_LAYOUT)
        try:
            return datetime.strptime(self.release_date, layout)
        except ValueError:
            return None


# Tracks


class SimpleTrack(BaseModel):
    """Basic info about a track."""

    id: ID | None = None
    name: str
    artists: list[SimpleArtist] = Field(default_factory=list)
    available_markets: list[str] = Field(default_factory=list)
    disc_number: int = 1
    duration_ms: int = 0
    explicit: bool = False
    external_urls: dict[str, str] = Field(default_factory=dict)
    href: str | None = None
    preview_url: str | None = None
    track_number: int = 0
    is_local: bool = False
    uri: URI | None = None

    @property
    def duration(self) -> timedelta:
        return timedelta(milliseconds=self.duration_ms)


class FullTrack(_Expanded):
    """Track with its album, external IDs and popularity."""

    simple: SimpleTrack
    album: SimpleAlbum | None = None
    external_ids: dict[str, str] = Field(default_factory=dict)
    popularity: int = 0

    @property
    def id(self) -> ID | None:
        return self.simple.id

    @property
    def name(self) -> str:
        return self.simple.name

    @property
    def artists(self) -> list[SimpleArtist]:
        return self.simple.artists

    @property
    def isrc(self) -> str | None:
        return self.external_ids.get("isrc")


class FullAlbum(_Expanded):
    """Album with label, genres, copyrights and its first page of tracks."""

    simple: SimpleAlbum
    copyrights: list[Copyright] = Field(default_factory=list)
    external_ids: dict[str, str] = Field(default_factory=dict)
    genres: list[str] = Field(default_factory=list)
    label: str | None = None
    popularity: int = 0
    tracks: Page[SimpleTrack] = Field(default_factory=Page[SimpleTrack])

    @property
    def id(self) -> ID:
        return self.simple.id

    @property
    def name(self) -> str:
        return self.simple.name

    @property
    def artists(self) -> list[SimpleArtist]:
        return self.simple.artists


# Playlists


class PlaylistTracks(BaseModel):
    """Link to a playlist's tracks and how many there are."""

    href: str | None = None
    total: int = 0


class SimplePlaylist(BaseModel):
    """Basic info about a playlist."""

    model_config = ConfigDict(populate_by_name=True)

    id: ID
    name: str
    collaborative: bool = False
    external_urls: dict[str, str] = Field(default_factory=dict)
    href: str | None = None
    images: list[Image] = Field(default_factory=list)
    owner: User | None = None
    is_public: bool | None = Field(None, alias="public")
    snapshot_id: str | None = None
    tracks: PlaylistTracks = Field(default_factory=PlaylistTracks)
    uri: URI | None = None


class PlaylistTrack(BaseModel):
    """A track in a playlist along with who added it and when."""

    added_at: str | None = None
    added_by: User | None = None
    is_local: bool = False
    # None when the track has been removed from the catalog
    track: FullTrack | None = None

    @property
    def added_datetime(self) -> datetime | None:
        return parse_timestamp(self.added_at)


class FullPlaylist(_Expanded):
    """Playlist with description, followers and its first page of tracks."""

    simple: SimplePlaylist
    description: str | None = None
    followers: Followers = Field(default_factory=Followers)
    tracks: Page[PlaylistTrack] = Field(default_factory=Page[PlaylistTrack])

    @property
    def id(self) -> ID:
        return self.simple.id

    @property
    def name(self) -> str:
        return self.simple.name

    @property
    def owner(self) -> User | None:
        return self.simple.owner

    @property
    def snapshot_id(self) -> str | None:
        return self.simple.snapshot_id


class TrackToRemove(BaseModel):
    """A track URI and the 0-based playlist positions to remove it from."""

    uri: URI
    positions: list[int] = Field(default_factory=list)

    @classmethod
    def for_track(cls, track_id: ID, positions: list[int]) -> "TrackToRemove":
        return cls(uri=f"spotify:track:{track_id}", positions=positions)


class PlaylistReorderOptions(BaseModel):
    """Move range_length tracks starting at range_start before insert_before.

    For example, in a playlist with 10 tracks, range_start=9 and
    insert_before=0 moves the last track to the top.
    """

    range_start: int
    insert_before: int
    range_length: int | None = None
    snapshot_id: str | None = None


# Browse


class Category(BaseModel):
    """Category used to tag items in the Browse tab."""

    id: str
    name: str
    href: str | None = None
    icons: list[Image] = Field(default_factory=list)


SimpleAlbumPage = Page[SimpleAlbum]
SimpleArtistPage = Page[SimpleArtist]
SimplePlaylistPage = Page[SimplePlaylist]
SimpleTrackPage = Page[SimpleTrack]
PlaylistTrackPage = Page[PlaylistTrack]
CategoryPage = Page[Category]


class FeaturedPlaylists(BaseModel):
    """Featured playlists and the localized message shown with them."""

    message: str = ""
    playlists: SimplePlaylistPage = Field(default_factory=SimplePlaylistPage)
