"""Async client for the Spotify Web API."""

import base64
from collections.abc import AsyncIterator
from typing import Any, BinaryIO, TypeVar
from urllib.parse import quote

import httpx

from src.utils.logging import get_logger

from .auth import BearerAuth, Token, TokenSource
from .errors import (
    InvalidRequestError,
    NoMorePagesError,
    NotTokenBackedError,
    SpotifyAPIError,
    raise_for_spotify_error,
)
from .models import (
    ID,
    AlbumType,
    Category,
    CategoryPage,
    FeaturedPlaylists,
    FullAlbum,
    FullArtist,
    FullPlaylist,
    FullTrack,
    Page,
    PlaylistReorderOptions,
    PlaylistTrackPage,
    SimpleAlbumPage,
    SimplePlaylistPage,
    SimpleTrackPage,
    TrackToRemove,
)
from .options import RequestOption, process_options
from .retry import RetryTransport

logger = get_logger(__name__)

BASE_URL = "https://api.spotify.com/v1/"

# Per-call ID limits imposed by the Web API
MAX_LIBRARY_IDS = 50
MAX_ARTIST_IDS = 50
MAX_ALBUM_IDS = 20
MAX_PLAYLIST_TRACKS = 100
MAX_FOLLOWER_CHECK_IDS = 5

PageT = TypeVar("PageT", bound=Page)


def _path(*segments: str) -> str:
    return "/".join(quote(str(segment), safe="") for segment in segments)


def _check_count(items: list[Any], minimum: int, maximum: int, what: str = "IDs") -> None:
    if not minimum <= len(items) <= maximum:
        raise InvalidRequestError(
            f"spotify: this call supports {minimum} to {maximum} {what} per call"
        )


def _track_uri(track_id: ID) -> str:
    return f"spotify:track:{track_id}"


def _unwrap_page(data: Any) -> Any:
    """Return the page object from a response that may wrap it in a resource key."""
    if isinstance(data, dict) and "items" not in data:
        for value in data.values():
            if isinstance(value, dict) and "items" in value:
                return value
    return data


class SpotifyClient:
    """Async client for the Spotify Web API.

    Every request passes through the rate-limit retry transport (unless
    disabled) and the error decoder, so callers either get decoded data or a
    SpotifyError with a readable message.
    """

    def __init__(
        self,
        auth: TokenSource | None = None,
        base_url: str = BASE_URL,
        accept_language: str | None = None,
        retry: bool = True,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            auth: Token source used to authenticate requests. Leave as None
                when the injected transport authenticates on its own.
            base_url: API root, e.g. a staging environment
            accept_language: Value of the Accept-Language header sent with every request
            retry: Resubmit requests rate limited with HTTP 429
            timeout: Request timeout in seconds
            transport: Transport to send requests with (defaults to an HTTP/2 pool)
        """
        self.auth = auth
        self.base_url = base_url
        self.accept_language = accept_language
        self.retry = retry
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "SpotifyClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._client is None or self._client.is_closed:
            transport = self._transport or httpx.AsyncHTTPTransport(http2=True)
            if self.retry:
                transport = RetryTransport(transport)

            headers = {}
            if self.accept_language:
                headers["Accept-Language"] = self.accept_language

            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                auth=BearerAuth(self.auth) if self.auth else None,
                headers=headers,
                timeout=self.timeout,
                transport=transport,
                event_hooks={"response": [raise_for_spotify_error]},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def token(self) -> Token:
        """Get the client's current token.

        Raises:
            NotTokenBackedError: The client was built without a token source
        """
        if self.auth is None:
            raise NotTokenBackedError("spotify: client not backed by a token source")
        return await self.auth.token()

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Make an API request.

        Args:
            method: HTTP method
            path: API path relative to the base URL, or an absolute URL
            params: Query parameters
            json: JSON body
            content: Raw body
            headers: Extra request headers

        Returns:
            Decoded JSON response, or None when the body is empty
        """
        client = await self._ensure_client()
        logger.debug("spotify_request", method=method, path=path)

        try:
            response = await client.request(
                method,
                path,
                params=params or None,
                json=json,
                content=content,
                headers=headers,
            )
        except SpotifyAPIError as e:
            logger.warning(
                "spotify_api_error",
                method=method,
                path=path,
                status_code=e.status_code,
                error=e.message,
            )
            raise

        if not response.content:
            return None
        return response.json()

    # Pagination

    async def next_page(self, page: PageT) -> PageT:
        """Fetch the page following the given one.

        The given page is left untouched; calling again with it refetches
        the same link.

        Raises:
            NoMorePagesError: The page is the last one
        """
        if not page.next:
            raise NoMorePagesError("spotify: no more pages")
        return await self._fetch_page(page, page.next)

    async def previous_page(self, page: PageT) -> PageT:
        """Fetch the page preceding the given one.

        Raises:
            NoMorePagesError: The page is the first one
        """
        if not page.previous:
            raise NoMorePagesError("spotify: no more pages")
        return await self._fetch_page(page, page.previous)

    async def _fetch_page(self, page: PageT, url: str) -> PageT:
        data = await self._request("GET", url)
        return type(page).model_validate(_unwrap_page(data))

    async def iter_pages(self, page: PageT) -> AsyncIterator[PageT]:
        """Yield the given page and every page after it, one fetch per step."""
        while True:
            yield page
            if not page.next:
                return
            page = await self.next_page(page)

    async def iter_items(self, page: Page) -> AsyncIterator[Any]:
        """Yield the items of the given page and every page after it."""
        async for current in self.iter_pages(page):
            for item in current.items:
                yield item

    # Browse endpoints

    async def new_releases(self, *opts: RequestOption) -> SimpleAlbumPage:
        """Get new album releases featured in Spotify.

        Supported options: country, limit, offset
        """
        data = await self._request(
            "GET",
            _path("browse", "new-releases"),
            params=process_options(*opts),
        )
        return SimpleAlbumPage.model_validate(data["albums"])

    async def featured_playlists(self, *opts: RequestOption) -> FeaturedPlaylists:
        """Get playlists featured by Spotify and the message shown with them.

        Supported options: locale, country, timestamp, limit, offset
        """
        data = await self._request(
            "GET",
            _path("browse", "featured-playlists"),
            params=process_options(*opts),
        )
        return FeaturedPlaylists.model_validate(data)

    async def get_category(self, category_id: str, *opts: RequestOption) -> Category:
        """Get a single category used to tag items in Spotify.

        Supported options: country, locale
        """
        data = await self._request(
            "GET",
            _path("browse", "categories", category_id),
            params=process_options(*opts),
        )
        return Category.model_validate(data)

    async def get_category_playlists(
        self,
        category_id: str,
        *opts: RequestOption,
    ) -> SimplePlaylistPage:
        """Get Spotify playlists tagged with a particular category.

        Supported options: country, limit, offset
        """
        data = await self._request(
            "GET",
            _path("browse", "categories", category_id, "playlists"),
            params=process_options(*opts),
        )
        return SimplePlaylistPage.model_validate(data["playlists"])

    async def get_categories(self, *opts: RequestOption) -> CategoryPage:
        """Get categories used to tag items in Spotify.

        Supported options: country, locale, limit, offset
        """
        data = await self._request(
            "GET",
            _path("browse", "categories"),
            params=process_options(*opts),
        )
        return CategoryPage.model_validate(data["categories"])

    # Artist endpoints

    async def get_artist(self, artist_id: ID) -> FullArtist:
        """Get catalog information for a single artist."""
        data = await self._request("GET", _path("artists", artist_id))
        return FullArtist.model_validate(data)

    async def get_artists(self, artist_ids: list[ID]) -> list[FullArtist | None]:
        """Get catalog information for up to 50 artists.

        Artists are returned in the order requested. An unknown ID yields
        None at its position; duplicate IDs yield duplicate artists.
        """
        _check_count(artist_ids, 1, MAX_ARTIST_IDS)
        data = await self._request(
            "GET",
            "artists",
            params={"ids": ",".join(artist_ids)},
        )
        return [
            FullArtist.model_validate(a) if a is not None else None
            for a in data.get("artists", [])
        ]

    async def get_artists_top_tracks(self, artist_id: ID, market: str) -> list[FullTrack]:
        """Get an artist's top tracks (at most 10) in a market.

        Args:
            artist_id: Spotify artist ID
            market: ISO 3166-1 alpha-2 country code
        """
        data = await self._request(
            "GET",
            _path("artists", artist_id, "top-tracks"),
            params={"market": market},
        )
        return [FullTrack.model_validate(t) for t in data.get("tracks", [])]

    async def get_related_artists(self, artist_id: ID) -> list[FullArtist]:
        """Get up to 20 artists similar to the given artist."""
        data = await self._request("GET", _path("artists", artist_id, "related-artists"))
        return [FullArtist.model_validate(a) for a in data.get("artists", [])]

    async def get_artist_albums(
        self,
        artist_id: ID,
        *opts: RequestOption,
        album_types: list[AlbumType] | None = None,
    ) -> SimpleAlbumPage:
        """Get an artist's albums.

        Without a market Spotify tends to return one duplicate per market
        the album is available in.

        Supported options: market, limit, offset

        Args:
            artist_id: Spotify artist ID
            album_types: Only return these album groups
        """
        params = process_options(*opts)
        if album_types:
            params["include_groups"] = ",".join(AlbumType(t).value for t in album_types)

        data = await self._request(
            "GET",
            _path("artists", artist_id, "albums"),
            params=params,
        )
        return SimpleAlbumPage.model_validate(data)

    # Album endpoints

    async def get_album(self, album_id: ID, *opts: RequestOption) -> FullAlbum:
        """Get catalog information for a single album.

        Supported options: market
        """
        data = await self._request(
            "GET",
            _path("albums", album_id),
            params=process_options(*opts),
        )
        return FullAlbum.model_validate(data)

    async def get_albums(
        self,
        album_ids: list[ID],
        *opts: RequestOption,
    ) -> list[FullAlbum | None]:
        """Get catalog information for up to 20 albums.

        Albums are returned in the order requested; an unknown ID yields None.

        Supported options: market
        """
        _check_count(album_ids, 1, MAX_ALBUM_IDS)
        params = process_options(*opts)
        params["ids"] = ",".join(album_ids)

        data = await self._request("GET", "albums", params=params)
        return [
            FullAlbum.model_validate(a) if a is not None else None
            for a in data.get("albums", [])
        ]

    async def get_album_tracks(self, album_id: ID, *opts: RequestOption) -> SimpleTrackPage:
        """Get the tracks of an album.

        Supported options: market, limit, offset
        """
        data = await self._request(
            "GET",
            _path("albums", album_id, "tracks"),
            params=process_options(*opts),
        )
        return SimpleTrackPage.model_validate(data)

    # Playlist endpoints

    async def get_playlists_for_user(
        self,
        user_id: str,
        *opts: RequestOption,
    ) -> SimplePlaylistPage:
        """Get playlists owned or followed by a user.

        Private and collaborative playlists are only returned for the
        current user, and only with the matching read scopes.

        Supported options: limit, offset
        """
        data = await self._request(
            "GET",
            _path("users", user_id, "playlists"),
            params=process_options(*opts),
        )
        return SimplePlaylistPage.model_validate(data)

    async def get_playlist(self, playlist_id: ID, *opts: RequestOption) -> FullPlaylist:
        """Get a playlist with its first page of tracks.

        Supported options: fields, market
        """
        data = await self._request(
            "GET",
            _path("playlists", playlist_id),
            params=process_options(*opts),
        )
        return FullPlaylist.model_validate(data)

    async def get_playlist_tracks(
        self,
        playlist_id: ID,
        *opts: RequestOption,
    ) -> PlaylistTrackPage:
        """Get full details of the tracks in a playlist.

        Supported options: limit, offset, market, fields
        """
        data = await self._request(
            "GET",
            _path("playlists", playlist_id, "tracks"),
            params=process_options(*opts),
        )
        return PlaylistTrackPage.model_validate(data)

    async def create_playlist_for_user(
        self,
        user_id: str,
        name: str,
        description: str = "",
        public: bool = True,
        collaborative: bool = False,
    ) -> FullPlaylist:
        """Create an empty playlist for a user.

        Names need not be unique. Requires the playlist-modify-public or
        playlist-modify-private scope, depending on public.
        """
        data = await self._request(
            "POST",
            _path("users", user_id, "playlists"),
            json={
                "name": name,
                "public": public,
                "description": description,
                "collaborative": collaborative,
            },
        )
        playlist = FullPlaylist.model_validate(data)
        logger.info("playlist_created", playlist_id=playlist.id, user_id=user_id)
        return playlist

    async def change_playlist_name(self, playlist_id: ID, name: str) -> None:
        """Rename a playlist owned by the current user."""
        await self._modify_playlist(playlist_id, name=name)

    async def change_playlist_access(self, playlist_id: ID, public: bool) -> None:
        """Make a playlist public or private."""
        await self._modify_playlist(playlist_id, public=public)

    async def change_playlist_description(self, playlist_id: ID, description: str) -> None:
        """Replace a playlist's description."""
        await self._modify_playlist(playlist_id, description=description)

    async def change_playlist_name_and_access(
        self,
        playlist_id: ID,
        name: str,
        public: bool,
    ) -> None:
        """Rename a playlist and set its visibility in one call."""
        await self._modify_playlist(playlist_id, name=name, public=public)

    async def change_playlist_name_access_and_description(
        self,
        playlist_id: ID,
        name: str,
        description: str,
        public: bool,
    ) -> None:
        """Rename a playlist, set its visibility and description in one call."""
        await self._modify_playlist(
            playlist_id, name=name, description=description, public=public
        )

    async def _modify_playlist(
        self,
        playlist_id: ID,
        name: str = "",
        description: str = "",
        public: bool | None = None,
    ) -> None:
        body: dict[str, Any] = {}
        if name:
            body["name"] = name
        if public is not None:
            body["public"] = public
        if description:
            body["description"] = description

        await self._request("PUT", _path("playlists", playlist_id), json=body)

    async def add_tracks_to_playlist(self, playlist_id: ID, track_ids: list[ID]) -> str:
        """Add up to 100 tracks to a playlist.

        Returns:
            Snapshot ID of the new playlist version
        """
        _check_count(track_ids, 1, MAX_PLAYLIST_TRACKS, "tracks")
        data = await self._request(
            "POST",
            _path("playlists", playlist_id, "tracks"),
            json={"uris": [_track_uri(tid) for tid in track_ids]},
        )

        logger.info(
            "tracks_added_to_playlist",
            playlist_id=playlist_id,
            track_count=len(track_ids),
        )
        return data["snapshot_id"]

    async def remove_tracks_from_playlist(
        self,
        playlist_id: ID,
        track_ids: list[ID],
    ) -> str:
        """Remove every occurrence of the given tracks from a playlist.

        Returns:
            Snapshot ID of the new playlist version
        """
        tracks = [{"uri": _track_uri(tid)} for tid in track_ids]
        return await self._remove_tracks_from_playlist(playlist_id, tracks)

    async def remove_tracks_from_playlist_opt(
        self,
        playlist_id: ID,
        tracks: list[TrackToRemove],
        snapshot_id: str = "",
    ) -> str:
        """Remove tracks at specific positions from a playlist.

        With a snapshot ID the positions are checked against that version of
        the playlist. If any track is not at its given position the whole
        request fails and nothing is removed.

        Returns:
            Snapshot ID of the new playlist version
        """
        return await self._remove_tracks_from_playlist(
            playlist_id,
            [t.model_dump() for t in tracks],
            snapshot_id,
        )

    async def _remove_tracks_from_playlist(
        self,
        playlist_id: ID,
        tracks: list[dict[str, Any]],
        snapshot_id: str = "",
    ) -> str:
        body: dict[str, Any] = {"tracks": tracks}
        if snapshot_id:
            body["snapshot_id"] = snapshot_id

        data = await self._request(
            "DELETE",
            _path("playlists", playlist_id, "tracks"),
            json=body,
        )

        logger.info(
            "tracks_removed_from_playlist",
            playlist_id=playlist_id,
            track_count=len(tracks),
        )
        return data["snapshot_id"]

    async def replace_playlist_tracks(self, playlist_id: ID, track_ids: list[ID]) -> None:
        """Replace all tracks in a playlist (at most 100).

        An empty list clears the playlist.
        """
        _check_count(track_ids, 0, MAX_PLAYLIST_TRACKS, "tracks")
        await self._request(
            "PUT",
            _path("playlists", playlist_id, "tracks"),
            params={"uris": ",".join(_track_uri(tid) for tid in track_ids)},
        )

        logger.info(
            "playlist_tracks_replaced",
            playlist_id=playlist_id,
            track_count=len(track_ids),
        )

    async def reorder_playlist_tracks(
        self,
        playlist_id: ID,
        options: PlaylistReorderOptions,
    ) -> str:
        """Move a track or group of tracks within a playlist.

        Returns:
            Snapshot ID of the new playlist version
        """
        data = await self._request(
            "PUT",
            _path("playlists", playlist_id, "tracks"),
            json=options.model_dump(exclude_none=True),
        )
        return data["snapshot_id"]

    async def set_playlist_image(self, playlist_id: ID, image: bytes | BinaryIO) -> None:
        """Replace a playlist's cover with a JPEG image.

        Requires the ugc-image-upload scope as well as playlist modify scopes.
        """
        raw = image if isinstance(image, bytes) else image.read()
        await self._request(
            "PUT",
            _path("playlists", playlist_id, "images"),
            content=base64.b64encode(raw),
            headers={"Content-Type": "image/jpeg"},
        )

    async def follow_playlist(self, playlist_id: ID, public: bool = True) -> None:
        """Follow a playlist as the current user.

        Private follows need playlist-modify-private, public ones
        playlist-modify-public.
        """
        await self._request(
            "PUT",
            _path("playlists", playlist_id, "followers"),
            json={"public": public},
        )

    async def unfollow_playlist(self, playlist_id: ID) -> None:
        """Stop following a playlist as the current user."""
        await self._request("DELETE", _path("playlists", playlist_id, "followers"))

    async def user_follows_playlist(
        self,
        playlist_id: ID,
        user_ids: list[str],
    ) -> list[bool]:
        """Check whether up to 5 users follow a playlist."""
        _check_count(user_ids, 1, MAX_FOLLOWER_CHECK_IDS, "users")
        data = await self._request(
            "GET",
            _path("playlists", playlist_id, "followers", "contains"),
            params={"ids": ",".join(user_ids)},
        )
        return list(data)

    # Library endpoints (require a user token)

    async def user_has_tracks(self, track_ids: list[ID]) -> list[bool]:
        """Check which tracks are saved in the current user's library."""
        return await self._library_contains("tracks", track_ids)

    async def user_has_albums(self, album_ids: list[ID]) -> list[bool]:
        """Check which albums are saved in the current user's library."""
        return await self._library_contains("albums", album_ids)

    async def add_tracks_to_library(self, track_ids: list[ID]) -> None:
        """Save tracks to the current user's library; duplicates are ignored.

        Requires the user-library-modify scope.
        """
        await self._modify_library("tracks", True, track_ids)

    async def remove_tracks_from_library(self, track_ids: list[ID]) -> None:
        """Remove tracks from the current user's library.

        Without the user's authorization this fails with a 401 SpotifyAPIError.
        """
        await self._modify_library("tracks", False, track_ids)

    async def add_albums_to_library(self, album_ids: list[ID]) -> None:
        """Save albums to the current user's library; duplicates are ignored."""
        await self._modify_library("albums", True, album_ids)

    async def remove_albums_from_library(self, album_ids: list[ID]) -> None:
        """Remove albums from the current user's library."""
        await self._modify_library("albums", False, album_ids)

    async def _library_contains(self, kind: str, ids: list[ID]) -> list[bool]:
        _check_count(ids, 1, MAX_LIBRARY_IDS)
        data = await self._request(
            "GET",
            _path("me", kind, "contains"),
            params={"ids": ",".join(ids)},
        )
        return list(data)

    async def _modify_library(self, kind: str, add: bool, ids: list[ID]) -> None:
        _check_count(ids, 1, MAX_LIBRARY_IDS)
        await self._request(
            "PUT" if add else "DELETE",
            _path("me", kind),
            params={"ids": ",".join(ids)},
        )

        logger.info(
            "library_saved" if add else "library_removed",
            kind=kind,
            count=len(ids),
        )
