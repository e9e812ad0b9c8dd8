"""Spotify OAuth2 token sources and request authentication."""

import abc
import asyncio
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import httpx
import keyring
from keyring.errors import KeyringError, PasswordDeleteError
from pydantic import BaseModel, field_validator

from src.utils.logging import get_logger

from .errors import AuthenticationError

logger = get_logger(__name__)

TOKEN_URL = "https://accounts.spotify.com/api/token"

# Keyring service name
KEYRING_SERVICE = "spotify-web-client"
KEYRING_REFRESH_TOKEN_KEY = "spotify_refresh_token"

# Treat tokens this close to expiry as already expired
EXPIRY_MARGIN = timedelta(seconds=60)


class Token(BaseModel):
    """OAuth2 access token."""

    access_token: str
    token_type: str = "Bearer"
    refresh_token: str | None = None
    expiry: datetime | None = None

    @field_validator("expiry")
    @classmethod
    def expiry_as_utc(cls, v: datetime | None) -> datetime | None:
        # Naive expiries are taken to be UTC
        if v is None:
            return None
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def valid(self) -> bool:
        if not self.access_token:
            return False
        if self.expiry is None:
            return True
        return datetime.now(timezone.utc) < self.expiry - EXPIRY_MARGIN


class TokenSource(abc.ABC):
    """Produces the token used to authenticate API requests."""

    @abc.abstractmethod
    async def token(self) -> Token:
        """Return a valid token, refreshing it if needed."""


class StaticTokenSource(TokenSource):
    """Always returns the same token."""

    def __init__(self, token: Token | str) -> None:
        if isinstance(token, str):
            token = Token(access_token=token)
        self._token = token

    async def token(self) -> Token:
        return self._token


class _OAuthTokenSource(TokenSource):
    """Caches a token obtained from the accounts service until near expiry."""

    grant_type: str = ""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str = TOKEN_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self._transport = transport
        self._token: Token | None = None
        self._lock = asyncio.Lock()

    def _grant_params(self) -> dict[str, str]:
        return {"grant_type": self.grant_type}

    async def token(self) -> Token:
        async with self._lock:
            if self._token is None or not self._token.valid:
                self._token = await self._fetch()
            return self._token

    async def _fetch(self) -> Token:
        async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
            response = await client.post(
                self.token_url,
                data=self._grant_params(),
                auth=(self.client_id, self.client_secret),
            )

        if not response.is_success:
            logger.error(
                "token_grant_failed",
                grant_type=self.grant_type,
                status_code=response.status_code,
            )
            raise AuthenticationError(
                f"spotify: {self.grant_type} grant failed: HTTP {response.status_code}",
                response.status_code,
            )

        data = response.json()
        expiry = None
        if "expires_in" in data:
            expiry = datetime.now(timezone.utc) + timedelta(seconds=int(data["expires_in"]))

        token = Token(
            access_token=data["access_token"],
            token_type=data.get("token_type", "Bearer"),
            refresh_token=data.get("refresh_token"),
            expiry=expiry,
        )
        logger.info(
            "token_granted",
            grant_type=self.grant_type,
            expires_at=expiry.isoformat() if expiry else None,
        )
        return token


class ClientCredentialsTokenSource(_OAuthTokenSource):
    """App-only token from the client credentials grant.

    Grants access to catalog endpoints but not to user data.
    """

    grant_type = "client_credentials"


class RefreshTokenSource(_OAuthTokenSource):
    """User token from the refresh token grant."""

    grant_type = "refresh_token"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        token_url: str = TOKEN_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(client_id, client_secret, token_url, transport)
        self.refresh_token = refresh_token

    @classmethod
    def from_keyring(
        cls,
        client_id: str,
        client_secret: str,
        token_url: str = TOKEN_URL,
    ) -> "RefreshTokenSource":
        """Build a source from the refresh token stored in the system keychain."""
        refresh_token = get_refresh_token()
        if not refresh_token:
            raise AuthenticationError("No refresh token in keychain (run 'spotify auth')")
        return cls(client_id, client_secret, refresh_token, token_url)

    def _grant_params(self) -> dict[str, str]:
        return {"grant_type": self.grant_type, "refresh_token": self.refresh_token}

    async def _fetch(self) -> Token:
        token = await super()._fetch()
        # Spotify may rotate the refresh token
        if token.refresh_token and token.refresh_token != self.refresh_token:
            self.refresh_token = token.refresh_token
            logger.info("refresh_token_rotated")
        return token


class BearerAuth(httpx.Auth):
    """httpx auth flow that attaches the current token to every request."""

    def __init__(self, source: TokenSource) -> None:
        self.source = source

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        token = await self.source.token()
        request.headers["Authorization"] = f"{token.token_type} {token.access_token}"
        yield request


# Refresh token storage (system keychain)


def get_refresh_token() -> str | None:
    """Retrieve the refresh token from the system keychain."""
    try:
        token = keyring.get_password(KEYRING_SERVICE, KEYRING_REFRESH_TOKEN_KEY)
        if token:
            logger.debug("refresh_token_retrieved_from_keychain")
        return token
    except KeyringError as e:
        logger.error("keychain_access_error", error=str(e))
        return None


def store_refresh_token(token: str) -> None:
    """Store the refresh token in the system keychain."""
    try:
        keyring.set_password(KEYRING_SERVICE, KEYRING_REFRESH_TOKEN_KEY, token)
        logger.info("refresh_token_stored_in_keychain")
    except KeyringError as e:
        logger.error("keychain_store_error", error=str(e))
        raise


def delete_refresh_token() -> None:
    """Remove the refresh token from the system keychain."""
    try:
        keyring.delete_password(KEYRING_SERVICE, KEYRING_REFRESH_TOKEN_KEY)
        logger.info("refresh_token_deleted_from_keychain")
    except PasswordDeleteError:
        pass  # Token didn't exist


def has_refresh_token() -> bool:
    """Check if a refresh token exists in the keychain."""
    return get_refresh_token() is not None
