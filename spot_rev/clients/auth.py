"""Spotify OAuth2 refresh-token exchange.

A fresh access token is obtained at the start of every cycle; nothing is
cached on disk.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

import requests

logger = logging.getLogger(__name__)

TOKEN_URL = "https://accounts.spotify.com/api/token"
SCOPES = [
    "playlist-read-private",
    "playlist-modify-private",
    "playlist-modify-public",
]
REQUEST_TIMEOUT = 30


class AuthenticationError(Exception):
    """Refresh-token exchange failed."""
    pass


@dataclass(frozen=True)
class AccessToken:
    access_token: str = field(repr=False)
    token_type: str = "Bearer"
    expires_in: int = 3600
    scope: str = ""
    obtained_at: float = field(default_factory=time.time)

    @property
    def expires_at(self) -> float:
        return self.obtained_at + self.expires_in


def _error_detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return body.get("error_description") or str(body.get("error", "")) or response.text[:200]
    return response.text[:200]


class SpotifyAuthenticator:
    """Exchanges the stored refresh token for a short-lived access token."""

    def __init__(self, client_id: str, client_secret: str, refresh_token: str,
                 session: requests.Session | None = None, timeout: float = REQUEST_TIMEOUT):
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._session = session or requests.Session()
        self._timeout = timeout

    def authenticate(self) -> AccessToken:
        logger.info("Requesting Spotify access token...")
        try:
            response = self._session.post(
                TOKEN_URL,
                auth=(self._client_id, self._client_secret),
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": self._refresh_token,
                    "scope": " ".join(SCOPES),
                },
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise AuthenticationError(f"Token request failed: {e}") from e

        if not response.ok:
            raise AuthenticationError(
                f"Token request rejected ({response.status_code}): {_error_detail(response)}"
            )

        try:
            body = response.json()
            token = AccessToken(
                access_token=body["access_token"],
                token_type=body.get("token_type", "Bearer"),
                expires_in=int(body.get("expires_in", 3600)),
                scope=body.get("scope", ""),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise AuthenticationError(f"Malformed token response: {e}") from e

        rotated = body.get("refresh_token")
        if rotated and rotated != self._refresh_token:
            logger.info("Spotify rotated the refresh token; using the new one for later cycles")
            self._refresh_token = rotated

        expires = datetime.fromtimestamp(token.expires_at, timezone.utc)
        logger.info(f"Access token acquired (scope: {token.scope or 'n/a'}, valid until {expires:%H:%M:%S} UTC)")
        return token
