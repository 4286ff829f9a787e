"""Spotify Web API Client - playlist read, replace and append"""

import logging
import time
from datetime import datetime, timezone
from typing import Any

import requests

from spot_rev.core.models import TrackRef

logger = logging.getLogger(__name__)

API_URL = "https://api.spotify.com/v1"
PAGE_SIZE = 100
WRITE_BATCH_SIZE = 100
REQUEST_DELAY = 0.1
REQUEST_TIMEOUT = 30
TRACK_FIELDS = "items(added_at,is_local,track(uri)),next"


class SpotifyAPIError(Exception):
    """A Web API call failed at the transport or HTTP level."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


def parse_added_at(value: str | None) -> datetime | None:
    """Parse an ISO-8601 added_at; very old playlist entries report null."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable added_at: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SpotifyClient:
    def __init__(self, access_token: str, session: requests.Session | None = None,
                 timeout: float = REQUEST_TIMEOUT, page_size: int = PAGE_SIZE,
                 request_delay: float = REQUEST_DELAY):
        self._session = session or requests.Session()
        self._session.headers.update({"Authorization": f"Bearer {access_token}"})
        self._timeout = timeout
        self._page_size = page_size
        self._delay = request_delay

    def _request(self, method: str, url: str, name: str, **kwargs: Any) -> Any:
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise SpotifyAPIError(f"Network error on {name}: {e}") from e

        if not response.ok:
            logger.error(f"Spotify error {response.status_code} on {name}: {response.text[:200]}")
            raise SpotifyAPIError(
                f"HTTP {response.status_code} on {name}: {self._error_message(response)}",
                status=response.status_code,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise SpotifyAPIError(f"Invalid JSON on {name}: {e}", status=response.status_code) from e

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            return response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            return response.text[:200]

    def get_playlist_tracks(self, playlist_id: str) -> list[TrackRef]:
        """Fetch every entry of a playlist, following the `next` cursor."""
        tracks = []
        url = f"{API_URL}/playlists/{playlist_id}/tracks"
        params: dict | None = {"limit": self._page_size, "offset": 0, "fields": TRACK_FIELDS}
        page = 0

        while url:
            if page:
                time.sleep(self._delay)
            name = f"list playlist {playlist_id}"
            data = self._request("GET", url, name, params=params)
            items = self._page_items(data, name)

            for item in items:
                track = self._extract_track(item)
                if track:
                    tracks.append(track)

            page += 1
            logger.debug(f"Playlist {playlist_id}: page {page}, {len(tracks)} tracks so far")
            # The cursor URL already carries limit/offset/fields.
            url = data.get("next")
            params = None

        logger.info(f"Retrieved {len(tracks)} tracks from playlist {playlist_id}")
        return tracks

    @staticmethod
    def _page_items(data: Any, name: str) -> list[dict]:
        """Items of one page; anything but a list of objects is a broken response."""
        if not isinstance(data, dict):
            raise SpotifyAPIError(f"Malformed page on {name}: expected an object, got {type(data).__name__}")
        items = data.get("items") or []
        nxt = data.get("next")
        if not isinstance(items, list) or (nxt is not None and not isinstance(nxt, str)):
            raise SpotifyAPIError(f"Malformed page on {name}: bad items or next cursor")
        for item in items:
            if not isinstance(item, dict) or not isinstance(item.get("track"), (dict, type(None))):
                raise SpotifyAPIError(f"Malformed page on {name}: bad playlist item {item!r:.80}")
        return items

    def _extract_track(self, item: dict) -> TrackRef | None:
        # Tracks removed from the catalogue come back as "track": null
        track_data = item.get("track")
        if not track_data or not track_data.get("uri"):
            return None
        return TrackRef(
            uri=track_data["uri"],
            added_at=parse_added_at(item.get("added_at")),
            is_local=bool(item.get("is_local", False)),
        )

    def replace_playlist_tracks(self, playlist_id: str, uris: list[str]) -> None:
        """Replace all playlist contents with `uris`; an empty list clears it."""
        self._check_batch(uris)
        self._request("PUT", f"{API_URL}/playlists/{playlist_id}/tracks",
                      f"replace {len(uris)} tracks in {playlist_id}", json={"uris": uris})

    def add_playlist_tracks(self, playlist_id: str, uris: list[str]) -> None:
        self._check_batch(uris)
        self._request("POST", f"{API_URL}/playlists/{playlist_id}/tracks",
                      f"add {len(uris)} tracks to {playlist_id}", json={"uris": uris})

    @staticmethod
    def _check_batch(uris: list[str]) -> None:
        if len(uris) > WRITE_BATCH_SIZE:
            raise ValueError(f"At most {WRITE_BATCH_SIZE} URIs per call, got {len(uris)}")
