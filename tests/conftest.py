"""Test configuration and fixtures"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from spot_rev.clients.spotify import SpotifyAPIError
from spot_rev.core.config import Config
from spot_rev.core.models import TrackRef

SOURCE_ID = "37i9dQZF1DXcBWIGoYBM5M"
DEST_ID = "5ABHKGoOzxkaa28ttQV9sE"
BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_track(n, minutes=None, is_local=False):
    """Track n added `minutes` after BASE_TIME (defaults to n minutes)."""
    added = BASE_TIME + timedelta(minutes=n if minutes is None else minutes)
    return TrackRef(uri=f"spotify:track:{n:022d}", added_at=added, is_local=is_local)


def make_response(status=200, json_data=None, text=""):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.content = b"{}" if json_data is not None else text.encode()
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = json_data
    return response


class FakeSpotify:
    """In-memory stand-in for SpotifyClient.

    `fail_writes` holds 1-based write-call numbers that raise SpotifyAPIError.
    """

    def __init__(self, playlists=None, fail_writes=()):
        self.playlists = {pid: list(tracks) for pid, tracks in (playlists or {}).items()}
        self.fail_writes = set(fail_writes)
        self.write_calls = []
        self.fetch_error = None

    def get_playlist_tracks(self, playlist_id):
        if self.fetch_error:
            raise self.fetch_error
        return list(self.playlists.get(playlist_id, []))

    def _write(self, method, playlist_id, uris):
        self.write_calls.append((method, playlist_id, list(uris)))
        if len(self.write_calls) in self.fail_writes:
            raise SpotifyAPIError("HTTP 502 on write: Bad gateway", status=502)

    def replace_playlist_tracks(self, playlist_id, uris):
        self._write("PUT", playlist_id, uris)
        self.playlists[playlist_id] = [TrackRef(uri=u, added_at=None) for u in uris]

    def add_playlist_tracks(self, playlist_id, uris):
        self._write("POST", playlist_id, uris)
        self.playlists.setdefault(playlist_id, []).extend(TrackRef(uri=u, added_at=None) for u in uris)

    def uris(self, playlist_id):
        return [t.uri for t in self.playlists.get(playlist_id, [])]


@pytest.fixture
def temp_dir(tmp_path):
    return Path(tmp_path)


@pytest.fixture
def config(temp_dir):
    return Config(
        client_id="client-id",
        client_secret="client-secret",
        refresh_token="refresh-token",
        source_playlist=SOURCE_ID,
        destination_playlist=DEST_ID,
        data_dir=temp_dir,
    )
