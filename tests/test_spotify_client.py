"""Tests for the Spotify Web API client, with the HTTP session mocked."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from spot_rev.clients.spotify import (
    API_URL, WRITE_BATCH_SIZE, SpotifyAPIError, SpotifyClient, parse_added_at,
)

from spot_rev.core.models import SyncError
from spot_rev.core.sync_engine import SyncEngine

from conftest import DEST_ID, SOURCE_ID, make_response


def make_session(*responses):
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = list(responses)
    return session


def make_page(start, count, total, page_size=100):
    items = [
        {
            "added_at": f"2024-01-01T00:{n // 60:02d}:{n % 60:02d}Z",
            "is_local": False,
            "track": {"uri": f"spotify:track:{n:022d}"},
        }
        for n in range(start, start + count)
    ]
    nxt = None
    if start + count < total:
        nxt = f"{API_URL}/playlists/{SOURCE_ID}/tracks?offset={start + count}&limit={page_size}"
    return make_response(json_data={"items": items, "next": nxt})


# ---------------------------------------------------------------------------
# parse_added_at()
# ---------------------------------------------------------------------------

class TestParseAddedAt:
    def test_zulu_timestamp(self):
        assert parse_added_at("2023-05-06T07:08:09Z") == datetime(2023, 5, 6, 7, 8, 9, tzinfo=timezone.utc)

    def test_naive_timestamp_is_utc(self):
        assert parse_added_at("2023-05-06T07:08:09").tzinfo == timezone.utc

    def test_null_and_garbage(self):
        assert parse_added_at(None) is None
        assert parse_added_at("") is None
        assert parse_added_at("yesterday") is None


# ---------------------------------------------------------------------------
# get_playlist_tracks()
# ---------------------------------------------------------------------------

class TestGetPlaylistTracks:
    def test_sets_bearer_header(self):
        session = make_session()
        SpotifyClient("tok", session=session)
        assert session.headers["Authorization"] == "Bearer tok"

    def test_follows_next_cursor_until_exhausted(self):
        session = make_session(
            make_page(0, 100, 250), make_page(100, 100, 250), make_page(200, 50, 250),
        )
        client = SpotifyClient("tok", session=session, request_delay=0)

        tracks = client.get_playlist_tracks(SOURCE_ID)

        assert len(tracks) == 250
        assert len({t.uri for t in tracks}) == 250
        assert [t.uri for t in tracks] == [f"spotify:track:{n:022d}" for n in range(250)]
        assert session.request.call_count == 3

        first, second, third = session.request.call_args_list
        assert first.args == ("GET", f"{API_URL}/playlists/{SOURCE_ID}/tracks")
        assert first.kwargs["params"]["limit"] == 100
        assert second.args[1].endswith("offset=100&limit=100")
        assert second.kwargs["params"] is None
        assert third.args[1].endswith("offset=200&limit=100")

    def test_single_page(self):
        session = make_session(make_page(0, 3, 3))
        tracks = SpotifyClient("tok", session=session).get_playlist_tracks(SOURCE_ID)
        assert len(tracks) == 3
        assert session.request.call_count == 1

    def test_drops_unavailable_and_keeps_local_flag(self):
        body = {
            "items": [
                {"added_at": "2024-01-01T00:00:00Z", "is_local": False, "track": None},
                {"added_at": "2024-01-02T00:00:00Z", "is_local": True,
                 "track": {"uri": "spotify:local:Artist:Album:Song:200"}},
                {"added_at": None, "is_local": False, "track": {"uri": "spotify:episode:abc"}},
            ],
            "next": None,
        }
        client = SpotifyClient("tok", session=make_session(make_response(json_data=body)))

        tracks = client.get_playlist_tracks(SOURCE_ID)

        assert [t.uri for t in tracks] == ["spotify:local:Artist:Album:Song:200", "spotify:episode:abc"]
        assert tracks[0].is_local
        assert tracks[1].added_at is None

    def test_null_item_is_a_malformed_page(self):
        body = {"items": [None], "next": None}
        client = SpotifyClient("tok", session=make_session(make_response(json_data=body)))

        with pytest.raises(SpotifyAPIError, match="Malformed page"):
            client.get_playlist_tracks(SOURCE_ID)

    @pytest.mark.parametrize("body", [
        ["not", "an", "object"],
        {"items": "nope", "next": None},
        {"items": [], "next": 42},
        {"items": [{"added_at": None, "track": "spotify:track:1"}], "next": None},
    ])
    def test_other_malformed_pages(self, body):
        client = SpotifyClient("tok", session=make_session(make_response(json_data=body)))

        with pytest.raises(SpotifyAPIError, match="Malformed page"):
            client.get_playlist_tracks(SOURCE_ID)

    def test_malformed_page_surfaces_as_sync_error(self):
        body = {"items": [None], "next": None}
        client = SpotifyClient("tok", session=make_session(make_response(json_data=body)))

        with pytest.raises(SyncError) as excinfo:
            SyncEngine(client, batch_delay=0).sync(SOURCE_ID, DEST_ID)

        assert excinfo.value.stage == "fetch source"
        assert isinstance(excinfo.value.cause, SpotifyAPIError)

    def test_http_error_raises(self):
        error = make_response(404, json_data={"error": {"status": 404, "message": "Not found."}})
        client = SpotifyClient("tok", session=make_session(error))

        with pytest.raises(SpotifyAPIError, match="Not found.") as excinfo:
            client.get_playlist_tracks(SOURCE_ID)
        assert excinfo.value.status == 404

    def test_network_error_raises(self):
        client = SpotifyClient("tok", session=make_session(requests.ConnectionError("reset")))

        with pytest.raises(SpotifyAPIError, match="Network error") as excinfo:
            client.get_playlist_tracks(SOURCE_ID)
        assert isinstance(excinfo.value.__cause__, requests.ConnectionError)


# ---------------------------------------------------------------------------
# replace_playlist_tracks() / add_playlist_tracks()
# ---------------------------------------------------------------------------

class TestWrites:
    def test_replace_uses_put(self):
        session = make_session(make_response(201, json_data={"snapshot_id": "x"}))
        SpotifyClient("tok", session=session).replace_playlist_tracks(SOURCE_ID, ["spotify:track:1"])

        call = session.request.call_args
        assert call.args == ("PUT", f"{API_URL}/playlists/{SOURCE_ID}/tracks")
        assert call.kwargs["json"] == {"uris": ["spotify:track:1"]}

    def test_replace_with_empty_list_clears(self):
        session = make_session(make_response(201, json_data={"snapshot_id": "x"}))
        SpotifyClient("tok", session=session).replace_playlist_tracks(SOURCE_ID, [])
        assert session.request.call_args.kwargs["json"] == {"uris": []}

    def test_add_uses_post(self):
        session = make_session(make_response(201, json_data={"snapshot_id": "x"}))
        SpotifyClient("tok", session=session).add_playlist_tracks(SOURCE_ID, ["a", "b"])

        call = session.request.call_args
        assert call.args[0] == "POST"
        assert call.kwargs["json"] == {"uris": ["a", "b"]}

    def test_oversized_batch_rejected_before_request(self):
        session = make_session()
        client = SpotifyClient("tok", session=session)

        with pytest.raises(ValueError):
            client.add_playlist_tracks(SOURCE_ID, ["u"] * (WRITE_BATCH_SIZE + 1))
        session.request.assert_not_called()

    def test_write_error_carries_status(self):
        session = make_session(make_response(403, text="Forbidden"))

        with pytest.raises(SpotifyAPIError) as excinfo:
            SpotifyClient("tok", session=session).add_playlist_tracks(SOURCE_ID, ["a"])
        assert excinfo.value.status == 403
        assert "Forbidden" in str(excinfo.value)
