"""
Sync Engine

Rewrites the destination playlist so it holds the source playlist's tracks,
newest addition first.

Algorithm: Full Replace
-----------------------
1. Fetch every source entry (the client follows pagination cursors)
2. Drop local files; the Web API cannot add them to a playlist
3. Sort by added_at descending. Python's sort is stable, also with
   reverse=True, so entries added at the same instant keep their source
   playlist order. Entries with no added_at go last, in source order.
4. Write in batches of at most `batch_size` URIs:
   - batch 1 uses PUT, which replaces (and so clears) the old contents
   - batches 2..N use POST, which appends in order
   An empty source is a single PUT with no URIs.

No diffing against the destination: every cycle rewrites it in full, so a
cycle that dies half way is repaired by the next one.
"""

import logging
import math
import time
from datetime import datetime, timezone
from typing import Callable, Iterator, Protocol, Sequence

from spot_rev.clients.spotify import REQUEST_DELAY, WRITE_BATCH_SIZE, SpotifyAPIError
from spot_rev.core.models import PlaylistSnapshot, SyncError, SyncResult, TrackRef

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class SpotifyClientProtocol(Protocol):
    def get_playlist_tracks(self, playlist_id: str) -> list[TrackRef]: ...
    def replace_playlist_tracks(self, playlist_id: str, uris: list[str]) -> None: ...
    def add_playlist_tracks(self, playlist_id: str, uris: list[str]) -> None: ...


def order_newest_first(tracks: Sequence[TrackRef]) -> list[TrackRef]:
    """Stable sort by added_at, newest first."""
    return sorted(tracks, key=lambda t: t.added_at or _OLDEST, reverse=True)


def chunked(items: Sequence[str], size: int) -> Iterator[list[str]]:
    if size < 1:
        raise ValueError("batch size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


class SyncEngine:
    """Mirrors a source playlist into a destination, newest first."""

    def __init__(self, spotify: SpotifyClientProtocol, batch_size: int = WRITE_BATCH_SIZE,
                 inspect_destination: bool = True, batch_delay: float = REQUEST_DELAY,
                 clock: Callable[[], float] = time.monotonic):
        self._spotify = spotify
        self._batch_size = batch_size
        self._inspect_destination = inspect_destination
        self._batch_delay = batch_delay
        self._clock = clock

    def _check_deadline(self, deadline: float | None, stage: str, batches_written: int = 0) -> None:
        if deadline is not None and self._clock() >= deadline:
            raise SyncError(f"Cycle timed out before {stage}", stage=stage,
                            batches_written=batches_written)

    def _fetch(self, playlist_id: str, stage: str, deadline: float | None) -> PlaylistSnapshot:
        self._check_deadline(deadline, stage)
        try:
            tracks = self._spotify.get_playlist_tracks(playlist_id)
        except SpotifyAPIError as e:
            raise SyncError(f"Failed to fetch {stage} playlist {playlist_id}: {e}",
                            stage=f"fetch {stage}", cause=e) from e
        return PlaylistSnapshot(playlist_id, tuple(tracks))

    def _write(self, playlist_id: str, uris: list[str], deadline: float | None) -> int:
        """Write `uris` in order; returns the number of batches sent."""
        batches = list(chunked(uris, self._batch_size)) or [[]]
        total = len(batches)
        written = 0

        for number, batch in enumerate(batches, start=1):
            stage = f"write batch {number}/{total}"
            self._check_deadline(deadline, stage, written)
            if written:
                time.sleep(self._batch_delay)
            try:
                if number == 1:
                    self._spotify.replace_playlist_tracks(playlist_id, batch)
                else:
                    self._spotify.add_playlist_tracks(playlist_id, batch)
            except SpotifyAPIError as e:
                raise SyncError(
                    f"Failed on {stage} for playlist {playlist_id}: {e}",
                    stage=stage, batches_written=written, cause=e,
                ) from e
            written += 1
            logger.debug(f"Wrote {stage} ({len(batch)} tracks)")

        return written

    def expected_batches(self, track_count: int) -> int:
        return max(1, math.ceil(track_count / self._batch_size))

    def sync(self, source_id: str, destination_id: str, deadline: float | None = None) -> SyncResult:
        """Perform a full sync. Raises SyncError on any fetch or write failure."""
        start = time.time()

        logger.info("=" * 50)
        logger.info(f"Starting sync {source_id} -> {destination_id}")

        source = self._fetch(source_id, "source", deadline)
        logger.info(f"Source: {len(source)} tracks")

        destination_before = None
        if self._inspect_destination:
            destination_before = len(self._fetch(destination_id, "destination", deadline))
            logger.info(f"Destination before sync: {destination_before} tracks")

        playable = [t for t in source.tracks if not t.is_local]
        skipped_local = len(source) - len(playable)
        if skipped_local:
            logger.info(f"Skipping {skipped_local} local files")

        ordered = order_newest_first(playable)
        uris = [t.uri for t in ordered]

        logger.info(f"Writing {len(uris)} tracks in {self.expected_batches(len(uris))} batches")
        batches = self._write(destination_id, uris, deadline)

        duration = time.time() - start
        logger.info(f"Completed in {duration:.1f}s: {len(uris)} tracks, {batches} batches")
        logger.info("=" * 50)

        return SyncResult(
            success=True,
            tracks_written=len(uris),
            batches_written=batches,
            source_count=len(source),
            destination_count=len(uris),
            skipped_local=skipped_local,
            duration=duration,
            destination_before=destination_before,
        )
