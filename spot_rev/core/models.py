"""Data models for sync operations."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple


class SyncError(Exception):
    """Raised when a sync cycle must abort on a fetch, write or timeout."""

    def __init__(self, message: str, stage: str = "", batches_written: int = 0,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.stage = stage
        self.batches_written = batches_written
        self.cause = cause


@dataclass(frozen=True)
class TrackRef:
    """A playlist entry: the playable URI and when it was added."""
    uri: str
    added_at: Optional[datetime]
    is_local: bool = False


@dataclass(frozen=True)
class PlaylistSnapshot:
    """Contents of a playlist at fetch time."""
    playlist_id: str
    tracks: Tuple[TrackRef, ...] = ()

    def __len__(self) -> int:
        return len(self.tracks)


@dataclass
class SyncResult:
    """Result of a sync operation."""
    success: bool
    tracks_written: int
    batches_written: int
    source_count: int
    destination_count: int
    skipped_local: int = 0
    errors: List[str] = field(default_factory=list)
    duration: float = 0.0
    # None when the destination was not fetched before writing
    destination_before: Optional[int] = None

    @classmethod
    def running(cls) -> "SyncResult":
        """Placeholder result for a cycle that has started but not finished."""
        return cls(success=False, tracks_written=0, batches_written=0,
                   source_count=0, destination_count=0)

    @classmethod
    def failure(cls, error: str, batches_written: int = 0) -> "SyncResult":
        """Create a failure result with single error."""
        return cls(
            success=False,
            tracks_written=0,
            batches_written=batches_written,
            source_count=0,
            destination_count=0,
            errors=[error],
        )
