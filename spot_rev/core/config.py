"""Environment-sourced configuration, validated once at startup."""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

REQUIRED = ["CLIENT_ID", "CLIENT_SECRET", "REFRESH_TOKEN", "FROM", "TO"]

DEFAULT_INTERVAL = 3600
DEFAULT_CYCLE_TIMEOUT = 600
DEFAULT_DATA_DIR = "data"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_PLAYLIST_ID = re.compile(r"^[0-9A-Za-z]{22}$")
_PLAYLIST_URI = re.compile(r"^spotify:(?:user:[^:]+:)?playlist:([0-9A-Za-z]+)$")
_PLAYLIST_URL = re.compile(r"^https?://open\.spotify\.com/(?:[\w-]+/)?playlist/([0-9A-Za-z]+)")


class ConfigurationError(Exception):
    """Missing or invalid configuration; fatal at startup."""
    pass


def parse_playlist_id(value: str) -> str | None:
    """Accept a bare id, a spotify:playlist: URI or an open.spotify.com URL."""
    value = value.strip()
    for pattern in (_PLAYLIST_URI, _PLAYLIST_URL):
        match = pattern.match(value)
        if match:
            value = match.group(1)
            break
    return value if _PLAYLIST_ID.match(value) else None


def _optional(env: Mapping[str, str], var: str, default: str) -> str:
    """An unset or blank optional variable means the default."""
    return env.get(var, "").strip() or default


def _parse_bool(value: str) -> bool | None:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    return None


def _parse_positive_int(value: str) -> int | None:
    try:
        number = int(value.strip())
    except ValueError:
        return None
    return number if number > 0 else None


@dataclass(frozen=True)
class Config:
    client_id: str
    client_secret: str
    refresh_token: str
    source_playlist: str
    destination_playlist: str
    interval: int = DEFAULT_INTERVAL
    cycle_timeout: int = DEFAULT_CYCLE_TIMEOUT
    run_on_start: bool = False
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Config":
        """Build a Config, reporting every bad variable at once."""
        env = os.environ if environ is None else environ
        problems = []

        missing = [var for var in REQUIRED if not env.get(var, "").strip()]
        if missing:
            problems.append(f"missing {', '.join(missing)}")

        playlists = {}
        for var in ("FROM", "TO"):
            raw = env.get(var, "").strip()
            if raw:
                playlists[var] = parse_playlist_id(raw)
                if playlists[var] is None:
                    problems.append(f"{var} is not a Spotify playlist id, URI or URL: {raw!r}")
        if playlists.get("FROM") and playlists.get("FROM") == playlists.get("TO"):
            problems.append("FROM and TO name the same playlist")

        interval = _parse_positive_int(_optional(env, "SYNC_INTERVAL", str(DEFAULT_INTERVAL)))
        if interval is None:
            problems.append(f"SYNC_INTERVAL must be a positive integer: {env.get('SYNC_INTERVAL')!r}")

        cycle_timeout = _parse_positive_int(_optional(env, "CYCLE_TIMEOUT", str(DEFAULT_CYCLE_TIMEOUT)))
        if cycle_timeout is None:
            problems.append(f"CYCLE_TIMEOUT must be a positive integer: {env.get('CYCLE_TIMEOUT')!r}")

        run_on_start = _parse_bool(_optional(env, "RUN_ON_START", "false"))
        if run_on_start is None:
            problems.append(f"RUN_ON_START must be a boolean: {env.get('RUN_ON_START')!r}")

        log_level = _optional(env, "LOG_LEVEL", "INFO").upper()
        if log_level not in LOG_LEVELS:
            problems.append(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}: {log_level!r}")

        if problems:
            raise ConfigurationError("; ".join(problems))

        return cls(
            client_id=env["CLIENT_ID"].strip(),
            client_secret=env["CLIENT_SECRET"].strip(),
            refresh_token=env["REFRESH_TOKEN"].strip(),
            source_playlist=playlists["FROM"],
            destination_playlist=playlists["TO"],
            interval=interval,
            cycle_timeout=cycle_timeout,
            run_on_start=run_on_start,
            data_dir=Path(_optional(env, "DATA_DIR", DEFAULT_DATA_DIR)),
            log_level=log_level,
        )

    def __repr__(self) -> str:
        return (
            f"Config(source_playlist={self.source_playlist!r}, "
            f"destination_playlist={self.destination_playlist!r}, "
            f"interval={self.interval}, cycle_timeout={self.cycle_timeout}, "
            f"data_dir={str(self.data_dir)!r})"
        )
