#!/usr/bin/env python3
"""Spotify reverse-order playlist sync - Entry Point"""

import argparse
import fcntl
import logging
import os
import signal
import sys
import time
from pathlib import Path
from typing import Callable

from dotenv import find_dotenv, load_dotenv

from spot_rev.clients.auth import AuthenticationError, SpotifyAuthenticator
from spot_rev.clients.spotify import SpotifyClient
from spot_rev.core.config import Config, ConfigurationError
from spot_rev.core.models import SyncError, SyncResult
from spot_rev.core.scheduler import RepeatingTimer
from spot_rev.core.status import STATUS_FILE_NAME, write_running_status, write_status
from spot_rev.core.sync_engine import SyncEngine

LOCK_FILE_NAME = ".sync.lock"
LOG_FILE_NAME = "spot_rev.log"
STALE_LOCK_SECONDS = 1800
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

logger = logging.getLogger(__name__)


def setup_logging(data_dir: Path | None = None, level: str = "INFO") -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if data_dir is not None:
        data_dir.mkdir(parents=True, exist_ok=True)
        handlers.insert(0, logging.FileHandler(data_dir / LOG_FILE_NAME, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True,
    )
    # urllib3 logs every request at DEBUG, including pagination cursors
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def acquire_lock(lock_file: Path) -> int | None:
    try:
        # Older than any sane cycle: the holder died without cleaning up
        if lock_file.exists():
            age = time.time() - lock_file.stat().st_mtime
            if age > STALE_LOCK_SECONDS:
                logger.warning(f"Removing stale lock file (age: {age:.0f}s)")
                lock_file.unlink(missing_ok=True)

        lock_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(lock_file), os.O_CREAT | os.O_RDWR)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            os.close(fd)
            return None
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        return fd
    except OSError as e:
        logger.error(f"Could not take sync lock {lock_file}: {e}")
        return None


def release_lock(fd: int, lock_file: Path) -> None:
    try:
        lock_file.unlink(missing_ok=True)
        fcntl.flock(fd, fcntl.LOCK_UN)
    except OSError as e:
        logger.warning(f"Failed to release sync lock: {e}")
    finally:
        os.close(fd)


def run_cycle(config: Config, authenticator: SpotifyAuthenticator | None = None,
              client_factory: Callable[[str], SpotifyClient] = SpotifyClient) -> SyncResult | None:
    """Run one authenticate-fetch-sort-write cycle.

    Returns None when another instance holds the lock. Authentication and
    sync failures are logged and reported as a failed SyncResult.
    """
    status_file = config.data_dir / STATUS_FILE_NAME
    lock_file = config.data_dir / LOCK_FILE_NAME

    lock_fd = acquire_lock(lock_file)
    if lock_fd is None:
        logger.warning("Another sync running, skipping this cycle")
        return None

    try:
        write_running_status(status_file)
        deadline = time.monotonic() + config.cycle_timeout

        if authenticator is None:
            authenticator = SpotifyAuthenticator(
                config.client_id, config.client_secret, config.refresh_token
            )
        try:
            token = authenticator.authenticate()
        except AuthenticationError as e:
            logger.error(f"Spotify auth failed: {e}")
            result = SyncResult.failure(f"Spotify auth failed: {e}")
            write_status(result, status_file)
            return result

        engine = SyncEngine(client_factory(token.access_token))
        try:
            result = engine.sync(config.source_playlist, config.destination_playlist, deadline)
        except SyncError as e:
            logger.error(f"Sync failed ({e.batches_written} batches written): {e}")
            result = SyncResult.failure(str(e), batches_written=e.batches_written)

        write_status(result, status_file)
        if result.success:
            logger.info(f"Sync completed: {result.tracks_written} tracks in {result.batches_written} batches")
        return result

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        result = SyncResult.failure(f"Unexpected error: {e}")
        write_status(result, status_file)
        return result
    finally:
        release_lock(lock_fd, lock_file)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="spot-rev",
        description="Mirror a Spotify playlist into another, newest additions first.",
    )
    parser.add_argument("--once", action="store_true",
                        help="Run a single sync cycle and exit (status 0 on success)")
    parser.add_argument("--env-file", type=Path, default=None,
                        help="Read variables from this file instead of ./.env")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    load_dotenv(args.env_file or find_dotenv(usecwd=True))

    try:
        config = Config.from_env()
    except ConfigurationError as e:
        setup_logging()
        logger.error(f"Invalid configuration: {e}")
        return 2

    setup_logging(config.data_dir, config.log_level)
    logger.info(f"Loaded {config!r}")

    authenticator = SpotifyAuthenticator(config.client_id, config.client_secret, config.refresh_token)

    if args.once:
        result = run_cycle(config, authenticator)
        return 0 if result is None or result.success else 1

    timer = RepeatingTimer(
        lambda: run_cycle(config, authenticator),
        interval=config.interval,
        run_immediately=config.run_on_start,
    )

    def handle_signal(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        timer.stop()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    timer.run_forever()
    return 0


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
