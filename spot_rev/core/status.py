"""Status file for external monitoring.

The file always holds the latest cycle's SyncResult plus a status word:
"running" while a cycle is in flight, then "success" or "failed".
"""

import json
import logging
import os
import tempfile
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

from spot_rev.core.models import SyncResult

STATUS_FILE_NAME = "sync_status.json"

logger = logging.getLogger(__name__)


def _payload(result: SyncResult, status: str) -> dict:
    data = asdict(result)
    data["duration"] = round(result.duration, 3)
    data["status"] = status
    data["last_error"] = result.errors[-1] if result.errors else None
    data["last_sync_time"] = datetime.now(timezone.utc).isoformat()
    return data


def write_status(result: SyncResult, status_file: Path) -> bool:
    return _replace_json(status_file, _payload(result, "success" if result.success else "failed"))


def write_running_status(status_file: Path) -> bool:
    return _replace_json(status_file, _payload(SyncResult.running(), "running"))


def _replace_json(path: Path, data: dict) -> bool:
    """Write next to `path`, then rename over it so readers never see half a file."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile("w", encoding="utf-8", dir=path.parent,
                                         prefix=".status_", suffix=".tmp", delete=False) as tmp:
            json.dump(data, tmp, indent=2)
        try:
            os.replace(tmp.name, path)
        except OSError:
            Path(tmp.name).unlink(missing_ok=True)
            raise
    except OSError as e:
        logger.warning(f"Could not write status file {path}: {e}")
        return False
    return True
