"""JSON snapshot persistence.

The snapshot file holds every course section seen by the last successful
poll, keyed by composite identity:

    data/last_result.json

Writes go through a temporary file that is renamed over the target, so a
crash mid-write never leaves a truncated snapshot behind.  A single process
is assumed to own the snapshot path; no file lock is taken.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from .models import Course, Snapshot

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_PATH = Path("data") / "last_result.json"


class SnapshotCorruptError(ValueError):
    """Raised when the snapshot file exists but cannot be parsed."""


class SnapshotWriteError(OSError):
    """Raised when the snapshot could not be written or moved into place."""


class SnapshotStore:
    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else DEFAULT_SNAPSHOT_PATH

    @property
    def tmp_path(self) -> Path:
        return self.path.with_name(self.path.name + ".tmp")

    def load(self) -> Optional[Snapshot]:
        """
        Read the persisted snapshot.

        Returns None if the file does not exist (first run) and an empty
        mapping if it exists but is empty.  Raises SnapshotCorruptError for
        anything that is not a JSON object of record objects.
        """
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise SnapshotCorruptError(f"Snapshot {self.path} is not valid UTF-8: {e}") from e

        if not content.strip():
            return {}

        try:
            raw = json.loads(content)
        except json.JSONDecodeError as e:
            raise SnapshotCorruptError(f"Failed to parse snapshot {self.path}: {e}") from e

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise SnapshotCorruptError(f"Snapshot {self.path} is not a JSON object")

        snapshot: Dict[str, Course] = {}
        for key, entry in raw.items():
            if not isinstance(entry, dict):
                raise SnapshotCorruptError(f"Snapshot entry {key!r} is not an object")
            try:
                snapshot[key] = Course.from_json(entry)
            except (TypeError, ValueError, OverflowError) as e:
                raise SnapshotCorruptError(f"Snapshot entry {key!r} is invalid: {e}") from e
        return snapshot

    def save(self, snapshot: Snapshot) -> None:
        """
        Write the full snapshot atomically.

        Creates parent directories if needed.  If moving the temp file over
        the target fails (e.g. the target is held open), the stale target is
        removed and the move is retried once.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SnapshotWriteError(f"Failed to create snapshot directory: {e}") from e

        payload = {key: course.to_json() for key, course in snapshot.items()}
        content = json.dumps(payload, indent=2, ensure_ascii=False)

        tmp = self.tmp_path
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
        except (OSError, ValueError) as e:
            _remove_quietly(tmp)
            raise SnapshotWriteError(f"Failed to write temporary snapshot: {e}") from e

        try:
            os.replace(tmp, self.path)
        except OSError as first:
            logger.warning("Replacing snapshot failed (%s); removing target and retrying once", first)
            _remove_quietly(self.path)
            try:
                os.replace(tmp, self.path)
            except OSError as e:
                _remove_quietly(tmp)
                raise SnapshotWriteError(f"Failed to replace snapshot file: {e}") from e


def _remove_quietly(path: Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.debug("Could not remove %s", path, exc_info=True)


__all__ = [
    "DEFAULT_SNAPSHOT_PATH",
    "SnapshotStore",
    "SnapshotCorruptError",
    "SnapshotWriteError",
]
