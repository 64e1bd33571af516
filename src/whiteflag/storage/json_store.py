"""
Flat durable record store backed by JSON files.

Each key maps to ``<data_dir>/<key>.json``. Reads never raise: a missing,
empty or corrupt file yields the caller's fallback. Writes go to a temporary
file in the same directory which is fsynced and then ``os.replace``d over the
target, so a crash mid-write leaves either the old or the new file, never a
truncated one.
"""

from __future__ import annotations

import copy
import fcntl
import json
import os
import tempfile
from pathlib import Path
from typing import Any, TypeVar

from whiteflag.util.logger import get_logger

logger = get_logger("json_store")

T = TypeVar("T")

SETTINGS_KEY = "settings"
REQUESTS_KEY = "whiteflags"


class StorageError(Exception):
    """Raised when a collection could not be written to disk."""


class JsonStore:
    """Load/save whole JSON collections by key."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)

    def path_for(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def load(self, key: str, fallback: T) -> Any | T:
        """Return the stored value for ``key`` or a copy of ``fallback``."""
        path = self.path_for(key)
        try:
            with path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    raw = f.read()
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            return copy.deepcopy(fallback)
        except OSError as exc:
            logger.error("[JSON STORE] Failed reading %s: %s", path, exc)
            return copy.deepcopy(fallback)

        if not raw.strip():
            return copy.deepcopy(fallback)

        try:
            value = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("[JSON STORE] Corrupt JSON in %s, treating as empty: %s", path, exc)
            return copy.deepcopy(fallback)

        if fallback is not None and not isinstance(value, type(fallback)):
            logger.error(
                "[JSON STORE] %s holds %s, expected %s; treating as empty",
                path, type(value).__name__, type(fallback).__name__,
            )
            return copy.deepcopy(fallback)
        return value

    def save(self, key: str, value: Any) -> None:
        """Atomically replace the stored value for ``key``.

        Raises:
            StorageError: if the value could not be serialized or written.
        """
        path = self.path_for(key)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(value, indent=2, ensure_ascii=False)
        except (OSError, TypeError, ValueError) as exc:
            logger.error("[JSON STORE] Failed preparing write of %s: %s", path, exc)
            raise StorageError(f"could not write {path}") from exc

        fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.data_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except OSError as exc:
            logger.error("[JSON STORE] Failed writing %s: %s", path, exc)
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise StorageError(f"could not write {path}") from exc

        logger.debug("[JSON STORE] Wrote %s (%d bytes)", path, len(payload))
