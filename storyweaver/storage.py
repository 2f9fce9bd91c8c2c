from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import StorageError

ROOT = Path(os.getcwd())

STORY_STORAGE_KEY = "storyweaver-stories"
PROFILE_STORAGE_KEY = "storyweaver-profiles"

# One lock per collection file, shared by every JsonCollection on that path
_locks: Dict[Path, threading.RLock] = {}
_locks_guard = threading.Lock()


def data_dir() -> Path:
    """Resolve the data directory: env var, then user settings, then ./storyweaver_data."""
    env = os.environ.get("STORYWEAVER_DATA_DIR")
    if env:
        return Path(env)
    from .settings import load_user_settings

    configured = load_user_settings().data_dir
    if configured:
        return Path(configured).expanduser()
    return ROOT / "storyweaver_data"


def write_json(path: Path, data: Any) -> None:
    """Write JSON atomically: a temp file in the same directory is renamed over ``path``."""
    if is_dataclass(data):
        data = asdict(data)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def read_json(path: Path, default: Optional[Any] = None) -> Any:
    """Read JSON from file with error handling.

    Returns default value if file doesn't exist or JSON is invalid.
    """
    if not path.exists():
        return default

    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logging.error(f"Failed to parse JSON from {path}: {e}")
        return default
    except IOError as e:
        logging.error(f"Failed to read file {path}: {e}")
        return default


class JsonCollection:
    """A named collection of records stored as one JSON array on disk.

    Every mutation is a full read-modify-write of the array. Callers wrap
    the read and the write in ``with collection.lock:`` so the pair is
    atomic relative to other threads in this process.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        with _locks_guard:
            self.lock = _locks.setdefault(self.path.resolve(), threading.RLock())

    @classmethod
    def named(cls, key: str, base_dir: Optional[Path] = None) -> "JsonCollection":
        return cls((base_dir or data_dir()) / f"{key}.json")

    def read(self) -> List[Dict[str, Any]]:
        """Lenient read: missing, corrupt or non-array storage is an empty collection."""
        data = read_json(self.path, [])
        if not isinstance(data, list):
            logging.error(f"Expected a JSON array in {self.path}, got {type(data).__name__}")
            return []
        return data

    def read_strict(self) -> List[Dict[str, Any]]:
        """Read for update: corruption raises instead of being overwritten later."""
        if not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, IOError) as e:
            raise StorageError(str(self.path), str(e)) from e
        if not isinstance(data, list):
            raise StorageError(str(self.path), "expected a JSON array")
        return data

    def write(self, records: List[Dict[str, Any]]) -> None:
        try:
            write_json(self.path, records)
        except OSError as e:
            raise StorageError(str(self.path), str(e)) from e
