"""
Filesystem-backed content store for cassette records.

Records live at `<dir>/<first 2 hex chars>/<key>.json`. Writes go to a
unique temp file in the shard directory and are renamed into place, so a
reader never observes a partial record.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from llm_cassette.core.normalize import to_jsonable
from llm_cassette.core.errors import StoreIOError
from .models import IndexEntry, RECORD_VERSION, utc_now_iso

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.json"

PathLike = Union[str, Path]


def shard_path(directory: PathLike, key: str) -> Path:
    """Storage path for a key: `directory/<key[:2]>/<key>.json`."""
    return Path(directory) / key[:2] / f"{key}.json"


def load_record(directory: PathLike, key: str) -> Optional[Dict[str, Any]]:
    """Read the record stored under key.

    Returns:
        The decoded record, or None when the shard directory or file is missing

    Raises:
        StoreIOError: On any other filesystem failure or an undecodable record
    """
    path = shard_path(directory, key)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (FileNotFoundError, NotADirectoryError):
        return None
    except json.JSONDecodeError as e:
        raise StoreIOError(path, f"invalid JSON: {e}") from e
    except OSError as e:
        raise StoreIOError(path, str(e)) from e


def save_record(directory: PathLike, key: str, record: Mapping[str, Any]) -> Path:
    """Atomically write a record under key.

    `version` and `created_at` are stamped when the record lacks them.
    Two writers racing on the same key leave one complete file behind.

    Returns:
        Path of the written record

    Raises:
        StoreIOError: If the record cannot be written
    """
    path = shard_path(directory, key)
    data = {"version": RECORD_VERSION, "created_at": utc_now_iso()}
    data.update(record)
    _atomic_write_json(path, data, prefix=f".{key}.")
    return path


def append_index(directory: PathLike, entry: IndexEntry) -> Path:
    """Append an entry to `index.json` with read-modify-write-rename.

    A missing, undecodable or non-list index restarts as an empty list.
    Concurrent appenders may lose entries; the index is advisory.
    """
    index_path = Path(directory) / INDEX_FILENAME
    entries = _read_index_raw(index_path)
    entries.append(entry.to_dict())
    _atomic_write_json(index_path, entries, prefix=".index.")
    return index_path


def read_index(directory: PathLike) -> List[IndexEntry]:
    """List index entries; an absent index gives an empty list.

    Raises:
        StoreIOError: If the index exists but is not a JSON array
    """
    index_path = Path(directory) / INDEX_FILENAME
    try:
        with open(index_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        return []
    except json.JSONDecodeError as e:
        raise StoreIOError(index_path, f"invalid JSON: {e}") from e
    except OSError as e:
        raise StoreIOError(index_path, str(e)) from e
    if not isinstance(raw, list):
        raise StoreIOError(index_path, "index is not a JSON array")
    return [IndexEntry.from_dict(item) for item in raw if isinstance(item, dict)]


def _read_index_raw(index_path: Path) -> List[Any]:
    try:
        with open(index_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        return []
    except json.JSONDecodeError:
        logger.warning("Index %s is not valid JSON, starting a new one", index_path)
        return []
    return raw if isinstance(raw, list) else []


def _atomic_write_json(path: Path, data: Any, prefix: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=prefix, suffix=".tmp")
    except OSError as e:
        raise StoreIOError(path, str(e)) from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=to_jsonable)
        os.replace(tmp_name, path)
    except (OSError, TypeError, ValueError) as e:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise StoreIOError(path, str(e)) from e


class ContentStore:
    """Content store bound to one directory."""

    def __init__(self, directory: PathLike):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return shard_path(self.directory, key)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        return load_record(self.directory, key)

    def put(self, key: str, record: Mapping[str, Any]) -> Path:
        return save_record(self.directory, key, record)

    def append_index(self, entry: IndexEntry) -> Path:
        return append_index(self.directory, entry)

    def read_index(self) -> List[IndexEntry]:
        return read_index(self.directory)
