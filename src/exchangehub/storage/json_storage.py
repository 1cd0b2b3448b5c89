"""
Key-addressed JSON document storage backing the simulated exchange.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from src.exchangehub.logging import get_logger
from src.exchangehub.shared.errors import StorageError

logger = get_logger(__name__)


class Storage(ABC):
    """Abstract base class for the ledger."""

    @abstractmethod
    def read(self, key: str) -> Any:
        """Return the document stored under key, or None."""
        pass

    @abstractmethod
    def write(self, key: str, data: Any) -> None:
        """Replace the document stored under key."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the document stored under key, if any."""
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check whether a document is stored under key."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove every stored document."""
        pass

    def append(self, key: str, item: Any) -> None:
        """Append an item to the list stored under key."""
        data = self.read(key) or []
        data.append(item)
        self.write(key, data)

    def update(self, key: str, item_id: str, patch: Dict[str, Any]) -> bool:
        """Merge patch into the list item whose id matches. Returns whether found."""
        data = self.read(key) or []
        for item in data:
            if isinstance(item, dict) and item.get("id") == item_id:
                item.update(patch)
                self.write(key, data)
                return True
        return False

    def remove_by_id(self, key: str, item_id: str, field: str = "id") -> bool:
        """Remove list items whose field matches. Returns whether anything was removed."""
        data = self.read(key) or []
        remaining = [item for item in data if item.get(field) != item_id]
        if len(remaining) < len(data):
            self.write(key, remaining)
            return True
        return False

    def find_one(self, key: str, field: str, value: Any) -> Optional[Dict[str, Any]]:
        """Return the first list item whose field equals value."""
        for item in self.read(key) or []:
            if item.get(field) == value:
                return item
        return None

    def filter(self, key: str, predicate: Callable[[Dict[str, Any]], bool]) -> List[Dict[str, Any]]:
        """Return list items matching predicate, in stored order."""
        return [item for item in self.read(key) or [] if predicate(item)]

    def open(self) -> None:
        pass

    def close(self) -> None:
        pass

    def __enter__(self) -> "Storage":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class JsonStorage(Storage):
    """File-per-key JSON storage with atomic writes.

    "market/tickers" is stored at <base_path>/market/tickers.json. Writes go
    to a temp file in the same directory and are moved into place with
    os.replace, so a crash never leaves a partial document behind. There is
    no inter-process locking.
    """

    def __init__(self, base_path: str):
        self.base_path = Path(base_path)
        self._closed = True
        self.open()

    def open(self) -> None:
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._closed = False

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, key: str) -> Any:
        path = self._path(key)
        if not path.exists():
            return None

        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt document at {path}: {e}")
            raise StorageError(f"Corrupt JSON document: {e}", key) from e
        except OSError as e:
            raise StorageError(f"Failed to read document: {e}", key) from e

    def write(self, key: str, data: Any) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, ensure_ascii=False)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            logger.error(f"Failed to write {key}: {e}")
            raise StorageError(f"Failed to write document: {e}", key) from e

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def clear(self) -> None:
        if self._closed:
            raise StorageError("Storage is closed")
        for path in self.base_path.rglob("*.json"):
            path.unlink()

    def _path(self, key: str) -> Path:
        if self._closed:
            raise StorageError("Storage is closed", key)

        parts = [part for part in key.replace("\\", "/").split("/") if part]
        if not parts or key.startswith("/") or any(part in (".", "..") for part in parts):
            raise StorageError("Invalid storage key", key)

        return self.base_path.joinpath(*parts[:-1], f"{parts[-1]}.json")
