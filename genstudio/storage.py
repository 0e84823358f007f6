"""
Key-value persistence used by the quota guard and the job registry.

``JsonFileStore`` keeps one JSON document on disk, keyed by string, the
same way generated artifacts are tracked in a metadata file. It is good for
a single process (or a CLI invoked repeatedly); anything multi-host should
provide its own ``KeyValueStore``.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from .logger import get_library_logger


class KeyValueStore(Protocol):
    """Durability boundary: a mapping of string keys to JSON-able values."""

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    def put(self, key: str, value: Dict[str, Any]) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def items(self) -> Dict[str, Dict[str, Any]]:
        ...


class InMemoryStore:
    """Process-local store, mostly for tests and single-shot scripts."""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None):
        self._data: Dict[str, Dict[str, Any]] = {
            k: dict(v) for k, v in (initial or {}).items()
        }
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            value = self._data.get(key)
            return dict(value) if value is not None else None

    def put(self, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            self._data[key] = dict(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def items(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {k: dict(v) for k, v in self._data.items()}


class JsonFileStore:
    """Store backed by a single JSON file, rewritten atomically on change."""

    def __init__(self, path: str):
        """
        Initialize the store.

        Args:
            path: JSON file to read and write; parent directories are created
        """
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.logger = get_library_logger()
        self._lock = threading.Lock()
        self._data: Dict[str, Dict[str, Any]] = {}
        self._load()

    def _load(self) -> None:
        """Load entries from disk; a missing or corrupt file starts empty."""
        try:
            if self.path.exists():
                with open(self.path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                self._data = data if isinstance(data, dict) else {}
            else:
                self._data = {}
        except (OSError, ValueError) as e:
            self.logger.warning(f"Failed to load {self.path}: {e}")
            self._data = {}

    def _save(self) -> None:
        """Write all entries to disk via a temp file and rename."""
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as e:
            self.logger.error(f"Failed to save {self.path}: {e}")
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def reload(self) -> None:
        with self._lock:
            self._load()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            value = self._data.get(key)
            return dict(value) if value is not None else None

    def put(self, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            self._data[key] = dict(value)
            self._save()

    def delete(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._save()

    def items(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {k: dict(v) for k, v in self._data.items()}
