"""Namespaced key-value stores backing the event cache and saved events."""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """String-to-string store. Implementations must be safe to call from worker threads."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        pass

    def delete_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.delete(key)


class InMemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data)


class JsonFileStore(KeyValueStore):
    """Keeps every key in a single JSON document on disk.

    Writes go to a fresh temporary file that replaces the original, so a
    crash mid-write leaves the previous document intact. The lock only guards
    this instance: every component writing one file must share one store.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Could not read store {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Store {self.path} is not a JSON object, ignoring contents")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _save(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            json.dump(data, tmp, indent=2)
        try:
            os.replace(tmp.name, self.path)
        except OSError:
            os.unlink(tmp.name)
            raise

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._save(data)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._load())

    def delete_many(self, keys: Iterable[str]) -> None:
        with self._lock:
            data = self._load()
            for key in keys:
                data.pop(key, None)
            self._save(data)


def make_store(path: str | None) -> KeyValueStore:
    """File-backed store when ``path`` is set, otherwise in-memory."""
    if path:
        return JsonFileStore(path)
    return InMemoryStore()
