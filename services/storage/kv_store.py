"""
Key-value stores backing the signal buffer, feedback log, and runtime settings.

Values are written wholesale per key (get-all / set-all); there are no partial
updates.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def clear(self) -> None:
        ...


class MemoryStore:
    """Process-local store, mainly for tests and one-shot CLI runs."""

    def __init__(self, initial: Dict[str, Any] | None = None) -> None:
        self._data: Dict[str, Any] = dict(initial or {})
        self._lock = Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return json.loads(json.dumps(self._data[key])) if key in self._data else default

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = json.loads(json.dumps(value))

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class JsonFileStore:
    """Simple JSON-file store with atomic replace-on-write."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def clear(self) -> None:
        with self._lock:
            self._write({})

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.debug("Unable to read store %s: %s", self.path, exc)
            return {}
        if not raw.strip():
            return {}
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Store %s is corrupted; ignoring contents.", self.path)
            return {}
        if not isinstance(payload, dict):
            return {}
        return payload

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        temp_path.replace(self.path)


def load_namespace(store: KeyValueStore, namespace: str) -> Dict[str, Any]:
    """
    Return a shallow copy of the namespace payload.
    Missing or non-dict namespaces return an empty dict.
    """
    payload = store.get(namespace, {})
    return dict(payload) if isinstance(payload, dict) else {}
