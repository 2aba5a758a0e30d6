"""
Bounded per-instrument feedback history injected into classifier prompts.
"""

from __future__ import annotations

from typing import Dict, List

from services.storage.kv_store import KeyValueStore

FEEDBACK_KEY = "feedback"
DEFAULT_MAX_ENTRIES = 5
DEFAULT_MAX_CHARS = 280


class FeedbackLog:
    """Append-only log per symbol; only the most recent `max_entries` are kept."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_chars: int = DEFAULT_MAX_CHARS,
    ) -> None:
        self._store = store
        self.max_entries = max_entries
        self.max_chars = max_chars

    def append(self, symbol: str, text: str) -> List[str]:
        entry = " ".join(text.split())[: self.max_chars]
        if not entry:
            return self.history(symbol)
        data = self._load()
        history = data.get(symbol.upper(), [])
        history.append(entry)
        data[symbol.upper()] = history[-self.max_entries :]
        self._store.set(FEEDBACK_KEY, data)
        return list(data[symbol.upper()])

    def history(self, symbol: str) -> List[str]:
        return list(self._load().get(symbol.upper(), []))

    def _load(self) -> Dict[str, List[str]]:
        raw = self._store.get(FEEDBACK_KEY, {})
        if not isinstance(raw, dict):
            return {}
        return {
            str(key): [str(item) for item in value][-self.max_entries :]
            for key, value in raw.items()
            if isinstance(value, list)
        }
