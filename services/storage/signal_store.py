"""
Persistence of the rolling signal buffer on top of a key-value store.
"""

from __future__ import annotations

import logging
from threading import RLock
from typing import Callable, List, Optional, Sequence

from models.schemas import TradeSignal
from services.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

SIGNALS_KEY = "signals"
LAST_UPDATE_KEY = "last_update"


class SignalStore:
    """
    Reads and writes the whole buffer; entries that fail to decode are dropped.

    Every read-modify-write (`rewrite`, `mark_taken`, `record_feedback`) holds
    the store lock from load to save, so a flag set while a scan merges is
    never overwritten by the merge result.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._lock = RLock()

    def load(self) -> List[TradeSignal]:
        raw = self._store.get(SIGNALS_KEY, [])
        if not isinstance(raw, list):
            return []
        signals: List[TradeSignal] = []
        for entry in raw:
            if not isinstance(entry, dict):
                continue
            try:
                signals.append(TradeSignal.from_dict(entry))
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping malformed stored signal: %s", exc)
        return signals

    def save(self, signals: Sequence[TradeSignal], *, updated_at: str | None = None) -> None:
        with self._lock:
            self._store.set(SIGNALS_KEY, [signal.to_dict() for signal in signals])
            if updated_at is not None:
                self._store.set(LAST_UPDATE_KEY, updated_at)

    def rewrite(
        self,
        change: Callable[[List[TradeSignal]], List[TradeSignal]],
        *,
        updated_at: str | None = None,
    ) -> List[TradeSignal]:
        """Apply `change` to the stored buffer atomically and persist the result."""
        with self._lock:
            signals = change(self.load())
            self.save(signals, updated_at=updated_at)
            return signals

    def last_update(self) -> str | None:
        return self._store.get(LAST_UPDATE_KEY)

    def mark_taken(self, signal_id: str, taken: bool = True) -> Optional[TradeSignal]:
        return self._update(signal_id, taken=taken)

    def record_feedback(self, signal_id: str, feedback: str) -> Optional[TradeSignal]:
        return self._update(signal_id, feedback=feedback.strip() or None)

    def _update(self, signal_id: str, **changes) -> Optional[TradeSignal]:
        with self._lock:
            signals = self.load()
            updated: Optional[TradeSignal] = None
            for signal in signals:
                if signal.id == signal_id:
                    for name, value in changes.items():
                        setattr(signal, name, value)
                    updated = signal
                    break
            if updated is not None:
                self.save(signals)
            return updated
