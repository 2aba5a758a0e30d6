"""
Persistence of the latest market mood reading.
"""

from __future__ import annotations

import logging
from typing import Optional

from models.schemas import MarketMood
from services.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

MOOD_KEY = "market_mood"


class MarketMoodStore:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def load(self) -> Optional[MarketMood]:
        raw = self._store.get(MOOD_KEY)
        if not isinstance(raw, dict):
            return None
        try:
            return MarketMood.from_dict(raw)
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring malformed stored market mood: %s", exc)
            return None

    def save(self, mood: MarketMood) -> None:
        self._store.set(MOOD_KEY, mood.to_dict())
