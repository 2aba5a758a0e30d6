"""
Scan settings resolved from ``config.SCAN_SETTINGS`` plus runtime overrides.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional

from services.storage.kv_store import KeyValueStore, load_namespace

logger = logging.getLogger(__name__)

try:  # pragma: no cover - config is optional for tests
    from config import SCAN_SETTINGS as _SCAN_DEFAULTS
    from config import TARGET_SYMBOLS
except ImportError:  # pragma: no cover
    _SCAN_DEFAULTS = {}
    TARGET_SYMBOLS = []

SETTINGS_NAMESPACE = "scanner"


@dataclass(slots=True)
class ScanSettings:
    universe: List[str] = field(default_factory=lambda: list(TARGET_SYMBOLS))
    batch_size: int = 18
    min_resolved: int = 5
    intraday_ratio: float = 0.6
    intraday_top_n: int = 3
    swing_top_n: int = 2
    buffer_cap: int = 10
    strategy: str = "single-pass"
    confidence_floor: Optional[int] = None
    request_timeout: float = 15.0
    discover_remote: bool = False
    model_id: str = "gemini-v1"
    market_mood: bool = True

    def __post_init__(self) -> None:
        if not 0.0 <= self.intraday_ratio <= 1.0:
            raise ValueError("intraday_ratio must be within [0, 1]")
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.buffer_cap <= 0:
            raise ValueError("buffer_cap must be positive")

    @staticmethod
    def from_config(
        overrides: Mapping[str, Any] | None = None,
        *,
        store: KeyValueStore | None = None,
    ) -> "ScanSettings":
        """Merge config defaults, the stored ``scanner`` namespace, and explicit overrides."""
        merged: Dict[str, Any] = dict(_SCAN_DEFAULTS)
        if store is not None:
            merged.update(load_namespace(store, SETTINGS_NAMESPACE))
        if overrides:
            merged.update(overrides)
        known = {f.name for f in fields(ScanSettings)}
        unknown = sorted(set(merged) - known)
        if unknown:
            logger.warning("Ignoring unknown scan settings: %s", ", ".join(unknown))
        return ScanSettings(**{k: v for k, v in merged.items() if k in known})
