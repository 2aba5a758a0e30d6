"""
Instrument resolver mapping human-readable tickers to broker tokens.

The cache is process-local, seeded from the static registry in ``config`` and
append-only: concurrent resolutions of the same symbol may both write, which
is harmless because the lookup is idempotent.
"""

from __future__ import annotations

import logging
import random
from typing import Dict, Mapping, Optional

import httpx

from brokers.angelone.client import AngelOneClientError
from brokers.base_client import BrokerDataService, NotAuthenticatedError

logger = logging.getLogger(__name__)

try:  # pragma: no cover - config is optional for tests
    from config import DEFAULT_EXCHANGE, SCRIP_REGISTRY
except ImportError:  # pragma: no cover
    DEFAULT_EXCHANGE = "NSE"
    SCRIP_REGISTRY = {}

EQUITY_SUFFIX = "-EQ"
_LOOKUP_ERRORS = (httpx.HTTPError, AngelOneClientError, NotAuthenticatedError, ValueError)


def normalize_symbol_variant(symbol: str) -> str:
    """Return the alternate suffix convention (``SBIN`` <-> ``SBIN-EQ``)."""
    cleaned = symbol.strip().upper()
    if cleaned.endswith(EQUITY_SUFFIX):
        return cleaned[: -len(EQUITY_SUFFIX)]
    return f"{cleaned}{EQUITY_SUFFIX}"


class InstrumentResolver:
    """Resolve symbols through the cache first, then the broker's scrip search."""

    def __init__(
        self,
        broker: BrokerDataService,
        *,
        registry: Optional[Mapping[str, str]] = None,
        exchange: str | None = None,
    ) -> None:
        self._broker = broker
        self.exchange = exchange or DEFAULT_EXCHANGE
        seed = SCRIP_REGISTRY if registry is None else registry
        self._cache: Dict[tuple[str, str], str] = {
            (symbol.upper(), self.exchange): str(token) for symbol, token in seed.items()
        }

    def cached(self, symbol: str, exchange: str | None = None) -> str | None:
        return self._cache.get((symbol.strip().upper(), exchange or self.exchange))

    async def resolve(self, symbol: str, exchange: str | None = None) -> str | None:
        """Return the broker token for `symbol` or None when it cannot be found."""
        exch = exchange or self.exchange
        key = (symbol.strip().upper(), exch)
        token = self._cache.get(key)
        if token is not None:
            return token

        variant = normalize_symbol_variant(symbol)
        token = self._cache.get((variant, exch))
        if token is None:
            token = await self._lookup(key[0], exch)
        if token is None:
            token = await self._lookup(variant, exch)
        if token is None:
            logger.info("Symbol %s not found on %s", symbol, exch)
            return None
        self._cache[key] = token
        return token

    async def discover(self, count: int, exchange: str | None = None) -> list[str]:
        """
        Draw `count` random equity symbols from the broker's scrip master.

        Tokens from the master are cached so the subsequent resolution step
        does not hit the search endpoint again. Returns an empty list when the
        master cannot be downloaded.
        """
        exch = exchange or self.exchange
        try:
            master = await self._broker.fetch_scrip_master()
        except _LOOKUP_ERRORS as exc:
            logger.warning("Scrip master unavailable; remote discovery skipped: %s", exc)
            return []

        pool: Dict[str, str] = {}
        for entry in master:
            symbol = str(entry.get("symbol") or "").upper()
            token = entry.get("token")
            if entry.get("exch_seg") != exch or not symbol.endswith(EQUITY_SUFFIX) or not token:
                continue
            pool[symbol] = str(token)
        if not pool:
            return []

        picked = random.sample(sorted(pool), min(count, len(pool)))
        for symbol in picked:
            self._cache.setdefault((symbol, exch), pool[symbol])
        return picked

    async def _lookup(self, symbol: str, exchange: str) -> str | None:
        try:
            matches = await self._broker.search_scrip(symbol, exchange)
        except _LOOKUP_ERRORS as exc:
            logger.warning("Lookup failed for %s on %s: %s", symbol, exchange, exc)
            return None
        for match in matches:
            if str(match.get("tradingsymbol", "")).upper() == symbol:
                token = match.get("symboltoken")
                if token:
                    return str(token)
        return None
