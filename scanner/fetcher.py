"""
Market data fetcher returning canonical candles and last traded prices.

Nothing here raises to the orchestrator: transport failures surface as an
empty candle list or a 0 price, which callers treat as "unknown".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, List

import httpx

from brokers.angelone.client import AngelOneClientError
from brokers.base_client import BrokerDataService, NotAuthenticatedError
from models.schemas import Candle, Instrument, Timeframe
from services.market_hours import IST, market_status, now_ist

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d %H:%M"
INTRADAY_INTERVAL = "FIFTEEN_MINUTE"
DAILY_INTERVAL = "ONE_DAY"
INTRADAY_LOOKBACK_DAYS = 20
DAILY_LOOKBACK_DAYS = 300
PRICE_FALLBACK_LOOKBACK_DAYS = 10

_FETCH_ERRORS = (httpx.HTTPError, AngelOneClientError, NotAuthenticatedError, ValueError)


@dataclass(slots=True, frozen=True)
class HistoryWindow:
    interval: str
    from_date: str
    to_date: str


@dataclass(slots=True)
class HistoryFetch:
    """Candles plus the transport error, if any; empty candles with no error means no data."""

    candles: List[Candle]
    error: str | None = None


def history_window(timeframe: Timeframe, now: datetime | None = None) -> HistoryWindow:
    """
    Size the request: daily bars span enough history to stabilise EMA200,
    intraday bars a short recent window for RSI/VWAP.
    """
    end = (now or now_ist()).astimezone(IST)
    if timeframe == "swing":
        interval, days = DAILY_INTERVAL, DAILY_LOOKBACK_DAYS
    else:
        interval, days = INTRADAY_INTERVAL, INTRADAY_LOOKBACK_DAYS
    start = end - timedelta(days=days)
    return HistoryWindow(interval, start.strftime(DATE_FORMAT), end.strftime(DATE_FORMAT))


def normalize_candles(rows: Iterable[Any]) -> List[Candle]:
    """Translate broker rows ``[ts, o, h, l, c, v]`` into chronologically ordered candles."""
    candles: List[Candle] = []
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) < 5:
            continue
        try:
            candles.append(
                Candle(
                    timestamp=_to_epoch_seconds(row[0]),
                    open=float(row[1]),
                    high=float(row[2]),
                    low=float(row[3]),
                    close=float(row[4]),
                    volume=float(row[5]) if len(row) > 5 and row[5] is not None else None,
                )
            )
        except (TypeError, ValueError):
            continue
    candles.sort(key=lambda c: c.timestamp)
    return candles


class MarketDataFetcher:
    """Fetches prices and candles for resolved instruments; never caches."""

    def __init__(self, broker: BrokerDataService) -> None:
        self._broker = broker

    async def get_history(
        self,
        instrument: Instrument,
        interval: str,
        from_date: str,
        to_date: str,
    ) -> List[Candle]:
        fetched = await self.fetch_history(instrument, interval, from_date, to_date)
        return fetched.candles

    async def fetch_history(
        self,
        instrument: Instrument,
        interval: str,
        from_date: str,
        to_date: str,
    ) -> HistoryFetch:
        if not instrument.resolved_id:
            return HistoryFetch([], error="instrument not resolved")
        try:
            rows = await self._broker.get_candles(
                instrument.resolved_id, interval, from_date, to_date, instrument.exchange
            )
        except _FETCH_ERRORS as exc:
            logger.warning("History fetch failed for %s (%s): %s", instrument.symbol, interval, exc)
            return HistoryFetch([], error=str(exc) or exc.__class__.__name__)
        candles = normalize_candles(rows)
        if not candles:
            status = market_status()
            logger.info(
                "No %s candles for %s (market %s)",
                interval,
                instrument.symbol,
                status.reason,
            )
        return HistoryFetch(candles)

    async def fetch_timeframe_history(
        self,
        instrument: Instrument,
        timeframe: Timeframe,
        *,
        now: datetime | None = None,
    ) -> HistoryFetch:
        window = history_window(timeframe, now)
        return await self.fetch_history(instrument, window.interval, window.from_date, window.to_date)

    async def get_last_price(self, instrument: Instrument) -> float:
        """Live LTP, falling back to the latest daily close; 0.0 means unknown."""
        if not instrument.resolved_id:
            return 0.0
        price = 0.0
        try:
            price = await self._broker.get_ltp(
                instrument.symbol, instrument.resolved_id, instrument.exchange
            )
        except _FETCH_ERRORS as exc:
            logger.warning("LTP fetch failed for %s: %s", instrument.symbol, exc)
        if price and price > 0:
            return float(price)

        end = now_ist()
        start = end - timedelta(days=PRICE_FALLBACK_LOOKBACK_DAYS)
        candles = await self.get_history(
            instrument,
            DAILY_INTERVAL,
            start.strftime(DATE_FORMAT),
            end.strftime(DATE_FORMAT),
        )
        if candles:
            return float(candles[-1].close)
        return 0.0


def _to_epoch_seconds(value: Any) -> int:
    if isinstance(value, (int, float)):
        # Millisecond epochs are common in broker payloads.
        return int(value / 1000) if value > 1e11 else int(value)
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=IST)
    return int(parsed.timestamp())
