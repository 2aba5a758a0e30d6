"""
Indicator calculation utilities.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd

from models.schemas import Candle, Instrument, Ohlc, Snapshot, Trend, VolumeStatus

RSI_PERIOD = 14
MIN_CANDLES = 14
VWAP_WINDOW = 50
TREND_WINDOW = 5
VOLUME_WINDOW = 20
DEFAULT_VOLUME = 1000.0


@dataclass(slots=True, frozen=True)
class IndicatorResult:
    rsi: float
    ema50: float
    ema200: float
    vwap: float
    trend: Trend


NEUTRAL_INDICATORS = IndicatorResult(rsi=50, ema50=0, ema200=0, vwap=0, trend="consolidating")


class IndicatorCalculator:
    """Compute RSI, EMA(50/200), VWAP, and a coarse trend on an OHLCV series."""

    def compute(self, candles: Sequence[Candle]) -> IndicatorResult:
        if len(candles) < MIN_CANDLES:
            return NEUTRAL_INDICATORS
        df = self._candles_to_df(candles)
        close = df["close"]
        return IndicatorResult(
            rsi=round(self.wilder_rsi(close.to_numpy()), 2),
            ema50=round(self.ema(close, 50), 2),
            ema200=round(self.ema(close, 200), 2),
            vwap=round(self.vwap(df), 2),
            trend=self.trend(close.to_numpy()),
        )

    @staticmethod
    def wilder_rsi(closes: np.ndarray, period: int = RSI_PERIOD) -> float:
        diffs = np.diff(closes)
        if diffs.size == 0:
            return 50.0
        gains = np.where(diffs > 0, diffs, 0.0)
        losses = np.where(diffs < 0, -diffs, 0.0)
        seed = min(period, diffs.size)
        avg_gain = float(gains[:seed].mean())
        avg_loss = float(losses[:seed].mean())
        for gain, loss in zip(gains[seed:], losses[seed:]):
            avg_gain = (avg_gain * (period - 1) + gain) / period
            avg_loss = (avg_loss * (period - 1) + loss) / period
        if avg_loss == 0:
            return 100.0
        rs = avg_gain / avg_loss
        rsi = 100 - (100 / (1 + rs))
        return float(min(100.0, max(0.0, rsi)))

    @staticmethod
    def ema(close: pd.Series, period: int) -> float:
        if len(close) < period:
            return float(close.iloc[-1])
        # adjust=False seeds with the first close and applies k = 2 / (n + 1)
        return float(close.ewm(span=period, adjust=False).mean().iloc[-1])

    @staticmethod
    def vwap(df: pd.DataFrame, window: int = VWAP_WINDOW) -> float:
        recent = df.tail(window)
        typical = (recent["high"] + recent["low"] + recent["close"]) / 3
        volume = recent["volume"].fillna(DEFAULT_VOLUME)
        total_volume = float(volume.sum())
        return float((typical * volume).sum() / (total_volume or 1))

    @staticmethod
    def trend(closes: np.ndarray, window: int = TREND_WINDOW) -> Trend:
        steps = np.diff(closes[-window:])
        if np.all(steps >= 0):
            return "rising"
        if np.all(steps <= 0):
            return "falling"
        return "consolidating"

    @staticmethod
    def volume_status(candles: Sequence[Candle], window: int = VOLUME_WINDOW) -> VolumeStatus:
        """Compare the last bar's volume against the trailing mean."""
        volumes = [c.volume for c in candles[-window:] if c.volume is not None]
        if len(volumes) < 2:
            return "normal"
        baseline = float(np.mean(volumes[:-1]))
        if baseline <= 0:
            return "normal"
        ratio = volumes[-1] / baseline
        if ratio > 1.5:
            return "high"
        if ratio < 0.5:
            return "low"
        return "normal"

    @staticmethod
    def _candles_to_df(candles: Sequence[Candle]) -> pd.DataFrame:
        rows = [
            {
                "timestamp": c.timestamp,
                "open": float(c.open),
                "high": float(c.high),
                "low": float(c.low),
                "close": float(c.close),
                "volume": np.nan if c.volume is None else float(c.volume),
            }
            for c in candles
        ]
        return pd.DataFrame(rows)


_DEFAULT_CALCULATOR = IndicatorCalculator()


def compute_indicators(candles: Sequence[Candle]) -> IndicatorResult:
    """Pure indicator computation; callers pass candles oldest first."""
    return _DEFAULT_CALCULATOR.compute(candles)


def build_snapshot(instrument: Instrument, candles: Sequence[Candle]) -> Snapshot | None:
    """Return the indicator-enriched snapshot or None when there is no data."""
    if not candles or not instrument.resolved_id:
        return None
    tech = compute_indicators(candles)
    last = candles[-1]
    return Snapshot(
        symbol=instrument.symbol,
        resolved_id=instrument.resolved_id,
        price=float(last.close),
        rsi=tech.rsi,
        ema50=tech.ema50,
        ema200=tech.ema200,
        vwap=tech.vwap,
        trend=tech.trend,
        ohlc=Ohlc(
            open=float(last.open),
            high=float(last.high),
            low=float(last.low),
            close=float(last.close),
        ),
        volume_status=IndicatorCalculator.volume_status(candles),
    )
