from datetime import datetime, timedelta, timezone

import pytest

from models.schemas import Candle, Ohlc, Snapshot, TradeSignal
from models.utils import confidence_level_for


@pytest.fixture
def candle_factory():
    def _make(closes, *, start=1_700_000_000, step=900, volume=1000.0):
        return [
            Candle(
                timestamp=start + i * step,
                open=float(close),
                high=float(close) + 1,
                low=float(close) - 1,
                close=float(close),
                volume=volume,
            )
            for i, close in enumerate(closes)
        ]

    return _make


@pytest.fixture
def snapshot_factory():
    def _make(symbol="RELIANCE-EQ", *, price=2450.0, trend="rising", rsi=55.0, vwap=2440.0):
        return Snapshot(
            symbol=symbol,
            resolved_id="2885",
            price=price,
            rsi=rsi,
            ema50=price - 10,
            ema200=price - 50,
            vwap=vwap,
            trend=trend,
            ohlc=Ohlc(open=price - 5, high=price + 5, low=price - 8, close=price),
        )

    return _make


@pytest.fixture
def signal_factory():
    base = datetime(2024, 5, 10, 4, 0, tzinfo=timezone.utc)

    def _make(symbol="RELIANCE-EQ", timeframe="intraday", *, confidence=80, minutes=0, **extra):
        fields = dict(
            id=f"{symbol[:4].lower()}{timeframe[0]}{minutes}",
            instrument_symbol=symbol,
            timeframe=timeframe,
            direction="buy",
            entry_price=100.0,
            stop_loss=99.0,
            target=102.0,
            risk_reward_ratio=2.0,
            confidence_score=confidence,
            confidence_level=confidence_level_for(confidence),
            reason="test setup",
            timestamp=base + timedelta(minutes=minutes),
        )
        fields.update(extra)
        return TradeSignal(**fields)

    return _make
