"""
Utility helpers used across model adapters.
"""

from __future__ import annotations

import math
import re
import uuid
from typing import Any, Dict

from models.schemas import ClassificationRequest, ConfidenceLevel, MarketBreadth

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def clamp_confidence(value: Any, minimum: int = 0, maximum: int = 100) -> int:
    """Coerce a numeric confidence score into an integer within [minimum, maximum]."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid confidence score: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid confidence score: {value!r}") from exc
    if math.isnan(number):
        raise ValueError("Confidence score is NaN")
    return int(round(max(minimum, min(maximum, number))))


def confidence_level_for(score: int) -> ConfidenceLevel:
    if score >= 80:
        return "high"
    if score >= 60:
        return "medium"
    return "low"


def parse_price(value: Any) -> float:
    """
    Parse a price the model may return as a number or as text such as
    ``"₹2,450.50"`` or a range ``"2450 - 2460"`` (midpoint is used).
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid price value: {value!r}")
    if isinstance(value, (int, float)):
        if math.isnan(value):
            raise ValueError("Price is NaN")
        return float(value)
    text = str(value or "").replace(",", "")
    numbers = [float(n) for n in _NUMBER_RE.findall(text)]
    numbers = [abs(n) for n in numbers]
    if not numbers:
        raise ValueError(f"Invalid price value: {value!r}")
    if len(numbers) >= 2:
        return round((numbers[0] + numbers[1]) / 2, 2)
    return numbers[0]


def risk_reward(entry: float, stop: float, target: float) -> float:
    risk = abs(entry - stop)
    if risk == 0:
        return 0.0
    return round(abs(target - entry) / risk, 2)


def new_signal_id() -> str:
    return uuid.uuid4().hex[:9]


def deterministic_decision(request: ClassificationRequest, *, source: str) -> Dict[str, Any]:
    """
    Produce a reproducible pseudo-classification when no remote model is configured.

    This is useful for local development and unit tests.
    """
    snap = request.snapshot
    base = sum(ord(c) for c in snap.symbol + request.timeframe)
    swing = request.timeframe == "swing"
    stop_pct = 0.03 if swing else 0.01
    target_pct = 0.06 if swing else 0.02

    if snap.trend == "rising" and snap.price >= snap.vwap and snap.rsi < 70:
        signal = "BUY"
        stop = snap.price * (1 - stop_pct)
        target = snap.price * (1 + target_pct)
        target2 = snap.price * (1 + target_pct * 1.5)
    elif snap.trend == "falling" and snap.price <= snap.vwap and snap.rsi > 30:
        signal = "SELL"
        stop = snap.price * (1 + stop_pct)
        target = snap.price * (1 - target_pct)
        target2 = snap.price * (1 - target_pct * 1.5)
    else:
        signal = "NO TRADE"
        stop = target = target2 = snap.price

    confidence = clamp_confidence(60 + base % 35)
    return {
        "provider": source,
        "stock": snap.symbol,
        "signal": signal,
        "confidenceScore": confidence,
        "riskPercentage": 100 - confidence,
        "entry_range": f"{snap.price:.2f}",
        "stop_loss": f"{stop:.2f}",
        "target": f"{target:.2f}",
        "target2": f"{target2:.2f}",
        "timeline": "3-5 Days" if swing else "2 Hours",
        "reasoning": (
            f"Deterministic fallback: trend {snap.trend}, RSI {snap.rsi}, "
            f"price {'above' if snap.price >= snap.vwap else 'below'} VWAP."
        ),
        "predictionSummary": "Offline heuristic; no remote model configured.",
    }


def deterministic_mood(breadth: MarketBreadth) -> Dict[str, Any]:
    """Breadth-only market mood for offline runs."""
    if breadth.advancing > breadth.declining * 1.5:
        sentiment = "Bullish"
    elif breadth.declining > breadth.advancing * 1.5:
        sentiment = "Bearish"
    else:
        sentiment = "Choppy"
    return {
        "sentiment": sentiment,
        "summary": (
            f"Offline breadth read: {breadth.advancing} advancing, "
            f"{breadth.declining} declining, {breadth.unchanged} flat."
        ),
    }
