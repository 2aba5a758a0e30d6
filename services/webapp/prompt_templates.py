"""
Utilities for loading, saving, and formatting AI prompt templates.
"""

from __future__ import annotations

from pathlib import Path
from typing import Final

PROMPT_TEMPLATE_DIR: Final = Path("data/state/prompts")

INTRADAY_PROMPT_TEMPLATE: Final = (
    'Strategy: "Intraday Momentum Pro"\n'
    "Analyze 15-minute OHLC for {symbol} (timeframe: {timeframe}).\n"
    "Price: {price}\n"
    "Last bar OHLC: O {open} / H {high} / L {low} / C {close}\n"
    "Technical context: RSI(14) {rsi}, VWAP {vwap} (price {vwap_position} VWAP), "
    "EMA50 {ema50}, EMA200 {ema200}, volume {volume_status}.\n"
    "Trend status: {trend}.\n"
    "Rules: signal BUY or SELL only when confidence exceeds 80; otherwise NO TRADE.\n"
    "{strategy_notes}"
    "{feedback_block}"
    "Respond with JSON: stock, signal, confidenceScore, riskPercentage, entry_range, "
    "target, target2, stop_loss, riskRewardRatio, timeline, reasoning, predictionSummary.\n"
)

SWING_PROMPT_TEMPLATE: Final = (
    'Strategy: "Swing Master Pro"\n'
    "Analyze {symbol} for a 3-7 day swing (timeframe: {timeframe}).\n"
    "Price: {price}, near {ema200_zone}.\n"
    "Daily OHLC: O {open} / H {high} / L {low} / C {close}\n"
    "Indicators: RSI(14) {rsi}, EMA50 {ema50}, EMA200 {ema200}, VWAP {vwap}, "
    "trend {trend}, volume {volume_status}.\n"
    "Output a JSON trade card with a detailed risk assessment.\n"
    "{strategy_notes}"
    "{feedback_block}"
    "Respond with JSON: stock, signal, confidenceScore, riskPercentage, entry_range, "
    "target, target2, stop_loss, riskRewardRatio, timeline, reasoning, predictionSummary.\n"
)

HEDGE_FUND_NOTES: Final = (
    "Act as a hedge-fund risk committee: reject setups with reward/risk below 2 "
    "and explain the invalidation level.\n"
)

DEFAULT_TEMPLATES: Final = {
    "intraday": INTRADAY_PROMPT_TEMPLATE,
    "swing": SWING_PROMPT_TEMPLATE,
}


def _template_path(timeframe: str) -> Path:
    return PROMPT_TEMPLATE_DIR / f"{timeframe}.txt"


def get_prompt_template(timeframe: str) -> str:
    """Return the persisted prompt template text or the built-in default."""
    try:
        return _template_path(timeframe).read_text(encoding="utf-8")
    except FileNotFoundError:
        return DEFAULT_TEMPLATES.get(timeframe, INTRADAY_PROMPT_TEMPLATE)


def save_prompt_template(timeframe: str, value: str) -> str:
    """Persist a new template string and return the sanitized value."""
    sanitized = value.strip() or DEFAULT_TEMPLATES.get(timeframe, INTRADAY_PROMPT_TEMPLATE)
    path = _template_path(timeframe)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(sanitized, encoding="utf-8")
    return sanitized
