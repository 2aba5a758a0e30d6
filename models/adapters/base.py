"""
Abstract base class for LLM-driven trade classifiers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence

from models.schemas import (
    ClassificationRequest,
    Direction,
    MarketBreadth,
    MarketMood,
    TradeSignal,
)
from models.utils import (
    clamp_confidence,
    confidence_level_for,
    new_signal_id,
    parse_price,
    risk_reward,
)
from services.webapp import prompt_templates

REQUIRED_FIELDS = (
    "stock",
    "signal",
    "confidenceScore",
    "entry_range",
    "stop_loss",
    "target",
    "reasoning",
)

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "stock": {"type": "STRING"},
        "signal": {"type": "STRING", "enum": ["BUY", "SELL", "NO TRADE"]},
        "confidenceScore": {"type": "INTEGER"},
        "riskPercentage": {
            "type": "INTEGER",
            "description": "AI risk based on volatility and data gaps.",
        },
        "entry_range": {"type": "STRING"},
        "target": {"type": "STRING"},
        "target2": {"type": "STRING"},
        "stop_loss": {"type": "STRING"},
        "riskRewardRatio": {"type": "STRING"},
        "timeline": {"type": "STRING"},
        "reasoning": {"type": "STRING"},
        "predictionSummary": {
            "type": "STRING",
            "description": "Extended prediction logic for the deep dive view.",
        },
    },
    "required": list(REQUIRED_FIELDS),
}

# A NO TRADE card only has to name the stock, the decision, and a score.
NO_TRADE_FIELDS = ("stock", "signal", "confidenceScore")

MOOD_FIELDS = ("sentiment", "summary")

MOOD_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "sentiment": {"type": "STRING", "enum": ["Bullish", "Bearish", "Choppy"]},
        "summary": {"type": "STRING"},
    },
    "required": list(MOOD_FIELDS),
}

MOOD_PROMPT = (
    "Analyze today's session for Nifty 50 and Bank Nifty.\n"
    "News Scan: search for 'Global Market Cues today', 'FII DII Data yesterday', "
    "and 'Gift Nifty Status'.\n"
    "Scanner breadth: Advancing: {advancing}, Declining: {declining}, "
    "Unchanged: {unchanged}.\n"
    'Output: a JSON object with "sentiment" (Bullish, Bearish or Choppy) and '
    '"summary", a single sentence naming the key news driver.'
)

_SENTIMENT_ALIASES = {
    "bull": "bullish",
    "positive": "bullish",
    "bear": "bearish",
    "negative": "bearish",
    "neutral": "choppy",
    "sideways": "choppy",
    "range-bound": "choppy",
}


class MalformedClassificationError(ValueError):
    """Raised when the model output misses required fields or holds bad values."""


class BaseModelAdapter(ABC):
    """Common behaviour for trade classification adapters."""

    model_id: str

    def __init__(self, model_id: str, *, temperature: float = 0.2) -> None:
        self.model_id = model_id
        self.temperature = temperature

    @property
    def available(self) -> bool:
        """Whether the adapter can answer without failing on missing credentials."""
        return True

    async def generate_signal(self, request: ClassificationRequest) -> TradeSignal:
        """
        Async entry point used by the gateway.

        Subclasses override `_invoke_model` to call their provider; prompt
        construction and schema validation are shared.
        """
        prompt = self._build_prompt(request)
        raw_output = await self._invoke_model(prompt, request)
        return self._parse_response(raw_output, request)

    def _build_prompt(self, request: ClassificationRequest) -> str:
        """Construct prompt string from request (override for custom logic)."""
        snap = request.snapshot
        template = prompt_templates.get_prompt_template(request.timeframe)
        context = _PromptContext(
            model_id=self.model_id,
            symbol=snap.symbol,
            timeframe=request.timeframe,
            price=snap.price,
            open=snap.ohlc.open,
            high=snap.ohlc.high,
            low=snap.ohlc.low,
            close=snap.ohlc.close,
            rsi=snap.rsi,
            ema50=snap.ema50,
            ema200=snap.ema200,
            vwap=snap.vwap,
            vwap_position="above" if snap.price > snap.vwap else "below",
            ema200_zone=(
                "200 EMA support" if snap.price > snap.ema200 else "200 EMA resistance"
            ),
            trend=snap.trend,
            volume_status=snap.volume_status,
            strategy_notes=(
                prompt_templates.HEDGE_FUND_NOTES if request.strategy == "hedge-fund" else ""
            ),
            feedback_block=self._format_feedback_block(snap.symbol, request.feedback),
        )
        return self._apply_template(template, context, request.timeframe)

    @abstractmethod
    async def _invoke_model(
        self, prompt: str, request: ClassificationRequest
    ) -> Dict[str, Any]:
        """Call the backing LLM and return raw JSON-compatible output."""

    def _parse_response(
        self, raw_output: Dict[str, Any], request: ClassificationRequest
    ) -> TradeSignal:
        """Validate the fixed-schema output and convert it into a TradeSignal."""
        if not isinstance(raw_output, dict):
            raise MalformedClassificationError("Model output is not a JSON object")
        _require_fields(raw_output, NO_TRADE_FIELDS)
        direction = self._normalize_direction(raw_output["signal"])
        try:
            score = clamp_confidence(raw_output["confidenceScore"])
        except ValueError as exc:
            raise MalformedClassificationError(str(exc)) from exc
        if direction == "no-trade":
            # prices are meaningless without a setup and often come back as "N/A"
            price = request.snapshot.price
            return self._build_signal(
                raw_output, request, direction, score,
                entry=price, stop=price, target=price, target2=None, ratio=0.0,
            )

        _require_fields(raw_output, REQUIRED_FIELDS)
        try:
            entry = parse_price(raw_output["entry_range"])
            stop = parse_price(raw_output["stop_loss"])
            target = parse_price(raw_output["target"])
            target2 = (
                parse_price(raw_output["target2"]) if raw_output.get("target2") else None
            )
        except ValueError as exc:
            raise MalformedClassificationError(str(exc)) from exc

        ratio = _optional_ratio(raw_output.get("riskRewardRatio"))
        if ratio is None:
            ratio = risk_reward(entry, stop, target)
        return self._build_signal(
            raw_output, request, direction, score,
            entry=entry, stop=stop, target=target, target2=target2, ratio=ratio,
        )

    def _build_signal(
        self,
        raw_output: Dict[str, Any],
        request: ClassificationRequest,
        direction: Direction,
        score: int,
        *,
        entry: float,
        stop: float,
        target: float,
        target2: float | None,
        ratio: float,
    ) -> TradeSignal:
        return TradeSignal(
            id=new_signal_id(),
            instrument_symbol=request.snapshot.symbol,
            timeframe=request.timeframe,
            direction=direction,
            entry_price=entry,
            stop_loss=stop,
            target=target,
            target2=target2,
            risk_reward_ratio=ratio,
            confidence_score=score,
            confidence_level=confidence_level_for(score),
            reason=str(raw_output.get("reasoning") or ""),
            timestamp=datetime.now(tz=timezone.utc),
            timeline=raw_output.get("timeline") or None,
            risk_percentage=_optional_int(raw_output.get("riskPercentage")),
            prediction_summary=raw_output.get("predictionSummary") or None,
            model_id=self.model_id,
            sources=_parse_sources(raw_output.get("sources")),
        )

    async def generate_market_mood(self, breadth: MarketBreadth) -> MarketMood:
        """Classify overall market sentiment for the current session."""
        prompt = MOOD_PROMPT.format(
            advancing=breadth.advancing,
            declining=breadth.declining,
            unchanged=breadth.unchanged,
        )
        raw_output = await self._invoke_mood(prompt, breadth)
        return self._parse_mood(raw_output)

    async def _invoke_mood(self, prompt: str, breadth: MarketBreadth) -> Dict[str, Any]:
        raise NotImplementedError(f"{self.model_id} does not classify market mood")

    def _parse_mood(self, raw_output: Dict[str, Any]) -> MarketMood:
        if not isinstance(raw_output, dict):
            raise MalformedClassificationError("Model output is not a JSON object")
        _require_fields(raw_output, MOOD_FIELDS)
        sentiment = str(raw_output["sentiment"]).strip().lower()
        sentiment = _SENTIMENT_ALIASES.get(sentiment, sentiment)
        if sentiment not in {"bullish", "bearish", "choppy"}:
            raise MalformedClassificationError(
                f"Unknown market sentiment: {raw_output['sentiment']!r}"
            )
        return MarketMood(
            sentiment=sentiment,
            summary=str(raw_output["summary"]).strip(),
            sources=_parse_sources(raw_output.get("sources")),
            model_id=self.model_id,
        )

    async def aclose(self) -> None:
        """Optional hook to release resources in async context."""
        return None

    def _format_feedback_block(self, symbol: str, feedback: Sequence[str]) -> str:
        """Return the user feedback history block injected into prompts."""
        if not feedback:
            return ""
        lines = [f"- {entry}" for entry in feedback]
        return (
            f"USER FEEDBACK HISTORY FOR {symbol}:\n"
            + "\n".join(lines)
            + "\nIMPORTANT: Learn from this feedback.\n"
        )

    def _apply_template(
        self, template: str, context: "_PromptContext", timeframe: str
    ) -> str:
        try:
            return template.format_map(context)
        except (ValueError, IndexError, AttributeError):
            return prompt_templates.DEFAULT_TEMPLATES[timeframe].format_map(context)

    @staticmethod
    def _normalize_direction(value: Any) -> Direction:
        decision = str(value or "").strip().lower().replace("_", " ")
        if decision in {"buy", "long", "open long"}:
            return "buy"
        if decision in {"sell", "short", "open short"}:
            return "sell"
        if decision in {"no trade", "no-trade", "neutral", "hold", "none"}:
            return "no-trade"
        raise MalformedClassificationError(f"Unknown signal direction: {value!r}")


class _PromptContext(dict):
    """Gracefully handle missing keys during template formatting."""

    def __missing__(self, key: str) -> str:
        return f"{{{key}}}"


def _optional_ratio(value: Any) -> float | None:
    if value in (None, ""):
        return None
    text = str(value)
    if ":" in text:
        # "1:2.5" style ratios
        left, _, right = text.partition(":")
        try:
            left_val = float(left.strip())
            right_val = float(right.strip())
        except ValueError:
            return None
        return round(right_val / left_val, 2) if left_val else None
    try:
        return round(float(text), 2)
    except ValueError:
        return None


def _optional_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _require_fields(raw_output: Dict[str, Any], names: Sequence[str]) -> None:
    missing = [key for key in names if raw_output.get(key) is None or raw_output.get(key) == ""]
    if missing:
        raise MalformedClassificationError(
            f"Model output missing required fields: {', '.join(missing)}"
        )


def _parse_sources(value: Any) -> List[Dict[str, str]]:
    """Keep grounding citations that carry a URI."""
    if not isinstance(value, list):
        return []
    sources: List[Dict[str, str]] = []
    for item in value:
        if not isinstance(item, dict) or not item.get("uri"):
            continue
        sources.append(
            {
                "title": str(item.get("title") or "Market Source"),
                "uri": str(item["uri"]),
                "snippet": str(item.get("snippet") or "Found in recent market news."),
            }
        )
    return sources
