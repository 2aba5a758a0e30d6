"""
Classifier gateway: submits one snapshot to the configured LLM adapter and
filters out no-trade and low-confidence results.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Awaitable, Sequence, TypeVar

import httpx

from models.adapters.base import MalformedClassificationError
from models.registry import AdapterRegistry
from models.schemas import (
    ClassificationRequest,
    MarketBreadth,
    MarketMood,
    Snapshot,
    Timeframe,
    TradeSignal,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

STRATEGY_FLOORS = {
    "single-pass": 65,
    "hedge-fund": 60,
}


class ClassificationError(RuntimeError):
    """The AI service could not be reached or returned an unusable payload."""

    def __init__(
        self, message: str, *, symbol: str | None = None, timeframe: str | None = None
    ) -> None:
        super().__init__(message)
        self.symbol = symbol
        self.timeframe = timeframe


def resolve_confidence_floor(strategy: str, override: int | None = None) -> int:
    """Explicit override wins; otherwise the floor follows the strategy."""
    if override is not None:
        return int(override)
    try:
        return STRATEGY_FLOORS[strategy]
    except KeyError as exc:
        raise ValueError(f"Unknown classification strategy '{strategy}'") from exc


class ClassifierGateway:
    """
    Single-attempt classification per (snapshot, timeframe).

    Returns ``None`` for a deliberate no-trade or a score under the floor and
    raises `ClassificationError` when the service fails, so callers can tell
    "nothing found" apart from "service down".
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        *,
        model_id: str,
        strategy: str = "single-pass",
        confidence_floor: int | None = None,
        timeout: float | None = 20.0,
    ) -> None:
        if model_id not in registry.model_ids():
            raise ValueError(f"Unknown classifier model '{model_id}'; available: {registry.model_ids()}")
        self.registry = registry
        self.model_id = model_id
        self.strategy = strategy
        self.confidence_floor = resolve_confidence_floor(strategy, confidence_floor)
        self.timeout = timeout

    @property
    def available(self) -> bool:
        """False when the configured adapter would refuse for lack of credentials."""
        return self.registry.get(self.model_id).available

    async def classify(
        self,
        snapshot: Snapshot,
        timeframe: Timeframe,
        *,
        feedback: Sequence[str] = (),
    ) -> TradeSignal | None:
        adapter = self.registry.get(self.model_id)
        request = ClassificationRequest(
            model_id=self.model_id,
            snapshot=snapshot,
            timeframe=timeframe,
            feedback=tuple(feedback),
            strategy=self.strategy,
        )
        signal = await self._guarded(
            adapter.generate_signal(request), symbol=snapshot.symbol, timeframe=timeframe
        )

        if signal.direction == "no-trade":
            logger.info("[%s/%s] no trade", snapshot.symbol, timeframe)
            return None
        if signal.confidence_score < self.confidence_floor:
            logger.info(
                "[%s/%s] %s below confidence floor (%s < %s)",
                snapshot.symbol,
                timeframe,
                signal.direction,
                signal.confidence_score,
                self.confidence_floor,
            )
            return None
        return signal

    async def market_mood(self, breadth: MarketBreadth) -> MarketMood:
        """Classify overall session sentiment; raises `ClassificationError` on failure."""
        adapter = self.registry.get(self.model_id)
        return await self._guarded(adapter.generate_market_mood(breadth))

    async def _guarded(
        self,
        call: Awaitable[T],
        *,
        symbol: str | None = None,
        timeframe: str | None = None,
    ) -> T:
        try:
            if self.timeout:
                return await asyncio.wait_for(call, self.timeout)
            return await call
        except asyncio.TimeoutError as exc:
            raise ClassificationError(
                f"{self.model_id} timed out after {self.timeout}s",
                symbol=symbol,
                timeframe=timeframe,
            ) from exc
        except (
            httpx.HTTPError,
            MalformedClassificationError,
            json.JSONDecodeError,
            RuntimeError,
        ) as exc:
            raise ClassificationError(
                f"{self.model_id} classification failed: {exc}",
                symbol=symbol,
                timeframe=timeframe,
            ) from exc

    async def aclose(self) -> None:
        await self.registry.aclose()
