"""
Scan orchestrator: candidate selection, resolution, per-instrument
fetch/compute/classify fan-out, ranking, and merge with the rolling buffer.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, List, Literal, Optional, Sequence, Tuple

from brokers.angelone.client import AngelOneClient
from brokers.base_client import BrokerDataService, NotAuthenticatedError, SessionContext
from models.bootstrap import build_default_registry
from models.gateway import ClassificationError, ClassifierGateway
from models.schemas import (
    Instrument,
    MarketBreadth,
    MarketMood,
    Snapshot,
    Timeframe,
    TradeSignal,
)
from scanner.buffer import merge_signals, rank_signals
from scanner.fetcher import MarketDataFetcher
from scanner.indicators import build_snapshot
from scanner.resolver import InstrumentResolver
from scanner.settings import ScanSettings
from services.storage.feedback_log import FeedbackLog
from services.storage.kv_store import KeyValueStore, MemoryStore
from services.storage.mood_store import MarketMoodStore
from services.storage.signal_store import SignalStore

logger = logging.getLogger(__name__)

ProgressSink = Callable[[str], Optional[Awaitable[Any]]]
OutcomeStatus = Literal[
    "signal",
    "no-trade",
    "unresolved",
    "no-data",
    "fetch-error",
    "classify-error",
    "error",
]


class ScanState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    FETCHING = "fetching"
    ANALYZING = "analyzing"
    MERGING = "merging"
    DONE = "done"
    ERROR = "error"


class InsufficientCandidatesError(RuntimeError):
    """Too few instruments resolved for the cycle to be meaningful."""


@dataclass(slots=True)
class InstrumentOutcome:
    symbol: str
    status: OutcomeStatus
    timeframe: Timeframe | None = None
    detail: str | None = None


@dataclass(slots=True)
class ScanResult:
    ok: bool
    state: ScanState
    started_at: datetime
    finished_at: datetime | None = None
    signals: List[TradeSignal] = field(default_factory=list)
    fresh: List[TradeSignal] = field(default_factory=list)
    outcomes: List[InstrumentOutcome] = field(default_factory=list)
    error: str | None = None
    mood: MarketMood | None = None

    def summary(self) -> dict:
        counts: dict[str, int] = {}
        for outcome in self.outcomes:
            counts[outcome.status] = counts.get(outcome.status, 0) + 1
        return {
            "ok": self.ok,
            "state": self.state.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "new_signals": len(self.fresh),
            "total_signals": len(self.signals),
            "outcomes": counts,
            "error": self.error,
            "market_mood": self.mood.sentiment if self.mood else None,
        }


class ScanOrchestrator:
    """
    Runs one scan cycle at a time.

    Per-instrument failures (resolution, fetch, classification) only remove
    that instrument from the cycle. A cycle that fails as a whole (missing
    session, too few resolved instruments) leaves the stored buffer untouched.
    """

    def __init__(
        self,
        session: SessionContext,
        *,
        resolver: InstrumentResolver,
        fetcher: MarketDataFetcher,
        gateway: ClassifierGateway,
        signal_store: SignalStore | None = None,
        feedback_log: FeedbackLog | None = None,
        mood_store: MarketMoodStore | None = None,
        settings: ScanSettings | None = None,
        progress: ProgressSink | None = None,
        rng: random.Random | None = None,
        broker: BrokerDataService | None = None,
    ) -> None:
        self.session = session
        self.resolver = resolver
        self.fetcher = fetcher
        self.gateway = gateway
        self.signal_store = signal_store or SignalStore(MemoryStore())
        self.feedback_log = feedback_log
        self.mood_store = mood_store
        self.settings = settings or ScanSettings()
        self._progress = progress
        self._rng = rng or random.Random()
        self._broker = broker
        self._scanning = False
        self._state = ScanState.IDLE
        self._pending_sinks: set[asyncio.Future] = set()
        self.last_progress: str | None = None
        self.last_result: ScanResult | None = None

    @staticmethod
    def from_session(
        session: SessionContext,
        *,
        store: KeyValueStore,
        settings: ScanSettings | None = None,
        progress: ProgressSink | None = None,
        broker: BrokerDataService | None = None,
    ) -> "ScanOrchestrator":
        """Wire the default Angel One client, resolver, fetcher, and gateway."""
        settings = settings or ScanSettings.from_config(store=store)
        broker = broker or AngelOneClient(session, timeout=settings.request_timeout)
        gateway = ClassifierGateway(
            build_default_registry(session),
            model_id=settings.model_id,
            strategy=settings.strategy,
            confidence_floor=settings.confidence_floor,
            timeout=settings.request_timeout,
        )
        return ScanOrchestrator(
            session,
            resolver=InstrumentResolver(broker),
            fetcher=MarketDataFetcher(broker),
            gateway=gateway,
            signal_store=SignalStore(store),
            feedback_log=FeedbackLog(store),
            mood_store=MarketMoodStore(store),
            settings=settings,
            progress=progress,
            broker=broker,
        )

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    @property
    def state(self) -> ScanState:
        return self._state

    async def run_scan(self) -> ScanResult | None:
        """Run one cycle; returns None immediately when a scan is already in flight."""
        if self._scanning:
            logger.info("Scan already in progress; ignoring request")
            return None
        self._scanning = True
        started = datetime.now(tz=timezone.utc)
        outcomes: List[InstrumentOutcome] = []
        try:
            result = await self._run(started, outcomes)
        except (NotAuthenticatedError, InsufficientCandidatesError) as exc:
            logger.error("Scan aborted: %s", exc)
            self._transition(ScanState.ERROR, f"Scan failed: {exc}")
            result = ScanResult(
                ok=False,
                state=ScanState.ERROR,
                started_at=started,
                finished_at=datetime.now(tz=timezone.utc),
                signals=self.signal_store.load(),
                outcomes=outcomes,
                error=str(exc),
            )
        finally:
            self._scanning = False
            self._state = ScanState.IDLE
        self.last_result = result
        return result

    async def _run(self, started: datetime, outcomes: List[InstrumentOutcome]) -> ScanResult:
        if not self.session.is_authenticated:
            raise NotAuthenticatedError("Not authenticated: broker token or API key missing")
        if not self.gateway.available:
            raise NotAuthenticatedError("Not authenticated: classifier API key missing")

        self._transition(ScanState.RESOLVING, "Resolving instruments...")
        candidates = await self._select_candidates()
        instruments = await self._resolve_all(candidates, outcomes)
        if len(instruments) < self.settings.min_resolved:
            raise InsufficientCandidatesError(
                f"Only {len(instruments)} of {len(candidates)} instruments resolved "
                f"(minimum {self.settings.min_resolved})"
            )

        intraday, swing = self._split(instruments)
        jobs: List[Tuple[Instrument, Timeframe]] = [(inst, "intraday") for inst in intraday]
        jobs.extend((inst, "swing") for inst in swing)

        self._transition(
            ScanState.FETCHING,
            f"Fetching market data for {len(instruments)} instruments...",
        )
        snapshots = await asyncio.gather(
            *(self._fetch_snapshot(inst, tf, outcomes) for inst, tf in jobs),
            return_exceptions=True,
        )
        ready: List[Tuple[Snapshot, Timeframe]] = []
        for (inst, tf), snap in zip(jobs, snapshots):
            if isinstance(snap, BaseException):
                self._record_unexpected(inst.symbol, tf, snap, outcomes)
            elif snap is not None:
                ready.append((snap, tf))

        self._transition(ScanState.ANALYZING, f"Analyzing {len(ready)} candidates...")
        classified = await asyncio.gather(
            *(self._classify(snap, tf, outcomes) for snap, tf in ready),
            return_exceptions=True,
        )
        by_timeframe: dict[str, List[TradeSignal]] = {"intraday": [], "swing": []}
        for (snap, tf), signal in zip(ready, classified):
            if isinstance(signal, BaseException):
                self._record_unexpected(snap.symbol, tf, signal, outcomes)
            elif signal is not None:
                by_timeframe[tf].append(signal)

        fresh = rank_signals(by_timeframe["intraday"], self.settings.intraday_top_n)
        fresh += rank_signals(by_timeframe["swing"], self.settings.swing_top_n)

        mood = None
        if self.settings.market_mood and ready:
            mood = await self._refresh_mood([snap for snap, _ in ready])

        self._transition(ScanState.MERGING, f"Merging {len(fresh)} signals...")
        finished = datetime.now(tz=timezone.utc)
        merged = self.signal_store.rewrite(
            lambda previous: merge_signals(previous, fresh, cap=self.settings.buffer_cap),
            updated_at=finished.isoformat(),
        )

        self._transition(ScanState.DONE, f"Scan complete: {len(fresh)} new signals")
        return ScanResult(
            ok=True,
            state=ScanState.DONE,
            started_at=started,
            finished_at=finished,
            signals=merged,
            fresh=fresh,
            outcomes=outcomes,
            mood=mood,
        )

    async def _select_candidates(self) -> List[str]:
        size = self.settings.batch_size
        pool: List[str] = []
        if self.settings.discover_remote:
            try:
                pool = await asyncio.wait_for(
                    self.resolver.discover(size * 2), self.settings.request_timeout
                )
            except asyncio.TimeoutError:
                logger.warning("Remote discovery timed out; using curated universe")
            except Exception as exc:
                logger.warning("Remote discovery failed (%r); using curated universe", exc)
        if not pool:
            pool = list(dict.fromkeys(s.strip().upper() for s in self.settings.universe if s.strip()))
        self._rng.shuffle(pool)
        return pool[:size]

    async def _resolve_all(
        self, symbols: Sequence[str], outcomes: List[InstrumentOutcome]
    ) -> List[Instrument]:
        async def resolve_one(symbol: str) -> Instrument | None:
            try:
                token = await asyncio.wait_for(
                    self.resolver.resolve(symbol), self.settings.request_timeout
                )
            except asyncio.TimeoutError:
                token = None
            if token is None:
                outcomes.append(InstrumentOutcome(symbol, "unresolved"))
                return None
            return Instrument(symbol=symbol, exchange=self.resolver.exchange, resolved_id=token)

        resolved = await asyncio.gather(
            *(resolve_one(s) for s in symbols), return_exceptions=True
        )
        instruments: List[Instrument] = []
        for symbol, inst in zip(symbols, resolved):
            if isinstance(inst, BaseException):
                self._record_unexpected(symbol, None, inst, outcomes)
            elif inst is not None:
                instruments.append(inst)
        return instruments

    def _split(self, instruments: Sequence[Instrument]) -> Tuple[List[Instrument], List[Instrument]]:
        cut = int(len(instruments) * self.settings.intraday_ratio + 0.5)
        return list(instruments[:cut]), list(instruments[cut:])

    async def _fetch_snapshot(
        self,
        instrument: Instrument,
        timeframe: Timeframe,
        outcomes: List[InstrumentOutcome],
    ) -> Snapshot | None:
        try:
            fetched = await asyncio.wait_for(
                self.fetcher.fetch_timeframe_history(instrument, timeframe),
                self.settings.request_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("History fetch timed out for %s (%s)", instrument.symbol, timeframe)
            outcomes.append(InstrumentOutcome(instrument.symbol, "fetch-error", timeframe, "timeout"))
            return None
        if fetched.error is not None:
            outcomes.append(
                InstrumentOutcome(instrument.symbol, "fetch-error", timeframe, fetched.error)
            )
            return None
        snapshot = build_snapshot(instrument, fetched.candles)
        if snapshot is None:
            outcomes.append(InstrumentOutcome(instrument.symbol, "no-data", timeframe))
        return snapshot

    async def _classify(
        self,
        snapshot: Snapshot,
        timeframe: Timeframe,
        outcomes: List[InstrumentOutcome],
    ) -> TradeSignal | None:
        feedback = self.feedback_log.history(snapshot.symbol) if self.feedback_log else ()
        try:
            signal = await self.gateway.classify(snapshot, timeframe, feedback=feedback)
        except ClassificationError as exc:
            logger.warning("Classification failed for %s (%s): %s", snapshot.symbol, timeframe, exc)
            outcomes.append(InstrumentOutcome(snapshot.symbol, "classify-error", timeframe, str(exc)))
            return None
        if signal is None:
            outcomes.append(InstrumentOutcome(snapshot.symbol, "no-trade", timeframe))
            return None
        outcomes.append(
            InstrumentOutcome(snapshot.symbol, "signal", timeframe, f"{signal.confidence_score}")
        )
        return signal

    async def _refresh_mood(self, snapshots: Sequence[Snapshot]) -> MarketMood | None:
        breadth = MarketBreadth.from_snapshots(snapshots)
        try:
            mood = await self.gateway.market_mood(breadth)
        except ClassificationError as exc:
            logger.warning("Market mood unavailable: %s", exc)
            return None
        if self.mood_store is not None:
            self.mood_store.save(mood)
        return mood

    def _record_unexpected(
        self,
        symbol: str,
        timeframe: Timeframe | None,
        exc: BaseException,
        outcomes: List[InstrumentOutcome],
    ) -> None:
        if isinstance(exc, asyncio.CancelledError):
            raise exc
        logger.error("Unexpected failure for %s (%s)", symbol, timeframe, exc_info=exc)
        outcomes.append(InstrumentOutcome(symbol, "error", timeframe, repr(exc)))

    def _transition(self, state: ScanState, message: str) -> None:
        self._state = state
        logger.info("Scan %s: %s", state.value, message)
        self._emit(message)

    def _emit(self, message: str) -> None:
        """Fire-and-forget delivery to the progress sink."""
        self.last_progress = message
        if self._progress is None:
            return
        try:
            outcome = self._progress(message)
        except Exception as exc:
            logger.warning("Progress sink raised: %s", exc)
            return
        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(outcome)
            self._pending_sinks.add(task)
            task.add_done_callback(self._sink_done)

    def _sink_done(self, task: asyncio.Future) -> None:
        self._pending_sinks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Progress sink failed: %s", task.exception())

    async def aclose(self) -> None:
        try:
            if self._broker is not None:
                await self._broker.aclose()
        finally:
            await self.gateway.aclose()
