import asyncio
import random
from datetime import datetime, timezone

from brokers.base_client import SessionContext
from models.adapters.base import BaseModelAdapter
from models.gateway import ClassificationError, ClassifierGateway
from models.registry import AdapterRegistry
from models.schemas import Candle, MarketBreadth, MarketMood, TradeSignal
from models.utils import confidence_level_for
from scanner.fetcher import HistoryFetch
from scanner.pipeline import ScanOrchestrator, ScanState
from scanner.settings import ScanSettings
from services.storage.feedback_log import FeedbackLog
from services.storage.kv_store import MemoryStore
from services.storage.mood_store import MarketMoodStore
from services.storage.signal_store import SignalStore

AUTHENTICATED = SessionContext(token="jwt", api_key="key")
CANDLES = [
    Candle(timestamp=1_700_000_000 + i * 900, open=100 + i, high=101 + i, low=99 + i, close=100 + i, volume=1000)
    for i in range(30)
]


def _signal(symbol, timeframe, confidence, **extra):
    fields = dict(
        id=f"{symbol}-{timeframe}",
        instrument_symbol=symbol,
        timeframe=timeframe,
        direction="buy",
        entry_price=100.0,
        stop_loss=99.0,
        target=102.0,
        risk_reward_ratio=2.0,
        confidence_score=confidence,
        confidence_level=confidence_level_for(confidence),
        reason="momentum",
    )
    fields.update(extra)
    return TradeSignal(**fields)


class FakeResolver:
    exchange = "NSE"

    def __init__(self, missing=(), discovered=()):
        self.missing = set(missing)
        self.discovered = list(discovered)
        self.calls = []

    async def resolve(self, symbol, exchange=None):
        self.calls.append(symbol)
        return None if symbol in self.missing else f"tok-{symbol}"

    async def discover(self, count, exchange=None):
        return self.discovered[:count]


class FakeFetcher:
    def __init__(self, failing=(), empty=()):
        self.failing = set(failing)
        self.empty = set(empty)

    async def fetch_timeframe_history(self, instrument, timeframe, *, now=None):
        if instrument.symbol in self.failing:
            return HistoryFetch([], error="connection reset")
        if instrument.symbol in self.empty:
            return HistoryFetch([])
        return HistoryFetch(list(CANDLES))


class FakeGateway:
    available = True

    def __init__(self, scores=None, *, failing=(), crashing=(), no_trade=(), mood_fails=False):
        self.scores = scores or {}
        self.failing = set(failing)
        self.crashing = set(crashing)
        self.no_trade = set(no_trade)
        self.mood_fails = mood_fails
        self.breadths = []
        self.calls = []
        self.closed = False

    async def classify(self, snapshot, timeframe, *, feedback=()):
        self.calls.append((snapshot.symbol, timeframe, tuple(feedback)))
        if snapshot.symbol in self.failing:
            raise ClassificationError("service unavailable", symbol=snapshot.symbol, timeframe=timeframe)
        if snapshot.symbol in self.crashing:
            raise ValueError("unexpected payload")
        if snapshot.symbol in self.no_trade:
            return None
        return _signal(snapshot.symbol, timeframe, self.scores.get(snapshot.symbol, 75))

    async def market_mood(self, breadth):
        self.breadths.append(breadth)
        if self.mood_fails:
            raise ClassificationError("mood timed out")
        return MarketMood(sentiment="bullish", summary="Banks lead a broad rally.")

    async def aclose(self):
        self.closed = True


def build(symbols, *, session=AUTHENTICATED, resolver=None, fetcher=None, gateway=None, store=None, progress=None, **overrides):
    options = dict(
        universe=list(symbols),
        batch_size=len(symbols),
        min_resolved=1,
        intraday_ratio=1.0,
        intraday_top_n=5,
        swing_top_n=5,
    )
    options.update(overrides)
    store = store or MemoryStore()
    return ScanOrchestrator(
        session,
        resolver=resolver or FakeResolver(),
        fetcher=fetcher or FakeFetcher(),
        gateway=gateway or FakeGateway(),
        signal_store=SignalStore(store),
        feedback_log=FeedbackLog(store),
        mood_store=MarketMoodStore(store),
        settings=ScanSettings(**options),
        progress=progress,
        rng=random.Random(7),
    )


def test_ranks_each_partition_and_keeps_top_n():
    scores = {"A": 92, "B": 61, "C": 78, "D": 55, "E": 88}
    orchestrator = build(list(scores), gateway=FakeGateway(scores), intraday_top_n=3)
    result = asyncio.run(orchestrator.run_scan())
    assert result.ok
    assert result.state is ScanState.DONE
    assert [s.confidence_score for s in result.fresh] == [92, 88, 78]


def test_split_between_intraday_and_swing():
    gateway = FakeGateway()
    orchestrator = build(["A", "B", "C", "D", "E"], gateway=gateway, intraday_ratio=0.6)
    asyncio.run(orchestrator.run_scan())
    timeframes = [tf for _, tf, _ in gateway.calls]
    assert timeframes.count("intraday") == 3
    assert timeframes.count("swing") == 2


def test_per_instrument_failures_are_isolated():
    orchestrator = build(
        ["A", "B", "C", "D", "E", "F", "G"],
        resolver=FakeResolver(missing={"A"}),
        fetcher=FakeFetcher(failing={"B"}, empty={"C"}),
        gateway=FakeGateway(failing={"D"}, crashing={"E"}, no_trade={"G"}),
    )
    result = asyncio.run(orchestrator.run_scan())
    assert result.ok
    assert [s.instrument_symbol for s in result.fresh] == ["F"]
    statuses = {o.symbol: o.status for o in result.outcomes}
    assert statuses == {
        "A": "unresolved",
        "B": "fetch-error",
        "C": "no-data",
        "D": "classify-error",
        "E": "error",
        "F": "signal",
        "G": "no-trade",
    }
    assert result.summary()["outcomes"]["classify-error"] == 1


def test_second_scan_while_running_is_ignored():
    gateway = FakeGateway()
    release = {}

    async def slow_classify(snapshot, timeframe, *, feedback=()):
        gateway.calls.append((snapshot.symbol, timeframe, tuple(feedback)))
        await release["event"].wait()
        return _signal(snapshot.symbol, timeframe, 80)

    gateway.classify = slow_classify
    orchestrator = build(["A", "B"], gateway=gateway)

    async def scenario():
        release["event"] = asyncio.Event()
        first = asyncio.create_task(orchestrator.run_scan())
        while not gateway.calls:
            await asyncio.sleep(0)
        assert orchestrator.is_scanning
        assert orchestrator.state is ScanState.ANALYZING
        second = await orchestrator.run_scan()
        release["event"].set()
        return await first, second

    first, second = asyncio.run(scenario())
    assert second is None
    assert first.ok
    assert not orchestrator.is_scanning
    assert orchestrator.state is ScanState.IDLE


def test_user_flags_survive_a_fresh_signal():
    store = MemoryStore()
    prior = _signal(
        "A",
        "intraday",
        70,
        id="old",
        taken=True,
        feedback="hit target",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    SignalStore(store).save([prior])
    result = asyncio.run(build(["A"], store=store).run_scan())
    merged = {s.key: s for s in result.signals}[("A", "intraday")]
    assert merged.id == "A-intraday"
    assert merged.taken is True
    assert merged.feedback == "hit target"
    assert SignalStore(store).load()[0].taken is True


def test_buffer_is_capped_newest_first():
    store = MemoryStore()
    old = [
        _signal(f"OLD{i}", "swing", 70, id=f"old{i}", timestamp=datetime(2024, 1, 1 + i, tzinfo=timezone.utc))
        for i in range(3)
    ]
    SignalStore(store).save(old)
    result = asyncio.run(build(["NEW"], store=store, buffer_cap=2).run_scan())
    assert [s.instrument_symbol for s in result.signals] == ["NEW", "OLD2"]
    assert len(SignalStore(store).load()) == 2
    assert SignalStore(store).last_update() is not None


def test_missing_session_fails_without_network_calls():
    store = MemoryStore()
    SignalStore(store).save([_signal("KEEP", "swing", 70)])
    resolver = FakeResolver()
    orchestrator = build(["A", "B"], session=SessionContext(), resolver=resolver, store=store)
    result = asyncio.run(orchestrator.run_scan())
    assert not result.ok
    assert result.state is ScanState.ERROR
    assert "authenticated" in result.error.lower()
    assert resolver.calls == []
    assert [s.instrument_symbol for s in SignalStore(store).load()] == ["KEEP"]
    assert orchestrator.state is ScanState.IDLE
    assert orchestrator.last_result is result


def test_too_few_resolved_aborts_and_leaves_buffer():
    store = MemoryStore()
    SignalStore(store).save([_signal("KEEP", "swing", 70)])
    gateway = FakeGateway()
    orchestrator = build(
        ["A", "B", "C", "D", "E", "F"],
        resolver=FakeResolver(missing={"A", "B", "C"}),
        gateway=gateway,
        store=store,
        min_resolved=5,
    )
    result = asyncio.run(orchestrator.run_scan())
    assert not result.ok
    assert "3 of 6" in result.error
    assert gateway.calls == []
    assert [s.instrument_symbol for s in SignalStore(store).load()] == ["KEEP"]
    assert SignalStore(store).last_update() is None


def test_batch_is_drawn_from_shuffled_universe():
    resolver = FakeResolver()
    orchestrator = build([f"S{i}" for i in range(30)], resolver=resolver, batch_size=18)
    asyncio.run(orchestrator.run_scan())
    assert len(resolver.calls) == 18
    assert len(set(resolver.calls)) == 18


def test_remote_discovery_supplies_candidates():
    resolver = FakeResolver(discovered=["X1-EQ", "X2-EQ", "X3-EQ"])
    orchestrator = build(["A"], resolver=resolver, batch_size=3, discover_remote=True)
    asyncio.run(orchestrator.run_scan())
    assert sorted(resolver.calls) == ["X1-EQ", "X2-EQ", "X3-EQ"]


def test_feedback_history_reaches_the_gateway():
    store = MemoryStore()
    FeedbackLog(store).append("A", "entered too early")
    gateway = FakeGateway()
    asyncio.run(build(["A"], gateway=gateway, store=store).run_scan())
    assert gateway.calls == [("A", "intraday", ("entered too early",))]


def test_progress_messages_reach_sync_and_async_sinks():
    received = []
    orchestrator = build(["A"], progress=received.append)
    asyncio.run(orchestrator.run_scan())
    assert received[0] == "Resolving instruments..."
    assert received[-1].startswith("Scan complete")
    assert orchestrator.last_progress == received[-1]

    async_received = []

    async def async_sink(message):
        async_received.append(message)

    async def scenario():
        result = await build(["A"], progress=async_sink).run_scan()
        await asyncio.sleep(0)
        return result

    assert asyncio.run(scenario()).ok
    assert "Resolving instruments..." in async_received


def test_failing_progress_sink_does_not_break_scan(caplog):
    def broken_sink(message):
        raise RuntimeError("display gone")

    result = asyncio.run(build(["A"], progress=broken_sink).run_scan())
    assert result.ok
    assert "Progress sink raised" in caplog.text


def test_from_session_wires_default_components():
    orchestrator = ScanOrchestrator.from_session(
        AUTHENTICATED,
        store=MemoryStore(),
        settings=ScanSettings(universe=["RELIANCE-EQ"]),
    )
    assert orchestrator.gateway.confidence_floor == 65
    assert orchestrator.resolver.cached("RELIANCE-EQ") == "2885"
    asyncio.run(orchestrator.aclose())


class CrashResolver(FakeResolver):
    async def resolve(self, symbol, exchange=None):
        if symbol == "BAD":
            raise KeyError("symboltoken")
        return await super().resolve(symbol, exchange)


def test_resolver_crash_only_drops_that_instrument():
    orchestrator = build(["A", "B", "BAD"], resolver=CrashResolver())
    result = asyncio.run(orchestrator.run_scan())
    assert result.ok
    assert sorted(s.instrument_symbol for s in result.fresh) == ["A", "B"]
    crashed = [o for o in result.outcomes if o.symbol == "BAD"]
    assert [(o.status, o.timeframe) for o in crashed] == [("error", None)]
    assert "symboltoken" in crashed[0].detail


def test_discovery_failure_falls_back_to_universe(caplog):
    class BrokenDiscovery(FakeResolver):
        async def discover(self, count, exchange=None):
            raise TypeError("scrip master payload changed")

    resolver = BrokenDiscovery()
    result = asyncio.run(build(["A", "B"], resolver=resolver, discover_remote=True).run_scan())
    assert result.ok
    assert sorted(resolver.calls) == ["A", "B"]
    assert "Remote discovery failed" in caplog.text


class NoTradeAdapter(BaseModelAdapter):
    def __init__(self):
        super().__init__(model_id="stub-v1")

    async def _invoke_model(self, prompt, request):
        return {
            "stock": request.snapshot.symbol,
            "signal": "NO TRADE",
            "confidenceScore": 40,
            "entry_range": "N/A",
            "stop_loss": "N/A",
            "target": "",
            "reasoning": "Range-bound below VWAP.",
        }


def test_no_trade_card_without_prices_is_not_a_service_failure():
    registry = AdapterRegistry()
    registry.register(NoTradeAdapter())
    gateway = ClassifierGateway(registry, model_id="stub-v1")
    result = asyncio.run(build(["A"], gateway=gateway).run_scan())
    assert result.ok
    assert result.fresh == []
    assert [o.status for o in result.outcomes] == ["no-trade"]
    assert result.mood is None


def test_unavailable_classifier_refuses_to_scan():
    store = MemoryStore()
    SignalStore(store).save([_signal("KEEP", "swing", 70)])
    gateway = FakeGateway()
    gateway.available = False
    resolver = FakeResolver()
    result = asyncio.run(build(["A"], gateway=gateway, resolver=resolver, store=store).run_scan())
    assert not result.ok
    assert result.state is ScanState.ERROR
    assert "classifier" in result.error
    assert resolver.calls == []
    assert [s.instrument_symbol for s in SignalStore(store).load()] == ["KEEP"]


def test_market_mood_is_classified_and_stored():
    store = MemoryStore()
    gateway = FakeGateway()
    result = asyncio.run(build(["A", "B"], gateway=gateway, store=store).run_scan())
    assert gateway.breadths == [MarketBreadth(advancing=2, declining=0, unchanged=0)]
    assert result.mood.sentiment == "bullish"
    assert result.summary()["market_mood"] == "bullish"
    assert MarketMoodStore(store).load().summary == "Banks lead a broad rally."


def test_market_mood_failure_does_not_fail_scan():
    store = MemoryStore()
    result = asyncio.run(build(["A"], gateway=FakeGateway(mood_fails=True), store=store).run_scan())
    assert result.ok
    assert result.mood is None
    assert MarketMoodStore(store).load() is None


def test_market_mood_can_be_disabled():
    gateway = FakeGateway()
    asyncio.run(build(["A"], gateway=gateway, market_mood=False).run_scan())
    assert gateway.breadths == []
