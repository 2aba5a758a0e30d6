from scanner.buffer import merge_signals, rank_signals


def test_rank_keeps_top_n_by_confidence(signal_factory):
    signals = [signal_factory(f"S{i}", confidence=c) for i, c in enumerate([92, 61, 78, 55, 88])]
    ranked = rank_signals(signals, 3)
    assert [s.confidence_score for s in ranked] == [92, 88, 78]


def test_rank_ties_keep_batch_order(signal_factory):
    signals = [signal_factory("A", confidence=70), signal_factory("B", confidence=70), signal_factory("C", confidence=90)]
    assert [s.instrument_symbol for s in rank_signals(signals, 3)] == ["C", "A", "B"]


def test_rank_with_zero_or_fewer_inputs(signal_factory):
    assert rank_signals([signal_factory()], 0) == []
    assert len(rank_signals([signal_factory()], 5)) == 1


def test_merge_replaces_same_key_and_keeps_flags(signal_factory):
    prior = signal_factory("INFY-EQ", "swing", minutes=0, taken=True, feedback="worked well")
    fresh = signal_factory("INFY-EQ", "swing", minutes=30, confidence=85)
    merged = merge_signals([prior], [fresh], cap=10)
    assert len(merged) == 1
    assert merged[0].id == fresh.id
    assert merged[0].confidence_score == 85
    assert merged[0].taken is True
    assert merged[0].feedback == "worked well"
    assert fresh.taken is False


def test_merge_same_instrument_different_timeframe_coexist(signal_factory):
    prior = signal_factory("ITC-EQ", "intraday", minutes=0)
    fresh = signal_factory("ITC-EQ", "swing", minutes=10)
    merged = merge_signals([prior], [fresh], cap=10)
    assert {s.key for s in merged} == {("ITC-EQ", "intraday"), ("ITC-EQ", "swing")}


def test_merge_orders_newest_first_and_caps(signal_factory):
    previous = [signal_factory(f"OLD{i}", minutes=i) for i in range(5)]
    fresh = [signal_factory("NEW", minutes=100)]
    merged = merge_signals(previous, fresh, cap=3)
    assert [s.instrument_symbol for s in merged] == ["NEW", "OLD4", "OLD3"]


def test_merge_equal_timestamps_prefers_fresh(signal_factory):
    previous = [signal_factory("OLD", minutes=5)]
    fresh = [signal_factory("NEW", minutes=5)]
    merged = merge_signals(previous, fresh, cap=1)
    assert merged[0].instrument_symbol == "NEW"


def test_merge_drops_duplicate_fresh_keys(signal_factory):
    first = signal_factory("SBIN-EQ", confidence=90, minutes=1)
    second = signal_factory("SBIN-EQ", confidence=70, minutes=2)
    merged = merge_signals([], [first, second], cap=10)
    assert [s.confidence_score for s in merged] == [90]


def test_merge_with_nothing_fresh_keeps_prior(signal_factory):
    previous = [signal_factory("A", minutes=2), signal_factory("B", minutes=1)]
    assert merge_signals(previous, [], cap=10) == previous
