"""
Rolling signal buffer merge and ranking rules.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, List, Sequence

from models.schemas import TradeSignal


def rank_signals(signals: Iterable[TradeSignal], top_n: int) -> List[TradeSignal]:
    """Sort by confidence (stable, so ties keep batch order) and keep the top N."""
    ordered = sorted(signals, key=lambda s: s.confidence_score, reverse=True)
    return ordered[: max(0, top_n)]


def merge_signals(
    previous: Sequence[TradeSignal],
    fresh: Sequence[TradeSignal],
    *,
    cap: int,
) -> List[TradeSignal]:
    """
    Combine freshly produced signals with the prior buffer.

    Identity is (instrument, timeframe): a fresh signal replaces the prior
    entry with the same key but inherits its user flags (``taken``,
    ``feedback``). The result is ordered newest first and truncated to
    `cap`, evicting the oldest entries.
    """
    prior_by_key = {signal.key: signal for signal in previous}
    fresh_keys = set()
    merged: List[TradeSignal] = []
    for signal in fresh:
        if signal.key in fresh_keys:
            continue
        fresh_keys.add(signal.key)
        prior = prior_by_key.get(signal.key)
        if prior is not None:
            signal = replace(
                signal,
                taken=signal.taken or prior.taken,
                feedback=signal.feedback or prior.feedback,
            )
        merged.append(signal)
    merged.extend(s for s in previous if s.key not in fresh_keys)

    # Stable: among equal timestamps fresh entries (listed first) win.
    merged.sort(key=lambda s: s.timestamp, reverse=True)
    return merged[: max(0, cap)]
