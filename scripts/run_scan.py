"""
CLI wrapper for the scan orchestrator.

Runs a single scan cycle by default; pass ``--interval`` to keep scanning on a
fixed cadence. Credentials come from ``ANGEL_JWT`` / ``ANGEL_API_KEY`` and
``GEMINI_API_KEY``; without the AI key the scan is refused unless the model is
configured with ``"offline": True`` in ``MODEL_DEFAULTS``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

# Ensure repository root is importable when executed as a script.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

try:
    from config import SIGNAL_STORE_PATH, TARGET_SYMBOLS
except ImportError:
    TARGET_SYMBOLS = []
    SIGNAL_STORE_PATH = "data/state/signal_store.json"

from brokers.base_client import SessionContext
from models.schemas import TradeSignal
from scanner.pipeline import ScanOrchestrator, ScanResult
from scanner.settings import ScanSettings
from services.market_hours import market_status
from services.storage.kv_store import JsonFileStore, MemoryStore


def _print_signal(signal: TradeSignal) -> None:
    print(
        f"[{signal.instrument_symbol}] {signal.timeframe} {signal.direction.upper()} "
        f"(confidence={signal.confidence_score}, {signal.confidence_level})"
    )
    print(
        f"Entry {signal.entry_price:.2f} | Stop {signal.stop_loss:.2f} | Target {signal.target:.2f}"
        f" | R:R {signal.risk_reward_ratio:.2f}"
    )
    print(f"Reason: {signal.reason}")
    print("-" * 60)


def _print_result(result: ScanResult) -> None:
    if not result.ok:
        print(f"Scan failed: {result.error}")
        return
    for outcome in result.outcomes:
        if outcome.status != "signal":
            suffix = f" ({outcome.detail})" if outcome.detail else ""
            print(f"  {outcome.symbol} {outcome.timeframe or '-'}: {outcome.status}{suffix}")
    print(f"{len(result.fresh)} new signals, {len(result.signals)} in buffer")
    for signal in result.fresh:
        _print_signal(signal)


async def async_main(args: argparse.Namespace) -> int:
    session = SessionContext.from_env()
    store = MemoryStore() if args.store == ":memory:" else JsonFileStore(args.store)
    overrides: dict = {"discover_remote": args.discover}
    if args.symbol:
        overrides["universe"] = [s.strip().upper() for s in args.symbol]
        overrides["batch_size"] = len(overrides["universe"])
        overrides["min_resolved"] = min(len(overrides["universe"]), ScanSettings().min_resolved)
    if args.model:
        overrides["model_id"] = args.model
    if args.strategy:
        overrides["strategy"] = args.strategy
    settings = ScanSettings.from_config(overrides)
    orchestrator = ScanOrchestrator.from_session(session, store=store, settings=settings, progress=print)

    exit_code = 0
    try:
        while True:
            status = market_status()
            print(f"=== Scan started at {datetime.now(timezone.utc).isoformat()} (market {status.reason}) ===")
            result = await orchestrator.run_scan()
            if result is not None:
                _print_result(result)
                exit_code = 0 if result.ok else 1
            if args.interval <= 0:
                break
            await asyncio.sleep(args.interval)
    except asyncio.CancelledError:
        print("Scan loop cancelled, shutting down...")
    finally:
        await orchestrator.aclose()
    return exit_code


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scan NSE instruments and print trade signals.")
    parser.add_argument(
        "--symbol",
        action="append",
        default=None,
        help=(
            "Trading symbol, e.g. RELIANCE-EQ (can be provided multiple times). "
            f"Defaults to config.TARGET_SYMBOLS ({len(TARGET_SYMBOLS)} symbols)."
        ),
    )
    parser.add_argument(
        "--discover",
        action="store_true",
        help="Sample candidates from the public scrip master instead of the curated universe.",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=0,
        help="Seconds between scans; 0 runs a single cycle (default).",
    )
    parser.add_argument(
        "--store",
        default=SIGNAL_STORE_PATH,
        help=f"Signal buffer JSON file, or :memory: (default {SIGNAL_STORE_PATH}).",
    )
    parser.add_argument("--model", default=None, help="Classifier model id, e.g. gemini-v1 or deepseek-v1.")
    parser.add_argument(
        "--strategy",
        choices=("single-pass", "hedge-fund"),
        default=None,
        help="Classification strategy; also selects the default confidence floor.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable INFO logging.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s | %(levelname)s %(name)s | %(message)s",
    )
    sys.exit(asyncio.run(async_main(args)))


if __name__ == "__main__":
    main()
