"""
HTTP route handlers for the FastAPI web application.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from brokers.angelone.client import AngelOneClient
from models.schemas import Instrument, Timeframe
from scanner.pipeline import ScanOrchestrator
from services.market_hours import market_status, now_ist
from services.webapp import prompt_templates
from services.webapp.dependencies import get_broker_client, get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


class TakenPayload(BaseModel):
    taken: bool = Field(True, description="Whether the user acted on the signal.")


class FeedbackPayload(BaseModel):
    feedback: str = Field(..., min_length=1, max_length=2000, description="Free-form user note.")


class PromptPayload(BaseModel):
    template: str = Field(..., description="Template text using {symbol}-style placeholders; blank restores the default.")


@router.get("/health", summary="Service health probe")
def health_check() -> dict:
    """Return a static payload for uptime checks."""
    return {"status": "ok"}


@router.get("/api/broker/health", summary="Probe the broker bridge")
async def broker_health(client: AngelOneClient = Depends(get_broker_client)) -> dict:
    online = await client.check_health()
    return {"status": "online" if online else "offline"}


@router.get("/api/market/status", summary="NSE cash session status")
def market_status_api() -> dict:
    current = market_status()
    return {
        "is_open": current.is_open,
        "reason": current.reason,
        "checked_at": now_ist().isoformat(),
    }


@router.get("/api/market/mood", summary="Latest AI market mood reading")
def market_mood(orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> dict:
    mood = orchestrator.mood_store.load() if orchestrator.mood_store is not None else None
    if mood is None:
        raise HTTPException(status_code=404, detail="No market mood recorded yet")
    return mood.to_dict()


@router.get("/api/signals", summary="Current rolling signal buffer")
def list_signals(orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> dict:
    store = orchestrator.signal_store
    return {
        "signals": [signal.to_dict() for signal in store.load()],
        "last_update": store.last_update(),
    }


@router.post("/api/scan", summary="Run one scan cycle")
async def trigger_scan(orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> dict:
    if orchestrator.is_scanning:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Scan already in progress")
    if not orchestrator.session.is_authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Broker session not authenticated")
    if not orchestrator.gateway.available:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Classifier API key missing")
    result = await orchestrator.run_scan()
    if result is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Scan already in progress")
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result.error or "Scan failed")
    return {
        **result.summary(),
        "signals": [signal.to_dict() for signal in result.signals],
    }


@router.get("/api/scan/status", summary="Scanner state and last cycle summary")
def scan_status(orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> dict:
    last = orchestrator.last_result
    return {
        "scanning": orchestrator.is_scanning,
        "state": orchestrator.state.value,
        "progress": orchestrator.last_progress,
        "last_result": last.summary() if last else None,
    }


@router.get("/api/price/{symbol}", summary="Last traded price for a symbol")
async def last_price(symbol: str, orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> dict:
    if not orchestrator.session.is_authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Broker session not authenticated")
    symbol = symbol.strip().upper()
    token = await orchestrator.resolver.resolve(symbol)
    if token is None:
        raise HTTPException(status_code=404, detail=f"Unknown symbol {symbol}")
    instrument = Instrument(symbol=symbol, exchange=orchestrator.resolver.exchange, resolved_id=token)
    price = await orchestrator.fetcher.get_last_price(instrument)
    return {
        "symbol": symbol,
        "token": token,
        "price": price if price > 0 else None,
        "fetched_at": datetime.now(tz=timezone.utc).isoformat(),
    }


@router.post("/api/signals/{signal_id}/taken", summary="Mark a signal as taken")
def mark_signal_taken(
    signal_id: str,
    payload: TakenPayload | None = None,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> dict:
    taken = payload.taken if payload is not None else True
    signal = orchestrator.signal_store.mark_taken(signal_id, taken)
    if signal is None:
        raise HTTPException(status_code=404, detail="Signal not found")
    return signal.to_dict()


@router.post("/api/signals/{signal_id}/feedback", summary="Attach user feedback to a signal")
def submit_feedback(
    signal_id: str,
    payload: FeedbackPayload,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> dict:
    signal = orchestrator.signal_store.record_feedback(signal_id, payload.feedback)
    if signal is None:
        raise HTTPException(status_code=404, detail="Signal not found")
    if orchestrator.feedback_log is not None and signal.feedback:
        orchestrator.feedback_log.append(signal.instrument_symbol, signal.feedback)
    logger.info("Recorded feedback for %s (%s)", signal.instrument_symbol, signal.id)
    return signal.to_dict()


@router.get("/api/prompts/{timeframe}", summary="Current classifier prompt template")
def get_prompt(timeframe: Timeframe) -> dict:
    return {"timeframe": timeframe, "template": prompt_templates.get_prompt_template(timeframe)}


@router.put("/api/prompts/{timeframe}", summary="Replace the classifier prompt template")
def update_prompt(timeframe: Timeframe, payload: PromptPayload) -> dict:
    saved = prompt_templates.save_prompt_template(timeframe, payload.template)
    logger.info("Updated %s prompt template (%d chars)", timeframe, len(saved))
    return {"timeframe": timeframe, "template": saved}
