"""
Application-wide dependency providers for the web service.

The functions declared here are meant to be used with FastAPI's dependency
injection framework while keeping instantiation logic in one place.
"""

from __future__ import annotations

from functools import lru_cache

from brokers.angelone.client import AngelOneClient
from brokers.base_client import SessionContext
from scanner.pipeline import ScanOrchestrator
from scanner.settings import ScanSettings
from services.storage.kv_store import JsonFileStore, KeyValueStore

try:  # pragma: no cover - config is optional for tests
    from config import SETTINGS_STORE_PATH, SIGNAL_STORE_PATH
except ImportError:  # pragma: no cover
    SIGNAL_STORE_PATH = "data/state/signal_store.json"
    SETTINGS_STORE_PATH = "data/settings_store.json"


@lru_cache(maxsize=1)
def get_session() -> SessionContext:
    """Session credentials are read once from the environment at startup."""
    return SessionContext.from_env()


@lru_cache(maxsize=1)
def get_signal_kv_store() -> KeyValueStore:
    return JsonFileStore(SIGNAL_STORE_PATH)


@lru_cache(maxsize=1)
def get_settings_kv_store() -> KeyValueStore:
    return JsonFileStore(SETTINGS_STORE_PATH)


@lru_cache(maxsize=1)
def get_scan_settings() -> ScanSettings:
    return ScanSettings.from_config(store=get_settings_kv_store())


@lru_cache(maxsize=1)
def get_broker_client() -> AngelOneClient:
    return AngelOneClient(get_session(), timeout=get_scan_settings().request_timeout)


@lru_cache(maxsize=1)
def get_orchestrator() -> ScanOrchestrator:
    """Provide the single orchestrator so the re-entrancy guard is process-wide."""
    return ScanOrchestrator.from_session(
        get_session(),
        store=get_signal_kv_store(),
        settings=get_scan_settings(),
        broker=get_broker_client(),
    )
