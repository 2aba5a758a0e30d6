"""
Helper utilities to bootstrap the adapter registry with default classifiers.
"""

from __future__ import annotations

from brokers.base_client import SessionContext
from models.adapters.deepseek import DeepSeekAdapter
from models.adapters.gemini import GeminiAdapter
from models.registry import AdapterRegistry

try:  # pragma: no cover - config is optional for tests
    from config import MODEL_DEFAULTS
except ImportError:  # pragma: no cover
    MODEL_DEFAULTS = {}


def build_default_registry(session: SessionContext | None = None) -> AdapterRegistry:
    """Return registry pre-populated with the enabled Gemini and DeepSeek adapters."""
    ai_key = session.ai_api_key if session is not None else None
    registry = AdapterRegistry()
    gemini_meta = MODEL_DEFAULTS.get("gemini-v1", {})
    if gemini_meta.get("enabled", True):
        registry.register(
            GeminiAdapter(
                model=gemini_meta.get("remote_model", "gemini-3-pro-preview"),
                api_key=ai_key,
                offline=gemini_meta.get("offline", False),
                grounded=gemini_meta.get("grounded", True),
            )
        )
    deepseek_meta = MODEL_DEFAULTS.get("deepseek-v1", {})
    if deepseek_meta.get("enabled", True):
        registry.register(
            DeepSeekAdapter(
                model=deepseek_meta.get("remote_model", "deepseek-chat"),
                offline=deepseek_meta.get("offline", False),
            )
        )
    return registry
