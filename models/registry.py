"""
Registry mapping model identifiers to classifier adapters.
"""

from __future__ import annotations

from typing import Dict, List

from models.adapters.base import BaseModelAdapter


class AdapterRegistry:
    def __init__(self) -> None:
        self._adapters: Dict[str, BaseModelAdapter] = {}

    def register(self, adapter: BaseModelAdapter, *, overwrite: bool = False) -> None:
        if adapter.model_id in self._adapters and not overwrite:
            raise KeyError(f"Adapter already registered for model_id '{adapter.model_id}'")
        self._adapters[adapter.model_id] = adapter

    def get(self, model_id: str) -> BaseModelAdapter:
        adapter = self._adapters.get(model_id)
        if adapter is None:
            known = ", ".join(sorted(self._adapters)) or "none"
            raise KeyError(f"No classifier registered for '{model_id}' (available: {known})")
        return adapter

    def model_ids(self) -> List[str]:
        return sorted(self._adapters)

    async def aclose(self) -> None:
        """Release every adapter's HTTP resources."""
        for adapter in self._adapters.values():
            await adapter.aclose()
