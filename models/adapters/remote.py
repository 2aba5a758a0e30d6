"""
HTTP-backed adapter base with an opt-in offline heuristic.
"""

from __future__ import annotations

import asyncio
import json
import os
from abc import abstractmethod
from typing import Any, Dict, Literal

import httpx

from models.adapters.base import BaseModelAdapter
from models.schemas import ClassificationRequest, MarketBreadth
from models.utils import deterministic_decision, deterministic_mood

RequestKind = Literal["trade", "mood"]


class RemoteModelAdapter(BaseModelAdapter):
    """
    Shared plumbing for providers reached over a JSON REST API.

    Without an API key the adapter refuses to answer unless it was built with
    ``offline=True``, in which case `deterministic_decision` stands in for the
    provider. The HTTP client is created lazily and released by `aclose`.
    """

    provider: str = "remote"
    api_key_env: str = ""

    def __init__(
        self,
        model_id: str,
        *,
        model: str,
        temperature: float = 0.2,
        api_key: str | None = None,
        offline: bool = False,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(model_id=model_id, temperature=temperature)
        self.remote_model = model
        self.api_key = api_key or (os.getenv(self.api_key_env) if self.api_key_env else None)
        self.offline = offline
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def available(self) -> bool:
        return bool(self.api_key) or self.offline

    async def _invoke_model(
        self, prompt: str, request: ClassificationRequest
    ) -> Dict[str, Any]:
        if not self.api_key:
            self._ensure_offline_allowed()
            await asyncio.sleep(0)
            return deterministic_decision(request, source=f"{self.provider}-offline")
        return await self._call(prompt, "trade")

    async def _invoke_mood(self, prompt: str, breadth: MarketBreadth) -> Dict[str, Any]:
        if not self.api_key:
            self._ensure_offline_allowed()
            await asyncio.sleep(0)
            return deterministic_mood(breadth)
        return await self._call(prompt, "mood")

    async def _call(self, prompt: str, kind: RequestKind) -> Dict[str, Any]:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        raw = await self._request_json(self._client, prompt, kind=kind)
        raw["provider"] = self.provider
        raw["model"] = self.remote_model
        return raw

    def _ensure_offline_allowed(self) -> None:
        if not self.offline:
            raise RuntimeError(
                f"{self.provider} API key missing ({self.api_key_env}) and offline mode is disabled"
            )

    @abstractmethod
    async def _request_json(
        self, client: httpx.AsyncClient, prompt: str, *, kind: RequestKind
    ) -> Dict[str, Any]:
        """POST the prompt and return the decoded JSON object."""

    def _decode_card(self, text: Any) -> Dict[str, Any]:
        try:
            raw = json.loads(text)
        except (TypeError, json.JSONDecodeError) as exc:
            raise RuntimeError(f"{self.provider} response parse error: {exc}") from exc
        if not isinstance(raw, dict):
            raise RuntimeError(f"{self.provider} response parse error: payload is not an object")
        return raw

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
