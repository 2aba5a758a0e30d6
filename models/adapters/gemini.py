"""
Gemini adapter calling the Generative Language `generateContent` endpoint
with a structured JSON response schema and Google Search grounding.
"""

from __future__ import annotations

from typing import Any, Dict, List

import httpx

from models.adapters.base import MOOD_SCHEMA, RESPONSE_SCHEMA
from models.adapters.remote import RemoteModelAdapter, RequestKind

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

SYSTEM_PROMPT = (
    "You are a disciplined Indian equities analyst classifying trade setups "
    "for NSE stocks. Respond strictly with JSON matching the response schema. "
    "Use NO TRADE whenever the setup is unclear; never invent prices far "
    "from the supplied last close."
)

MOOD_SYSTEM_PROMPT = (
    "You are a market strategist summarising the Indian equity session for "
    "traders. Respond strictly with JSON matching the response schema."
)

_SCHEMAS = {
    "trade": (SYSTEM_PROMPT, RESPONSE_SCHEMA),
    "mood": (MOOD_SYSTEM_PROMPT, MOOD_SCHEMA),
}


class GeminiAdapter(RemoteModelAdapter):
    provider = "gemini"
    api_key_env = "GEMINI_API_KEY"

    def __init__(
        self,
        *,
        model: str = "gemini-3-pro-preview",
        temperature: float = 0.2,
        api_key: str | None = None,
        offline: bool = False,
        grounded: bool = True,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            "gemini-v1",
            model=model,
            temperature=temperature,
            api_key=api_key,
            offline=offline,
            timeout=timeout,
            transport=transport,
        )
        self.grounded = grounded

    async def _request_json(
        self, client: httpx.AsyncClient, prompt: str, *, kind: RequestKind
    ) -> Dict[str, Any]:
        system, schema = _SCHEMAS[kind]
        payload: Dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "responseMimeType": "application/json",
                "responseSchema": schema,
            },
        }
        if self.grounded:
            payload["tools"] = [{"googleSearch": {}}]
        response = await client.post(
            GEMINI_ENDPOINT.format(model=self.remote_model),
            params={"key": self.api_key},
            json=payload,
        )
        response.raise_for_status()
        data = response.json()
        try:
            candidate = data["candidates"][0]
            text = candidate["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise RuntimeError(f"gemini response parse error: missing candidate text ({exc})") from exc
        card = self._decode_card(text)
        card["sources"] = _grounding_sources(candidate)
        card["usage"] = data.get("usageMetadata", {})
        return card


def _grounding_sources(candidate: Dict[str, Any]) -> List[Dict[str, Any]]:
    metadata = candidate.get("groundingMetadata") or {}
    sources = []
    for chunk in metadata.get("groundingChunks") or []:
        web = chunk.get("web") if isinstance(chunk, dict) else None
        if isinstance(web, dict) and web.get("uri"):
            sources.append(
                {"title": web.get("title"), "uri": web["uri"], "snippet": web.get("snippet")}
            )
    return sources
