"""
DeepSeek adapter using the OpenAI-compatible chat completions API in JSON mode.
"""

from __future__ import annotations

from typing import Any, Dict

import httpx

from models.adapters.base import MOOD_FIELDS, REQUIRED_FIELDS
from models.adapters.remote import RemoteModelAdapter, RequestKind

DEEPSEEK_ENDPOINT = "https://api.deepseek.com/v1/chat/completions"


class DeepSeekAdapter(RemoteModelAdapter):
    provider = "deepseek"
    api_key_env = "DEEPSEEK_API_KEY"

    def __init__(
        self,
        *,
        model: str = "deepseek-chat",
        temperature: float = 0.2,
        api_key: str | None = None,
        offline: bool = False,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            "deepseek-v1",
            model=model,
            temperature=temperature,
            api_key=api_key,
            offline=offline,
            timeout=timeout,
            transport=transport,
        )

    async def _request_json(
        self, client: httpx.AsyncClient, prompt: str, *, kind: RequestKind
    ) -> Dict[str, Any]:
        response = await client.post(
            DEEPSEEK_ENDPOINT,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": self.remote_model,
                "temperature": self.temperature,
                "messages": [
                    {"role": "system", "content": _system_prompt(kind)},
                    {"role": "user", "content": prompt},
                ],
                "response_format": {"type": "json_object"},
            },
        )
        response.raise_for_status()
        data = response.json()
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise RuntimeError(f"deepseek response parse error: missing message ({exc})") from exc
        card = self._decode_card(content)
        card["usage"] = data.get("usage", {})
        return card


def _system_prompt(kind: RequestKind) -> str:
    # JSON mode requires the word "json" and the expected keys in the prompt.
    if kind == "mood":
        return (
            "You summarise the Indian equity session for traders. Reply with a "
            f"json object containing the keys {', '.join(MOOD_FIELDS)}. "
            "`sentiment` is one of Bullish, Bearish, Choppy."
        )
    return (
        "You classify NSE equity trade setups for an advisory dashboard. "
        "Reply with a json object containing the keys "
        f"{', '.join(REQUIRED_FIELDS)}, plus optional target2, riskRewardRatio, "
        "riskPercentage, timeline and predictionSummary. `signal` is one of "
        "BUY, SELL, NO TRADE and `confidenceScore` is an integer 0-100."
    )
