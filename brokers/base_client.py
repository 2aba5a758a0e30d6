"""
Session context and the broker surface consumed by the scanner.

Concrete adapters (e.g. Angel One SmartAPI) implement `BrokerDataService`
while respecting the session passed in at construction time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


class NotAuthenticatedError(RuntimeError):
    """Raised when a broker call is attempted without a token and API key."""


@dataclass(slots=True)
class SessionContext:
    """Typed container for the broker session and AI credentials."""

    token: str | None = None
    api_key: str | None = None
    ai_api_key: str | None = None
    client_code: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token) and bool(self.api_key)

    def require(self) -> None:
        if not self.is_authenticated:
            raise NotAuthenticatedError("Broker session missing token or API key")

    @staticmethod
    def from_env() -> "SessionContext":
        return SessionContext(
            token=os.getenv("ANGEL_JWT") or None,
            api_key=os.getenv("ANGEL_API_KEY") or None,
            ai_api_key=os.getenv("GEMINI_API_KEY") or None,
            client_code=os.getenv("ANGEL_CLIENT_CODE") or None,
        )


@runtime_checkable
class BrokerDataService(Protocol):
    """Protocol describing the broker operations the scan pipeline needs."""

    name: str

    async def search_scrip(self, symbol: str, exchange: str) -> list[dict]:
        """Return candidate instruments matching `symbol` on `exchange`."""

    async def fetch_scrip_master(self) -> list[dict]:
        """Return the full instrument master list."""

    async def get_ltp(self, symbol: str, token: str, exchange: str) -> float:
        """Return the last traded price (0 when unavailable)."""

    async def get_candles(
        self,
        token: str,
        interval: str,
        from_date: str,
        to_date: str,
        exchange: str,
    ) -> list[list[Any]]:
        """Return raw candle rows ``[timestamp, open, high, low, close, volume]``."""

    async def aclose(self) -> None:
        """Release network resources."""
