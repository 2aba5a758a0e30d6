"""
Angel One SmartAPI market-data client.

Only the read-only endpoints the scanner needs are implemented: scrip search,
the public scrip master, last traded price, and historical candles. Every call
carries the session's bearer token and API key; anonymous calls are refused.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Optional

import httpx

from brokers.base_client import BrokerDataService, SessionContext

logger = logging.getLogger(__name__)

try:  # pragma: no cover - config is optional for tests
    from config import BROKER_BASE_URL, BROKER_HEALTH_URL, SCRIP_MASTER_URL
except ImportError:  # pragma: no cover
    BROKER_BASE_URL = "https://apiconnect.angelbroking.com"
    BROKER_HEALTH_URL = "http://localhost:8080/api/health"
    SCRIP_MASTER_URL = (
        "https://margincalculator.angelbroking.com/OpenAPI_File/files/OpenAPIScripMaster.json"
    )

SEARCH_SCRIP_PATH = "/rest/secure/angelbroking/order/v1/searchScrip"
LTP_PATH = "/rest/secure/angelbroking/order/v1/getLtpData"
CANDLE_PATH = "/rest/secure/angelbroking/historical/v1/getCandleData"

Interval = Literal["ONE_MINUTE", "FIVE_MINUTE", "FIFTEEN_MINUTE", "ONE_HOUR", "ONE_DAY"]


class AngelOneClientError(RuntimeError):
    """Raised when SmartAPI answers with ``status: false``."""

    def __init__(self, message: str, payload: Optional[dict] = None) -> None:
        super().__init__(message)
        self.payload = payload or {}


class AngelOneClient(BrokerDataService):
    """Async SmartAPI client bound to a single session."""

    name = "angelone"

    def __init__(
        self,
        session: SessionContext,
        *,
        base_url: str | None = None,
        scrip_master_url: str | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._session = session
        self._base_url = (base_url or BROKER_BASE_URL).rstrip("/")
        self._scrip_master_url = scrip_master_url or SCRIP_MASTER_URL
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # BrokerDataService API
    # ------------------------------------------------------------------
    async def search_scrip(self, symbol: str, exchange: str) -> list[dict]:
        payload = await self._post(
            SEARCH_SCRIP_PATH,
            {"exchange": exchange, "searchscrip": symbol},
        )
        data = payload.get("data") or []
        return [item for item in data if isinstance(item, dict)]

    async def fetch_scrip_master(self) -> list[dict]:
        """Download the public instrument master (no session headers needed)."""
        response = await self._client.get(self._scrip_master_url)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, list):
            raise AngelOneClientError("Scrip master payload is not a list")
        return data

    async def get_ltp(self, symbol: str, token: str, exchange: str) -> float:
        payload = await self._post(
            LTP_PATH,
            {"exchange": exchange, "tradingsymbol": symbol, "symboltoken": token},
        )
        data = payload.get("data") or {}
        try:
            return float(data.get("ltp") or 0.0)
        except (TypeError, ValueError):
            return 0.0

    async def get_candles(
        self,
        token: str,
        interval: str,
        from_date: str,
        to_date: str,
        exchange: str,
    ) -> list[list[Any]]:
        payload = await self._post(
            CANDLE_PATH,
            {
                "exchange": exchange,
                "symboltoken": token,
                "interval": interval,
                "fromdate": from_date,
                "todate": to_date,
            },
        )
        return payload.get("data") or []

    async def check_health(self, url: str | None = None) -> bool:
        """Probe the bridge health endpoint; any failure counts as offline."""
        try:
            response = await self._client.get(url or BROKER_HEALTH_URL, timeout=2.0)
        except httpx.HTTPError as exc:
            logger.debug("Broker health probe failed: %s", exc)
            return False
        return response.is_success

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        self._session.require()
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-UserType": "USER",
            "X-SourceID": "WEB",
            "X-ClientLocalIP": "127.0.0.1",
            "X-ClientPublicIP": "127.0.0.1",
            "X-MACAddress": "02:00:00:00:00:00",
            "X-PrivateKey": self._session.api_key or "",
            "Authorization": f"Bearer {self._session.token}",
        }

    async def _post(self, path: str, body: dict) -> dict:
        response = await self._client.post(path, json=body, headers=self._headers())
        response.raise_for_status()
        if not response.content:
            raise AngelOneClientError(f"Empty response from SmartAPI for {path}")
        payload = response.json()
        if not isinstance(payload, dict):
            raise AngelOneClientError(f"Unexpected SmartAPI payload for {path}")
        if payload.get("status") is False:
            raise AngelOneClientError(
                f"SmartAPI error {payload.get('errorcode')}: {payload.get('message')}",
                payload=payload,
            )
        return payload
