import asyncio
import json

import httpx
import pytest

from brokers.angelone.client import (
    CANDLE_PATH,
    LTP_PATH,
    SEARCH_SCRIP_PATH,
    AngelOneClient,
    AngelOneClientError,
)
from brokers.base_client import BrokerDataService, NotAuthenticatedError, SessionContext

SESSION = SessionContext(token="jwt-token", api_key="smart-key")


def _client(handler, session=SESSION):
    return AngelOneClient(
        session,
        base_url="https://broker.test",
        scrip_master_url="https://files.test/master.json",
        transport=httpx.MockTransport(handler),
    )


def _run(client, call):
    async def scenario():
        try:
            return await call(client)
        finally:
            await client.aclose()

    return asyncio.run(scenario())


def test_client_error_payload():
    """Ensure the error payload is stored in the exception."""
    error = AngelOneClientError("test error", payload={"errorcode": "AG8001"})
    assert error.payload.get("errorcode") == "AG8001"


def test_client_satisfies_broker_protocol():
    client = _client(lambda request: httpx.Response(200))
    assert isinstance(client, BrokerDataService)
    asyncio.run(client.aclose())


def test_search_scrip_sends_session_headers():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"status": True, "data": [{"tradingsymbol": "SBIN-EQ", "symboltoken": "3045"}, "junk"]},
        )

    result = _run(_client(handler), lambda c: c.search_scrip("SBIN-EQ", "NSE"))
    assert result == [{"tradingsymbol": "SBIN-EQ", "symboltoken": "3045"}]
    assert seen["path"] == SEARCH_SCRIP_PATH
    assert seen["headers"]["Authorization"] == "Bearer jwt-token"
    assert seen["headers"]["X-PrivateKey"] == "smart-key"
    assert seen["body"] == {"exchange": "NSE", "searchscrip": "SBIN-EQ"}


def test_status_false_raises_client_error():
    def handler(request):
        return httpx.Response(200, json={"status": False, "errorcode": "AG8001", "message": "Invalid Token"})

    with pytest.raises(AngelOneClientError) as excinfo:
        _run(_client(handler), lambda c: c.get_ltp("SBIN-EQ", "3045", "NSE"))
    assert "AG8001" in str(excinfo.value)
    assert excinfo.value.payload["message"] == "Invalid Token"


def test_empty_body_raises_client_error():
    with pytest.raises(AngelOneClientError):
        _run(_client(lambda request: httpx.Response(200)), lambda c: c.search_scrip("X", "NSE"))


def test_http_error_status_propagates():
    with pytest.raises(httpx.HTTPStatusError):
        _run(_client(lambda request: httpx.Response(502)), lambda c: c.search_scrip("X", "NSE"))


def test_anonymous_calls_are_refused_before_sending():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"status": True})

    with pytest.raises(NotAuthenticatedError):
        _run(_client(handler, SessionContext(token="jwt")), lambda c: c.get_ltp("X", "1", "NSE"))
    assert calls == []


def test_get_ltp_parses_price():
    def handler(request):
        assert request.url.path == LTP_PATH
        return httpx.Response(200, json={"status": True, "data": {"ltp": "812.35"}})

    assert _run(_client(handler), lambda c: c.get_ltp("SBIN-EQ", "3045", "NSE")) == 812.35


def test_get_candles_posts_window():
    seen = {}
    rows = [["2024-05-10T09:15:00+05:30", 1, 2, 0.5, 1.5, 100]]

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": True, "data": rows})

    result = _run(
        _client(handler),
        lambda c: c.get_candles("3045", "ONE_DAY", "2024-01-01 09:15", "2024-05-10 15:30", "NSE"),
    )
    assert result == rows
    assert seen["path"] == CANDLE_PATH
    assert seen["body"] == {
        "exchange": "NSE",
        "symboltoken": "3045",
        "interval": "ONE_DAY",
        "fromdate": "2024-01-01 09:15",
        "todate": "2024-05-10 15:30",
    }


def test_get_candles_without_data_returns_empty_list():
    handler = lambda request: httpx.Response(200, json={"status": True, "data": None})  # noqa: E731
    assert _run(_client(handler), lambda c: c.get_candles("1", "ONE_DAY", "a", "b", "NSE")) == []


def test_scrip_master_must_be_a_list():
    def handler(request):
        assert request.url.host == "files.test"
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(AngelOneClientError):
        _run(_client(handler, SessionContext()), lambda c: c.fetch_scrip_master())


def test_scrip_master_does_not_need_session():
    master = [{"symbol": "SBIN-EQ", "token": "3045", "exch_seg": "NSE"}]
    handler = lambda request: httpx.Response(200, json=master)  # noqa: E731
    assert _run(_client(handler, SessionContext()), lambda c: c.fetch_scrip_master()) == master


def test_health_check_reports_offline_on_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    assert _run(_client(handler), lambda c: c.check_health("http://bridge.test/api/health")) is False


def test_health_check_online():
    handler = lambda request: httpx.Response(200, json={"status": "ok"})  # noqa: E731
    assert _run(_client(handler), lambda c: c.check_health("http://bridge.test/api/health")) is True
