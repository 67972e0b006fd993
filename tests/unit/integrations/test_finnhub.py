import httpx
import pytest
from unittest.mock import MagicMock

from ticker_sentiment.collector.errors import NetworkError, ParseError, UpstreamHttpError
from ticker_sentiment.integrations.finnhub import FinnhubClient


def make_client(handler, api_logger=None):
    transport = httpx.MockTransport(handler)
    return FinnhubClient(
        "test-token",
        api_logger=api_logger,
        client=httpx.AsyncClient(transport=transport),
    )


@pytest.mark.asyncio
async def test_search_returns_matches():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"count": 2, "result": [
            {"symbol": "TSLA", "description": "TESLA INC", "displaySymbol": "TSLA", "type": "Common Stock"},
            {"symbol": "TL0.DE", "description": "TESLA INC", "displaySymbol": "TL0.DE", "type": "Common Stock"},
        ]})

    api_logger = MagicMock()
    client = make_client(handler, api_logger)

    matches = await client.search("tesla")
    await client.close()

    assert [m.symbol for m in matches] == ["TSLA", "TL0.DE"]
    assert matches[0].display_symbol == "TSLA"
    assert seen["params"] == {"q": "tesla", "exchange": "US", "token": "test-token"}
    entry = api_logger.log.call_args.args[0]
    assert entry.service == "finnhub"
    assert entry.success is True
    assert "test-token" not in entry.request_summary


@pytest.mark.asyncio
async def test_search_http_error():
    client = make_client(lambda request: httpx.Response(429, json={"error": "limit"}))

    with pytest.raises(UpstreamHttpError) as excinfo:
        await client.search("tesla")

    assert excinfo.value.status == 429


@pytest.mark.asyncio
async def test_search_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)

    with pytest.raises(NetworkError):
        await client.search("tesla")


@pytest.mark.asyncio
async def test_search_bad_payload():
    client = make_client(lambda request: httpx.Response(200, json=["not", "an", "object"]))

    with pytest.raises(ParseError):
        await client.search("tesla")
