import pytest
import respx
from httpx import Response

from analyst_chat.finance import ALPHA_VANTAGE_URL, AlphaVantageClient, get_finance
from analyst_chat.weather import OPEN_METEO_URL, WeatherClient


@pytest.mark.asyncio
async def test_quote_is_normalized():
    client = AlphaVantageClient("av-key")
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            route = respx_mock.get(ALPHA_VANTAGE_URL).mock(
                return_value=Response(
                    200,
                    json={
                        "Global Quote": {
                            "01. symbol": "AAPL",
                            "05. price": "190.10",
                            "06. volume": "1000",
                            "07. latest trading day": "2024-05-01",
                            "09. change": "-1.2",
                            "10. change percent": "-0.63%",
                        }
                    },
                )
            )
            result = await get_finance(client, "AAPL", "quote")
            assert route.calls.last.request.url.params["function"] == "GLOBAL_QUOTE"
            assert route.calls.last.request.url.params["apikey"] == "av-key"
    finally:
        await client.close()
    assert result["price"] == 190.10
    assert result["volume"] == 1000


@pytest.mark.asyncio
async def test_news_keeps_first_five_items():
    client = AlphaVantageClient("av-key")
    feed = [{"title": f"t{i}", "summary": "s", "url": "u", "time_published": "x", "source": "y"} for i in range(8)]
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.get(ALPHA_VANTAGE_URL).mock(return_value=Response(200, json={"feed": feed}))
            result = await get_finance(client, "MSFT", "news")
    finally:
        await client.close()
    assert [item["title"] for item in result["news"]] == ["t0", "t1", "t2", "t3", "t4"]


@pytest.mark.asyncio
async def test_upstream_failures_become_structured_errors():
    client = AlphaVantageClient("av-key")
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.get(ALPHA_VANTAGE_URL).mock(return_value=Response(200, json={"Error Message": "Invalid API call"}))
            result = await get_finance(client, "NOPE", "overview")
    finally:
        await client.close()
    assert result == {"error": "Failed to fetch financial data", "message": "Invalid API call"}


@pytest.mark.asyncio
async def test_missing_api_key_is_reported_without_network():
    client = AlphaVantageClient(None)
    try:
        result = await get_finance(client, "AAPL", "quote")
    finally:
        await client.close()
    assert result["error"] == "Failed to fetch financial data"


@pytest.mark.asyncio
async def test_weather_http_error_is_structured():
    client = WeatherClient()
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.get(OPEN_METEO_URL).mock(return_value=Response(502))
            result = await client.forecast(1.0, 2.0)
    finally:
        await client.close()
    assert result["error"] == "http_status"
