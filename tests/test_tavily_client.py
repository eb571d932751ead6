import json

import pytest
import respx
from httpx import Response

from analyst_chat.tavily import TavilyClient, is_news_query, web_search


@pytest.mark.asyncio
async def test_tavily_search_payload_and_headers():
    client = TavilyClient("test-key")
    captured = {}
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            def handler(request):
                captured["json"] = json.loads(request.content.decode("utf-8"))
                captured["headers"] = request.headers
                return Response(200, json={"results": []})

            respx_mock.post("https://api.tavily.com/search").mock(side_effect=handler)
            resp = await client.search("hello", max_results=3, topic="news")
            assert resp == {"results": []}
            assert captured["json"]["api_key"] == "test-key"
            assert captured["json"]["topic"] == "news"
            assert captured["json"]["max_results"] == 3
            assert captured["headers"]["Authorization"] == "Bearer test-key"
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_tavily_search_handles_http_error():
    client = TavilyClient("test-key")
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.post("https://api.tavily.com/search").mock(return_value=Response(500, json={"error": "boom"}))
            resp = await client.search("hello")
            assert resp["error"] == "http_status"
            assert resp["status_code"] == 500
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_web_search_without_hits_returns_placeholder():
    client = TavilyClient("test-key")
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.post("https://api.tavily.com/search").mock(return_value=Response(200, json={"results": []}))
            result = await web_search(client, "obscure topic")
            assert result["results"][0]["title"] == "No results found"
            assert "error" not in result
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_missing_key_skips_network():
    client = TavilyClient(None)
    try:
        assert await client.search("hello") == {"error": "missing_api_key"}
    finally:
        await client.close()


def test_news_queries_detected():
    assert is_news_query("What happened today in markets?")
    assert is_news_query("Latest GPU releases")
    assert not is_news_query("How do I sort a list in Python")
