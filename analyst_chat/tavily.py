import re
from typing import Any, Dict, List, Optional

import httpx

TAVILY_SEARCH_URL = "https://api.tavily.com/search"
MAX_SEARCH_RESULTS = 5
NEWS_QUERY_RE = re.compile(
    r"news|latest|recent|update|today|yesterday|this week|this month|current", re.IGNORECASE
)


def is_news_query(query: str) -> bool:
    return bool(NEWS_QUERY_RE.search(query or ""))


class TavilyClient:
    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key
        self.client = httpx.AsyncClient(
            timeout=30,
            limits=httpx.Limits(max_connections=16, max_keepalive_connections=8),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def search(
        self,
        query: str,
        max_results: int = MAX_SEARCH_RESULTS,
        topic: Optional[str] = None,
        search_depth: str = "basic",
    ) -> Dict[str, Any]:
        if not self.enabled:
            return {"error": "missing_api_key"}
        payload: Dict[str, Any] = {
            "query": query,
            "search_depth": search_depth,
            "max_results": max_results,
        }
        if topic in ("general", "news", "finance"):
            payload["topic"] = topic
        return await self._post(TAVILY_SEARCH_URL, payload)

    async def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            payload = {**payload, "api_key": self.api_key}
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            resp = await self.client.post(url, json=payload, headers=headers)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            detail: Any
            try:
                detail = e.response.json()
            except Exception:
                detail = e.response.text
            return {"error": "http_status", "status_code": e.response.status_code, "detail": detail}
        except httpx.RequestError as e:
            return {"error": "request_failed", "detail": str(e)}

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()


async def web_search(client: TavilyClient, query: str) -> Dict[str, Any]:
    """Search the web and shape the hits as ``{title, snippet, url}`` records."""
    news = is_news_query(query)
    raw = await client.search(query, max_results=MAX_SEARCH_RESULTS, topic="news" if news else "general")
    if raw.get("error"):
        return {
            "results": [
                {
                    "title": "Error performing web search",
                    "snippet": "The search API encountered an error. Please try again with a different query.",
                    "url": "",
                }
            ],
            "query": query,
            "error": "Failed to perform web search",
        }
    hits: List[Dict[str, Any]] = raw.get("results") or []
    if not hits:
        label = "news results" if news else "results"
        return {
            "results": [
                {
                    "title": f"No {label} found",
                    "snippet": f"No {label} were found for your query. Please try a different search term.",
                    "url": "",
                }
            ],
            "query": query,
        }
    results = []
    for hit in hits[:MAX_SEARCH_RESULTS]:
        snippet = hit.get("content") or "No description available"
        published = hit.get("published_date")
        if news and published:
            snippet = f"({published}) {snippet}"
        results.append(
            {
                "title": hit.get("title") or "No title available",
                "snippet": snippet,
                "url": hit.get("url") or "",
            }
        )
    return {"results": results, "query": query}
