from typing import Any, Dict, Optional

import httpx

ALPHA_VANTAGE_URL = "https://www.alphavantage.co/query"
MAX_NEWS_ITEMS = 5


class FinanceDataError(Exception):
    pass


class AlphaVantageClient:
    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key
        self.client = httpx.AsyncClient(timeout=30)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def _query(self, params: Dict[str, str]) -> Dict[str, Any]:
        if not self.enabled:
            raise FinanceDataError("ALPHA_VANTAGE_API_KEY is not set")
        resp = await self.client.get(ALPHA_VANTAGE_URL, params={**params, "apikey": self.api_key})
        if resp.is_error:
            raise FinanceDataError(f"API request failed with status {resp.status_code}")
        data = resp.json()
        if isinstance(data, dict) and data.get("Error Message"):
            raise FinanceDataError(data["Error Message"])
        return data

    async def quote(self, symbol: str) -> Dict[str, Any]:
        data = await self._query({"function": "GLOBAL_QUOTE", "symbol": symbol})
        quote = data.get("Global Quote") or {}
        if not quote:
            raise FinanceDataError(f"No data found for symbol: {symbol}")
        return {
            "symbol": quote.get("01. symbol"),
            "price": float(quote.get("05. price") or 0),
            "change": float(quote.get("09. change") or 0),
            "changePercent": quote.get("10. change percent"),
            "lastTradeDay": quote.get("07. latest trading day"),
            "volume": int(quote.get("06. volume") or 0),
        }

    async def overview(self, symbol: str) -> Dict[str, Any]:
        data = await self._query({"function": "OVERVIEW", "symbol": symbol})
        if not data:
            raise FinanceDataError(f"No company overview found for symbol: {symbol}")
        return {
            "symbol": data.get("Symbol"),
            "name": data.get("Name"),
            "description": data.get("Description"),
            "exchange": data.get("Exchange"),
            "industry": data.get("Industry"),
            "sector": data.get("Sector"),
            "marketCap": data.get("MarketCapitalization"),
            "peRatio": data.get("PERatio"),
            "dividendYield": data.get("DividendYield"),
            "weekHigh52": data.get("52WeekHigh"),
            "weekLow52": data.get("52WeekLow"),
        }

    async def news(self, symbol: str) -> Dict[str, Any]:
        data = await self._query({"function": "NEWS_SENTIMENT", "tickers": symbol})
        feed = data.get("feed") or []
        if not feed:
            raise FinanceDataError(f"No news found for symbol: {symbol}")
        return {
            "symbol": symbol,
            "news": [
                {
                    "title": item.get("title"),
                    "summary": item.get("summary"),
                    "url": item.get("url"),
                    "timePublished": item.get("time_published"),
                    "source": item.get("source"),
                }
                for item in feed[:MAX_NEWS_ITEMS]
            ],
        }

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()


async def get_finance(client: AlphaVantageClient, symbol: Optional[str], data_type: str) -> Dict[str, Any]:
    if data_type == "market-heatmap":
        return {"widgetType": "market-heatmap"}
    if not symbol:
        return {"error": "missing_symbol", "message": f"A symbol is required for '{data_type}' data"}
    try:
        if data_type == "quote":
            return await client.quote(symbol)
        if data_type == "overview":
            return await client.overview(symbol)
        if data_type == "news":
            return await client.news(symbol)
    except (FinanceDataError, httpx.RequestError, ValueError) as exc:
        return {"error": "Failed to fetch financial data", "message": str(exc)}
    return {"error": "unsupported_data_type", "message": f"Unsupported data type: {data_type}"}
