from typing import Any, Dict

import httpx

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"


class WeatherClient:
    def __init__(self):
        self.client = httpx.AsyncClient(timeout=20)

    async def forecast(self, latitude: float, longitude: float) -> Dict[str, Any]:
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "current": "temperature_2m",
            "hourly": "temperature_2m",
            "daily": "sunrise,sunset",
            "timezone": "auto",
        }
        try:
            resp = await self.client.get(OPEN_METEO_URL, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            return {"error": "http_status", "message": f"Weather request failed with status {e.response.status_code}"}
        except httpx.RequestError as e:
            return {"error": "request_failed", "message": str(e)}

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()
