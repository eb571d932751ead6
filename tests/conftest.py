from pathlib import Path

import pytest

from analyst_chat.main import create_app
from tests.fakes import FakeFinanceClient, FakeLLMClient, FakeTavilyClient, FakeWeatherClient, make_settings


@pytest.fixture
def app_factory(tmp_path: Path):
    def _factory(
        *,
        fake_llm: FakeLLMClient | None = None,
        fake_tavily: FakeTavilyClient | None = None,
        fake_weather: FakeWeatherClient | None = None,
        config_path: Path | None = None,
        **settings_overrides,
    ):
        settings = make_settings(tmp_path, **settings_overrides)
        llm_client = fake_llm or FakeLLMClient()
        tavily_client = fake_tavily or FakeTavilyClient(api_key=settings.tavily_api_key)
        cfg_path = config_path or (tmp_path / "config.json")
        app = create_app(
            settings,
            llm_client=llm_client,
            tavily_client=tavily_client,
            finance_client=FakeFinanceClient(),
            weather_client=fake_weather or FakeWeatherClient(),
            config_path=cfg_path,
        )
        return app, cfg_path, llm_client, tavily_client

    return _factory
