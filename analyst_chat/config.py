import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from dotenv import load_dotenv

CONFIG_PATH = Path("config.json")
ENV_OVERRIDE_KEY = "ANALYST_CHAT_ENV_OVERRIDES_CONFIG"
ENV_OVERRIDE_TRUE = {"1", "true", "yes", "on"}
SECRET_FIELDS = ("llm_api_key", "tavily_api_key", "alpha_vantage_api_key", "jwt_secret")


class ModelConfig(BaseModel):
    model_id: str
    label: str = ""
    description: str = ""

    model_config = {"protected_namespaces": ()}


def _default_chat_models() -> Dict[str, ModelConfig]:
    return {
        "chat-model-small": ModelConfig(
            model_id="gpt-4o-mini", label="Small model", description="Small model for fast, lightweight tasks"
        ),
        "chat-model-large": ModelConfig(
            model_id="gpt-4o", label="Large model", description="Large model for complex, multi-step tasks"
        ),
        "chat-model-reasoning": ModelConfig(
            model_id="o3-mini", label="Reasoning model", description="Uses advanced reasoning"
        ),
    }


class AppSettings(BaseModel):
    llm_base_url: str = "https://api.openai.com/v1"
    llm_api_key: Optional[str] = None
    chat_models: Dict[str, ModelConfig] = Field(default_factory=_default_chat_models)
    default_chat_model: str = "chat-model-small"
    reasoning_models: List[str] = Field(default_factory=lambda: ["chat-model-reasoning"])
    title_model: str = "gpt-4o-mini"
    artifact_model: str = "gpt-4o-mini"
    image_model: str = "dall-e-3"
    max_steps: int = 5
    max_output_tokens: Optional[int] = None
    row_ceiling: int = 100
    smooth_delay_ms: int = 10

    database_path: str = "chat_data.db"
    analytics_database_path: str = "analytics.db"

    tavily_api_key: Optional[str] = None
    alpha_vantage_api_key: Optional[str] = None
    weather_latitude: float = 37.7749
    weather_longitude: float = -122.4194

    jwt_secret: str = "dev-only-secret-change-me-before-deploying"
    jwt_algorithm: str = "HS256"
    jwt_expires_min: int = 60

    host: str = "0.0.0.0"
    port: int = 8000

    def resolve_model(self, selector: str) -> str:
        cfg = self.chat_models.get(selector) or self.chat_models.get(self.default_chat_model)
        if cfg is None:
            raise KeyError(f"Unknown chat model: {selector}")
        return cfg.model_id

    def is_reasoning_model(self, selector: str) -> bool:
        return selector in self.reasoning_models

    def to_safe_dict(self) -> dict:
        data = self.model_dump()
        for key in SECRET_FIELDS:
            if data.get(key):
                data[key] = "********"
        return data

    model_config = {"protected_namespaces": ()}


def _load_from_env() -> dict:
    load_dotenv()
    env_map = {
        "llm_base_url": os.getenv("LLM_BASE_URL"),
        "llm_api_key": os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY"),
        "default_chat_model": os.getenv("DEFAULT_CHAT_MODEL"),
        "title_model": os.getenv("TITLE_MODEL"),
        "artifact_model": os.getenv("ARTIFACT_MODEL"),
        "image_model": os.getenv("IMAGE_MODEL"),
        "max_steps": os.getenv("MAX_STEPS"),
        "max_output_tokens": os.getenv("MAX_OUTPUT_TOKENS"),
        "row_ceiling": os.getenv("ROW_CEILING"),
        "smooth_delay_ms": os.getenv("SMOOTH_DELAY_MS"),
        "database_path": os.getenv("DATABASE_PATH"),
        "analytics_database_path": os.getenv("ANALYTICS_DATABASE_PATH"),
        "tavily_api_key": os.getenv("TAVILY_API_KEY"),
        "alpha_vantage_api_key": os.getenv("ALPHA_VANTAGE_API_KEY"),
        "weather_latitude": os.getenv("WEATHER_LATITUDE"),
        "weather_longitude": os.getenv("WEATHER_LONGITUDE"),
        "jwt_secret": os.getenv("JWT_SECRET"),
        "jwt_expires_min": os.getenv("JWT_EXPIRES_MIN"),
        "host": os.getenv("HOST"),
        "port": os.getenv("PORT"),
    }
    cleaned = {k: v for k, v in env_map.items() if v not in (None, "")}
    for key in ("max_steps", "max_output_tokens", "row_ceiling", "smooth_delay_ms", "jwt_expires_min", "port"):
        if key in cleaned:
            cleaned[key] = int(cleaned[key])
    for key in ("weather_latitude", "weather_longitude"):
        if key in cleaned:
            cleaned[key] = float(cleaned[key])
    return cleaned


def _env_overrides_config() -> bool:
    return str(os.getenv(ENV_OVERRIDE_KEY, "")).strip().lower() in ENV_OVERRIDE_TRUE


def load_settings(config_path: Optional[Path] = None) -> AppSettings:
    env_data = _load_from_env()
    path = config_path or CONFIG_PATH
    file_data: Dict[str, Any] = {}
    if path.exists():
        try:
            file_data = json.loads(path.read_text())
        except Exception:
            file_data = {}
    # Config wins by default; allow env overrides only when explicitly enabled.
    if _env_overrides_config():
        merged = {**file_data, **env_data}
    else:
        merged = {**env_data, **file_data}
    # Secrets are rarely committed to config.json; keep the env value when the file leaves them blank.
    for key in SECRET_FIELDS:
        if not merged.get(key) and env_data.get(key):
            merged[key] = env_data[key]
    return AppSettings(**merged)


def save_settings(settings: AppSettings, config_path: Optional[Path] = None) -> None:
    path = config_path or CONFIG_PATH
    path.write_text(settings.model_dump_json(indent=2))
