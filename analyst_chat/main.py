import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from .analytics import AnalyticsDatabase
from .auth import bearer_scheme, require_user_id
from .config import AppSettings, CONFIG_PATH, load_settings, save_settings
from .db import Database
from .finance import AlphaVantageClient
from .llm import LLMClient
from .orchestrator import ChatOrchestrator, TurnRejected
from .schemas import ChatRequest
from .stream import sse_body
from .tavily import TavilyClient
from .weather import WeatherClient

logger = logging.getLogger("uvicorn.error")

router = APIRouter()


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_orchestrator(request: Request) -> ChatOrchestrator:
    return request.app.state.orchestrator


def get_config_path(request: Request) -> Path:
    return request.app.state.config_path


def _reject(exc: TurnRejected) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)


@router.post("/chat")
async def post_chat(
    request: Request,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    try:
        chat_request = ChatRequest.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid request body: {exc.error_count()} validation error(s)")
    user_id = await require_user_id(request, await bearer_scheme(request))
    try:
        stream = await orchestrator.start_turn(chat_request, user_id)
    except TurnRejected as exc:
        raise _reject(exc)
    return StreamingResponse(sse_body(stream), media_type="text/event-stream")


@router.delete("/chat")
async def delete_chat(
    request: Request,
    id: Optional[str] = None,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    if not id:
        raise HTTPException(status_code=404, detail="Not Found")
    user_id = await require_user_id(request, await bearer_scheme(request))
    try:
        await orchestrator.delete_chat(id, user_id)
    except TurnRejected as exc:
        raise _reject(exc)
    except Exception:
        logger.exception("Failed to delete chat %s", id)
        raise HTTPException(status_code=500, detail="An error occurred while processing your request")
    return {"message": "Chat deleted"}


@router.get("/chat/{chat_id}/messages")
async def get_chat_messages(
    chat_id: str,
    limit: int = 500,
    user_id: str = Depends(require_user_id),
    db: Database = Depends(get_db),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    try:
        chat = await orchestrator.owned_chat(chat_id, user_id)
    except TurnRejected as exc:
        raise _reject(exc)
    messages = await db.list_messages(chat_id, limit=limit)
    return {"chat": chat, "messages": messages}


@router.get("/history")
async def get_history(
    limit: int = 100,
    user_id: str = Depends(require_user_id),
    db: Database = Depends(get_db),
):
    chats = await db.list_chats(user_id, limit=limit)
    return {"chats": chats}


@router.get("/document")
async def get_document(
    id: Optional[str] = None,
    user_id: str = Depends(require_user_id),
    db: Database = Depends(get_db),
):
    if not id:
        raise HTTPException(status_code=400, detail="Missing id")
    versions = await db.list_documents(id)
    if not versions:
        raise HTTPException(status_code=404, detail="Not Found")
    if versions[-1]["userId"] != user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    suggestions = await db.list_suggestions(id)
    return {"documents": versions, "suggestions": suggestions}


@router.get("/settings")
async def get_settings_route(
    user_id: str = Depends(require_user_id),
    settings: AppSettings = Depends(get_settings),
):
    return {"settings": settings.to_safe_dict()}


@router.post("/settings")
async def update_settings_route(
    request: Request,
    user_id: str = Depends(require_user_id),
    settings: AppSettings = Depends(get_settings),
    config_path: Path = Depends(get_config_path),
):
    body: Dict[str, Any] = await request.json()
    try:
        new_settings = AppSettings(**{**settings.model_dump(), **body})
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid request body: {exc.error_count()} validation error(s)")
    save_settings(new_settings, config_path=config_path)
    request.app.state.settings = new_settings
    orchestrator: ChatOrchestrator = request.app.state.orchestrator
    orchestrator.settings = new_settings
    orchestrator.analytics.row_ceiling = new_settings.row_ceiling
    llm_client = orchestrator.llm_client
    llm_client.base_url = new_settings.llm_base_url.rstrip("/")
    llm_client.api_key = new_settings.llm_api_key
    llm_client.max_output_tokens = new_settings.max_output_tokens
    orchestrator.tavily_client.api_key = new_settings.tavily_api_key
    orchestrator.finance_client.api_key = new_settings.alpha_vantage_api_key
    logger.info("Settings updated by %s", user_id)
    return {"ok": True, "settings": new_settings.to_safe_dict()}


def create_app(
    settings: AppSettings,
    *,
    db: Optional[Database] = None,
    analytics: Optional[AnalyticsDatabase] = None,
    llm_client: Optional[LLMClient] = None,
    tavily_client: Optional[TavilyClient] = None,
    finance_client: Optional[AlphaVantageClient] = None,
    weather_client: Optional[WeatherClient] = None,
    config_path: Optional[Path] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app.state.db.init()
        await app.state.analytics.init()
        try:
            yield
        finally:
            orchestrator: ChatOrchestrator = app.state.orchestrator
            await orchestrator.wait_for_turns()
            await orchestrator.llm_client.close()
            await orchestrator.tavily_client.close()
            await orchestrator.finance_client.close()
            await orchestrator.weather_client.close()

    app = FastAPI(title="Analyst Chat", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db or Database(settings.database_path)
    app.state.analytics = analytics or AnalyticsDatabase(
        settings.analytics_database_path, row_ceiling=settings.row_ceiling
    )
    app.state.orchestrator = ChatOrchestrator(
        settings,
        app.state.db,
        app.state.analytics,
        llm_client
        or LLMClient(settings.llm_base_url, api_key=settings.llm_api_key, max_output_tokens=settings.max_output_tokens),
        tavily_client or TavilyClient(settings.tavily_api_key),
        finance_client or AlphaVantageClient(settings.alpha_vantage_api_key),
        weather_client or WeatherClient(),
    )
    app.state.config_path = config_path or CONFIG_PATH
    app.include_router(router)
    return app


app = create_app(load_settings())


if __name__ == "__main__":
    import os
    import uvicorn

    settings = app.state.settings
    reload_enabled = os.getenv("ANALYST_CHAT_RELOAD", "").lower() in ("1", "true", "yes", "on")
    try:
        uvicorn.run(
            "analyst_chat.main:app",
            host=getattr(settings, "host", "0.0.0.0"),
            port=settings.port,
            reload=reload_enabled,
        )
    except KeyboardInterrupt:
        pass
