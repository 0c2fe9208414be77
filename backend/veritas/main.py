"""
FastAPI Application Entry Point

This module initializes the FastAPI application and configures:
- CORS middleware for frontend communication
- Cache endpoints (load, save, query, top queries)
- Conversation endpoints (add, history, export, import)
- Health check and status endpoints

Every route delegates to the QueryOrchestrator and maps its error kinds to
HTTP status codes. Sessions are selected with the ``sessionId`` query
parameter; a new id is generated when it is missing.

Usage:
    uvicorn veritas.main:app --reload --port 8010
"""

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
import logging
import time
import uuid
from urllib.parse import quote

from veritas.cache.store import InMemoryKeyValueStore, JsonFileKeyValueStore
from veritas.config import EngineConfig, Settings, configure_logging, settings, validate_api_keys
from veritas.errors import ErrorKind
from veritas.llm.model_selector import build_provider
from veritas.models import (
    ConversationAddRequest,
    ErrorDetail,
    LoadRequest,
    OperationResult,
    QueryRequest,
    SaveRequest,
)
from veritas.services.orchestrator import QueryOrchestrator

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.PARSE: 400,
    ErrorKind.PROVIDER: 502,
    ErrorKind.STORE: 503,
    ErrorKind.INTERNAL: 500,
}


def build_orchestrator(app_settings: Settings) -> QueryOrchestrator:
    """Wire the orchestrator from settings."""
    if app_settings.STORE_PATH:
        kv = JsonFileKeyValueStore(app_settings.STORE_PATH)
    else:
        kv = InMemoryKeyValueStore()
    return QueryOrchestrator.create(
        kv,
        build_provider(app_settings),
        EngineConfig.from_settings(app_settings),
    )


orchestrator = build_orchestrator(settings)


def get_orchestrator() -> QueryOrchestrator:
    return orchestrator


def resolve_session_id(session_id: Optional[str] = Query(default=None, alias="sessionId")) -> str:
    return session_id or str(uuid.uuid4())


def error_response(error: ErrorDetail) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS.get(error.kind, 500),
        content={"error": error.message, "kind": error.kind.value},
    )


def _payload(data: Any) -> Any:
    """Serialize result data with camelCase field names."""
    if hasattr(data, "model_dump"):
        return data.model_dump(by_alias=True, mode="json")
    if isinstance(data, list):
        return [_payload(item) for item in data]
    return data


def respond(result: OperationResult) -> Any:
    if not result.ok:
        return error_response(result.error)
    return _payload(result.data)


def attachment_disposition(session_id: str) -> str:
    """Content-Disposition for an exported transcript; non-ASCII ids use RFC 5987."""
    encoded = quote(session_id, safe="")
    if encoded == session_id:
        return f"attachment; filename=session-{session_id}.json"
    return f"attachment; filename=session.json; filename*=UTF-8''session-{encoded}.json"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    """
    configure_logging()
    logger.info(f"{settings.APP_NAME} starting up (env={settings.APP_ENV})")
    keys = validate_api_keys()
    if not any(keys.values()):
        logger.warning("No model provider key configured; only cached answers can be served")
    yield
    logger.info(f"{settings.APP_NAME} shutting down")


app = FastAPI(
    title="Veritas API",
    description="Query-answer cache with edit-aware answers and session history",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.get("/ping", tags=["Health"])
async def ping():
    """Simple ping endpoint for debugging."""
    return {"status": "pong", "timestamp": time.time()}


@app.get("/", tags=["Health"])
async def root() -> Dict[str, str]:
    """Root endpoint - API welcome message."""
    return {
        "message": "Welcome to Veritas API",
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/health", tags=["Health"])
async def health_check() -> Dict[str, Any]:
    """
    Health check endpoint for monitoring and load balancers.
    """
    return {
        "status": "healthy",
        "components": {
            "api": "operational",
            "providers": validate_api_keys(),
        }
    }


# ============================================================================
# Cache Endpoints
# ============================================================================

@app.post("/api/load", tags=["Cache"])
async def load_answer(
    request: LoadRequest,
    service: QueryOrchestrator = Depends(get_orchestrator),
):
    """Canonical answer for a query, or null when none is stored."""
    return respond(await service.load(request.query))


@app.post("/api/save", tags=["Cache"])
async def save_answer(
    request: SaveRequest,
    session_id: str = Depends(resolve_session_id),
    service: QueryOrchestrator = Depends(get_orchestrator),
):
    """Store a human-edited answer."""
    return respond(await service.save(request.query, request.answer, request.editor, session_id))


@app.post("/query", tags=["Query"])
async def query(
    request: QueryRequest,
    session_id: str = Depends(resolve_session_id),
    service: QueryOrchestrator = Depends(get_orchestrator),
):
    """
    Answer a query from the promoted cache or the model provider.
    """
    logger.info(f"[query] session={session_id} follow_up={request.is_follow_up}")
    return respond(await service.query(request.query, request.is_follow_up, session_id))


@app.get("/top-queries", tags=["Query"])
async def top_queries(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    service: QueryOrchestrator = Depends(get_orchestrator),
):
    """Today's most used queries."""
    return respond(await service.top_queries(limit))


@app.get("/cache/stats", tags=["Cache"])
async def cache_stats(service: QueryOrchestrator = Depends(get_orchestrator)):
    """Promotion and provider call statistics."""
    return service.get_stats()


# ============================================================================
# Conversation Endpoints
# ============================================================================

@app.post("/conversation/add", tags=["Conversation"])
async def add_exchange(
    request: ConversationAddRequest,
    session_id: str = Depends(resolve_session_id),
    service: QueryOrchestrator = Depends(get_orchestrator),
):
    """Append a user/assistant message pair to the session."""
    result = await service.append_exchange(session_id, request.query, request.answer)
    if not result.ok:
        return error_response(result.error)
    return {"success": True}


@app.get("/conversation/history", tags=["Conversation"])
async def conversation_history(
    session_id: str = Depends(resolve_session_id),
    service: QueryOrchestrator = Depends(get_orchestrator),
):
    """Full transcript of the session."""
    return respond(await service.get_history(session_id))


@app.get("/conversation/export", tags=["Conversation"])
async def export_conversation(
    session_id: str = Depends(resolve_session_id),
    service: QueryOrchestrator = Depends(get_orchestrator),
):
    """Download the transcript as a JSON attachment."""
    result = await service.export_session(session_id)
    if not result.ok:
        return error_response(result.error)
    return Response(
        content=result.data,
        media_type="application/json",
        headers={"Content-Disposition": attachment_disposition(session_id)},
    )


@app.post("/conversation/import", tags=["Conversation"])
async def import_conversation(
    request: Request,
    session_id: str = Depends(resolve_session_id),
    service: QueryOrchestrator = Depends(get_orchestrator),
):
    """Replace the transcript with an exported one for the same session id."""
    body = await request.body()
    return respond(await service.import_session(session_id, body))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "veritas.main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=settings.APP_RELOAD
    )
