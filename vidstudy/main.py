from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from vidstudy import __version__
from vidstudy.api.chat import router as chat_router
from vidstudy.api.materials import router as materials_router
from vidstudy.api.models import router as models_router
from vidstudy.api.quizzes import router as quizzes_router
from vidstudy.api.sessions import router as sessions_router
from vidstudy.api.stats import router as stats_router
from vidstudy.context import AppContext
from vidstudy.core.config import get_settings
from vidstudy.core.errors import (
    ChatSessionNotFoundError,
    DuplicateVideoError,
    QuizStateError,
    SessionNotFoundError,
    StorageError,
)
from vidstudy.core.logging import configure_logging
from vidstudy.services.llm.errors import ProviderError


@asynccontextmanager
async def lifespan(app: FastAPI):
    # tests may install their own context before startup
    ctx = getattr(app.state, "context", None)
    if ctx is None:
        config = get_settings()
        configure_logging(config.log_level)
        ctx = AppContext(config)
        app.state.context = ctx
    async with ctx:
        yield
    app.state.context = None


app = FastAPI(title="vidstudy API", version=__version__, lifespan=lifespan)
app.include_router(sessions_router)
app.include_router(materials_router)
app.include_router(quizzes_router)
app.include_router(chat_router)
app.include_router(stats_router)
app.include_router(models_router)


@app.exception_handler(SessionNotFoundError)
@app.exception_handler(ChatSessionNotFoundError)
async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=404, content={"ok": False, "detail": str(exc)})


@app.exception_handler(QuizStateError)
@app.exception_handler(DuplicateVideoError)
async def conflict_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=409, content={"ok": False, "detail": str(exc)})


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    return JSONResponse(status_code=502, content={"ok": False, "error": exc.to_dict()})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    return JSONResponse(status_code=500, content={"ok": False, "detail": str(exc)})


class HealthResponse(BaseModel):
    ok: bool
    service: str
    version: str
    db_ok: bool


@app.get("/health", response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    db_ok = False
    ctx: AppContext = request.app.state.context
    try:
        with ctx.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError:
        db_ok = False

    return HealthResponse(ok=True, service="api", version=app.version, db_ok=db_ok)
