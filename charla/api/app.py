"""
Charla FastAPI application.
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from charla.api.errors import register_exception_handlers
from charla.api.middleware.rate_limit import RateLimitMiddleware
from charla.api.routes import content, health, sessions, stt
from charla.content.loader import ContentRepository
from charla.engine.session_engine import SessionEngine
from charla.session.store import SessionStore, create_session_store
from charla.shared.config import settings
from charla.shared.logging import get_logger
from charla.tutor.teacher import LLMTeacher, TeacherCollaborator

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("Starting Charla API", extra={"env": settings.env})

    # Services passed to create_app() are kept; the rest come from settings.
    if getattr(app.state, "content", None) is None:
        app.state.content = ContentRepository.from_directory(settings.content.content_dir)
    if getattr(app.state, "store", None) is None:
        app.state.store = create_session_store(settings)
    if getattr(app.state, "teacher", None) is None:
        app.state.teacher = LLMTeacher()

    app.state.engine = SessionEngine(
        store=app.state.store,
        content=app.state.content,
        teacher=app.state.teacher,
        config=settings.engine,
    )
    app.state.http_client = httpx.AsyncClient(timeout=settings.tts.timeout_seconds)

    health.set_start_time(time.time())

    logger.info("Charla API ready")
    yield

    logger.info("Shutting down Charla API")
    await app.state.http_client.aclose()
    logger.info("Charla API stopped")


def create_app(
    content_repository: Optional[ContentRepository] = None,
    store: Optional[SessionStore] = None,
    teacher: Optional[TeacherCollaborator] = None,
    requests_per_minute: Optional[int] = None,
) -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Charla",
        description="Roleplay Spanish tutoring - server-authoritative lesson engine",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.content = content_repository
    app.state.store = store
    app.state.teacher = teacher

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiting (after CORS so CORS headers applied first)
    app.add_middleware(RateLimitMiddleware, requests_per_minute=requests_per_minute)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(content.router)
    app.include_router(sessions.router)
    app.include_router(stt.router)

    @app.get("/")
    async def root():
        return {"service": "charla", "status": "running"}

    return app


app = create_app()


def main():
    """CLI entry point for uvicorn."""
    import uvicorn

    uvicorn.run(
        "charla.api.app:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
