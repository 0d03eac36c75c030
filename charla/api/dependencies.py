"""
FastAPI dependency injection for Charla services.
"""

from typing import Annotated

from fastapi import Depends, Request

from charla.content.loader import ContentRepository
from charla.engine.session_engine import SessionEngine
from charla.session.store import SessionStore


def get_engine(request: Request) -> SessionEngine:
    """Get SessionEngine singleton from lifespan state."""
    return request.app.state.engine


def get_content(request: Request) -> ContentRepository:
    """Get ContentRepository singleton from lifespan state."""
    return request.app.state.content


def get_store(request: Request) -> SessionStore:
    """Get SessionStore singleton from lifespan state."""
    return request.app.state.store


EngineDep = Annotated[SessionEngine, Depends(get_engine)]
ContentDep = Annotated[ContentRepository, Depends(get_content)]
StoreDep = Annotated[SessionStore, Depends(get_store)]
