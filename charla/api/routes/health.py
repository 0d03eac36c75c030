"""
Health check endpoint.
"""

import time
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from charla.api.dependencies import ContentDep, StoreDep
from charla.shared.config import settings

router = APIRouter(tags=["health"])

# Track startup time for uptime
_start_time: Optional[float] = None


def set_start_time(t: float):
    """Set application start time."""
    global _start_time
    _start_time = t


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    env: str
    storage_backend: str
    serializes_writes: bool
    scenarios_loaded: int
    uptime_seconds: float


@router.get("/health", response_model=HealthResponse)
async def health_check(content: ContentDep, store: StoreDep):
    """
    Service health check.
    Returns status, storage backend, loaded content and uptime.
    """
    scenario_count = sum(
        len(content.scenarios_for_level(level.id)) for level in content.levels()
    )

    uptime_seconds = 0.0
    if _start_time:
        uptime_seconds = round(time.time() - _start_time, 2)

    return HealthResponse(
        status="healthy" if scenario_count else "degraded",
        env=settings.env,
        storage_backend=type(store).__name__,
        serializes_writes=store.serializes_writes,
        scenarios_loaded=scenario_count,
        uptime_seconds=uptime_seconds,
    )
