"""
Read-only content endpoints: levels, scenarios per level, quizzes.
"""

from typing import Optional

from fastapi import APIRouter

from charla.api.dependencies import ContentDep
from charla.api.schemas import success_response
from charla.shared.exceptions import InvalidRequestError, NotFoundError

router = APIRouter(prefix="/api", tags=["content"])


@router.get("/levels")
@router.get("/content/levels")
async def list_levels(content: ContentDep):
    """All levels in display order."""
    return success_response(content.levels())


@router.get("/scenarios")
@router.get("/content/scenarios")
async def list_scenarios(content: ContentDep, level: Optional[str] = None):
    if not level:
        raise InvalidRequestError("level parameter is required (e.g., ?level=A1)")
    return success_response(content.scenarios_for_level(level))


@router.get("/quizzes/{quiz_id}")
@router.get("/content/quizzes/{quiz_id}")
async def get_quiz(quiz_id: str, content: ContentDep):
    quiz = content.quiz(quiz_id)
    if quiz is None:
        raise NotFoundError(f'No quiz found with id "{quiz_id}"')
    return success_response(quiz)
