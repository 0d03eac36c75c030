"""
Request bodies and response envelopes for the HTTP API.

Every response is either {ok: true, data, timing?, requestId?} or
{ok: false, error: {message, details?}}.
"""

import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartSessionRequest(ApiModel):
    level_id: str = Field(min_length=1)
    scenario_id: str = Field(min_length=1)


class TurnRequest(ApiModel):
    session_id: str = Field(min_length=1)
    user_text: str = Field(min_length=1)
    tts_enabled: bool = False


class EndSessionRequest(ApiModel):
    session_id: str = Field(min_length=1)


class QuizSubmitRequest(ApiModel):
    session_id: str = Field(min_length=1)
    quiz_id: str = Field(min_length=1)
    answers: List[int]


class ErrorBody(ApiModel):
    message: str
    details: Optional[Any] = None


def new_request_id() -> str:
    return str(uuid.uuid4())


def to_wire(value: Any) -> Any:
    """Dump pydantic models (and lists of them) as camelCase JSON-ready data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [to_wire(item) for item in value]
    if isinstance(value, dict):
        return {key: to_wire(item) for key, item in value.items()}
    return value


def success_response(
    data: Any,
    timing: Optional[Dict[str, int]] = None,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"ok": True, "data": to_wire(data)}
    if timing is not None:
        body["timing"] = timing
    if request_id is not None:
        body["requestId"] = request_id
    return body


def error_response(message: str, details: Optional[Any] = None) -> Dict[str, Any]:
    return {
        "ok": False,
        "error": ErrorBody(message=message, details=details).model_dump(
            mode="json", exclude_none=True
        ),
    }
