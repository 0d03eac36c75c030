"""
Tests for LLM response parsing and client configuration.
"""

import pytest

from charla.shared.config import settings
from charla.shared.exceptions import LLMError
from charla.shared.llm import LLMClient, parse_json_object


def test_parse_plain_json():
    assert parse_json_object('{"reply": "hola"}') == {"reply": "hola"}


def test_parse_fenced_json():
    assert parse_json_object('```json\n{"reply": "hola"}\n```') == {"reply": "hola"}


def test_parse_rejects_non_json():
    with pytest.raises(LLMError):
        parse_json_object("Claro, aquí está tu respuesta")


def test_parse_rejects_non_object():
    with pytest.raises(LLMError):
        parse_json_object("[1, 2, 3]")


def test_client_requires_api_key(monkeypatch):
    monkeypatch.setattr(settings.llm, "openai_api_key", None)
    with pytest.raises(LLMError):
        LLMClient(provider="openai", api_key="")


def test_client_rejects_unknown_provider():
    with pytest.raises(LLMError):
        LLMClient(provider="mystery", api_key="sk-test")
