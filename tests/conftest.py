"""
Pytest fixtures for Charla tests.
"""

import os

# Settings are loaded on import; tests always run against the test env.
os.environ.setdefault("CHARLA_ENV", "test")
os.environ.setdefault("STORAGE_BACKEND", "memory")

import pytest  # noqa: E402

from charla.content.loader import ContentRepository  # noqa: E402
from charla.content.models import (  # noqa: E402
    ContentPack,
    Level,
    Persona,
    Quiz,
    QuizItem,
    Scenario,
)
from charla.engine.session_engine import SessionEngine  # noqa: E402
from charla.session.store import InMemorySessionStore  # noqa: E402
from charla.shared.config import EngineConfig  # noqa: E402
from helpers import FakeTeacher  # noqa: E402


@pytest.fixture
def content_pack() -> ContentPack:
    """Small content pack: one quiz with correct indices [0, 1, 2]."""
    return ContentPack(
        levels=[
            Level(id="A2", name="Elementary", description="Everyday exchanges", order=2),
            Level(id="A1", name="Beginner", description="First words", order=1),
        ],
        personas=[
            Persona(
                id="jorge",
                name="Jorge",
                role="Taxi driver",
                tts_voice_id="Diego",
                instructions="Friendly and slow.",
            ),
            Persona(
                id="valentina",
                name="Valentina",
                role="Barista",
                instructions="Warm and patient.",
            ),
        ],
        scenarios=[
            Scenario(
                id="taxi",
                level_id="A1",
                title="Taking a taxi",
                description="Tell the driver where to go.",
                persona_id="jorge",
                tags=["directions"],
                learning_goals=["Say where you want to go", "Ask the price"],
                initial_message="¡Hola! ¿A dónde vamos?",
                success_conditions=["Gives a destination"],
                conversation_rules=["Stay in character"],
                post_quiz_id="taxi-quiz",
            ),
            Scenario(
                id="cafe",
                level_id="A1",
                title="Ordering coffee",
                description="Order a drink.",
                persona_id="valentina",
                learning_goals=["Order politely"],
                initial_message="¡Hola! ¿Qué te pongo?",
                success_conditions=["Orders a drink"],
                conversation_rules=["Stay in character"],
            ),
            Scenario(
                id="museum",
                level_id="A2",
                title="Finding the museum",
                description="Ask for directions.",
                persona_id="valentina",
                learning_goals=["Ask where something is"],
                initial_message="¿Te puedo ayudar?",
                success_conditions=["Asks for directions"],
                conversation_rules=["Short directions"],
            ),
        ],
        quizzes=[
            Quiz(
                id="taxi-quiz",
                scenario_id="taxi",
                items=[
                    QuizItem(question="Q1", options=["a", "b", "c"], correct_index=0),
                    QuizItem(question="Q2", options=["a", "b", "c"], correct_index=1),
                    QuizItem(question="Q3", options=["a", "b", "c"], correct_index=2),
                ],
            ),
            Quiz(
                id="other-quiz",
                items=[QuizItem(question="Q", options=["sí", "no"], correct_index=0)],
            ),
        ],
    )


@pytest.fixture
def content(content_pack) -> ContentRepository:
    return ContentRepository(content_pack)


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def teacher() -> FakeTeacher:
    return FakeTeacher()


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(transcript_window=12, max_retry_attempts=3)


@pytest.fixture
def engine(store, content, teacher, engine_config) -> SessionEngine:
    return SessionEngine(store=store, content=content, teacher=teacher, config=engine_config)
