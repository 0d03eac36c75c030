"""
End-to-end HTTP tests: content browsing, a full lesson and quiz submission.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from charla.api.app import create_app
from charla.session.store import InMemorySessionStore
from charla.voice.tts import TtsPayload
from helpers import FakeTeacher, make_decision, tool_call


@pytest.fixture
def teacher():
    return FakeTeacher()


@pytest.fixture
def client(content, teacher):
    app = create_app(
        content_repository=content,
        store=InMemorySessionStore(),
        teacher=teacher,
        requests_per_minute=1000,
    )
    with TestClient(app) as tc:
        yield tc


def _start(client, level="A1", scenario="taxi"):
    response = client.post("/api/session/start", json={"levelId": level, "scenarioId": scenario})
    assert response.status_code == 200, response.text
    return response.json()["data"]["session"]


# ─── Content ─────────────────────────────────────────────────────────────────

def test_levels_in_order(client):
    body = client.get("/api/levels").json()
    assert body["ok"] is True
    assert [level["id"] for level in body["data"]] == ["A1", "A2"]


def test_scenarios_by_level_use_camel_case(client):
    body = client.get("/api/scenarios", params={"level": "A1"}).json()
    assert [s["id"] for s in body["data"]] == ["taxi", "cafe"]
    assert body["data"][0]["postQuizId"] == "taxi-quiz"
    assert "learningGoals" in body["data"][0]


def test_scenarios_require_level(client):
    response = client.get("/api/scenarios")
    assert response.status_code == 400
    assert response.json()["ok"] is False


def test_content_aliases(client):
    assert client.get("/api/content/levels").status_code == 200
    assert client.get("/api/content/quizzes/taxi-quiz").json()["data"]["id"] == "taxi-quiz"


def test_quiz_lookup(client):
    quiz = client.get("/api/quizzes/taxi-quiz").json()["data"]
    assert len(quiz["items"]) == 3
    assert quiz["items"][1]["correctIndex"] == 1

    missing = client.get("/api/quizzes/nope")
    assert missing.status_code == 404
    assert missing.json() == {"ok": False, "error": {"message": 'No quiz found with id "nope"'}}


# ─── Sessions ────────────────────────────────────────────────────────────────

def test_start_and_get_session(client):
    session = _start(client)
    assert session["phase"] == "roleplay"
    assert session["turnCount"] == 0
    assert session["transcript"][0]["role"] == "tutor"

    fetched = client.get(f"/api/session/{session['id']}").json()["data"]["session"]
    assert fetched["id"] == session["id"]


def test_start_errors(client):
    unknown = client.post("/api/session/start", json={"levelId": "A1", "scenarioId": "moon"})
    assert unknown.status_code == 404

    mismatch = client.post("/api/session/start", json={"levelId": "A2", "scenarioId": "taxi"})
    assert mismatch.status_code == 400

    invalid = client.post("/api/session/start", json={"levelId": "A1"})
    assert invalid.status_code == 400
    assert invalid.json()["error"]["details"]


def test_get_unknown_session(client):
    assert client.get("/api/session/missing").status_code == 404


def test_turn_returns_session_decision_and_timing(client, teacher):
    session = _start(client)
    teacher.queue(make_decision(reply="¿A qué calle?"))

    response = client.post(
        "/api/session/turn", json={"sessionId": session["id"], "userText": "Al centro"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["requestId"] == response.headers["X-Request-Id"]
    assert set(body["timing"]) == {"llmMs", "toolMs", "ttsMs", "totalMs"}
    assert body["timing"]["ttsMs"] == 0
    data = body["data"]
    assert data["session"]["turnCount"] == 1
    assert data["session"]["transcript"][-1]["text"] == "¿A qué calle?"
    assert data["decision"]["reply"] == "¿A qué calle?"
    assert "tts" not in data


def test_retry_nudge_has_no_decision(client, teacher):
    session = _start(client)
    teacher.queue(make_decision(isMistake=True, shouldRetry=True, correction="Quiero ir al centro",
                                reply="Repite conmigo: Quiero ir al centro"))
    client.post("/api/session/turn", json={"sessionId": session["id"], "userText": "Yo ir centro"})

    data = client.post(
        "/api/session/turn", json={"sessionId": session["id"], "userText": "ir centro"}
    ).json()["data"]

    assert data["decision"] is None
    assert data["session"]["pendingRetry"]["attempts"] == 1
    assert data["session"]["lastDecision"]["reply"] == "Repite conmigo: Quiero ir al centro"


def test_turn_with_tts_uses_persona_voice(client, teacher, monkeypatch):
    synthesize = AsyncMock(return_value=TtsPayload(audio_base64="SUQz"))
    monkeypatch.setattr("charla.api.routes.sessions.synthesize_speech", synthesize)
    session = _start(client)
    teacher.queue(make_decision(reply="¡Vámonos!"))

    body = client.post(
        "/api/session/turn",
        json={"sessionId": session["id"], "userText": "Al aeropuerto", "ttsEnabled": True},
    ).json()

    assert body["data"]["tts"] == {"mimeType": "audio/mp3", "audioBase64": "SUQz"}
    args, kwargs = synthesize.call_args
    assert args[0] == "¡Vámonos!"
    assert kwargs["voice_id"] == "Diego"


def test_turn_requires_text(client):
    session = _start(client)
    response = client.post("/api/session/turn", json={"sessionId": session["id"], "userText": ""})
    assert response.status_code == 400


def test_full_lesson_then_quiz(client, teacher):
    session = _start(client)
    session_id = session["id"]
    teacher.queue(
        make_decision(isMistake=True, shouldRetry=True, correction="Quiero ir al centro",
                      reply="Repite conmigo: Quiero ir al centro"),
        make_decision(tool=tool_call("start_quiz", {"quizId": "taxi-quiz"})),
    )

    first = client.post("/api/session/turn", json={"sessionId": session_id, "userText": "Yo ir centro"})
    assert first.json()["data"]["session"]["pendingRetry"] == {
        "expected": "Quiero ir al centro", "attempts": 0,
    }

    second = client.post(
        "/api/session/turn", json={"sessionId": session_id, "userText": "Quiero ir al centro."}
    ).json()["data"]["session"]
    assert second["pendingRetry"] is None
    assert second["phase"] == "quiz"
    assert second["activeQuiz"]["quizId"] == "taxi-quiz"

    rejected = client.post("/api/session/turn", json={"sessionId": session_id, "userText": "Hola"})
    assert rejected.status_code == 409

    bad = client.post(
        "/api/session/quiz/submit",
        json={"sessionId": session_id, "quizId": "taxi-quiz", "answers": [0]},
    )
    assert bad.status_code == 400
    assert bad.json()["error"]["message"] == "Expected 3 answers, got 1"

    graded = client.post(
        "/api/session/quiz/submit",
        json={"sessionId": session_id, "quizId": "taxi-quiz", "answers": [0, 1, -1]},
    ).json()["data"]
    assert graded["result"]["score"] == 67
    assert graded["session"]["quizResult"]["score"] == 67

    ended = client.post("/api/session/end", json={"sessionId": session_id}).json()["data"]
    assert ended["session"]["phase"] == "completed"
    assert ended["summary"] == {"turns": 2, "hasQuiz": True, "quizId": "taxi-quiz"}

    after_end = client.post(
        "/api/session/quiz/submit",
        json={"sessionId": session_id, "quizId": "taxi-quiz", "answers": [0, 1, 2]},
    )
    assert after_end.status_code == 409


def test_submit_foreign_quiz_is_bad_request(client):
    session = _start(client)
    response = client.post(
        "/api/session/quiz/submit",
        json={"sessionId": session["id"], "quizId": "other-quiz", "answers": [0]},
    )
    assert response.status_code == 400


# ─── Speech-to-text ──────────────────────────────────────────────────────────

def test_transcribe_upload(client, monkeypatch):
    transcribe = AsyncMock(return_value="quiero un café")
    monkeypatch.setattr("charla.api.routes.stt.transcribe_audio", transcribe)

    response = client.post(
        "/api/stt/transcribe",
        files={"audio": ("clip.webm", b"webm-bytes", "audio/webm")},
        data={"language": "es"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["data"] == {"text": "quiero un café"}
    assert set(body["timing"]) == {"sttMs", "totalMs"}
    assert transcribe.call_args.kwargs["language"] == "es"
    assert transcribe.call_args.kwargs["mime_type"] == "audio/webm"


def test_transcribe_rejects_empty_audio(client):
    response = client.post(
        "/api/stt/transcribe", files={"audio": ("clip.webm", b"", "audio/webm")}
    )
    assert response.status_code == 400


def test_transcribe_requires_audio(client):
    assert client.post("/api/stt/transcribe", data={"language": "es"}).status_code == 400
