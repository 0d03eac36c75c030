"""
Test helpers shared across test modules.
"""

from typing import Any, Dict, List, Optional

from charla.tutor.decision import TeacherDecision, validate_decision


def make_decision(**overrides: Any) -> TeacherDecision:
    """Valid decision with sensible defaults; keys use the wire (camelCase) names."""
    raw: Dict[str, Any] = {
        "feedback": "ok",
        "isMistake": False,
        "shouldRetry": False,
        "tool": None,
        "reply": "¡Muy bien! ¿Y luego?",
    }
    raw.update(overrides)
    return validate_decision(raw)


class FakeTeacher:
    """Scripted collaborator that records every call."""

    def __init__(self):
        self.decisions: List[Any] = []
        self.narrations: List[Any] = []
        self.decision_calls: List[Dict[str, Any]] = []
        self.narration_calls: List[Dict[str, Any]] = []

    def queue(self, *items: Any) -> "FakeTeacher":
        """Queue decisions (or exceptions to raise) for upcoming turns."""
        self.decisions.extend(items)
        return self

    async def generate_decision(self, transcript, scenario, persona, pending_retry=None):
        self.decision_calls.append({
            "transcript": list(transcript),
            "scenario": scenario,
            "persona": persona,
            "pending_retry": pending_retry,
        })
        if not self.decisions:
            return make_decision()
        item = self.decisions.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def generate_narration(self, tool_name, tool_result, scenario, persona):
        self.narration_calls.append({"tool_name": tool_name, "tool_result": tool_result})
        if self.narrations:
            item = self.narrations.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return f"{persona.name} narrates {tool_name}"


def tool_call(name: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"name": name, "args": args or {}}
