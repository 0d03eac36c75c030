"""
Language-model collaborator that proposes teacher decisions and narrates
tool results.

The engine treats this as a black box: both calls either return a value or
raise. Validation of what comes back happens here, through the same
validate_decision used everywhere else.
"""

from typing import List, Optional, Protocol, Sequence

from charla.content.models import Persona, Scenario
from charla.session.models import PendingRetry, TranscriptMessage
from charla.shared.exceptions import LLMError
from charla.shared.llm import LLMClient
from charla.shared.logging import get_logger
from charla.tutor.decision import TeacherDecision, validate_decision
from charla.tutor.tools import ToolResult

logger = get_logger(__name__)


class TeacherCollaborator(Protocol):
    """What the engine needs from the language model."""

    async def generate_decision(
        self,
        transcript: Sequence[TranscriptMessage],
        scenario: Scenario,
        persona: Persona,
        pending_retry: Optional[PendingRetry] = None,
    ) -> TeacherDecision:
        ...

    async def generate_narration(
        self,
        tool_name: str,
        tool_result: ToolResult,
        scenario: Scenario,
        persona: Persona,
    ) -> str:
        ...


def transcript_window(
    messages: Sequence[TranscriptMessage],
    size: int
) -> List[TranscriptMessage]:
    """Keep the most recent `size` messages. Older turns are dropped, not summarized."""
    if size <= 0:
        return []
    return list(messages[-size:])


DECISION_SYSTEM_PROMPT = """You are a supportive Spanish language coach playing a character.
You are a teacher first: keep the student talking and learning, and never let
strict roleplay block their progress.

Grading:
- Accept understandable Spanish. Minor errors: isMistake false, shouldRetry false.
- Only flag mistakes that block comprehension or touch the scenario's learning goals.
- When you set isMistake true and shouldRetry true, include "Repite conmigo: <correct phrase>"
  in the reply and put the exact phrase in "correction".

Style: 1-2 short sentences, warm and encouraging. The "reply" field is the only
text the student sees.

Tools (at most ONE per response, in the "tool" field, otherwise null):
- start_quiz {{"quizId": string}}: roleplay finished, student is ready for the quiz
- grade_quiz {{"quizId": string, "answers": number[]}}: answers[i] for question i, -1 unanswered
- get_hint {{"topic"?: string}}: student is stuck
- log_mistake {{"original": string, "corrected": string, "type"?: string}}: track an error
- mark_complete {{"summary": string}}: conclude the lesson

Persona:
- Name: {persona_name}
- Role: {persona_role}
- Instructions: {persona_instructions}

Scenario: {scenario_title}
Learning goals:
{learning_goals}
Conversation rules:
{conversation_rules}
Success conditions:
{success_conditions}
Tags: {tags}
{post_quiz_line}
Respond with a JSON object:
{{
  "feedback": string,
  "correction": string (required when shouldRetry is true),
  "isMistake": boolean,
  "shouldRetry": boolean,
  "nextPhase": "roleplay" | "quiz" | "completed" (optional),
  "tool": {{"name": string, "args": object}} | null,
  "reply": string
}}"""

NARRATION_SYSTEM_PROMPT = """You are {persona_name} ({persona_role}), a supportive Spanish tutor,
narrating the result of an action the lesson server just performed.

- Output only a brief, in-character narration of what happened (1-2 sentences).
- Set "tool" to null.

Tool result:
- Tool: {tool_name}
- Success: {success}
- Message: {message}

Respond with a JSON object: {{"feedback": string, "tool": null, "reply": string}}"""


def _bullets(items: Sequence[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def build_decision_prompt(
    transcript: Sequence[TranscriptMessage],
    scenario: Scenario,
    persona: Persona,
    pending_retry: Optional[PendingRetry] = None
) -> tuple[str, str]:
    """
    Build the (system, user) prompt pair for a decision call.

    Returns:
        System prompt with persona and scenario, user prompt with the transcript
    """
    post_quiz_line = f"Post-roleplay quiz id: {scenario.post_quiz_id}\n" if scenario.post_quiz_id else ""
    system_prompt = DECISION_SYSTEM_PROMPT.format(
        persona_name=persona.name,
        persona_role=persona.role,
        persona_instructions=persona.instructions,
        scenario_title=scenario.title,
        learning_goals=_bullets(scenario.learning_goals),
        conversation_rules=_bullets(scenario.conversation_rules),
        success_conditions=_bullets(scenario.success_conditions),
        tags=", ".join(scenario.tags),
        post_quiz_line=post_quiz_line,
    )

    lines = [f"{message.role.value}: {message.text}" for message in transcript]
    user_prompt = "Recent transcript:\n" + "\n".join(lines)

    if pending_retry is not None:
        user_prompt += (
            f"\n\nThe student has now failed {pending_retry.attempts} attempts to repeat "
            f'"{pending_retry.expected}". Help them more directly this time.'
        )

    return system_prompt, user_prompt


class LLMTeacher:
    """TeacherCollaborator backed by LLMClient."""

    def __init__(self, llm: Optional[LLMClient] = None):
        self._llm = llm

    @property
    def llm(self) -> LLMClient:
        """Client built on first use, so a missing API key surfaces as LLMError per call."""
        if self._llm is None:
            self._llm = LLMClient()
        return self._llm

    async def generate_decision(
        self,
        transcript: Sequence[TranscriptMessage],
        scenario: Scenario,
        persona: Persona,
        pending_retry: Optional[PendingRetry] = None,
    ) -> TeacherDecision:
        """
        Ask the model for a decision and validate it.

        Raises:
            LLMError if the call fails or returns non-JSON
            DecisionValidationError if the JSON does not match the schema
        """
        system_prompt, user_prompt = build_decision_prompt(
            transcript, scenario, persona, pending_retry
        )
        raw = await self.llm.get_json_completion(prompt=user_prompt, system_prompt=system_prompt)
        return validate_decision(raw)

    async def generate_narration(
        self,
        tool_name: str,
        tool_result: ToolResult,
        scenario: Scenario,
        persona: Persona,
    ) -> str:
        """
        Phrase a tool result in character.

        Raises:
            LLMError if the call fails or returns no usable reply
        """
        system_prompt = NARRATION_SYSTEM_PROMPT.format(
            persona_name=persona.name,
            persona_role=persona.role,
            tool_name=tool_name,
            success=str(tool_result.success).lower(),
            message=tool_result.message,
        )
        raw = await self.llm.get_json_completion(
            prompt=f"Narrate the {tool_name} result for the scenario \"{scenario.title}\".",
            system_prompt=system_prompt,
        )

        reply = raw.get("reply")
        if not isinstance(reply, str) or not reply.strip():
            raise LLMError("Narration response has no reply")
        if raw.get("tool") is not None:
            # Narration may never chain into another tool; the reply is still usable.
            logger.warning("Narration response requested a tool; ignoring it", extra={"tool_name": tool_name})
        return reply.strip()

