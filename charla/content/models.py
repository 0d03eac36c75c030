"""
Pydantic models for the static content pack (levels, personas, scenarios, quizzes).
"""

from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class ContentModel(BaseModel):
    """Base for content records; accepts camelCase keys from content files."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Level(ContentModel):
    """A proficiency level (e.g. A1, A2)."""
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    order: int = Field(gt=0)


class Persona(ContentModel):
    """Character the tutor plays in a scenario."""
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    role: str = Field(min_length=1)
    voice_id: Optional[str] = None
    tts_voice_id: Optional[str] = None
    instructions: str = Field(min_length=1)


class QuizItem(ContentModel):
    """Single multiple-choice question."""
    question: str = Field(min_length=1)
    options: List[str] = Field(min_length=2)
    correct_index: int = Field(ge=0)
    explanation: Optional[str] = None

    @model_validator(mode="after")
    def _correct_index_in_range(self) -> "QuizItem":
        if self.correct_index >= len(self.options):
            raise ValueError(
                f"correct_index {self.correct_index} out of range for {len(self.options)} options"
            )
        return self


class Quiz(ContentModel):
    """Quiz unlocked after a scenario."""
    id: str = Field(min_length=1)
    scenario_id: Optional[str] = None
    items: List[QuizItem] = Field(min_length=1)


class Scenario(ContentModel):
    """Roleplay scenario."""
    id: str = Field(min_length=1)
    level_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    persona_id: str = Field(min_length=1)
    tags: List[str] = Field(default_factory=list)
    learning_goals: List[str] = Field(min_length=1)
    initial_message: str = Field(min_length=1)
    success_conditions: List[str] = Field(min_length=1)
    conversation_rules: List[str] = Field(min_length=1)
    post_quiz_id: Optional[str] = None


class ContentPack(ContentModel):
    """All content records with cross-reference validation."""
    levels: List[Level] = Field(default_factory=list)
    personas: List[Persona] = Field(default_factory=list)
    scenarios: List[Scenario] = Field(default_factory=list)
    quizzes: List[Quiz] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> "ContentPack":
        issues = cross_reference_issues(self)
        if issues:
            raise ValueError("; ".join(issues))
        return self


def cross_reference_issues(pack: ContentPack) -> List[str]:
    """
    List broken references between scenarios and levels, personas and quizzes.

    Returns:
        Human-readable issue strings, empty when the pack is consistent
    """
    level_ids = {level.id for level in pack.levels}
    persona_ids = {persona.id for persona in pack.personas}
    quiz_ids = {quiz.id for quiz in pack.quizzes}

    issues = []
    for index, scenario in enumerate(pack.scenarios):
        if scenario.level_id not in level_ids:
            issues.append(
                f"scenarios.{index}.levelId: scenario \"{scenario.id}\" references "
                f"non-existent levelId \"{scenario.level_id}\""
            )
        if scenario.persona_id not in persona_ids:
            issues.append(
                f"scenarios.{index}.personaId: scenario \"{scenario.id}\" references "
                f"non-existent personaId \"{scenario.persona_id}\""
            )
        if scenario.post_quiz_id and scenario.post_quiz_id not in quiz_ids:
            issues.append(
                f"scenarios.{index}.postQuizId: scenario \"{scenario.id}\" references "
                f"non-existent postQuizId \"{scenario.post_quiz_id}\""
            )
    return issues
