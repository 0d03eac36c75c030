"""
Content pack loading and read-only lookups.

The repository is built once at startup and injected into the engine;
nothing here is module-level mutable state.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import TypeAdapter, ValidationError

from charla.content.models import ContentPack, Level, Persona, Quiz, Scenario
from charla.shared.exceptions import ContentError
from charla.shared.logging import get_logger

logger = get_logger(__name__)

CONTENT_FILES = {
    "levels": List[Level],
    "personas": List[Persona],
    "scenarios": List[Scenario],
    "quizzes": List[Quiz],
}

_EXTENSIONS = (".yaml", ".yml", ".json")


def format_validation_error(err: ValidationError, filename: str) -> str:
    """Format a pydantic validation error as a readable multi-line string."""
    lines = [f"File: {filename}", "Validation Errors:"]
    for issue in err.errors():
        path = ".".join(str(part) for part in issue["loc"]) or "(root)"
        lines.append(f"  - Path: {path}")
        lines.append(f"    Message: {issue['msg']}")
    return "\n".join(lines)


def _find_content_file(content_dir: Path, name: str) -> Path:
    for ext in _EXTENSIONS:
        candidate = content_dir / f"{name}{ext}"
        if candidate.exists():
            return candidate
    raise ContentError(f"Missing content file: {content_dir / name}.(yaml|yml|json)")


def _read_file(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        if path.suffix == ".json":
            return json.load(f)
        return yaml.safe_load(f)


def load_content_pack(content_dir: Path) -> ContentPack:
    """
    Load and validate all content files in a directory.

    Each file is validated on its own first so that every broken file is
    reported at once; cross-references are checked afterwards.

    Raises:
        ContentError with file, path and message details
    """
    content_dir = Path(content_dir)
    records: Dict[str, Any] = {}
    errors: List[str] = []

    for name, schema in CONTENT_FILES.items():
        path = _find_content_file(content_dir, name)
        try:
            raw = _read_file(path)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            errors.append(f"File: {path.name}\n  Could not be read: {e}")
            continue
        try:
            records[name] = TypeAdapter(schema).validate_python(raw or [])
        except ValidationError as e:
            errors.append(format_validation_error(e, path.name))

    if errors:
        raise ContentError("Content validation failed:\n\n" + "\n\n".join(errors))

    try:
        pack = ContentPack(**records)
    except ValidationError as e:
        raise ContentError(
            "Cross-reference validation failed:\n\n"
            + format_validation_error(e, "cross-references")
        ) from e

    logger.info(
        "Loaded content pack",
        extra={
            "levels": len(pack.levels),
            "personas": len(pack.personas),
            "scenarios": len(pack.scenarios),
            "quizzes": len(pack.quizzes),
        },
    )
    return pack


class ContentRepository:
    """Read-only lookups over a validated content pack."""

    def __init__(self, pack: ContentPack):
        self.pack = pack
        self._levels = {level.id: level for level in pack.levels}
        self._personas = {persona.id: persona for persona in pack.personas}
        self._scenarios = {scenario.id: scenario for scenario in pack.scenarios}
        self._quizzes = {quiz.id: quiz for quiz in pack.quizzes}

    @classmethod
    def from_directory(cls, content_dir: Path) -> "ContentRepository":
        return cls(load_content_pack(content_dir))

    def levels(self) -> List[Level]:
        """All levels sorted by display order."""
        return sorted(self.pack.levels, key=lambda level: level.order)

    def level(self, level_id: str) -> Optional[Level]:
        return self._levels.get(level_id)

    def scenarios_for_level(self, level_id: str) -> List[Scenario]:
        return [s for s in self.pack.scenarios if s.level_id == level_id]

    def scenario(self, scenario_id: str) -> Optional[Scenario]:
        return self._scenarios.get(scenario_id)

    def persona(self, persona_id: str) -> Optional[Persona]:
        return self._personas.get(persona_id)

    def quiz(self, quiz_id: str) -> Optional[Quiz]:
        return self._quizzes.get(quiz_id)

    def quizzes(self) -> List[Quiz]:
        return list(self.pack.quizzes)
