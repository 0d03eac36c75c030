"""
Local retry nudges for gated corrections.

Pure string composition: the cheap retry path must never touch the network.
"""

from typing import Dict, Optional, Tuple

from charla.content.models import Persona
from charla.tutor.normalize import normalize_for_exact_match

# persona id -> (gentle template, insistent template)
RETRY_TEMPLATES: Dict[str, Tuple[str, str]] = {
    "jorge": (
        '(Jorge) Atrévete a intentarlo de nuevo: "{expected}"',
        '(Jorge) ¡Vamos, tú puedes! La respuesta correcta es "{expected}". ¡Inténtalo de nuevo!',
    ),
    "valentina": (
        '(Valentina) Casi lo tienes. Recuerda: "{expected}". ¿Puedes intentarlo otra vez?',
        '(Valentina) ¡No te rindas! La frase correcta es "{expected}". ¡Tú puedes!',
    ),
}

DEFAULT_TEMPLATES: Tuple[str, str] = (
    'Intenta de nuevo: "{expected}"',
    'La respuesta correcta es "{expected}". Por favor, inténtalo de nuevo.',
)

GENTLE_ATTEMPT_LIMIT = 2


def generate_retry_message(
    expected: str,
    attempts: int,
    persona: Optional[Persona] = None
) -> str:
    """
    Build the tutor nudge for a failed retry.

    Args:
        expected: The correction the learner has to reproduce
        attempts: Failed attempts so far, including this one
        persona: Scenario persona; unknown personas get the default voice

    Returns:
        Tutor message embedding the normalized expected phrase
    """
    gentle, insistent = RETRY_TEMPLATES.get(persona.id if persona else "", DEFAULT_TEMPLATES)
    template = gentle if attempts <= GENTLE_ATTEMPT_LIMIT else insistent
    return template.format(expected=normalize_for_exact_match(expected))
