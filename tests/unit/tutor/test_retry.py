"""
Tests for local retry nudges.
"""

from charla.content.models import Persona
from charla.tutor.retry import generate_retry_message


def _persona(persona_id: str) -> Persona:
    return Persona(id=persona_id, name=persona_id.title(), role="Tutor", instructions="Be kind.")


def test_jorge_gentle_nudge_embeds_normalized_expected():
    message = generate_retry_message("Quiero ir al centro.", 1, _persona("jorge"))
    assert message.startswith("(Jorge)")
    assert '"quiero ir al centro"' in message


def test_valentina_gentle_then_insistent():
    persona = _persona("valentina")
    gentle = generate_retry_message("Un café", 2, persona)
    insistent = generate_retry_message("Un café", 3, persona)
    assert "Casi lo tienes" in gentle
    assert "No te rindas" in insistent
    assert gentle != insistent


def test_unknown_persona_uses_default_templates():
    message = generate_retry_message("Gracias", 1, _persona("pedro"))
    assert message == 'Intenta de nuevo: "gracias"'


def test_no_persona_uses_default_templates():
    message = generate_retry_message("Gracias", 5)
    assert message.startswith("La respuesta correcta es")
