"""Unit tests for persona selection.

Tests cover:
- Persona creation and SpeakOptions derivation
- PersonaRegistry registration, lookup and default fallback
- Building a registry from configuration entries
"""

from __future__ import annotations

from xeno_agent.utils.config import PersonaEntry
from xeno_agent.voice.persona import Persona, PersonaRegistry


class TestPersona:
    """Tests for Persona dataclass."""

    def test_valid_creation(self) -> None:
        """Test creating a persona."""
        persona = Persona(name="xeno", keyword="hey_xeno", voice="nova", display_name="Xeno")
        assert persona.name == "xeno"
        assert persona.keyword == "hey_xeno"
        assert persona.voice == "nova"
        assert persona.display_name == "Xeno"

    def test_display_name_defaults_to_title(self) -> None:
        """Test display name derived from the name."""
        persona = Persona(name="batou", keyword="hey_batou")
        assert persona.display_name == "Batou"
        assert persona.voice == "default"

    def test_speak_options(self) -> None:
        """SpeakOptions carry the persona voice and the purpose."""
        persona = Persona(name="xeno", keyword="hey_xeno", voice="onyx")
        options = persona.speak_options("reprompt")

        assert options.voice == "onyx"
        assert options.purpose == "reprompt"
        assert options.style == "neutral"

    def test_from_entry(self) -> None:
        """Test building from a config entry."""
        entry = PersonaEntry.model_validate(
            {"keyword": "hey_xeno", "name": "xeno", "voice": "nova", "displayName": "Xeno Prime"}
        )
        persona = Persona.from_entry(entry)
        assert persona.display_name == "Xeno Prime"
        assert persona.voice == "nova"


class TestPersonaRegistry:
    """Tests for PersonaRegistry."""

    def test_first_registered_is_default(self) -> None:
        """Test that the first persona becomes the default."""
        registry = PersonaRegistry()
        registry.register(Persona(name="xeno", keyword="hey_xeno"))
        registry.register(Persona(name="batou", keyword="hey_batou"))

        assert registry.default_keyword == "hey_xeno"
        assert registry.get_default().name == "xeno"
        assert len(registry) == 2

    def test_get_by_keyword(self) -> None:
        """Test lookup by keyword."""
        registry = PersonaRegistry()
        registry.register(Persona(name="batou", keyword="hey_batou"))

        assert registry.get("hey_batou").name == "batou"
        assert registry.get("unknown") is None
        assert registry.get(None) is None

    def test_resolve_falls_back_to_default(self) -> None:
        """Unknown or missing keywords resolve to the default persona."""
        registry = PersonaRegistry()
        registry.register(Persona(name="xeno", keyword="hey_xeno"))
        registry.register(Persona(name="batou", keyword="hey_batou"))

        assert registry.resolve("hey_batou").name == "batou"
        assert registry.resolve("hey_jarvis").name == "xeno"
        assert registry.resolve(None).name == "xeno"

    def test_empty_registry_resolves_none(self) -> None:
        """Test resolving with nothing registered."""
        assert PersonaRegistry().resolve("hey_xeno") is None

    def test_from_entries(self) -> None:
        """Test building a registry from configuration."""
        registry = PersonaRegistry.from_entries(
            [
                PersonaEntry(keyword="hey_xeno", name="xeno", voice="nova"),
                PersonaEntry(keyword="hey_batou", name="batou", voice="onyx"),
            ]
        )
        assert len(registry) == 2
        assert registry.resolve("hey_batou").voice == "onyx"
