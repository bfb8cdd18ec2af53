"""Persona selection by wake keyword.

Different wake keywords can map to different personas, each with its own
synthesizer voice. The controller resolves the persona when a session
starts and derives SpeakOptions from it for every spoken message.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from xeno_agent.utils.config import PersonaEntry
from xeno_agent.utils.logging import get_logger

from .types import SpeakOptions

logger = get_logger(__name__)


@dataclass
class Persona:
    """A voice personality tied to a wake keyword.

    Attributes:
        name: Internal identifier (e.g., "xeno")
        keyword: Wake keyword that selects it (e.g., "hey_xeno")
        voice: Synthesizer voice name
        display_name: Human-readable name
    """

    name: str
    keyword: str
    voice: str = "default"
    display_name: str = ""

    def __post_init__(self) -> None:
        if not self.display_name:
            self.display_name = self.name.title()

    @classmethod
    def from_entry(cls, entry: PersonaEntry) -> Persona:
        return cls(
            name=entry.name,
            keyword=entry.keyword,
            voice=entry.voice,
            display_name=entry.display_name or "",
        )

    def speak_options(self, purpose: str = "response", style: str = "neutral") -> SpeakOptions:
        return SpeakOptions(voice=self.voice, style=style, purpose=purpose)


@dataclass
class PersonaRegistry:
    """Keyword to persona lookup with a default fallback."""

    personas: dict[str, Persona] = field(default_factory=dict)
    default_keyword: str = ""

    def register(self, persona: Persona) -> None:
        self.personas[persona.keyword] = persona
        if not self.default_keyword:
            self.default_keyword = persona.keyword
        logger.info(
            "persona_registered",
            keyword=persona.keyword,
            persona=persona.name,
            voice=persona.voice,
        )

    def get(self, keyword: str | None) -> Persona | None:
        if keyword is None:
            return None
        return self.personas.get(keyword)

    def get_default(self) -> Persona | None:
        return self.personas.get(self.default_keyword)

    def resolve(self, keyword: str | None) -> Persona | None:
        """Persona for ``keyword``, falling back to the default persona.

        Args:
            keyword: Detected wake keyword, None for manual starts

        Returns:
            Matching persona, the default, or None if nothing is registered
        """
        persona = self.get(keyword)
        if persona is None and keyword is not None and self.personas:
            logger.debug("persona_not_found", keyword=keyword, fallback=self.default_keyword)
        return persona or self.get_default()

    @classmethod
    def from_entries(cls, entries: list[PersonaEntry]) -> PersonaRegistry:
        registry = cls()
        for entry in entries:
            registry.register(Persona.from_entry(entry))
        return registry

    def __len__(self) -> int:
        return len(self.personas)
