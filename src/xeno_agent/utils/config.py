"""Configuration management for Xeno Agent.

Loads configuration from YAML files and validates against Pydantic models.
Session timing options accept both snake_case names and the camelCase
spellings used by existing deployments (``sessionTimeoutMs`` etc.).
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from xeno_agent.errors import ConfigurationError

DEFAULT_END_PHRASES = [
    "goodbye",
    "bye",
    "that's all",
    "that is all",
    "end session",
    "stop listening",
    "no more questions",
    "exit",
    "quit",
]


class _CamelModel(BaseModel):
    """Base model accepting camelCase aliases alongside field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionConfig(_CamelModel):
    """Timing and policy options for the voice session controller."""

    session_timeout_ms: int = Field(default=30000, ge=1)
    silence_detection_ms: int = Field(default=2000, ge=1)
    min_speech_duration_ms: int = Field(default=300, ge=0)
    max_speech_duration_ms: int = Field(default=15000, ge=1)
    voice_activity_threshold: float = Field(default=0.02, gt=0.0, le=1.0)
    wake_word_cooldown_ms: int = Field(default=1000, ge=0)
    max_retries: int = Field(default=3, ge=1, le=10)

    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    silence_hangover_ms: int = Field(default=150, ge=0)
    call_timeout_ms: int = Field(default=15000, ge=1)
    max_pending_frames: int = Field(default=256, ge=1)
    end_phrases: list[str] = Field(default_factory=lambda: list(DEFAULT_END_PHRASES))

    @model_validator(mode="after")
    def _check_durations(self) -> SessionConfig:
        if self.max_speech_duration_ms <= self.min_speech_duration_ms:
            raise ValueError("max_speech_duration_ms must exceed min_speech_duration_ms")
        return self


class VADConfig(_CamelModel):
    """Voice activity monitor tuning beyond the base threshold."""

    adaptive_threshold: bool = Field(default=False)
    noise_floor_alpha: float = Field(default=0.05, gt=0.0, le=1.0)
    noise_floor_multiplier: float = Field(default=2.2, ge=1.0)
    initial_noise_floor: float = Field(default=0.005, ge=0.0)


class RetryConfig(_CamelModel):
    """Retry policy for one class of outbound calls."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    base_delay_ms: int = Field(default=1000, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    max_delay_ms: int = Field(default=30000, ge=0)
    jitter: bool = Field(default=True)


class RetrySettings(_CamelModel):
    """Retry policies per outbound operation."""

    recognition: RetryConfig = Field(default_factory=RetryConfig)
    dialogue: RetryConfig = Field(default_factory=RetryConfig)
    synthesis: RetryConfig = Field(
        default_factory=lambda: RetryConfig(max_attempts=2, base_delay_ms=500)
    )


class MessagesConfig(_CamelModel):
    """Spoken messages used by the controller."""

    greeting: str | None = Field(default="Hello, I'm Xeno. How can I help you?")
    reprompt: str = Field(default="I didn't catch that. Could you please repeat what you said?")
    guidance: str = Field(
        default="I'm having trouble hearing you. Say 'Xeno' when you'd like to try again."
    )
    farewell: str = Field(default="Goodbye. Say 'Xeno' whenever you need me.")
    timeout_notice: str = Field(
        default="I'm going to sleep now. Say 'Xeno' to wake me up again."
    )
    error_notice: str = Field(
        default="I'm sorry, something went wrong. Let's try again in a moment."
    )
    dialogue_fallback: str = Field(
        default="I'm sorry, I couldn't come up with an answer to that right now."
    )


class AudioConfig(_CamelModel):
    """PCM format of frames pushed into the controller."""

    sample_rate: int = Field(default=16000, ge=8000)
    frame_duration_ms: int = Field(default=20, ge=5, le=200)
    sample_width: int = Field(default=2, ge=1, le=4)


class WakeWordConfig(_CamelModel):
    """Wake word trigger configuration."""

    enabled: bool = Field(default=False)
    model_name: str = Field(default="hey_jarvis")
    sensitivity: float = Field(default=0.5, ge=0.0, le=1.0)
    cooldown_seconds: float = Field(default=2.0, ge=0.0)
    custom_models_dir: str = Field(default="data/wake_words")


class PersonaEntry(_CamelModel):
    """Persona bound to a wake keyword."""

    keyword: str
    name: str
    voice: str = Field(default="default")
    display_name: str | None = Field(default=None)


class XenoConfig(BaseModel):
    """Main Xeno Agent configuration."""

    version: str = Field(default="1.0", pattern=r"^\d+\.\d+$")
    session: SessionConfig = Field(default_factory=SessionConfig)
    vad: VADConfig = Field(default_factory=VADConfig)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    messages: MessagesConfig = Field(default_factory=MessagesConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    wake_word: WakeWordConfig = Field(default_factory=WakeWordConfig)
    personas: list[PersonaEntry] = Field(default_factory=list)

    @classmethod
    def from_yaml(cls, path: Path) -> XenoConfig:
        """Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file.

        Returns:
            Validated XenoConfig instance.

        Raises:
            FileNotFoundError: If the config file doesn't exist.
            yaml.YAMLError: If the YAML is malformed.
            ConfigurationError: If the document is not a mapping.
            pydantic.ValidationError: If validation fails.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Configuration root must be a mapping",
                details={"path": str(path), "type": type(data).__name__},
            )
        return cls.model_validate(data)

    def to_yaml(self, path: Path) -> None:
        """Save configuration to a YAML file.

        Args:
            path: Path to write the YAML configuration file.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            f.write(self.dump_yaml())

    def dump_yaml(self) -> str:
        """Render the configuration as a YAML document."""
        return yaml.dump(
            self.model_dump(mode="json"),
            default_flow_style=False,
            sort_keys=False,
        )


class EnvSettings(BaseSettings):
    """Environment variable settings."""

    model_config = SettingsConfigDict(
        env_prefix="XENO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = Field(default=False, description="Enable debug logging")
    json_logs: bool = Field(default=False, description="Emit JSON log lines")
    log_file: Path | None = Field(default=None, description="Optional JSON log file")


def load_config(
    config_path: Path | None = None,
    default_paths: list[Path] | None = None,
) -> XenoConfig:
    """Load configuration from file or use defaults.

    Search order:
    1. Explicit config_path if provided
    2. Default paths in order: ./config/default.yaml, ~/.xeno/config.yaml
    3. Built-in defaults if no file found

    Args:
        config_path: Explicit path to config file.
        default_paths: List of paths to search for config.

    Returns:
        Validated XenoConfig instance.
    """
    if default_paths is None:
        default_paths = [
            Path("config/default.yaml"),
            Path.home() / ".xeno" / "config.yaml",
        ]

    if config_path is not None:
        return XenoConfig.from_yaml(config_path)

    for path in default_paths:
        if path.exists():
            return XenoConfig.from_yaml(path)

    return XenoConfig()


def get_env_settings() -> EnvSettings:
    """Load environment settings.

    Returns:
        EnvSettings instance with values from environment.
    """
    return EnvSettings()
