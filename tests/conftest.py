"""Pytest fixtures for Xeno Agent tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from xeno_agent.utils.config import (
    MessagesConfig,
    RetryConfig,
    RetrySettings,
    SessionConfig,
    XenoConfig,
)


@pytest.fixture
def anyio_backend() -> str:
    """Specify async backend for pytest-asyncio."""
    return "asyncio"


@pytest.fixture
def sample_config() -> XenoConfig:
    """Create a sample configuration for testing."""
    return XenoConfig()


@pytest.fixture
def fast_config() -> XenoConfig:
    """Millisecond-scale timings so timer behaviour runs quickly."""
    instant = RetryConfig(max_attempts=3, base_delay_ms=0, jitter=False)
    return XenoConfig(
        session=SessionConfig(
            session_timeout_ms=400,
            silence_detection_ms=80,
            min_speech_duration_ms=60,
            max_speech_duration_ms=2000,
            voice_activity_threshold=0.02,
            wake_word_cooldown_ms=0,
            max_retries=3,
            silence_hangover_ms=0,
            call_timeout_ms=1000,
        ),
        retry=RetrySettings(
            recognition=instant,
            dialogue=instant,
            synthesis=RetryConfig(max_attempts=2, base_delay_ms=0, jitter=False),
        ),
        messages=MessagesConfig(greeting=None),
    )


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory with test files."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    config_file = config_dir / "default.yaml"
    config_file.write_text("""
version: "1.0"
session:
  sessionTimeoutMs: 45000
  silenceDetectionMs: 1500
  maxRetries: 2
personas:
  - keyword: hey_xeno
    name: xeno
    voice: nova
""")

    return config_dir
