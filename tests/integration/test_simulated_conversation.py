"""Integration tests for offline simulation.

These tests replay generated WAV files in real time through the real
controller, voice activity monitor and timers, with scripted recognizer
results and console playback.
"""

from __future__ import annotations

import wave
from pathlib import Path

import pytest
from typer.testing import CliRunner

from xeno_agent import __version__
from xeno_agent.main import app, run_simulation
from xeno_agent.utils.config import SessionConfig, XenoConfig
from xeno_agent.voice.audio import tone

runner = CliRunner()


def silence(duration_ms: int) -> bytes:
    return b"\x00\x00" * (16 * duration_ms)


def write_wav(path: Path, pcm: bytes) -> Path:
    with wave.open(str(path), "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(16000)
        wav.writeframes(pcm)
    return path


@pytest.fixture
def sim_config(fast_config: XenoConfig) -> XenoConfig:
    """Fast timings with enough inactivity slack for a two-turn recording."""
    session = fast_config.session.model_copy(update={"session_timeout_ms": 1500})
    return fast_config.model_copy(update={"session": session})


@pytest.fixture
def two_turn_wav(tmp_path: Path) -> Path:
    """Two 300ms bursts of speech separated by 400ms of silence."""
    pcm = silence(100) + tone(300, 0.1) + silence(400) + tone(300, 0.1)
    return write_wav(tmp_path / "two_turns.wav", pcm)


# =============================================================================
# run_simulation
# =============================================================================


class TestRunSimulation:
    """Tests for run_simulation with real-time replay."""

    @pytest.mark.asyncio
    async def test_conversation_ends_on_farewell(
        self,
        sim_config: XenoConfig,
        two_turn_wav: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """First burst gets an echo reply; the second says goodbye."""
        info = await run_simulation(
            sim_config,
            two_turn_wav,
            ["hello there", "goodbye"],
            realtime=True,
            grace_seconds=2.0,
        )

        out = " ".join(capsys.readouterr().out.split())
        assert "You said: hello there" in out
        assert sim_config.messages.farewell in out
        assert "user_ended" in out
        assert info["state"] == "idle"
        assert info["session_id"] is None

    @pytest.mark.asyncio
    async def test_unclear_speech_reprompts(
        self,
        sim_config: XenoConfig,
        two_turn_wav: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """An empty transcript gets a reprompt rather than a reply."""
        await run_simulation(
            sim_config,
            two_turn_wav,
            ["", "goodbye"],
            realtime=True,
            grace_seconds=2.0,
        )

        out = " ".join(capsys.readouterr().out.split())
        assert sim_config.messages.reprompt in out
        assert "You said:" not in out

    @pytest.mark.asyncio
    async def test_silent_file_times_out(
        self,
        sim_config: XenoConfig,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """A recording with no speech ends by inactivity timeout."""
        config = sim_config.model_copy(
            update={"session": sim_config.session.model_copy(update={"session_timeout_ms": 200})}
        )
        wav = write_wav(tmp_path / "quiet.wav", silence(300))

        info = await run_simulation(config, wav, [], realtime=True, grace_seconds=2.0)

        out = " ".join(capsys.readouterr().out.split())
        assert config.messages.timeout_notice in out
        assert "(timeout)" in out
        assert info["state"] == "idle"


# =============================================================================
# CLI
# =============================================================================


class TestCli:
    """Tests for the typer command line."""

    def test_version(self) -> None:
        """Test the version command."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_show_config(self, temp_config_dir: Path) -> None:
        """Effective configuration is printed as YAML."""
        result = runner.invoke(
            app, ["show-config", "--config", str(temp_config_dir / "default.yaml")]
        )
        assert result.exit_code == 0
        assert "session_timeout_ms: 45000" in result.output
        assert "hey_xeno" in result.output

    def test_check(self, temp_config_dir: Path) -> None:
        """Check reports the loaded configuration."""
        result = runner.invoke(app, ["check", "--config", str(temp_config_dir / "default.yaml")])
        assert result.exit_code == 0
        assert "Configuration loaded" in result.output
        assert "Max retries: 2" in result.output

    def test_check_invalid_config(self, tmp_path: Path) -> None:
        """A broken configuration exits with an error."""
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("session:\n  maxRetries: 0\n")

        result = runner.invoke(app, ["check", "--config", str(config_file)])
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_simulate(self, tmp_path: Path) -> None:
        """The simulate command prints a session summary."""
        config = XenoConfig(
            session=SessionConfig(
                session_timeout_ms=300,
                silence_detection_ms=80,
                min_speech_duration_ms=60,
                silence_hangover_ms=0,
                wake_word_cooldown_ms=0,
            )
        )
        config_file = tmp_path / "config.yaml"
        config.to_yaml(config_file)
        wav = write_wav(tmp_path / "speech.wav", silence(100) + tone(300, 0.1))

        result = runner.invoke(
            app,
            ["simulate", str(wav), "--config", str(config_file), "-t", "goodbye"],
        )

        assert result.exit_code == 0, result.output
        assert "Session summary" in result.output
