"""Xeno Agent - Main entry point.

Run with: python -m xeno_agent
Or: xeno-agent (after installation)

Commands:
- simulate: Replay a WAV file through the voice session controller
- show-config: Print the effective configuration
- check: Check configuration and optional components
- version: Show version info
"""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from xeno_agent.utils.config import XenoConfig, get_env_settings, load_config
from xeno_agent.utils.logging import configure_logging, get_logger
from xeno_agent.voice import (
    EventType,
    LifecycleEvent,
    VoiceSessionController,
    WaveFileSource,
)
from xeno_agent.voice.simulation import ConsoleSynthesizer, EchoDialogueEngine, ScriptedRecognizer

app = typer.Typer(
    name="xeno-agent",
    help="Xeno Agent - A continuous-conversation voice session controller",
)

console = Console()
log = get_logger(__name__)


def _setup_logging(debug: bool = False) -> None:
    env = get_env_settings()
    configure_logging(
        level="DEBUG" if debug or env.debug else "INFO",
        json_format=env.json_logs,
        log_file=env.log_file,
    )


def _print_event(event: LifecycleEvent) -> None:
    data = event.data
    if event.type == EventType.STATE_CHANGED:
        console.print(f"[dim]state {data['from']} → {data['to']}[/]")
    elif event.type == EventType.SESSION_STARTED:
        console.print(f"[green]● session started[/] ({data['trigger']}, persona={data['persona']})")
    elif event.type == EventType.SPEECH_DETECTED:
        console.print("[yellow]… speech detected[/]")
    elif event.type == EventType.UTTERANCE_FINALIZED:
        console.print(
            f"[dim]utterance closed by {data['trigger']} "
            f"({data['duration_ms']:.0f} ms, {data['bytes']} bytes)[/]"
        )
    elif event.type == EventType.SPEECH_TRANSCRIBED:
        console.print(f"[bold]You:[/] {data['text']} [dim]({data['confidence']:.2f})[/]")
    elif event.type == EventType.SESSION_ENDED:
        console.print(f"[red]● session ended[/] ({data['reason']})")
    elif event.type == EventType.ERROR:
        console.print(f"[bold red]✖ {data['code']}:[/] {data['message']}")


async def run_simulation(
    config: XenoConfig,
    wav_path: Path,
    transcripts: list[str],
    keyword: str | None = None,
    realtime: bool = True,
    words_per_second: float = 0.0,
    grace_seconds: float = 5.0,
) -> dict:
    """Drive one session from a WAV file with scripted transcripts.

    Args:
        config: Effective configuration
        wav_path: Mono 16-bit WAV to replay
        transcripts: Recognizer results, one per utterance
        keyword: Wake keyword used to select a persona
        realtime: Pace frames at their real duration
        words_per_second: Simulated playback speed (0 = instant)
        grace_seconds: Time allowed after the file ends for the session to close

    Returns:
        Final session info
    """
    source = WaveFileSource(
        path=wav_path,
        frame_duration_ms=config.audio.frame_duration_ms,
        realtime=realtime,
        tail_silence_ms=config.session.silence_detection_ms + 500,
    )
    controller = VoiceSessionController(
        recognizer=ScriptedRecognizer.from_texts(transcripts),
        synthesizer=ConsoleSynthesizer(console=console, words_per_second=words_per_second),
        dialogue=EchoDialogueEngine(),
        audio_source=source,
        config=config,
        logger=log,
    )

    ended = asyncio.Event()
    controller.events.subscribe(_print_event)
    controller.events.subscribe(lambda _: ended.set(), EventType.SESSION_ENDED)

    async with controller:
        await controller.start_session(keyword=keyword)
        finished = asyncio.create_task(source.wait_finished())
        waiter = asyncio.create_task(ended.wait())
        await asyncio.wait({finished, waiter}, return_when=asyncio.FIRST_COMPLETED)

        if not ended.is_set():
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(ended.wait(), timeout=grace_seconds)
        finished.cancel()
        waiter.cancel()
        info = controller.session_info()
        await controller.end_session()
    return info


@app.command()
def simulate(
    wav: Path = typer.Argument(..., exists=True, dir_okay=False, help="Mono 16-bit WAV file"),
    transcript: list[str] = typer.Option(
        [],
        "--transcript",
        "-t",
        help="Recognizer result for each utterance, in order",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
    keyword: str | None = typer.Option(
        None,
        "--keyword",
        "-k",
        help="Wake keyword used to pick a persona",
    ),
    fast: bool = typer.Option(
        False,
        "--fast",
        help="Push frames without real-time pacing",
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """Replay a recording through the controller with offline collaborators.

    Speech in the file opens utterances exactly as live audio would; each
    utterance is "recognized" as the next --transcript value and the reply
    is printed instead of spoken.
    """
    cfg = load_config(config)
    _setup_logging(debug)
    log.info("simulation_starting", wav=str(wav), transcripts=len(transcript))

    try:
        info = asyncio.run(
            run_simulation(cfg, wav, transcript, keyword=keyword, realtime=not fast)
        )
    except KeyboardInterrupt:
        console.print("\n👋 Goodbye!")
        return

    table = Table(title="Session summary")
    table.add_column("Field")
    table.add_column("Value")
    for key in ("state", "turn_count", "retry_count", "dropped_frames", "last_amplitude"):
        table.add_row(key, str(info[key]))
    console.print(table)


@app.command("show-config")
def show_config(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
) -> None:
    """Print the effective configuration as YAML."""
    cfg = load_config(config)
    console.print(cfg.dump_yaml(), markup=False, highlight=False)


@app.command()
def check(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
) -> None:
    """Check configuration and optional components."""
    from xeno_agent.voice.wake_word import OpenWakeWordTrigger

    print("🔍 Checking Xeno Agent configuration...\n")

    try:
        cfg = load_config(config)
        print("✅ Configuration loaded")
        print(f"   Session timeout: {cfg.session.session_timeout_ms} ms")
        print(f"   Max retries: {cfg.session.max_retries}")
        print(f"   Personas: {len(cfg.personas)}")
    except Exception as e:
        print(f"❌ Configuration error: {e}")
        raise typer.Exit(code=1) from e

    if cfg.wake_word.enabled:
        trigger = OpenWakeWordTrigger(config=cfg.wake_word)
        if trigger.is_available:
            print(f"✅ Wake word models: {', '.join(trigger.active_models)}")
        else:
            print("⚠️ Wake word enabled but unavailable (pip install xeno-agent[wakeword])")
    else:
        print("ℹ️ Wake word disabled; sessions start manually")

    print("\n")


@app.command()
def version() -> None:
    """Show version information."""
    from xeno_agent import __version__

    print(f"Xeno Agent v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
