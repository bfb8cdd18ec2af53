"""Wake triggers for the voice session controller.

Two implementations of the WakeTrigger contract:
- ManualWakeTrigger: fired by a button, a CLI command or a test
- OpenWakeWordTrigger: keyword spotting over pushed frames using the
  OpenWakeWord library (install the ``wakeword`` extra)

Both report the detected keyword so the controller can pick a persona.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np
import structlog

from xeno_agent.utils.config import WakeWordConfig

from .interfaces import AudioSource, WakeCallback
from .types import AudioFrame

if TYPE_CHECKING:
    from openwakeword.model import Model as OWWModel

logger = structlog.get_logger(__name__)

# Samples per prediction window (80ms at 16kHz)
OWW_CHUNK_SAMPLES = 1280

# Bundled models tried in order when the configured one is missing
FALLBACK_MODELS = ["hey_jarvis", "alexa", "hey_mycroft"]


@dataclass
class ManualWakeTrigger:
    """Wake trigger fired explicitly via ``trigger()``."""

    _callbacks: list[WakeCallback] = field(default_factory=list, repr=False)

    def on_detected(self, callback: WakeCallback) -> None:
        self._callbacks.append(callback)

    def trigger(self, keyword: str | None = None) -> None:
        logger.debug("manual_wake_triggered", keyword=keyword)
        for callback in list(self._callbacks):
            callback(keyword)


@dataclass
class OpenWakeWordTrigger:
    """Keyword spotter fed with AudioFrames.

    The OpenWakeWord model is loaded lazily on first use unless one is
    injected. Detections inside ``cooldown_seconds`` of the previous one
    are ignored so a single utterance of the keyword fires once.
    """

    config: WakeWordConfig = field(default_factory=WakeWordConfig)
    model: Any = None
    keywords: list[str] = field(default_factory=list)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    _callbacks: list[WakeCallback] = field(default_factory=list, repr=False)
    _pending: np.ndarray = field(
        default_factory=lambda: np.zeros(0, dtype=np.int16), repr=False
    )
    _active_models: list[str] = field(default_factory=list, repr=False)
    _last_detection: float | None = field(default=None, repr=False)
    _load_attempted: bool = field(default=False, repr=False)

    def on_detected(self, callback: WakeCallback) -> None:
        self._callbacks.append(callback)

    def attach(self, source: AudioSource) -> Callable[[], None]:
        """Listen to frames from ``source``; returns the unsubscribe function."""
        return source.subscribe(self.feed)

    @property
    def is_available(self) -> bool:
        self._ensure_model()
        return self.model is not None and bool(self._active_models)

    @property
    def active_models(self) -> list[str]:
        """Model names in use, loading the model on first access."""
        self._ensure_model()
        return self._active_models.copy()

    def _ensure_model(self) -> None:
        if self._load_attempted:
            return
        self._load_attempted = True

        if self.model is None:
            self.model = self._load_model()
        if self.model is None:
            return

        available = list(getattr(self.model, "models", {}) or {})
        wanted = self.keywords or [self.config.model_name]
        self._active_models = [name for name in wanted if name in available]
        if not self._active_models:
            fallback = next((m for m in FALLBACK_MODELS if m in available), None)
            self._active_models = [fallback] if fallback else available[:1]

        logger.info(
            "wake_word_models_active",
            models=self._active_models,
            sensitivity=self.config.sensitivity,
        )

    def _load_model(self) -> OWWModel | None:
        try:
            from openwakeword.model import Model
        except ImportError:
            logger.warning("openwakeword_not_installed", msg="Wake word detection unavailable")
            return None

        custom = self._find_custom_models()
        try:
            return Model(wakeword_models=custom) if custom else Model()
        except Exception as e:
            logger.warning("wake_word_model_load_failed", error=str(e))
            return None

    def _find_custom_models(self) -> list[str]:
        if not self.keywords:
            return []
        custom_dir = Path(self.config.custom_models_dir)
        paths = [custom_dir / f"{name}.onnx" for name in self.keywords]
        missing = [p.stem for p in paths if not p.exists()]
        if missing:
            logger.warning(
                "custom_wake_word_models_missing",
                missing=missing,
                expected_dir=str(custom_dir),
            )
        return [str(p.absolute()) for p in paths if p.exists()]

    def feed(self, frame: AudioFrame) -> str | None:
        """Run detection over one frame.

        Samples are pooled until a full prediction window is available.

        Returns:
            The detected keyword, or None
        """
        self._ensure_model()
        if self.model is None or not self._active_models:
            return None

        samples = np.frombuffer(frame.data, dtype=np.int16)
        self._pending = np.concatenate([self._pending, samples])

        detected: str | None = None
        while len(self._pending) >= OWW_CHUNK_SAMPLES:
            window = self._pending[:OWW_CHUNK_SAMPLES]
            self._pending = self._pending[OWW_CHUNK_SAMPLES:]
            detected = detected or self._predict(window)
        return detected

    def _predict(self, window: np.ndarray) -> str | None:
        now = self.clock()
        if (
            self._last_detection is not None
            and now - self._last_detection < self.config.cooldown_seconds
        ):
            return None

        predictions = self.model.predict(window)
        threshold = 1.0 - self.config.sensitivity
        for name in self._active_models:
            score = float(predictions.get(name, 0.0))
            if score > threshold:
                self._last_detection = now
                logger.info("wake_word_detected", model=name, score=round(score, 3))
                for callback in list(self._callbacks):
                    callback(name)
                return name
        return None

    def reset(self, preserve_cooldown: bool = False) -> None:
        """Clear pooled samples and model state.

        Args:
            preserve_cooldown: Keep the last detection time, useful after
                playback so the speaker's echo does not re-trigger
        """
        self._pending = np.zeros(0, dtype=np.int16)
        if self.model is not None and hasattr(self.model, "reset"):
            self.model.reset()
        if not preserve_cooldown:
            self._last_detection = None
