from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Protocol

import numpy as np

from rollsub.app.logging_setup import log_event
from rollsub.audio.window import AudioWindowBuffer
from rollsub.errors import ConfigurationError

# Below this many samples the heuristic has nothing to go on.
_MIN_SAMPLES = 80


class VoiceActivity(str, Enum):
    SPEECH = "speech"
    SILENCE = "silence"


class VoiceClassifier(Protocol):
    def classify(self, tail: np.ndarray, sample_rate: int) -> VoiceActivity:
        ...


def rms(samples: np.ndarray) -> float:
    """Return RMS energy for float samples in [-1, 1]."""
    if samples is None or len(samples) == 0:
        return 0.0
    x = np.asarray(samples, dtype=np.float64)
    return float(np.sqrt(np.mean(x * x)))


def zero_crossing_rate(samples: np.ndarray) -> float:
    """Fraction of adjacent sample pairs whose sign differs."""
    if samples is None or len(samples) < 2:
        return 0.0
    signs = np.signbit(np.asarray(samples))
    return float(np.count_nonzero(signs[1:] != signs[:-1])) / float(len(samples) - 1)


class EnergyVAD:
    """
    Short-term energy + zero-crossing heuristic.
    Loud frames count as speech outright; moderately loud frames only when the
    ZCR is low enough to rule out broadband noise (hiss, fans).
    """

    def __init__(self, rms_threshold: float = 0.01, max_zcr: float = 0.35) -> None:
        if rms_threshold < 0:
            raise ConfigurationError("rms_threshold must be >= 0")
        if not 0.0 < max_zcr <= 1.0:
            raise ConfigurationError("max_zcr must be in (0, 1]")
        self.rms_threshold = float(rms_threshold)
        self.max_zcr = float(max_zcr)

    def classify(self, tail: np.ndarray, sample_rate: int = 16000) -> VoiceActivity:
        if tail is None or len(tail) < _MIN_SAMPLES:
            return VoiceActivity.SPEECH
        if not np.all(np.isfinite(tail)):
            return VoiceActivity.SPEECH

        energy = rms(tail)
        if energy >= 4.0 * self.rms_threshold:
            return VoiceActivity.SPEECH
        if energy >= self.rms_threshold and zero_crossing_rate(tail) <= self.max_zcr:
            return VoiceActivity.SPEECH
        return VoiceActivity.SILENCE


class VoiceActivityGate:
    """
    Turns per-tick speech/silence decisions into utterance boundaries.
    A boundary fires once per silence run lasting `hold_ms`, and only after
    speech was heard since the previous boundary.
    """

    def __init__(
        self,
        classifier: VoiceClassifier,
        *,
        tail_ms: float = 400.0,
        hold_ms: float = 800.0,
        logger: Optional[logging.Logger] = None,
        trace: bool = False,
    ) -> None:
        if tail_ms <= 0:
            raise ConfigurationError("vad tail_ms must be > 0")
        if hold_ms <= 0:
            raise ConfigurationError("vad hold_ms must be > 0")
        self.classifier = classifier
        self.tail_ms = float(tail_ms)
        self.hold_ms = float(hold_ms)
        self.logger = logger
        self.trace = trace
        self.in_utterance = False
        self.silence_ms = 0.0

    def classify(self, buffer: AudioWindowBuffer) -> VoiceActivity:
        tail = buffer.tail(self.tail_ms)
        try:
            return self.classifier.classify(tail, buffer.sample_rate)
        except Exception:
            # No confident signal: fail open.
            log_event(self.logger, logging.WARNING, "vad_classify_failed", exc_info=True)
            return VoiceActivity.SPEECH

    def observe(self, buffer: AudioWindowBuffer, advanced_ms: float) -> bool:
        """Classify the buffer tail; return True when an utterance boundary occurred."""
        activity = self.classify(buffer)
        if self.trace:
            log_event(
                self.logger,
                logging.DEBUG,
                "vad_observe",
                activity=activity.value,
                silence_ms=round(self.silence_ms, 1),
                in_utterance=self.in_utterance,
            )

        if activity is VoiceActivity.SPEECH:
            self.in_utterance = True
            self.silence_ms = 0.0
            return False

        self.silence_ms += max(0.0, float(advanced_ms))
        if self.in_utterance and self.silence_ms >= self.hold_ms:
            self.in_utterance = False
            log_event(self.logger, logging.INFO, "vad_boundary", silence_ms=round(self.silence_ms, 1))
            return True
        return False
