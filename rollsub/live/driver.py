from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from rollsub.app.logging_setup import log_event
from rollsub.asr.base import WindowTranscriber
from rollsub.audio.window import AudioWindowBuffer
from rollsub.errors import FatalEngineError, TransientEngineError
from rollsub.nlp.text import normalize_candidate


@dataclass(frozen=True)
class DriverResult:
    tick: int
    candidate: Optional[str]  # None when the tick was skipped
    window_samples: int
    latency_ms: float = 0.0
    error: Optional[str] = None
    consecutive_failures: int = 0

    @property
    def skipped(self) -> bool:
        return self.candidate is None


class TranscriptionDriver:
    """
    Runs the external transcriber over a snapshot of the window, once per tick.
    Transient failures skip the tick; `max_consecutive_failures` in a row
    escalate to FatalEngineError.
    """

    def __init__(
        self,
        *,
        buffer: AudioWindowBuffer,
        transcriber: WindowTranscriber,
        source_language: str = "auto",
        max_consecutive_failures: int = 3,
        dedupe_max_repeat: int = 2,
        logger: logging.Logger | None = None,
    ) -> None:
        if max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be >= 1")
        self.buffer = buffer
        self.transcriber = transcriber
        self.source_language = source_language
        self.max_consecutive_failures = int(max_consecutive_failures)
        self.dedupe_max_repeat = int(dedupe_max_repeat)
        self.logger = logger
        self.consecutive_failures = 0
        self.calls = 0

    def step(self, tick: int) -> DriverResult:
        window = self.buffer.snapshot()
        if len(window) == 0:
            return DriverResult(tick=tick, candidate=None, window_samples=0)

        t0 = time.perf_counter()
        self.calls += 1
        try:
            raw = self.transcriber.transcribe(
                window,
                self.buffer.sample_rate,
                self.source_language,
            )
        except FatalEngineError:
            log_event(self.logger, logging.ERROR, "transcribe_fatal", tick=tick, exc_info=True)
            raise
        except TransientEngineError as e:
            self.consecutive_failures += 1
            dur_ms = (time.perf_counter() - t0) * 1000.0
            log_event(
                self.logger,
                logging.WARNING,
                "tick_failed",
                tick=tick,
                error=str(e),
                consecutive_failures=self.consecutive_failures,
                ms=round(dur_ms, 2),
            )
            if self.consecutive_failures >= self.max_consecutive_failures:
                raise FatalEngineError(
                    f"transcription failed {self.consecutive_failures} times in a row: {e}"
                ) from e
            return DriverResult(
                tick=tick,
                candidate=None,
                window_samples=len(window),
                latency_ms=dur_ms,
                error=str(e),
                consecutive_failures=self.consecutive_failures,
            )

        dur_ms = (time.perf_counter() - t0) * 1000.0
        self.consecutive_failures = 0
        candidate = normalize_candidate(str(raw or ""), max_repeat=self.dedupe_max_repeat)
        log_event(
            self.logger,
            logging.DEBUG,
            "tick_transcribed",
            tick=tick,
            chars=len(candidate),
            window_samples=len(window),
            ms=round(dur_ms, 2),
        )
        return DriverResult(
            tick=tick,
            candidate=candidate,
            window_samples=len(window),
            latency_ms=dur_ms,
        )
