from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor
from typing import Any, Dict, Iterable, Iterator, List, Optional

from rollsub.app.config import DebugSettings, PipelineConfig
from rollsub.app.diagnostics import hint_for_exception, summarize_exception
from rollsub.app.logging_setup import log_event
from rollsub.asr.base import WindowTranscriber
from rollsub.audio.vad import EnergyVAD, VoiceActivityGate, VoiceClassifier
from rollsub.audio.window import AudioWindowBuffer
from rollsub.contracts import AudioFrame, Event, Segment
from rollsub.errors import FatalEngineError
from rollsub.live.driver import DriverResult, TranscriptionDriver
from rollsub.live.emitter import EventEmitter
from rollsub.live.stabilizer import Stabilizer
from rollsub.live.state import PipelineState, PipelineStateTracker
from rollsub.live.translation import SegmentTranslationScheduler
from rollsub.nlp.translator.base import Translator


class TickGate:
    """
    Hands timer ticks to the worker with at most one tick pending.
    Requests arriving while one is already pending are collapsed, so a slow
    transcription call lowers the cadence instead of queuing work.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._pending = False
        self._closed = False
        self.requested = 0
        self.collapsed = 0

    @property
    def pending(self) -> int:
        with self._cond:
            return 1 if self._pending else 0

    def request(self) -> bool:
        with self._cond:
            if self._closed:
                return False
            self.requested += 1
            if self._pending:
                self.collapsed += 1
                return False
            self._pending = True
            self._cond.notify()
            return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Take the pending tick. False on timeout or once closed."""
        with self._cond:
            self._cond.wait_for(lambda: self._pending or self._closed, timeout=timeout)
            if self._closed or not self._pending:
                return False
            self._pending = False
            return True

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._pending = False
            self._cond.notify_all()


class RealtimeTranslateSession:
    """
    Windowed transcription + translation of a live audio stream.

    Audio frames go into the window buffer; every `step_ms` the window is
    transcribed, stabilized into committed segments plus a live suffix, and
    partial/final events are published on `events()`.
    `tick()` runs one step synchronously; `start()` runs them on a timer.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        transcriber: WindowTranscriber,
        translator: Translator,
        vad: Optional[VoiceClassifier] = None,
        debug: Optional[DebugSettings] = None,
        logger: Optional[logging.Logger] = None,
        executor: Optional[Executor] = None,
        clock=time.monotonic,
    ) -> None:
        config.validate()
        self.config = config
        self.debug = debug or DebugSettings()
        self.logger = logger

        self.buffer = AudioWindowBuffer(config.window_seconds, config.sample_rate)
        self.driver = TranscriptionDriver(
            buffer=self.buffer,
            transcriber=transcriber,
            source_language=config.source_language,
            max_consecutive_failures=config.max_consecutive_failures,
            dedupe_max_repeat=config.dedupe_max_repeat,
            logger=logger,
        )
        self.stabilizer = Stabilizer(
            config.stability_streak_threshold,
            word_commit=config.enable_word_commit,
            logger=logger,
            trace=self.debug.trace_stabilizer,
        )
        self.vad_gate: Optional[VoiceActivityGate] = None
        if config.enable_vad:
            self.vad_gate = VoiceActivityGate(
                vad or EnergyVAD(rms_threshold=config.vad_rms_threshold, max_zcr=config.vad_max_zcr),
                tail_ms=config.vad_tail_ms,
                hold_ms=config.vad_hold_ms,
                logger=logger,
                trace=self.debug.trace_vad,
            )
        self.scheduler = SegmentTranslationScheduler(
            translator=translator,
            target_language=config.target_language,
            source_language=config.source_language,
            debounce_ms=config.translation_debounce_ms,
            min_chars_delta=config.translation_min_chars_delta,
            max_workers=config.translation_workers,
            executor=executor,
            clock=clock,
            logger=logger,
        )
        self.emitter = EventEmitter(logger=logger)
        self.state = PipelineStateTracker()
        self.tick_gate = TickGate()

        self._tick = 0
        self._tick_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._accepting = threading.Event()
        self._accepting.set()
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []
        self._vad_total = 0
        self._commit_sample: Optional[int] = None
        self._last_promotion_tick = 0
        self._last_result: Optional[DriverResult] = None

    @property
    def current_tick(self) -> int:
        return self._tick

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def _enter(self, target: PipelineState) -> bool:
        with self._state_lock:
            if self.state.closed:
                return False
            self.state.transition(target)
            return True

    def push_frame(self, frame: AudioFrame) -> bool:
        """Append captured audio. False once the session stopped accepting frames."""
        if not self._accepting.is_set():
            return False
        self.buffer.push(frame)
        return True

    def _metrics(self, result: Optional[DriverResult], **extra: Any) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "latency_ms": round(result.latency_ms, 2) if result is not None else 0.0,
            "consecutive_failures": self.driver.consecutive_failures,
            "collapsed_ticks": self.tick_gate.collapsed,
            "cache_hits": self.scheduler.cache.hits,
            "cache_misses": self.scheduler.cache.misses,
            "window_samples": result.window_samples if result is not None else len(self.buffer),
            "segments": len(self.stabilizer.segments),
        }
        if result is not None and result.error:
            out["error"] = result.error
        out.update(extra)
        return out

    def _maybe_release_anchor(self) -> None:
        # Committed audio ends at or before _commit_sample.
        if self._commit_sample is not None and self.buffer.window_start_sample >= self._commit_sample:
            self.stabilizer.release_anchor()
            self._commit_sample = None
            log_event(self.logger, logging.DEBUG, "anchor_released", tick=self._tick)

    def _dispatch_segment(self, segment: Segment) -> None:
        self.emitter.publish_final(segment)
        if not self.scheduler.on_segment_finalized(segment, self.emitter.publish_translation):
            self.emitter.cancel_refinement(segment)

    def _live_translation(self) -> Optional[str]:
        latest = self.scheduler.latest_live_translation
        if latest is None or latest.tick < self._last_promotion_tick:
            return None
        return latest.translated_text

    def tick(self) -> Optional[DriverResult]:
        """Run one pipeline step. None when nothing ran (no audio yet, or closed)."""
        with self._tick_lock:
            if self.state.closed:
                return None
            if self.state.state is PipelineState.IDLE:
                if len(self.buffer) == 0:
                    return None
                self._enter(PipelineState.LISTENING)

            self._tick += 1
            tick = self._tick
            if not self._enter(PipelineState.TRANSCRIBING):
                return None
            try:
                result = self.driver.step(tick)
            except FatalEngineError as e:
                self._fail(e)
                return None
            self._last_result = result
            if self.state.closed:
                return result

            if result.skipped:
                if result.error is not None:
                    self._enter(PipelineState.EMITTING)
                    self.emitter.publish_metrics(tick, self._metrics(result, tick_skipped=True))
                self._enter(PipelineState.LISTENING)
                return result

            self._enter(PipelineState.STABILIZING)
            self._maybe_release_anchor()
            prev_live = self.stabilizer.live_suffix
            update = self.stabilizer.feed(result.candidate or "", tick)
            promoted = list(update.promoted)

            if self.vad_gate is not None:
                total = self.buffer.total_samples
                advanced_ms = (total - self._vad_total) * 1000.0 / self.buffer.sample_rate
                self._vad_total = total
                if self.vad_gate.observe(self.buffer, advanced_ms):
                    seg = self.stabilizer.force_promote(tick, reason="vad")
                    if seg is not None:
                        promoted.append(seg)

            if promoted:
                self._enter(PipelineState.TRANSLATING)
                self._commit_sample = self.buffer.total_samples
                self._last_promotion_tick = tick
                for seg in promoted:
                    self._dispatch_segment(seg)

            self._enter(PipelineState.EMITTING)
            live = self.stabilizer.live_suffix
            if live != prev_live and not (promoted and not live):
                if live:
                    self.scheduler.on_live_suffix_changed(live, tick)
                self.emitter.publish_partial(tick, live, self._live_translation())
            self._enter(PipelineState.LISTENING)
            return result

    def _fail(self, exc: BaseException) -> None:
        summary = summarize_exception(str(exc) or type(exc).__name__)
        hint = hint_for_exception(summary)
        log_event(self.logger, logging.ERROR, "session_fatal", tick=self._tick, error=summary, hint=hint)
        self._accepting.clear()
        self._stop.set()
        self.tick_gate.close()
        with self._state_lock:
            self.state.set_closed(summary)
        self.scheduler.cancel_all()
        self.emitter.emit_terminal(
            error=summary,
            detail=self._metrics(self._last_result, hint=hint, error=summary, error_type=type(exc).__name__),
        )

    def _run_tick_safely(self) -> None:
        try:
            self.tick()
        except Exception as e:
            # Surface as a terminal event; the consumer must never see a hung stream.
            log_event(self.logger, logging.ERROR, "tick_crash", tick=self._tick, exc_info=True)
            self._fail(e)

    def _tick_worker(self) -> None:
        while not self._stop.is_set():
            if self.tick_gate.wait(timeout=0.1):
                self._run_tick_safely()

    def _tick_timer(self) -> None:
        step = self.config.step_sec
        while not self._stop.wait(step):
            self.tick_gate.request()

    def _ingest(self, frames: Iterable[AudioFrame]) -> None:
        try:
            for frame in frames:
                if self._stop.is_set() or not self.push_frame(frame):
                    return
        except Exception as e:
            log_event(self.logger, logging.ERROR, "ingest_crash", exc_info=True)
            self._fail(e)

    def start(self, frames: Optional[Iterable[AudioFrame]] = None) -> "RealtimeTranslateSession":
        if self._threads:
            raise RuntimeError("session already started")
        if self._stop.is_set():
            raise RuntimeError("session already stopped")
        specs = [
            (self._tick_worker, "rollsub-tick-worker"),
            (self._tick_timer, "rollsub-tick-timer"),
        ]
        if frames is not None:
            specs.append((lambda: self._ingest(frames), "rollsub-ingest"))
        for target, name in specs:
            th = threading.Thread(target=target, name=name, daemon=True)
            self._threads.append(th)
            th.start()
        log_event(
            self.logger,
            logging.INFO,
            "session_start",
            window_seconds=self.config.window_seconds,
            step_ms=self.config.step_ms,
            enable_vad=self.config.enable_vad,
            target_language=self.config.target_language,
        )
        return self

    def events(self) -> Iterator[Event]:
        return iter(self.emitter.stream)

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop accepting audio, give the in-flight tick up to `timeout`
        (default shutdown_timeout_sec), commit the live suffix, cancel
        translations, publish `closed` and close the stream.
        Segments left without a translation (including the flushed one) get
        a refinement with `detail["cancelled"]` set before `closed`.
        """
        if self.emitter.terminated:
            self._stop.set()
            return
        timeout = self.config.shutdown_timeout_sec if timeout is None else max(0.0, float(timeout))
        deadline = time.monotonic() + timeout

        self._accepting.clear()
        self._stop.set()
        self.tick_gate.close()
        for th in self._threads:
            if th.name == "rollsub-ingest":
                # May be blocked in a device read; it exits on its next frame.
                continue
            th.join(max(0.0, deadline - time.monotonic()))
            if th.is_alive():
                log_event(self.logger, logging.WARNING, "thread_abandoned", thread=th.name, tick=self._tick)

        flushed = None
        if self._tick_lock.acquire(timeout=max(0.0, deadline - time.monotonic())):
            try:
                if not self.state.closed:
                    flushed = self.stabilizer.flush(max(self._tick, self.emitter.last_tick))
                    if flushed is not None:
                        self.emitter.publish_final(flushed)
            finally:
                self._tick_lock.release()

        cancelled = self.scheduler.cancel_all()
        with self._state_lock:
            self.state.set_closed()
        self.emitter.emit_terminal(
            detail=self._metrics(self._last_result, cancelled_translations=cancelled, flushed=flushed is not None)
        )
        log_event(
            self.logger,
            logging.INFO,
            "session_stop",
            ticks=self._tick,
            segments=len(self.stabilizer.segments),
            collapsed_ticks=self.tick_gate.collapsed,
            translate_calls=self.scheduler.external_calls,
        )

    def __enter__(self) -> "RealtimeTranslateSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
