from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import CancelledError, Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Tuple

from rollsub.app.logging_setup import log_event
from rollsub.contracts import Segment, TranslationRequest
from rollsub.nlp.text import common_prefix_len
from rollsub.nlp.translator.base import Translator

CacheKey = Tuple[str, str]  # (source text, target language)
SegmentCallback = Callable[[Segment, Optional[str]], None]
LiveCallback = Callable[[str, int, str], None]


class TranslationCache:
    """Content-addressed, append-only for the session; finalized text never changes."""

    def __init__(self) -> None:
        self._data: Dict[CacheKey, str] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def peek(self, text: str, target_language: str) -> Optional[str]:
        with self._lock:
            return self._data.get((text, target_language))

    def get(self, text: str, target_language: str) -> Optional[str]:
        with self._lock:
            out = self._data.get((text, target_language))
            if out is None:
                self.misses += 1
            else:
                self.hits += 1
            return out

    def put(self, text: str, target_language: str, translated: str) -> None:
        with self._lock:
            self._data.setdefault((text, target_language), translated)


@dataclass(frozen=True)
class LiveTranslation:
    source_text: str
    translated_text: str
    tick: int


class SegmentTranslationScheduler:
    """
    Background translation of committed segments (cached, one external call
    per distinct text) and of the live suffix (debounced, best effort).

    Callbacks run on a worker thread, or inline on a cache hit.
    After cancel_all() no callback fires.
    """

    def __init__(
        self,
        *,
        translator: Translator,
        target_language: str,
        source_language: str = "auto",
        debounce_ms: float = 1000.0,
        min_chars_delta: int = 8,
        max_workers: int = 2,
        executor: Optional[Executor] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.translator = translator
        self.target_language = target_language
        self.source_language = source_language
        self.debounce_sec = max(0.0, float(debounce_ms)) / 1000.0
        self.min_chars_delta = max(0, int(min_chars_delta))
        self.clock = clock
        self.logger = logger
        self.cache = TranslationCache()
        self._owns_executor = executor is None
        self._executor: Executor = executor or ThreadPoolExecutor(
            max_workers=max(1, int(max_workers)),
            thread_name_prefix="rollsub-translate",
        )
        # Re-entrant: an inline executor runs the call while _submit holds the lock.
        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._outstanding = 0
        self._in_flight: Dict[CacheKey, Future] = {}
        # In-flight keys requested for a finalized segment; only their results are cached.
        self._cache_wanted: Set[CacheKey] = set()
        self._cancelled = threading.Event()
        self._last_live_at: Optional[float] = None
        self._last_live_text = ""
        self._latest_live: Optional[LiveTranslation] = None
        self.external_calls = 0
        self.failures = 0

    @property
    def latest_live_translation(self) -> Optional[LiveTranslation]:
        with self._lock:
            return self._latest_live

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _call_translator(self, text: str) -> str:
        t0 = time.perf_counter()
        with self._lock:
            self.external_calls += 1
        req = TranslationRequest(text=text, source_lang=self.source_language, target_lang=self.target_language)
        res = self.translator.translate(req)
        out = res.translated_text
        log_event(
            self.logger,
            logging.INFO,
            "translate_done",
            chars_src=len(text),
            chars_out=len(out),
            ms=round((time.perf_counter() - t0) * 1000.0, 2),
        )
        return out

    def _submit(self, text: str, *, cache_result: bool = False) -> Optional[Future]:
        """Start (or join) the external call for `text`. None once cancelled."""
        key = (text, self.target_language)
        with self._lock:
            if self._cancelled.is_set():
                return None
            fut = self._in_flight.get(key)
            if fut is not None:
                if cache_result:
                    self._cache_wanted.add(key)
                log_event(self.logger, logging.DEBUG, "translate_coalesced", chars_src=len(text))
                return fut
            # A call for this key may have finished since the caller's cache lookup.
            cached = self.cache.peek(text, self.target_language)
            if cached is not None:
                done: Future = Future()
                done.set_result(cached)
                return done
            try:
                fut = self._executor.submit(self._call_translator, text)
            except RuntimeError:
                # Executor already shut down.
                return None
            self._in_flight[key] = fut
            if cache_result:
                self._cache_wanted.add(key)

        def _forget(f: Future, key: CacheKey = key) -> None:
            with self._lock:
                # Cache and release under one lock so a repeat request sees one or the other.
                if key in self._cache_wanted and not f.cancelled() and f.exception() is None:
                    self.cache.put(key[0], key[1], f.result())
                self._cache_wanted.discard(key)
                if self._in_flight.get(key) is f:
                    del self._in_flight[key]

        fut.add_done_callback(_forget)
        return fut

    def _begin(self) -> None:
        with self._idle:
            self._outstanding += 1

    def _end(self) -> None:
        with self._idle:
            self._outstanding -= 1
            if self._outstanding <= 0:
                self._idle.notify_all()

    def _result_or_none(self, fut: Future, segment_id: Optional[int]) -> Optional[str]:
        try:
            return fut.result()
        except CancelledError:
            return None
        except Exception as e:
            # Isolated per segment: the transcript is still worth delivering.
            with self._lock:
                self.failures += 1
            log_event(
                self.logger,
                logging.WARNING,
                "translate_failed",
                segment_id=segment_id,
                error=str(e),
            )
            return None

    def on_segment_finalized(self, segment: Segment, callback: SegmentCallback) -> bool:
        """False when the segment will never get a callback (scheduler cancelled or shut down)."""
        if self._cancelled.is_set():
            return False
        text = (segment.text or "").strip()
        if not text:
            callback(segment, "")
            return True

        cached = self.cache.get(text, self.target_language)
        if cached is not None:
            log_event(self.logger, logging.DEBUG, "translate_cache_hit", segment_id=segment.id)
            callback(segment, cached)
            return True

        fut = self._submit(text, cache_result=True)
        if fut is None:
            return False
        self._begin()

        def _deliver(f: Future) -> None:
            try:
                out = self._result_or_none(f, segment.id)
                if not self._cancelled.is_set():
                    callback(segment, out)
            finally:
                self._end()

        fut.add_done_callback(_deliver)
        return True

    def _live_change_is_trivial(self, suffix: str) -> bool:
        last = self._last_live_text
        if not last:
            return False
        if suffix == last:
            return True
        changed = max(len(suffix), len(last)) - common_prefix_len(suffix, last)
        return changed < self.min_chars_delta

    def on_live_suffix_changed(self, suffix: str, tick: int, callback: Optional[LiveCallback] = None) -> bool:
        """Debounced translation of the volatile tail. Returns True when a job was started."""
        suffix = (suffix or "").strip()
        if not suffix or self._cancelled.is_set():
            return False

        now = self.clock()
        with self._lock:
            if self._last_live_at is not None and (now - self._last_live_at) < self.debounce_sec:
                return False
            if self._live_change_is_trivial(suffix):
                return False
            self._last_live_at = now
            self._last_live_text = suffix

        cached = self.cache.peek(suffix, self.target_language)
        if cached is not None:
            self._store_live(suffix, cached, tick, callback)
            return False

        fut = self._submit(suffix)
        if fut is None:
            return False
        self._begin()

        def _deliver(f: Future) -> None:
            try:
                out = self._result_or_none(f, None)
                if out is not None and not self._cancelled.is_set():
                    self._store_live(suffix, out, tick, callback)
            finally:
                self._end()

        fut.add_done_callback(_deliver)
        return True

    def _store_live(self, suffix: str, out: str, tick: int, callback: Optional[LiveCallback]) -> None:
        with self._lock:
            # Keep only the newest tick's result; late arrivals for older text are dropped.
            if self._latest_live is not None and self._latest_live.tick > tick:
                return
            self._latest_live = LiveTranslation(source_text=suffix, translated_text=out, tick=tick)
        if callback is not None:
            callback(suffix, tick, out)

    def pending(self) -> List[Future]:
        with self._lock:
            return list(self._in_flight.values())

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every started job has delivered its callback. False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._outstanding <= 0, timeout=timeout)

    def cancel_all(self) -> int:
        """Cancel queued calls and drop results of running ones. Returns how many were cancelled."""
        self._cancelled.set()
        with self._lock:
            futures = list(self._in_flight.values())
            self._in_flight.clear()
        cancelled = sum(1 for f in futures if f.cancel())
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
        log_event(self.logger, logging.INFO, "translate_cancel_all", cancelled=cancelled, in_flight=len(futures))
        return cancelled
