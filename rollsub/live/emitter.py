from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Dict, Iterator, Mapping, Optional

from rollsub.app.logging_setup import log_event
from rollsub.contracts import Event, EventKind, Segment

_END = object()


class EventStream:
    """
    Thread-safe, ordered handoff from the pipeline to one consumer.
    Unbounded: events are never dropped. Iteration ends after close().
    """

    def __init__(self) -> None:
        self.q: "queue.Queue[Any]" = queue.Queue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def put(self, event: Event) -> bool:
        if self._closed.is_set():
            return False
        self.q.put(event)
        return True

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self.q.put(_END)

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Next event, or None when the stream has ended (or on timeout)."""
        try:
            item = self.q.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _END:
            # Leave the marker for other readers.
            self.q.put(_END)
            return None
        return item

    def __iter__(self) -> Iterator[Event]:
        while True:
            item = self.q.get()
            if item is _END:
                self.q.put(_END)
                return
            yield item

    def drain(self) -> list[Event]:
        """Non-blocking: everything queued right now."""
        out: list[Event] = []
        while True:
            try:
                item = self.q.get_nowait()
            except queue.Empty:
                return out
            if item is _END:
                self.q.put(_END)
                return out
            out.append(item)


class EventEmitter:
    """
    Assigns sequence numbers and publishes events in order.

    Tick-loop events (partial/final/metrics) must arrive in non-decreasing
    tick order. Translation refinements keep their segment's originating tick
    and are released in segment order: a refinement for segment n waits until
    segments < n have been refined.
    """

    def __init__(self, stream: Optional[EventStream] = None, logger: Optional[logging.Logger] = None) -> None:
        self.stream = stream or EventStream()
        self.logger = logger
        self._lock = threading.Lock()
        self._seq = 0
        self._last_tick = 0
        self._next_refinement = 1
        self._held: Dict[int, Event] = {}
        # Finals whose refinement has not been published or held yet.
        self._awaiting: Dict[int, Segment] = {}
        self._terminated = False
        self.dropped = 0

    @property
    def last_tick(self) -> int:
        return self._last_tick

    @property
    def terminated(self) -> bool:
        return self._terminated

    def _put_locked(self, event: Event) -> Optional[Event]:
        if self._terminated:
            self.dropped += 1
            return None
        self._seq += 1
        stamped = Event(
            kind=event.kind,
            tick=event.tick,
            transcript=event.transcript,
            translation=event.translation,
            is_stable=event.is_stable,
            segment_id=event.segment_id,
            seq=self._seq,
            detail=dict(event.detail),
        )
        self.stream.put(stamped)
        return stamped

    def _publish_tick_event(self, event: Event) -> Optional[Event]:
        with self._lock:
            if event.tick < self._last_tick:
                raise ValueError(f"tick {event.tick} published after tick {self._last_tick}")
            self._last_tick = event.tick
            return self._put_locked(event)

    def publish_partial(self, tick: int, text: str, translation: Optional[str] = None) -> Optional[Event]:
        return self._publish_tick_event(
            Event(kind=EventKind.PARTIAL, tick=tick, transcript=text, translation=translation, is_stable=False)
        )

    def publish_final(self, segment: Segment) -> Optional[Event]:
        event = self._publish_tick_event(
            Event(
                kind=EventKind.FINAL,
                tick=segment.finalized_at_tick,
                transcript=segment.text,
                translation=None,
                is_stable=True,
                segment_id=segment.id,
                detail={"reason": segment.reason, "refinement": False},
            )
        )
        if event is not None:
            with self._lock:
                self._awaiting[segment.id] = segment
        return event

    def publish_metrics(self, tick: int, detail: Mapping[str, Any]) -> Optional[Event]:
        return self._publish_tick_event(Event(kind=EventKind.METRICS, tick=tick, detail=dict(detail)))

    @staticmethod
    def _refinement(segment: Segment, translation: Optional[str], *, cancelled: bool = False) -> Event:
        return Event(
            kind=EventKind.FINAL,
            tick=segment.finalized_at_tick,
            transcript=segment.text,
            translation=translation,
            is_stable=True,
            segment_id=segment.id,
            detail={
                "reason": segment.reason,
                "refinement": True,
                "translation_failed": translation is None and not cancelled,
                "cancelled": cancelled,
            },
        )

    def _hold_locked(self, segment: Segment, event: Event) -> None:
        self._awaiting.pop(segment.id, None)
        self._held[segment.id] = event
        self._release_held_locked()

    def publish_translation(self, segment: Segment, translation: Optional[str]) -> None:
        """Translation refinement for a committed segment; None means the translation failed."""
        with self._lock:
            if self._terminated:
                self.dropped += 1
                return
            self._hold_locked(segment, self._refinement(segment, translation))

    def _release_held_locked(self) -> None:
        while self._next_refinement in self._held:
            self._put_locked(self._held.pop(self._next_refinement))
            self._next_refinement += 1

    def cancel_refinement(self, segment: Segment) -> None:
        """The segment will not be translated; tell the consumer instead of leaving it pending."""
        with self._lock:
            if self._terminated:
                return
            self._hold_locked(segment, self._refinement(segment, None, cancelled=True))

    def emit_terminal(self, error: Optional[str] = None, detail: Optional[Mapping[str, Any]] = None) -> Optional[Event]:
        """Publish `error` or `closed` once and close the stream."""
        with self._lock:
            if self._terminated:
                return None
            # Completed refinements still go out, in segment order; unfinished ones as cancelled.
            for sid in sorted(set(self._held) | set(self._awaiting)):
                if sid in self._held:
                    self._put_locked(self._held.pop(sid))
                else:
                    self._put_locked(self._refinement(self._awaiting[sid], None, cancelled=True))
            self._awaiting.clear()
            kind = EventKind.ERROR if error else EventKind.CLOSED
            payload = dict(detail or {})
            if error:
                payload.setdefault("error", error)
            event = self._put_locked(Event(kind=kind, tick=self._last_tick, detail=payload))
            self._terminated = True
        self.stream.close()
        log_event(self.logger, logging.INFO, "stream_closed", kind=kind.value, seq=self._seq, dropped=self.dropped)
        return event
