from __future__ import annotations

import threading

import pytest

from rollsub.contracts import EventKind, Segment
from rollsub.live.emitter import EventEmitter, EventStream


def _seg(sid: int, tick: int, text: str = "x") -> Segment:
    return Segment(id=sid, text=text, finalized_at_tick=tick)


def test_events_get_increasing_sequence_numbers():
    em = EventEmitter()
    em.publish_partial(1, "he")
    em.publish_final(_seg(1, 2, "hello"))
    em.publish_metrics(2, {"latency_ms": 1.0})
    events = em.stream.drain()
    assert [e.seq for e in events] == [1, 2, 3]
    assert [e.kind for e in events] == [EventKind.PARTIAL, EventKind.FINAL, EventKind.METRICS]
    assert events[1].is_stable and events[1].segment_id == 1
    assert events[1].detail == {"reason": "streak", "refinement": False}


def test_tick_events_cannot_go_backwards():
    em = EventEmitter()
    em.publish_partial(5, "a")
    with pytest.raises(ValueError):
        em.publish_partial(4, "b")


def test_refinements_are_released_in_segment_order():
    em = EventEmitter()
    em.publish_final(_seg(1, 1))
    em.publish_final(_seg(2, 2))
    em.publish_final(_seg(3, 3))
    em.stream.drain()

    em.publish_translation(_seg(3, 3), "c")
    em.publish_translation(_seg(2, 2), None)
    assert em.stream.drain() == []

    em.publish_translation(_seg(1, 1), "a")
    refinements = em.stream.drain()
    assert [e.segment_id for e in refinements] == [1, 2, 3]
    assert [e.tick for e in refinements] == [1, 2, 3]
    assert all(e.detail["refinement"] for e in refinements)
    assert refinements[1].translation is None and refinements[1].detail["translation_failed"]


def test_cancelled_refinement_unblocks_later_segments():
    em = EventEmitter()
    em.publish_translation(_seg(2, 2), "b")
    em.cancel_refinement(_seg(1, 1))
    events = em.stream.drain()
    assert [e.segment_id for e in events] == [1, 2]
    assert events[0].translation is None
    assert events[0].detail["cancelled"] is True
    assert events[0].detail["translation_failed"] is False
    assert events[1].detail["cancelled"] is False


def test_terminal_settles_segments_still_waiting_for_translation():
    em = EventEmitter()
    em.publish_final(_seg(1, 1, "one"))
    em.publish_final(_seg(2, 2, "two"))
    em.publish_translation(_seg(2, 2), "deux")
    em.emit_terminal()
    events = list(em.stream)

    refinements = [e for e in events if e.detail.get("refinement")]
    assert [(e.segment_id, e.translation, e.detail["cancelled"]) for e in refinements] == [
        (1, None, True),
        (2, "deux", False),
    ]
    assert events[-1].kind is EventKind.CLOSED


def test_terminal_event_is_last_and_emitted_once():
    em = EventEmitter()
    em.publish_partial(3, "tail")
    em.publish_translation(_seg(2, 2), "held")  # still waiting on segment 1
    closed = em.emit_terminal(detail={"segments": 2})
    assert closed is not None and closed.kind is EventKind.CLOSED and closed.tick == 3
    assert em.emit_terminal(error="late") is None

    em.publish_partial(4, "after close")
    events = list(em.stream)
    assert [e.kind for e in events] == [EventKind.PARTIAL, EventKind.FINAL, EventKind.CLOSED]
    assert events[-1].is_terminal
    assert em.dropped == 1
    assert em.stream.closed


def test_error_terminal_carries_message():
    em = EventEmitter()
    ev = em.emit_terminal(error="model failed", detail={"hint": "check logs"})
    assert ev.kind is EventKind.ERROR
    assert ev.detail["error"] == "model failed"
    assert ev.detail["hint"] == "check logs"


def test_stream_get_returns_none_after_close():
    stream = EventStream()
    done = threading.Event()
    seen = []

    def _reader() -> None:
        seen.extend(stream)
        done.set()

    th = threading.Thread(target=_reader)
    th.start()
    EventEmitter(stream).publish_partial(1, "x")
    stream.close()
    assert done.wait(2.0)
    th.join()
    assert len(seen) == 1
    assert stream.get(timeout=0.01) is None
    assert stream.put(seen[0]) is False
