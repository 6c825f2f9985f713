from __future__ import annotations

import numpy as np
import pytest

from rollsub.asr.base import WindowTranscriber
from rollsub.audio.window import AudioWindowBuffer
from rollsub.errors import FatalEngineError, TransientEngineError
from rollsub.live.driver import TranscriptionDriver


class ScriptedTranscriber(WindowTranscriber):
    """Returns (or raises) the scripted items in order."""

    name = "scripted"

    def __init__(self, script):
        self.script = list(script)
        self.calls = []

    def transcribe(self, samples, sample_rate, language_hint=None) -> str:
        self.calls.append((len(samples), sample_rate, language_hint))
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def _driver(script, *, max_failures: int = 3, fill: bool = True):
    buf = AudioWindowBuffer(window_seconds=1.0, sample_rate=16000)
    if fill:
        buf.push(np.zeros(1600, dtype=np.float32))
    tr = ScriptedTranscriber(script)
    return TranscriptionDriver(buffer=buf, transcriber=tr, source_language="English", max_consecutive_failures=max_failures), tr


def test_empty_window_skips_without_calling_transcriber():
    driver, tr = _driver(["unused"], fill=False)
    res = driver.step(1)
    assert res.skipped
    assert res.error is None
    assert tr.calls == []


def test_success_normalizes_candidate_and_passes_language_hint():
    driver, tr = _driver(["  hello   hello hello  world "])
    res = driver.step(1)
    assert res.candidate == "hello hello world"
    assert res.window_samples == 1600
    assert tr.calls == [(1600, 16000, "English")]


def test_transient_failure_skips_tick_and_success_resets_count():
    driver, _ = _driver([TransientEngineError("busy"), TransientEngineError("busy"), "ok", TransientEngineError("busy")])
    r1 = driver.step(1)
    r2 = driver.step(2)
    assert r1.skipped and r1.error == "busy" and r1.consecutive_failures == 1
    assert r2.consecutive_failures == 2
    assert driver.step(3).candidate == "ok"
    assert driver.consecutive_failures == 0
    assert driver.step(4).consecutive_failures == 1


def test_three_consecutive_failures_escalate_to_fatal():
    driver, _ = _driver([TransientEngineError("gpu hiccup")] * 3)
    driver.step(1)
    driver.step(2)
    with pytest.raises(FatalEngineError, match="3 times in a row"):
        driver.step(3)


def test_fatal_error_propagates_immediately():
    driver, _ = _driver([FatalEngineError("model missing")])
    with pytest.raises(FatalEngineError, match="model missing"):
        driver.step(1)
