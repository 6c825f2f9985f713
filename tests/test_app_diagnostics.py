from __future__ import annotations

from rollsub.app.diagnostics import hint_for_exception, summarize_exception


def test_summarize_exception_picks_last_meaningful_line() -> None:
    detail = (
        "Traceback (most recent call last):\n"
        '  File "x.py", line 1, in <module>\n'
        "    boom()\n"
        "RuntimeError: failed to start worker"
    )
    assert summarize_exception(detail) == "RuntimeError: failed to start worker"


def test_summarize_exception_truncates_long_line() -> None:
    detail = "ValueError: " + ("x" * 500)
    out = summarize_exception(detail, max_len=60)
    assert out.startswith("ValueError: ")
    assert out.endswith("...")
    assert len(out) <= 60


def test_summarize_exception_empty() -> None:
    assert summarize_exception("  ") == "Unknown runtime error."


def test_hint_for_repeated_asr_failures() -> None:
    hint = hint_for_exception("transcription failed 3 times in a row: device busy")
    assert "--model" in hint


def test_hint_for_cuda_and_missing_package() -> None:
    assert "--compute-device cpu" in hint_for_exception("RuntimeError: CUDA failed with error 35")
    assert "missing" in hint_for_exception("faster-whisper is not installed.")


def test_hint_for_exception_default() -> None:
    hint = hint_for_exception("RuntimeError: unknown")
    assert hint == "Check logs for full traceback."
