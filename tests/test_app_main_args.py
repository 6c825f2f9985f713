from __future__ import annotations

import io
import json
import logging
from pathlib import Path

import numpy as np

from rollsub.app import config as app_config
from rollsub.app import main as app_main
from rollsub.app.config import pipeline_config_from_args, resolve_args
from rollsub.app.services import LiveServices
from rollsub.asr.base import WindowTranscriber
from rollsub.contracts import AudioFrame, Event, EventKind
from rollsub.errors import TransientEngineError
from rollsub.live.session import RealtimeTranslateSession
from rollsub.nlp.translator.stub import StubTranslator


def test_app_resolve_args_cli_overrides_config(tmp_path: Path) -> None:
    cfg_path = tmp_path / "app.json"
    cfg_path.write_text(
        json.dumps(
            {
                "translator": "stub",
                "sample_rate": 16000,
                "step_ms": 500,
                "enable_vad": True,
            }
        ),
        encoding="utf-8",
    )
    args = resolve_args(
        [
            "--config",
            str(cfg_path),
            "--translator",
            "argos",
            "--step-ms",
            "300",
            "--no-enable-vad",
            "--target-language",
            "German",
        ]
    )
    assert args.translator == "argos"
    assert args.sample_rate == 16000
    assert args.step_ms == 300
    assert args.enable_vad is False

    cfg = pipeline_config_from_args(args)
    assert cfg.target_language == "German"
    assert cfg.step_ms == 300
    assert cfg.enable_vad is False


def test_app_resolve_args_keeps_config_values(tmp_path: Path) -> None:
    cfg_path = tmp_path / "app.json"
    cfg_path.write_text(json.dumps({"stability_streak_threshold": 5, "debug": True}), encoding="utf-8")
    args = resolve_args(["--config", str(cfg_path)])
    assert args.stability_streak_threshold == 5
    assert args.debug is True


def test_format_event_lines() -> None:
    partial = Event(kind=EventKind.PARTIAL, tick=3, transcript="hello wor", translation="[ja] hello")
    assert app_main.format_event(partial) == "[t0003] ... hello wor  ([ja] hello)"
    assert app_main.format_event(partial, print_partials=False) is None

    final = Event(kind=EventKind.FINAL, tick=4, transcript="hello world", segment_id=1, detail={"refinement": False})
    assert app_main.format_event(final) == "[t0004] #1 hello world"

    refined = Event(kind=EventKind.FINAL, tick=4, transcript="hello world", translation="konnichiwa",
                    segment_id=1, detail={"refinement": True})
    assert app_main.format_event(refined) == "[t0004] #1 => konnichiwa"

    failed = Event(kind=EventKind.FINAL, tick=4, segment_id=2, detail={"refinement": True})
    assert "unavailable" in app_main.format_event(failed)

    assert app_main.format_event(Event(kind=EventKind.METRICS, tick=4)) is None
    assert app_main.format_event(Event(kind=EventKind.CLOSED, tick=4)) == "Stopped."


class _FailingTranscriber(WindowTranscriber):
    @property
    def name(self) -> str:
        return "failing"

    def transcribe(self, samples, sample_rate, language_hint=None) -> str:
        raise TransientEngineError("device busy")


class _FakeMic:
    def __init__(self) -> None:
        self.stopped = False

    def frames(self):
        for _ in range(10):
            yield AudioFrame(samples=np.zeros(1600, dtype=np.float32), sample_rate=16000)

    def stop(self) -> None:
        self.stopped = True


def test_main_exits_with_error_after_repeated_asr_failures(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))
    mic = _FakeMic()

    def _fake_services(config, args, *, debug=None, logger=None):
        session = RealtimeTranslateSession(
            config,
            transcriber=_FailingTranscriber(),
            translator=StubTranslator(),
            logger=logger,
        )
        return LiveServices(mic=mic, session=session)

    monkeypatch.setattr(app_main, "build_live_services", _fake_services)
    out = io.StringIO()
    code = app_main.main(["--step-ms", "20", "--no-enable-vad", "--translator", "stub"], out=out)

    assert code == 1
    assert "3 times in a row" in out.getvalue()
    assert mic.stopped

    logger = logging.getLogger("rollsub.app")
    for h in logger.handlers:
        h.close()
    logger.handlers.clear()


def test_main_rejects_invalid_config(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))
    out = io.StringIO()
    code = app_main.main(["--step-ms", "0"], out=out)
    assert code == 2
    assert "Invalid configuration" in out.getvalue()

    logger = logging.getLogger("rollsub.app")
    for h in logger.handlers:
        h.close()
    logger.handlers.clear()
