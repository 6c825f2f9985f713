from __future__ import annotations

from argparse import Namespace

from rollsub.app import services as app_services
from rollsub.app.config import PipelineConfig
from rollsub.audio.vad import EnergyVAD


def _args(**overrides) -> Namespace:
    values = dict(
        model="base",
        compute_device="cpu",
        compute_type="int8",
        translator="stub",
        device=None,
        frame_ms=50,
    )
    values.update(overrides)
    return Namespace(**values)


class _FakeTranscriber:
    captured: dict[str, object] = {}

    def __init__(self, *, model_size: str, device: str, compute_type: str):
        _FakeTranscriber.captured = {"model_size": model_size, "device": device, "compute_type": compute_type}

    @property
    def name(self) -> str:
        return "fake"

    def transcribe(self, samples, sample_rate, language_hint=None) -> str:
        return ""


def test_build_live_services_wires_components(monkeypatch) -> None:
    monkeypatch.setattr(app_services, "FasterWhisperWindowTranscriber", _FakeTranscriber)
    config = PipelineConfig(target_language="ja", enable_vad=True)
    services = app_services.build_live_services(config, _args())

    assert _FakeTranscriber.captured == {"model_size": "base", "device": "cpu", "compute_type": "int8"}
    assert services.mic.frame_seconds == 0.05
    assert services.mic.sample_rate == 16000
    assert services.session.scheduler.translator.name == "stub"
    assert isinstance(services.session.vad_gate.classifier, EnergyVAD)


def test_build_session_without_vad(monkeypatch) -> None:
    monkeypatch.setattr(app_services, "FasterWhisperWindowTranscriber", _FakeTranscriber)
    config = PipelineConfig(target_language="ja", enable_vad=False)
    session = app_services.build_session(config, _args(model="tiny"))
    assert session.vad_gate is None
    assert _FakeTranscriber.captured["model_size"] == "tiny"


def test_build_vad_classifier_webrtc(monkeypatch) -> None:
    created = {}

    class _FakeWebRtc:
        def __init__(self, *, sr):
            created["sr"] = sr

    monkeypatch.setattr(app_services, "WebRtcVAD", _FakeWebRtc)
    app_services.build_vad_classifier(PipelineConfig(target_language="ja", vad_backend="webrtc"))
    assert created == {"sr": 16000}
