from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from rollsub.app.config import DebugSettings, PipelineConfig
from rollsub.asr.faster_whisper_window import FasterWhisperWindowTranscriber
from rollsub.audio.mic import SoundDeviceMicSource
from rollsub.audio.vad import EnergyVAD, VoiceClassifier
from rollsub.audio.vad_webrtc import WebRtcVAD
from rollsub.live.session import RealtimeTranslateSession
from rollsub.nlp.translator.factory import get_translator


@dataclass(frozen=True)
class LiveServices:
    mic: SoundDeviceMicSource
    session: RealtimeTranslateSession


def build_vad_classifier(config: PipelineConfig) -> VoiceClassifier:
    if config.vad_backend == "webrtc":
        return WebRtcVAD(sr=config.sample_rate)
    return EnergyVAD(rms_threshold=config.vad_rms_threshold, max_zcr=config.vad_max_zcr)


def build_session(
    config: PipelineConfig,
    args: Any,
    *,
    debug: DebugSettings | None = None,
    logger: logging.Logger | None = None,
) -> RealtimeTranslateSession:
    transcriber = FasterWhisperWindowTranscriber(
        model_size=str(args.model),
        device=str(args.compute_device),
        compute_type=str(args.compute_type),
    )
    translator = get_translator(
        str(args.translator),
        source_lang=config.source_language,
        target_lang=config.target_language,
    )
    return RealtimeTranslateSession(
        config,
        transcriber=transcriber,
        translator=translator,
        vad=build_vad_classifier(config) if config.enable_vad else None,
        debug=debug,
        logger=logger,
    )


def build_live_services(
    config: PipelineConfig,
    args: Any,
    *,
    debug: DebugSettings | None = None,
    logger: logging.Logger | None = None,
) -> LiveServices:
    mic = SoundDeviceMicSource(
        frame_seconds=max(0.01, float(args.frame_ms) / 1000.0),
        sample_rate=config.sample_rate,
        device=args.device,
    )
    return LiveServices(mic=mic, session=build_session(config, args, debug=debug, logger=logger))
