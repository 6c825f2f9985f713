from __future__ import annotations

import numpy as np

from rollsub.audio.vad import VoiceActivity
from rollsub.errors import ConfigurationError


def float_to_pcm16(samples: np.ndarray) -> bytes:
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2").tobytes()


class WebRtcVAD:
    """
    WebRTC VAD expects:
      - 16-bit mono PCM
      - sample rate: 8000/16000/32000/48000
      - frame size: 10/20/30 ms
    aggressiveness: 0 (least) .. 3 (most aggressive)

    The tail is cut into frames and classified by majority vote.
    """
    def __init__(self, sr: int = 16000, frame_ms: int = 20, aggressiveness: int = 2):
        if frame_ms not in (10, 20, 30):
            raise ConfigurationError("frame_ms must be 10/20/30")
        if sr not in (8000, 16000, 32000, 48000):
            raise ConfigurationError("sr must be one of 8000/16000/32000/48000")
        self.sr = sr
        self.frame_ms = frame_ms
        self.frame_samples = int(sr * frame_ms / 1000)
        try:
            import webrtcvad
        except ImportError as e:
            raise ConfigurationError(
                "webrtcvad is not installed. Install with: python -m pip install webrtcvad"
            ) from e
        self.vad = webrtcvad.Vad(aggressiveness)

    def classify(self, tail: np.ndarray, sample_rate: int = 16000) -> VoiceActivity:
        if sample_rate != self.sr or tail is None or len(tail) < self.frame_samples:
            return VoiceActivity.SPEECH

        speech = 0
        total = 0
        for i in range(0, len(tail) - self.frame_samples + 1, self.frame_samples):
            frame = float_to_pcm16(tail[i:i + self.frame_samples])
            total += 1
            if self.vad.is_speech(frame, self.sr):
                speech += 1
        if total == 0 or speech * 2 >= total:
            return VoiceActivity.SPEECH
        return VoiceActivity.SILENCE
