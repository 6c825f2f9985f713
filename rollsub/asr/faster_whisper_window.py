from __future__ import annotations

from typing import Optional

import numpy as np

from rollsub.asr.base import WindowTranscriber
from rollsub.errors import FatalEngineError, TransientEngineError
from rollsub.nlp.language import language_code_optional

# faster-whisper resamples file input itself, but array input must already be 16 kHz.
WHISPER_SAMPLE_RATE = 16000


class FasterWhisperWindowTranscriber(WindowTranscriber):
    def __init__(
        self,
        *,
        model_size: str = "small",
        device: str = "cpu",
        compute_type: str = "int8",
        beam_size: int = 1,
    ) -> None:
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.beam_size = beam_size
        self._model = None

    @property
    def name(self) -> str:
        return "faster-whisper"

    def _get_model(self):
        if self._model is None:
            try:
                from faster_whisper import WhisperModel
            except ImportError as e:
                raise FatalEngineError(
                    "faster-whisper is not installed. Install with: python -m pip install faster-whisper"
                ) from e

            try:
                self._model = WhisperModel(
                    self.model_size,
                    device=self.device,
                    compute_type=self.compute_type,
                )
            except (RuntimeError, ValueError, OSError) as e:
                # Missing CUDA/cuDNN, unknown model size, unreadable model dir.
                raise FatalEngineError(f"failed to load faster-whisper model '{self.model_size}': {e}") from e
        return self._model

    def transcribe(
        self,
        samples: np.ndarray,
        sample_rate: int,
        language_hint: Optional[str] = None,
    ) -> str:
        if sample_rate != WHISPER_SAMPLE_RATE:
            raise FatalEngineError(
                f"faster-whisper expects {WHISPER_SAMPLE_RATE} Hz audio, got {sample_rate} Hz"
            )
        if samples is None or len(samples) == 0:
            return ""

        model = self._get_model()
        audio = np.ascontiguousarray(samples, dtype=np.float32)
        try:
            segments, _info = model.transcribe(
                audio,
                language=language_code_optional(language_hint),
                beam_size=self.beam_size,
                vad_filter=False,
                condition_on_previous_text=False,
                temperature=0.0,
                without_timestamps=True,
            )
            # Segments are lazy; decoding happens here.
            texts = [(s.text or "").strip() for s in segments]
        except (RuntimeError, MemoryError, OSError) as e:
            raise TransientEngineError(f"faster-whisper transcribe failed: {e}") from e

        return " ".join(t for t in texts if t)
