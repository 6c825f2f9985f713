from __future__ import annotations

import contextlib
import threading
from typing import Iterator, Optional

import numpy as np

from rollsub.contracts import AudioFrame


class MicError(RuntimeError):
    pass


class SoundDeviceMicSource:
    """
    Live microphone source using the `sounddevice` package (PortAudio).
    Yields mono float32 frames of fixed duration until stop() is called.
    """

    def __init__(
        self,
        *,
        frame_seconds: float = 0.1,
        sample_rate: int = 16000,
        device: Optional[int] = None,
    ) -> None:
        if frame_seconds <= 0:
            raise ValueError("frame_seconds must be > 0")
        if sample_rate <= 0:
            raise ValueError("sample_rate must be > 0")

        self.frame_seconds = float(frame_seconds)
        self.sample_rate = int(sample_rate)
        self.device = device
        self._stop = threading.Event()

    @staticmethod
    def list_devices() -> str:
        try:
            import sounddevice as sd
        except ImportError as e:
            raise MicError(
                "sounddevice is not installed. Install with: python -m pip install sounddevice"
            ) from e
        return str(sd.query_devices())

    def stop(self) -> None:
        self._stop.set()

    @contextlib.contextmanager
    def _open_stream(self):
        try:
            import sounddevice as sd
        except ImportError as e:
            raise MicError(
                "sounddevice is not installed. Install with: python -m pip install sounddevice"
            ) from e

        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
                device=self.device,
                blocksize=0,  # let PortAudio choose
            )
        except Exception as e:
            raise MicError(
                "Failed to open microphone stream. "
                "Try --list-devices and select a device id with --device."
            ) from e

        with stream:
            yield stream

    def frames(self) -> Iterator[AudioFrame]:
        frames_per_chunk = max(1, int(round(self.frame_seconds * self.sample_rate)))
        frames_seen = 0

        with self._open_stream() as stream:
            while not self._stop.is_set():
                data, _overflowed = stream.read(frames_per_chunk)
                # Overflow just means PortAudio dropped frames; keep going.
                samples = np.asarray(data, dtype=np.float32).reshape(-1)
                start_time = frames_seen / self.sample_rate
                frames_seen += len(samples)
                yield AudioFrame(samples=samples, sample_rate=self.sample_rate, start_time=start_time)
