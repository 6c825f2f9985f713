from __future__ import annotations

import threading
from typing import Union

import numpy as np

from rollsub.contracts import AudioFrame
from rollsub.errors import ConfigurationError


class AudioWindowBuffer:
    """
    Fixed-capacity ring of mono float32 samples holding the trailing
    `window_seconds` of audio. One writer (audio producer) and one reader
    (tick snapshot) share it; the lock is only held for the copy.
    """

    def __init__(self, window_seconds: float, sample_rate: int = 16000) -> None:
        if sample_rate <= 0:
            raise ConfigurationError("sample_rate must be > 0")
        if window_seconds <= 0:
            raise ConfigurationError("window_seconds must be > 0")
        capacity = int(round(float(window_seconds) * int(sample_rate)))
        if capacity <= 0:
            raise ConfigurationError("window is shorter than one sample")

        self.window_seconds = float(window_seconds)
        self.sample_rate = int(sample_rate)
        self.capacity = capacity
        self._ring = np.zeros(capacity, dtype=np.float32)
        self._write_pos = 0
        self._size = 0
        self._total = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return self._size

    @property
    def total_samples(self) -> int:
        """Samples ever pushed, including evicted ones."""
        with self._lock:
            return self._total

    @property
    def window_start_sample(self) -> int:
        """Absolute index (in `total_samples` units) of the oldest retained sample."""
        with self._lock:
            return self._total - self._size

    def push(self, frame: Union[AudioFrame, np.ndarray]) -> None:
        if isinstance(frame, AudioFrame):
            if frame.sample_rate != self.sample_rate:
                raise ValueError(
                    f"frame sample rate {frame.sample_rate} != buffer sample rate {self.sample_rate}"
                )
            samples = frame.samples
        else:
            samples = np.asarray(frame, dtype=np.float32)
            if samples.ndim != 1:
                raise ValueError("samples must be mono (1-D)")

        n = len(samples)
        if n == 0:
            return

        with self._lock:
            self._total += n
            if n >= self.capacity:
                # Only the newest `capacity` samples survive.
                self._ring[:] = samples[-self.capacity:]
                self._write_pos = 0
                self._size = self.capacity
                return

            end = self._write_pos + n
            if end <= self.capacity:
                self._ring[self._write_pos:end] = samples
            else:
                first = self.capacity - self._write_pos
                self._ring[self._write_pos:] = samples[:first]
                self._ring[: n - first] = samples[first:]
            self._write_pos = end % self.capacity
            self._size = min(self.capacity, self._size + n)

    def _ordered_copy(self, count: int) -> np.ndarray:
        count = max(0, min(count, self._size))
        if count == 0:
            out = np.zeros(0, dtype=np.float32)
        else:
            start = (self._write_pos - count) % self.capacity
            if start + count <= self.capacity:
                out = self._ring[start:start + count].copy()
            else:
                out = np.concatenate((self._ring[start:], self._ring[: (start + count) - self.capacity]))
        out.setflags(write=False)
        return out

    def snapshot(self) -> np.ndarray:
        """Read-only copy of the current window, oldest sample first."""
        with self._lock:
            return self._ordered_copy(self._size)

    def tail(self, ms: float) -> np.ndarray:
        """Read-only copy of the newest `ms` milliseconds (fewer if not yet buffered)."""
        count = int(round(max(0.0, float(ms)) * self.sample_rate / 1000.0))
        with self._lock:
            return self._ordered_copy(count)
