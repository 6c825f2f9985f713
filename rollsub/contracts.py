from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

import numpy as np


@dataclass(frozen=True)
class TranslationRequest:
    text: str
    target_lang: str
    source_lang: str = "auto"


@dataclass(frozen=True)
class TranslationResult:
    source_text: str
    translated_text: str
    provider: str


@dataclass(frozen=True)
class AudioFrame:
    """
    Mono float32 samples captured from a live source (e.g., microphone).
    The samples array is frozen on construction; the buffer owns it after push.
    """
    samples: np.ndarray
    sample_rate: int
    start_time: float = 0.0  # seconds since stream start

    def __post_init__(self) -> None:
        arr = np.asarray(self.samples, dtype=np.float32)
        if arr.ndim != 1:
            raise ValueError("AudioFrame samples must be mono (1-D)")
        if arr is self.samples:
            arr = arr.copy()
        arr.setflags(write=False)
        object.__setattr__(self, "samples", arr)

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return len(self.samples) / float(self.sample_rate)


@dataclass(frozen=True)
class Segment:
    id: int
    text: str
    finalized_at_tick: int
    reason: str = "streak"  # streak | vad | word | flush


@dataclass(frozen=True)
class TranscriptState:
    committed: str = ""
    live_suffix: str = ""
    stable_streak: int = 0

    @property
    def full_text(self) -> str:
        return " ".join(p for p in (self.committed, self.live_suffix) if p)


class EventKind(str, Enum):
    PARTIAL = "partial"
    FINAL = "final"
    METRICS = "metrics"
    ERROR = "error"
    CLOSED = "closed"


@dataclass(frozen=True)
class Event:
    kind: EventKind
    tick: int
    transcript: str = ""
    translation: Optional[str] = None
    is_stable: bool = False
    segment_id: Optional[int] = None
    seq: int = 0
    detail: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.kind in (EventKind.ERROR, EventKind.CLOSED)
