from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np


class WindowTranscriber(ABC):
    """
    Stateless-per-call transcription of a whole audio window.
    Raise TransientEngineError for a failed call, FatalEngineError when the
    engine is unusable.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def transcribe(
        self,
        samples: np.ndarray,
        sample_rate: int,
        language_hint: Optional[str] = None,
    ) -> str: ...
