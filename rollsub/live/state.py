from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List


class PipelineState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    TRANSCRIBING = "transcribing"
    STABILIZING = "stabilizing"
    TRANSLATING = "translating"
    EMITTING = "emitting"
    CLOSED = "closed"


class InvalidTransition(RuntimeError):
    pass


_ALLOWED: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.LISTENING}),
    PipelineState.LISTENING: frozenset({PipelineState.TRANSCRIBING}),
    PipelineState.TRANSCRIBING: frozenset(
        {PipelineState.STABILIZING, PipelineState.LISTENING, PipelineState.EMITTING}
    ),
    PipelineState.STABILIZING: frozenset(
        {PipelineState.TRANSCRIBING, PipelineState.TRANSLATING, PipelineState.EMITTING}
    ),
    PipelineState.TRANSLATING: frozenset({PipelineState.EMITTING}),
    PipelineState.EMITTING: frozenset({PipelineState.LISTENING}),
    PipelineState.CLOSED: frozenset(),
}


@dataclass
class PipelineStateTracker:
    """
    Sequences event emission; holds no text. Any state may move to CLOSED,
    and CLOSED is terminal.
    """
    state: PipelineState = PipelineState.IDLE
    last_error: str | None = None
    history: List[PipelineState] = field(default_factory=list)

    @property
    def closed(self) -> bool:
        return self.state is PipelineState.CLOSED

    def transition(self, target: PipelineState) -> None:
        if self.state is PipelineState.CLOSED:
            raise InvalidTransition(f"pipeline is closed, cannot enter {target.value}")
        if target is not PipelineState.CLOSED and target not in _ALLOWED[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {target.value}")
        self.history.append(self.state)
        self.state = target

    def set_closed(self, detail: str | None = None) -> None:
        if self.state is PipelineState.CLOSED:
            return
        self.last_error = detail
        self.transition(PipelineState.CLOSED)
