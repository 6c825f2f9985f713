from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Tuple

from rollsub.app.logging_setup import log_event
from rollsub.contracts import Segment, TranscriptState
from rollsub.nlp.text import collapse_whitespace, common_prefix_len, cut_at_last_space, trim_committed_overlap


@dataclass(frozen=True)
class StabilizerUpdate:
    tick: int
    state: TranscriptState
    promoted: Tuple[Segment, ...] = ()
    partial_changed: bool = False


def _lcp_all(texts: List[str]) -> str:
    if not texts:
        return ""
    prefix = texts[0]
    for t in texts[1:]:
        prefix = prefix[: common_prefix_len(prefix, t)]
        if not prefix:
            break
    return prefix


class Stabilizer:
    """
    Turns repeatedly recomputed window transcripts into committed segments
    plus a volatile live suffix.

    Commit rules:
      1) The live suffix only grew for `streak_threshold` ticks in a row.
      2) An utterance boundary (force_promote).
      3) Word commit: the complete words shared by the last
         `streak_threshold + 1` candidates, while the tail keeps changing.

    Committed segments are append-only and never overlap.
    """

    def __init__(
        self,
        streak_threshold: int = 3,
        *,
        word_commit: bool = True,
        logger: Optional[logging.Logger] = None,
        trace: bool = False,
    ) -> None:
        if streak_threshold < 1:
            raise ValueError("streak_threshold must be >= 1")
        self.streak_threshold = int(streak_threshold)
        self.word_commit = bool(word_commit)
        self.logger = logger
        self.trace = trace
        self._segments: List[Segment] = []
        self._live = ""
        self._streak = 0
        self._history: Deque[str] = deque(maxlen=self.streak_threshold + 1)
        # Segments before this index have scrolled out of the audio window.
        self._anchor_start = 0

    @property
    def segments(self) -> Tuple[Segment, ...]:
        return tuple(self._segments)

    @property
    def committed(self) -> str:
        return " ".join(s.text for s in self._segments)

    @property
    def live_suffix(self) -> str:
        return self._live

    @property
    def state(self) -> TranscriptState:
        return TranscriptState(committed=self.committed, live_suffix=self._live, stable_streak=self._streak)

    def _anchor_text(self) -> str:
        return " ".join(s.text for s in self._segments[self._anchor_start:])

    def release_anchor(self) -> None:
        """The window no longer covers any committed audio; stop matching against it."""
        self._anchor_start = len(self._segments)

    def _delta(self, candidate: str) -> str:
        anchor = self._anchor_text()
        if not anchor:
            return candidate
        # Word-aligned only: "go" must not eat the start of "gone".
        if candidate.startswith(anchor) and (len(candidate) == len(anchor) or candidate[len(anchor)].isspace()):
            return candidate[len(anchor):].lstrip()
        # The window slid into the committed text: the candidate starts mid-way through it.
        remainder, overlap = trim_committed_overlap(anchor, candidate)
        if overlap > 0:
            return remainder
        return candidate

    def _commit(self, text: str, tick: int, reason: str) -> Segment:
        seg = Segment(id=len(self._segments) + 1, text=text, finalized_at_tick=tick, reason=reason)
        self._segments.append(seg)
        log_event(
            self.logger,
            logging.INFO,
            "segment_promoted",
            tick=tick,
            segment_id=seg.id,
            reason=reason,
            chars=len(text),
        )
        return seg

    def feed(self, candidate: str, tick: int) -> StabilizerUpdate:
        candidate = collapse_whitespace(candidate)
        prev = self._live
        delta = self._delta(candidate)

        if prev and common_prefix_len(delta, prev) == len(prev):
            self._streak += 1
        else:
            self._streak = 0
        self._live = delta

        if delta:
            self._history.append(delta)
        else:
            self._history.clear()

        promoted: List[Segment] = []
        if self._live and self._streak >= self.streak_threshold:
            promoted.append(self._commit(self._live, tick, "streak"))
            self._live = ""
            self._streak = 0
            self._history.clear()
        elif self.word_commit and len(self._history) == self._history.maxlen:
            words = cut_at_last_space(_lcp_all(list(self._history)))
            if words:
                promoted.append(self._commit(words, tick, "word"))
                self._live = self._live[len(words):].lstrip()
                self._streak = 0
                rebased = [h[len(words):].lstrip() for h in self._history]
                self._history.clear()
                self._history.extend(h for h in rebased if h)

        changed = self._live != prev and not (promoted and not self._live)
        if self.trace:
            log_event(
                self.logger,
                logging.DEBUG,
                "stabilizer_feed",
                tick=tick,
                candidate=candidate,
                delta=delta,
                streak=self._streak,
                promoted=len(promoted),
            )
        return StabilizerUpdate(
            tick=tick,
            state=self.state,
            promoted=tuple(promoted),
            partial_changed=changed,
        )

    def force_promote(self, tick: int, reason: str = "vad") -> Optional[Segment]:
        """Commit the live suffix regardless of its streak (utterance boundary, shutdown)."""
        self._streak = 0
        self._history.clear()
        if not self._live:
            return None
        seg = self._commit(self._live, tick, reason)
        self._live = ""
        return seg

    def flush(self, tick: int) -> Optional[Segment]:
        return self.force_promote(tick, reason="flush")
