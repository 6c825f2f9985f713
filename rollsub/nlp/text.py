# rollsub/nlp/text.py
from __future__ import annotations

import re

_WS = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    return _WS.sub(" ", text or "").strip()


def dedupe_repeated_words(text: str, max_repeat: int = 2) -> str:
    """Cap runs of the same word (case-insensitive); ASR loops on silence produce them."""
    words = text.split()
    if not words:
        return ""
    if max_repeat <= 0:
        return " ".join(words)
    out = []
    prev = None
    run = 0
    for w in words:
        wl = w.lower()
        if wl == prev:
            run += 1
        else:
            prev = wl
            run = 1
        if run <= max_repeat:
            out.append(w)
    return " ".join(out).strip()


def normalize_candidate(text: str, max_repeat: int = 2) -> str:
    text = collapse_whitespace(text)
    if max_repeat > 0:
        text = dedupe_repeated_words(text, max_repeat=max_repeat)
    return text


def common_prefix_len(a: str, b: str) -> int:
    n = min(len(a), len(b))
    i = 0
    while i < n and a[i] == b[i]:
        i += 1
    return i


def cut_at_last_space(text: str) -> str:
    """Return `text` up to (not including) its last whitespace, i.e. its complete words."""
    idx = max(text.rfind(" "), text.rfind("\t"), text.rfind("\n"))
    if idx <= 0:
        return ""
    return text[:idx].rstrip()


def trim_committed_overlap(committed: str, candidate: str, *, min_overlap: int = 2) -> tuple[str, int]:
    """
    Strip the longest suffix of `committed` that `candidate` starts with.
    Only word-aligned overlaps count, so "world" never eats the "wor" of "worry".
    Returns (remainder, overlap_len).
    """
    ref = committed.rstrip()
    cand = candidate
    if not ref or not cand:
        return cand, 0

    max_k = min(len(ref), len(cand))
    for k in range(max_k, max(1, int(min_overlap)) - 1, -1):
        if ref[-k:] != cand[:k]:
            continue
        start_ok = k == len(ref) or ref[-k - 1].isspace()
        end_ok = k == len(cand) or cand[k].isspace()
        if start_ok and end_ok:
            return cand[k:].lstrip(), k
    return cand, 0
