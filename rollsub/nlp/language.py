from __future__ import annotations

import re
from typing import Optional

# Unknown values are passed through unchanged.
_NAMES: dict[str, tuple[str, str]] = {
    # key: (display name, ISO 639-1 code)
    "en": ("English", "en"),
    "eng": ("English", "en"),
    "english": ("English", "en"),
    "zh": ("Chinese", "zh"),
    "zho": ("Chinese", "zh"),
    "chi": ("Chinese", "zh"),
    "cn": ("Chinese", "zh"),
    "zh-cn": ("Chinese", "zh"),
    "zh-hans": ("Chinese", "zh"),
    "chinese": ("Chinese", "zh"),
    "mandarin": ("Chinese", "zh"),
    "ja": ("Japanese", "ja"),
    "jpn": ("Japanese", "ja"),
    "jp": ("Japanese", "ja"),
    "japanese": ("Japanese", "ja"),
    "ko": ("Korean", "ko"),
    "kor": ("Korean", "ko"),
    "korean": ("Korean", "ko"),
    "fr": ("French", "fr"),
    "fra": ("French", "fr"),
    "fre": ("French", "fr"),
    "french": ("French", "fr"),
    "de": ("German", "de"),
    "deu": ("German", "de"),
    "ger": ("German", "de"),
    "german": ("German", "de"),
    "es": ("Spanish", "es"),
    "spa": ("Spanish", "es"),
    "spanish": ("Spanish", "es"),
    "it": ("Italian", "it"),
    "ita": ("Italian", "it"),
    "italian": ("Italian", "it"),
    "pt": ("Portuguese", "pt"),
    "por": ("Portuguese", "pt"),
    "portuguese": ("Portuguese", "pt"),
    "pt-br": ("Portuguese", "pt"),
    "ru": ("Russian", "ru"),
    "rus": ("Russian", "ru"),
    "russian": ("Russian", "ru"),
    "ar": ("Arabic", "ar"),
    "ara": ("Arabic", "ar"),
    "arabic": ("Arabic", "ar"),
    "hi": ("Hindi", "hi"),
    "hin": ("Hindi", "hi"),
    "hindi": ("Hindi", "hi"),
}

_NON_NAME = re.compile(r"[^A-Za-z ]")


def _key(value: str) -> str:
    return value.strip().lower().replace("_", "-").replace(" ", "")


def is_auto(value: Optional[str]) -> bool:
    return value is None or _key(value) in ("", "auto")


def normalize_language(value: str) -> str:
    """Map ISO codes and aliases to a display name ("ja" -> "Japanese")."""
    trimmed = (value or "").strip()
    if not trimmed:
        return value
    key = _key(trimmed)
    if key == "auto":
        return "auto"
    if key in _NAMES:
        return _NAMES[key][0]
    # Keep model-specific identifiers as-is.
    if _NON_NAME.search(trimmed):
        return trimmed
    return trimmed[:1].upper() + trimmed[1:].lower()


def language_code(value: str) -> str:
    """Map aliases to an ISO 639-1 code; tag-like input ("en-us") is kept normalized."""
    trimmed = (value or "").strip()
    if not trimmed:
        return value
    key = _key(trimmed)
    if key in _NAMES:
        return _NAMES[key][1]
    if len(key) == 2 or "-" in key:
        return key
    return trimmed.lower()


def language_code_optional(value: Optional[str]) -> Optional[str]:
    """Like `language_code`, but blank and "auto" mean no hint."""
    if is_auto(value):
        return None
    return language_code(str(value))
