from __future__ import annotations

from rollsub.nlp.language import language_code

from .base import Translator


class StubTranslator(Translator):
    """Offline stand-in: tags the text with the target language code."""

    @property
    def name(self) -> str:
        return "stub"

    def _translate(self, text: str, source_lang: str, target_lang: str) -> str:
        return f"[{language_code(target_lang)}] {text}"
