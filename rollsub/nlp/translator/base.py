from __future__ import annotations

from abc import ABC, abstractmethod

from rollsub.contracts import TranslationRequest, TranslationResult


class Translator(ABC):
    """
    Text translation backend. Subclasses implement `_translate`; blank input
    is answered here without calling the backend.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def _translate(self, text: str, source_lang: str, target_lang: str) -> str: ...

    def translate(self, req: TranslationRequest) -> TranslationResult:
        text = (req.text or "").strip()
        if not text:
            return TranslationResult(source_text=req.text, translated_text="", provider=self.name)
        out = self._translate(text, req.source_lang, req.target_lang)
        return TranslationResult(source_text=req.text, translated_text=(out or "").strip(), provider=self.name)
