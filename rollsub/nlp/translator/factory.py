from __future__ import annotations
import os
from .base import Translator
from .argos import ArgosTranslator
from .stub import StubTranslator

def get_translator(
    provider: str | None = None,
    *,
    source_lang: str = "auto",
    target_lang: str = "ja",
) -> Translator:
    provider = (provider or os.getenv("ROLLSUB_TRANSLATOR", "argos")).lower().strip()

    if provider == "stub":
        return StubTranslator()
    if provider == "argos":
        return ArgosTranslator(from_code=source_lang, to_code=target_lang)

    raise ValueError(f"Unknown translator provider: {provider}")
