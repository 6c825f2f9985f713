from __future__ import annotations

from rollsub.errors import FatalEngineError, TransientEngineError
from rollsub.nlp.language import is_auto, language_code

from .base import Translator

# Argos packages are per language pair; an "auto" source falls back to this.
_AUTO_SOURCE = "en"


class ArgosTranslator(Translator):
    def __init__(self, from_code: str = "auto", to_code: str = "ja", auto_install: bool = True):
        self.from_code = _AUTO_SOURCE if is_auto(from_code) else language_code(from_code)
        self.to_code = language_code(to_code)
        self.auto_install = auto_install
        self._ready = False

    @property
    def name(self) -> str:
        return "argos"

    def _ensure_ready(self) -> None:
        if self._ready:
            return

        try:
            import argostranslate.package
            import argostranslate.translate
        except ImportError as e:
            raise FatalEngineError(
                "argostranslate is not installed. Install with: python -m pip install argostranslate"
            ) from e

        installed = argostranslate.translate.get_installed_languages()
        have_from = any(l.code == self.from_code for l in installed)
        have_to = any(l.code == self.to_code for l in installed)

        if not (have_from and have_to):
            if not self.auto_install:
                raise FatalEngineError("Argos model not installed and auto_install=False")

            argostranslate.package.update_package_index()
            available = argostranslate.package.get_available_packages()

            pkg = None
            for p in available:
                if p.from_code == self.from_code and p.to_code == self.to_code:
                    pkg = p
                    break
            if pkg is None:
                raise FatalEngineError(f"No Argos package found for {self.from_code}->{self.to_code}")

            path = pkg.download()
            argostranslate.package.install_from_path(path)

        self._ready = True

    def _translate(self, text: str, source_lang: str, target_lang: str) -> str:
        self._ensure_ready()
        import argostranslate.translate
        to_code = language_code(target_lang) if target_lang else self.to_code
        try:
            return argostranslate.translate.translate(text, self.from_code, to_code)
        except (RuntimeError, MemoryError, OSError) as e:
            raise TransientEngineError(f"argos translate failed: {e}") from e
