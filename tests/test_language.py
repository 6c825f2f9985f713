from __future__ import annotations

from rollsub.nlp.language import is_auto, language_code, language_code_optional, normalize_language


def test_normalize_language_aliases():
    assert normalize_language("ja") == "Japanese"
    assert normalize_language("zh_CN") == "Chinese"
    assert normalize_language("  EN ") == "English"
    assert normalize_language("klingon") == "Klingon"
    assert normalize_language("x-custom") == "x-custom"


def test_language_code_maps_names_and_tags():
    assert language_code("Japanese") == "ja"
    assert language_code("pt-BR") == "pt"
    assert language_code("en-US") == "en-us"


def test_auto_means_no_hint():
    assert is_auto("auto")
    assert is_auto(" ")
    assert language_code_optional("AUTO") is None
    assert language_code_optional(None) is None
    assert language_code_optional("german") == "de"
