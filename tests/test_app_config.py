from __future__ import annotations

import json
from pathlib import Path

import pytest

from rollsub.app import config as app_config
from rollsub.errors import ConfigurationError


def test_load_default_config_contains_expected_keys() -> None:
    cfg = app_config.load_default_config()
    assert cfg["translator"] in {"stub", "argos"}
    assert cfg["stability_streak_threshold"] == 3
    assert cfg["window_seconds"] > cfg["step_ms"] / 1000.0
    assert set(cfg) == set(app_config.CONFIG_KEYS)


def test_resolve_defaults_uses_explicit_config(tmp_path: Path) -> None:
    cfg_path = tmp_path / "explicit.json"
    cfg_path.write_text(json.dumps({"sample_rate": 16000, "model": "tiny"}), encoding="utf-8")
    defaults, used = app_config.resolve_defaults(str(cfg_path))
    assert used == cfg_path
    assert defaults["sample_rate"] == 16000
    assert defaults["model"] == "tiny"


def test_missing_explicit_config_exits(tmp_path: Path) -> None:
    with pytest.raises(SystemExit, match="Config file not found"):
        app_config.load_user_config(str(tmp_path / "nope.json"))


def test_ensure_user_config_exists_creates_file(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))
    created = app_config.ensure_user_config_exists({"translator": "stub", "sample_rate": 16000})
    assert created.exists()
    loaded = json.loads(created.read_text(encoding="utf-8"))
    assert loaded["translator"] == "stub"
    assert loaded["sample_rate"] == 16000


def test_load_user_config_ignores_unknown_keys(tmp_path: Path) -> None:
    cfg_path = tmp_path / "user.json"
    cfg_path.write_text(
        json.dumps({"window_seconds": 8.0, "translator": "argos", "unexpected": 1}),
        encoding="utf-8-sig",
    )
    loaded, used = app_config.load_user_config(str(cfg_path))
    assert used == cfg_path
    assert loaded["window_seconds"] == 8.0
    assert loaded["translator"] == "argos"
    assert "unexpected" not in loaded


def test_pipeline_config_requires_target_language() -> None:
    with pytest.raises(ConfigurationError):
        app_config.PipelineConfig.from_mapping({"target_language": "  "})
    cfg = app_config.PipelineConfig.from_mapping({"target_language": "de", "unknown": 1})
    assert cfg.step_sec == pytest.approx(0.4)


@pytest.mark.parametrize(
    "overrides",
    [
        {"window_seconds": 0},
        {"step_ms": 0},
        {"step_ms": 5000, "window_seconds": 2.0},
        {"stability_streak_threshold": 0},
        {"vad_backend": "silero"},
        {"translation_workers": 0},
        {"max_consecutive_failures": 0},
    ],
)
def test_pipeline_config_rejects_invalid_values(overrides) -> None:
    values = {"target_language": "ja", **overrides}
    with pytest.raises(ConfigurationError):
        app_config.PipelineConfig.from_mapping(values)


def test_debug_settings_read_from_environment() -> None:
    assert app_config.DebugSettings.from_env({}) == app_config.DebugSettings()
    dbg = app_config.DebugSettings.from_env({"ROLLSUB_DEBUG": "1", "ROLLSUB_DEBUG_VAD": "yes"})
    assert dbg.verbose and dbg.trace_vad and not dbg.trace_stabilizer
    # Trace flags need verbose logging.
    assert not app_config.DebugSettings.from_env({"ROLLSUB_DEBUG_STABILIZER": "1"}).trace_stabilizer
