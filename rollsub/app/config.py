from __future__ import annotations

import argparse
import copy
import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

from platformdirs import user_config_dir

from rollsub.errors import ConfigurationError

DEFAULTS: dict[str, Any] = {
    "list_devices": False,
    "device": None,
    "debug": False,
    "model": "small",
    "compute_device": "cpu",
    "compute_type": "int8",
    "translator": "argos",
    "target_language": "ja",
    "source_language": "auto",
    "sample_rate": 16000,
    "frame_ms": 100,
    "window_seconds": 12.0,
    "step_ms": 400,
    "enable_vad": True,
    "vad_backend": "energy",
    "vad_tail_ms": 400,
    "vad_hold_ms": 800,
    "vad_rms_threshold": 0.01,
    "vad_max_zcr": 0.35,
    "stability_streak_threshold": 3,
    "enable_word_commit": True,
    "translation_debounce_ms": 1000,
    "translation_min_chars_delta": 8,
    "translation_workers": 2,
    "max_consecutive_failures": 3,
    "shutdown_timeout_sec": 2.0,
    "dedupe_max_repeat": 2,
    "print_partials": True,
}
CONFIG_KEYS: tuple[str, ...] = tuple(DEFAULTS.keys())

_TRUTHY = {"1", "true", "yes", "y", "on"}
_VAD_BACKENDS = ("energy", "webrtc")


@dataclass(frozen=True)
class AppPaths:
    config_dir: Path
    config_path: Path


def default_asset_config_path() -> Path:
    return Path(__file__).resolve().parents[2] / "assets" / "config" / "default.json"


def app_paths() -> AppPaths:
    config_dir = Path(user_config_dir("RollSub", "RollSub"))
    return AppPaths(config_dir=config_dir, config_path=config_dir / "config.json")


def _env_flag(environ: Mapping[str, str], key: str) -> bool:
    raw = str(environ.get(key, "") or "").strip().lower()
    return raw in _TRUTHY


@dataclass(frozen=True)
class DebugSettings:
    """
    Process-wide diagnostic toggles. Read once at startup and passed to the
    components that need them, never looked up from the environment later.
    """
    verbose: bool = False
    trace_vad: bool = False
    trace_stabilizer: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "DebugSettings":
        env = os.environ if environ is None else environ
        verbose = _env_flag(env, "ROLLSUB_DEBUG")
        # The trace flags are opt-in on top of verbose logging.
        return cls(
            verbose=verbose,
            trace_vad=verbose and _env_flag(env, "ROLLSUB_DEBUG_VAD"),
            trace_stabilizer=verbose and _env_flag(env, "ROLLSUB_DEBUG_STABILIZER"),
        )


@dataclass(frozen=True)
class PipelineConfig:
    target_language: str
    source_language: str = "auto"
    sample_rate: int = 16000
    window_seconds: float = 12.0
    step_ms: int = 400
    enable_vad: bool = True
    vad_backend: str = "energy"
    vad_tail_ms: int = 400
    vad_hold_ms: int = 800
    vad_rms_threshold: float = 0.01
    vad_max_zcr: float = 0.35
    stability_streak_threshold: int = 3
    enable_word_commit: bool = True
    translation_debounce_ms: int = 1000
    translation_min_chars_delta: int = 8
    translation_workers: int = 2
    max_consecutive_failures: int = 3
    shutdown_timeout_sec: float = 2.0
    dedupe_max_repeat: int = 2

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "PipelineConfig":
        names = {f.name for f in fields(cls)}
        kwargs = {k: values[k] for k in names if k in values and values[k] is not None}
        if not str(kwargs.get("target_language", "") or "").strip():
            raise ConfigurationError("target_language is required")
        cfg = cls(**kwargs)
        cfg.validate()
        return cfg

    @property
    def step_sec(self) -> float:
        return self.step_ms / 1000.0

    def validate(self) -> None:
        if not str(self.target_language or "").strip():
            raise ConfigurationError("target_language is required")
        if self.sample_rate <= 0:
            raise ConfigurationError("sample_rate must be > 0")
        if self.window_seconds <= 0:
            raise ConfigurationError("window_seconds must be > 0")
        if self.step_ms <= 0:
            raise ConfigurationError("step_ms must be > 0")
        if self.step_ms > self.window_seconds * 1000.0:
            raise ConfigurationError("step_ms must not exceed the window length")
        if self.stability_streak_threshold < 1:
            raise ConfigurationError("stability_streak_threshold must be >= 1")
        if self.vad_backend not in _VAD_BACKENDS:
            raise ConfigurationError(f"vad_backend must be one of {', '.join(_VAD_BACKENDS)}")
        if self.vad_tail_ms <= 0 or self.vad_hold_ms <= 0:
            raise ConfigurationError("vad_tail_ms and vad_hold_ms must be > 0")
        if self.translation_debounce_ms < 0:
            raise ConfigurationError("translation_debounce_ms must be >= 0")
        if self.translation_min_chars_delta < 0:
            raise ConfigurationError("translation_min_chars_delta must be >= 0")
        if self.translation_workers < 1:
            raise ConfigurationError("translation_workers must be >= 1")
        if self.max_consecutive_failures < 1:
            raise ConfigurationError("max_consecutive_failures must be >= 1")
        if self.shutdown_timeout_sec <= 0:
            raise ConfigurationError("shutdown_timeout_sec must be > 0")


def _load_json_dict(path: Path) -> dict[str, Any]:
    # Accept UTF-8 with or without BOM for Windows-edited config files.
    with path.open("r", encoding="utf-8-sig") as f:
        loaded = json.load(f)
    if not isinstance(loaded, dict):
        raise ConfigurationError(f"config must be a JSON object: {path}")
    return loaded


def _write_json_dict(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
        f.write("\n")


def _known_only(payload: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in CONFIG_KEYS:
        if key in payload:
            out[key] = payload[key]
    return out


def load_default_config() -> dict[str, Any]:
    path = default_asset_config_path()
    if not path.exists():
        return copy.deepcopy(DEFAULTS)
    loaded = _load_json_dict(path)
    out = copy.deepcopy(DEFAULTS)
    for key in DEFAULTS.keys():
        if key in loaded:
            out[key] = loaded[key]
    return out


def load_user_config(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    defaults = load_default_config()
    if config_path:
        chosen = Path(config_path)
        if not chosen.exists():
            raise SystemExit(f"Config file not found: {chosen}")
    else:
        chosen = ensure_user_config_exists(defaults)
    loaded = _known_only(_load_json_dict(chosen))
    merged = dict(defaults)
    merged.update(loaded)
    return merged, chosen


def ensure_user_config_exists(defaults: dict[str, Any] | None = None) -> Path:
    paths = app_paths()
    if paths.config_path.exists():
        return paths.config_path
    _write_json_dict(paths.config_path, defaults or load_default_config())
    return paths.config_path


def resolve_defaults(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    return load_user_config(config_path=config_path)


def parser_with_defaults(defaults: dict[str, Any]) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="rollsub")
    p.add_argument("--config", default=None, help="JSON config path (CLI flags override config)")
    p.add_argument("--list-devices", action="store_true", help="print audio devices and exit")
    p.add_argument("--device", type=int, default=defaults["device"], help="sounddevice input device id")
    p.add_argument("--debug", action="store_true", help="verbose logging")
    p.add_argument("--model", default=defaults["model"], help="faster-whisper model size")
    p.add_argument(
        "--compute-device",
        default=defaults["compute_device"],
        choices=["cpu", "cuda", "auto"],
        help="faster-whisper device",
    )
    p.add_argument("--compute-type", default=defaults["compute_type"], help="faster-whisper compute type")
    p.add_argument("--translator", default=defaults["translator"], help="argos | stub")
    p.add_argument("--target-language", default=defaults["target_language"], help="translation target")
    p.add_argument("--source-language", default=defaults["source_language"], help="ASR language hint or auto")
    p.add_argument("--sample-rate", type=int, default=defaults["sample_rate"], help="sample rate (Hz)")
    p.add_argument("--frame-ms", type=int, default=defaults["frame_ms"], help="mic frame size (ms)")
    p.add_argument(
        "--window-seconds",
        type=float,
        default=defaults["window_seconds"],
        help="trailing audio window fed to ASR on every step",
    )
    p.add_argument("--step-ms", type=int, default=defaults["step_ms"], help="pipeline tick interval (ms)")
    p.add_argument(
        "--enable-vad",
        action=argparse.BooleanOptionalAction,
        default=defaults["enable_vad"],
        help="force-commit the live text on sustained silence",
    )
    p.add_argument(
        "--vad-backend",
        default=defaults["vad_backend"],
        choices=list(_VAD_BACKENDS),
        help="speech/silence classifier",
    )
    p.add_argument("--vad-tail-ms", type=int, default=defaults["vad_tail_ms"], help="VAD analysis span (ms)")
    p.add_argument("--vad-hold-ms", type=int, default=defaults["vad_hold_ms"], help="silence that ends an utterance (ms)")
    p.add_argument(
        "--vad-rms-threshold",
        type=float,
        default=defaults["vad_rms_threshold"],
        help="RMS threshold for speech (float samples)",
    )
    p.add_argument("--vad-max-zcr", type=float, default=defaults["vad_max_zcr"], help="max zero-crossing rate for speech")
    p.add_argument(
        "--stability-streak-threshold",
        type=int,
        default=defaults["stability_streak_threshold"],
        help="ticks of unchanged prefix before the live text is committed",
    )
    p.add_argument(
        "--enable-word-commit",
        action=argparse.BooleanOptionalAction,
        default=defaults["enable_word_commit"],
        help="commit stable leading words inside long utterances",
    )
    p.add_argument(
        "--translation-debounce-ms",
        type=int,
        default=defaults["translation_debounce_ms"],
        help="min interval between live-text translations (ms)",
    )
    p.add_argument(
        "--translation-min-chars-delta",
        type=int,
        default=defaults["translation_min_chars_delta"],
        help="live text must change by this many chars before it is re-translated",
    )
    p.add_argument(
        "--translation-workers",
        type=int,
        default=defaults["translation_workers"],
        help="background translation threads",
    )
    p.add_argument(
        "--max-consecutive-failures",
        type=int,
        default=defaults["max_consecutive_failures"],
        help="consecutive ASR failures before the session stops",
    )
    p.add_argument(
        "--shutdown-timeout-sec",
        type=float,
        default=defaults["shutdown_timeout_sec"],
        help="how long stop() waits for an in-flight ASR call",
    )
    p.add_argument(
        "--dedupe-max-repeat",
        type=int,
        default=defaults["dedupe_max_repeat"],
        help="collapse runs of a repeated word beyond this count (0 disables)",
    )
    p.add_argument(
        "--print-partials",
        action=argparse.BooleanOptionalAction,
        default=defaults["print_partials"],
        help="print partial (unstable) lines to console",
    )
    return p


def resolve_args(argv: list[str] | None = None) -> argparse.Namespace:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default=None)
    pre_args, _ = pre.parse_known_args(argv)
    defaults, _ = resolve_defaults(config_path=pre_args.config)
    parser = parser_with_defaults(defaults)
    args = parser.parse_args(argv)
    if defaults.get("list_devices"):
        args.list_devices = True
    if defaults.get("debug"):
        args.debug = True
    return args


def pipeline_config_from_args(args: argparse.Namespace) -> PipelineConfig:
    return PipelineConfig.from_mapping(vars(args))
