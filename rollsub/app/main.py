from __future__ import annotations

import sys
from typing import TextIO

from rollsub.app.config import DebugSettings, pipeline_config_from_args, resolve_args
from rollsub.app.diagnostics import hint_for_exception, summarize_exception
from rollsub.app.logging_setup import setup_app_logger
from rollsub.app.services import build_live_services
from rollsub.audio.mic import SoundDeviceMicSource
from rollsub.contracts import Event, EventKind
from rollsub.errors import ConfigurationError


def format_event(event: Event, *, print_partials: bool = True) -> str | None:
    if event.kind is EventKind.PARTIAL:
        if not print_partials:
            return None
        line = f"[t{event.tick:04d}] ... {event.transcript}"
        if event.translation:
            line += f"  ({event.translation})"
        return line
    if event.kind is EventKind.FINAL:
        if event.detail.get("refinement"):
            if event.translation is None:
                return f"[t{event.tick:04d}] #{event.segment_id} (translation unavailable)"
            return f"[t{event.tick:04d}] #{event.segment_id} => {event.translation}"
        return f"[t{event.tick:04d}] #{event.segment_id} {event.transcript}"
    if event.kind is EventKind.ERROR:
        hint = event.detail.get("hint", "")
        return f"ERROR: {event.detail.get('error', '')} {hint}".rstrip()
    if event.kind is EventKind.CLOSED:
        return "Stopped."
    return None


def main(argv: list[str] | None = None, out: TextIO | None = None) -> int:
    out = out or sys.stdout
    args = resolve_args(argv)
    debug = DebugSettings.from_env()
    if args.debug and not debug.verbose:
        debug = DebugSettings(verbose=True)
    logger, _log_dir, log_path = setup_app_logger(debug=debug)
    logger.info("app_start", extra={"config_path": str(getattr(args, "config", "")), "argv": argv or []})

    if args.list_devices:
        print(SoundDeviceMicSource.list_devices(), file=out)
        return 0

    try:
        config = pipeline_config_from_args(args)
    except ConfigurationError as e:
        logger.error("config_invalid", extra={"error": str(e)})
        print(f"Invalid configuration: {e}", file=out)
        return 2

    services = build_live_services(config, args, debug=debug, logger=logger)
    session = services.session
    session.start(services.mic.frames())
    print(f"RollSub live ({config.source_language} -> {config.target_language}). Press Ctrl+C to stop.", file=out)

    exit_code = 0
    drained = False
    try:
        for event in session.events():
            line = format_event(event, print_partials=bool(args.print_partials))
            if line:
                print(line, file=out, flush=True)
            if event.kind is EventKind.ERROR:
                exit_code = 1
        drained = True
    except KeyboardInterrupt:
        logger.info("app_keyboard_interrupt")
    except Exception as e:
        summary = summarize_exception(str(e))
        logger.exception("app_crash")
        print(f"{summary}\n{hint_for_exception(summary)}\nSee log: {log_path}", file=out)
        exit_code = 1
    finally:
        services.mic.stop()
        session.stop()
        if not drained:
            for event in session.events():
                line = format_event(event, print_partials=False)
                if line:
                    print(line, file=out)
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
