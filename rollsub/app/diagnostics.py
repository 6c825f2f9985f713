from __future__ import annotations


def summarize_exception(detail: str, *, max_len: int = 220) -> str:
    text = str(detail or "").strip()
    if not text:
        return "Unknown runtime error."
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    if not lines:
        return "Unknown runtime error."
    for ln in reversed(lines):
        if ln.startswith("File "):
            continue
        if ln.startswith("^"):
            continue
        if ln.startswith("Traceback "):
            continue
        out = ln
        break
    else:
        out = lines[-1]
    if len(out) > max_len:
        return out[: max_len - 3].rstrip() + "..."
    return out


def hint_for_exception(summary: str) -> str:
    s = str(summary or "").lower()
    if "cudnn" in s or "libcublas" in s or "cuda" in s:
        return "GPU backend unavailable. Run with --compute-device cpu or install the CUDA runtime libraries."
    if "no module named" in s or "is not installed" in s:
        return "A required package is missing in this virtualenv. Reinstall dependencies and retry."
    if "no argos package" in s or "argos model not installed" in s:
        return "No offline translation model for this language pair. Check --source-language/--target-language."
    if "failed" in s and "times in a row" in s:
        return "The ASR engine keeps failing. Try a smaller --model or a shorter --window-seconds."
    if "config file not found" in s:
        return "Configured JSON file is missing. Update the config path or restore the file."
    if "sounddevice" in s or "microphone" in s:
        return "Microphone init failed. Check input device selection and app mic permissions."
    return "Check logs for full traceback."
