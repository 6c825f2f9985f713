from __future__ import annotations


class RollSubError(Exception):
    pass


class TransientEngineError(RollSubError):
    """A single engine call failed; the next tick may succeed."""


class FatalEngineError(RollSubError):
    """The engine cannot be used any more (model, backend or package missing)."""


class ConfigurationError(RollSubError, ValueError):
    """Invalid option or option combination, rejected before the pipeline starts."""
