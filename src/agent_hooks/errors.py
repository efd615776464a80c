"""Error taxonomy for hook mapping resolution."""

from __future__ import annotations

from enum import Enum


class HookError(Exception):
    """Base class for hook routing errors."""


class UnknownHookPreset(HookError, ValueError):
    """Raised at resolution time when a preset name is not registered."""

    def __init__(self, name: str):
        super().__init__(f"Unknown hook preset: {name}")
        self.name = name


class TransformError(HookError):
    """Base class for transform module failures."""


class TransformLoadError(TransformError):
    """Transform module is missing, unreadable, malformed, or lacks its export."""


class TransformRuntimeError(TransformError):
    """Transform raised or returned something that is not an action."""


class HookFailure(str, Enum):
    MISSING_MESSAGE = "missing_message"
    MISSING_TEXT = "missing_text"
    TRANSFORM_LOAD_FAILED = "transform_load_failed"
    TRANSFORM_FAILED = "transform_failed"
