"""Logfire wiring for hook resolution spans."""

from __future__ import annotations

import contextlib
import os
from typing import Any, ContextManager

import logfire

LOGFIRE_TOKEN = (
    os.getenv("LOGFIRE_TOKEN")
    or os.getenv("LOGFIRE_WRITE_TOKEN")
    or os.getenv("LOGFIRE_API_KEY")
)

_configured = False


def logfire_enabled() -> bool:
    if (os.getenv("AGENT_HOOKS_DISABLE_LOGFIRE") or "").strip().lower() in {"1", "true", "yes", "on"}:
        return False
    return bool(LOGFIRE_TOKEN)


def configure_logfire(service_name: str = "agent-hooks") -> bool:
    """Configure Logfire for tracing if token is available."""
    global _configured
    if not logfire_enabled():
        return False
    if _configured:
        return True

    def scrubbing_callback(m: logfire.ScrubMatch):
        # Header values are scrubbed by default; payload previews are safe to keep.
        if m.path and isinstance(m.path[-1], str) and "preview" in m.path[-1]:
            return m.value
        return None

    logfire.configure(
        service_name=service_name,
        console=False,
        token=LOGFIRE_TOKEN,
        send_to_logfire="if-token-present",
        scrubbing=logfire.ScrubbingOptions(callback=scrubbing_callback),
    )
    _configured = True
    return True


def hook_span(name: str, **attributes: Any) -> ContextManager[Any]:
    if not _configured:
        return contextlib.nullcontext()
    return logfire.span(name, **attributes)
