"""Built-in hook presets for known integrations."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping, Optional

from agent_hooks.errors import UnknownHookPreset
from agent_hooks.models import ApplyContext, HookMappingConfig, HookMatchConfig, MessageBuilder
from agent_hooks.templating import render_hook_template

GITHUB_EVENT_HEADER = "x-github-event"
GITHUB_DELIVERY_HEADER = "x-github-delivery"


@dataclass(frozen=True)
class HookPreset:
    name: str
    mapping: HookMappingConfig
    message_builder: Optional[MessageBuilder] = None
    session_key_builder: Optional[MessageBuilder] = None


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def _nested(payload: Any, *keys: str) -> Any:
    current = payload
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _gmail_session_key(ctx: ApplyContext) -> Optional[str]:
    message_id = render_hook_template("{{messages[0].id}}", ctx).strip()
    return f"hook:gmail:{message_id}" if message_id else None


def _github_message(ctx: ApplyContext) -> Optional[str]:
    payload = ctx.payload if isinstance(ctx.payload, dict) else {}
    event = ctx.headers.get(GITHUB_EVENT_HEADER, "").strip() or "unknown"
    repo = _text(_nested(payload, "repository", "full_name")) or "unknown repository"

    lines = [f"GitHub {event} event on {repo}"]
    action = _text(payload.get("action"))
    if action:
        lines.append(f"Action: {action}")
    ref = _text(payload.get("ref"))
    if ref:
        lines.append(f"Ref: {ref}")
    sender = _text(_nested(payload, "sender", "login"))
    if sender:
        lines.append(f"Sender: {sender}")
    head_commit = _text(_nested(payload, "head_commit", "message"))
    if head_commit:
        lines.append(f"Head commit: {head_commit.splitlines()[0]}")
    for key, label in (("pull_request", "Pull request"), ("issue", "Issue")):
        title = _text(_nested(payload, key, "title"))
        if title:
            number = _nested(payload, key, "number")
            prefix = f"#{number} " if isinstance(number, int) else ""
            lines.append(f"{label}: {prefix}{title}")
    compare = _text(payload.get("compare"))
    if compare:
        lines.append(f"Compare: {compare}")
    return "\n".join(lines)


def _github_session_key(ctx: ApplyContext) -> Optional[str]:
    # Retried deliveries reuse the delivery id, so they land in the same session.
    delivery = ctx.headers.get(GITHUB_DELIVERY_HEADER, "").strip()
    return f"hook:github:{delivery}" if delivery else None


HOOK_PRESETS: Mapping[str, HookPreset] = MappingProxyType(
    {
        "gmail": HookPreset(
            name="gmail",
            mapping=HookMappingConfig(
                id="gmail",
                match=HookMatchConfig(path="gmail"),
                action="agent",
                wake_mode="now",
                name="Gmail",
                message_template=(
                    "New email from {{messages[0].from}}\n"
                    "Subject: {{messages[0].subject}}\n"
                    "{{messages[0].snippet}}\n"
                    "{{messages[0].body}}"
                ),
            ),
            session_key_builder=_gmail_session_key,
        ),
        "github": HookPreset(
            name="github",
            mapping=HookMappingConfig(
                id="github",
                match=HookMatchConfig(path="github"),
                action="agent",
                wake_mode="now",
                name="GitHub",
            ),
            message_builder=_github_message,
            session_key_builder=_github_session_key,
        ),
    }
)


def definitions_for(names: Iterable[str]) -> List[HookPreset]:
    presets: List[HookPreset] = []
    for raw_name in names:
        name = str(raw_name).strip().lower()
        preset = HOOK_PRESETS.get(name)
        if preset is None:
            raise UnknownHookPreset(str(raw_name))
        presets.append(preset)
    return presets
