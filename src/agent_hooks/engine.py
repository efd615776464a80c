from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

from agent_hooks.errors import HookFailure, TransformLoadError, TransformRuntimeError
from agent_hooks.models import (
    AgentAction,
    ApplyContext,
    HookApplyError,
    HookApplyOk,
    HookApplyResult,
    ResolvedHookMapping,
    WakeAction,
)
from agent_hooks.observability import hook_span
from agent_hooks.templating import render_hook_template
from agent_hooks.transforms import TransformLoader, default_transform_loader

logger = logging.getLogger(__name__)


def mapping_matches(mapping: ResolvedHookMapping, ctx: ApplyContext) -> bool:
    if mapping.match_path and mapping.match_path != ctx.path:
        return False
    for expected_header, expected_value in mapping.match_headers:
        actual_value = ctx.headers.get(expected_header)
        if actual_value is None or actual_value != expected_value:
            return False
    return True


def find_mapping(
    mappings: Iterable[ResolvedHookMapping], ctx: ApplyContext
) -> Optional[ResolvedHookMapping]:
    for mapping in mappings:
        if mapping_matches(mapping, ctx):
            return mapping
    return None


def build_template_action(
    mapping: ResolvedHookMapping, ctx: ApplyContext
) -> Union[AgentAction, WakeAction, HookApplyError]:
    if mapping.action == "wake":
        text = render_hook_template(mapping.text_template or "", ctx).strip()
        if not text:
            return HookApplyError(HookFailure.MISSING_TEXT, f"hook mapping {mapping.id} requires text")
        return WakeAction(text=text, mode=mapping.wake_mode)

    if mapping.message_builder is not None:
        message = mapping.message_builder(ctx) or ""
    else:
        message = render_hook_template(mapping.message_template or "", ctx)
    if not message.strip():
        return HookApplyError(HookFailure.MISSING_MESSAGE, f"hook mapping {mapping.id} requires message")

    session_key: Optional[str] = None
    if mapping.session_key_builder is not None:
        session_key = mapping.session_key_builder(ctx)
    elif mapping.session_key:
        session_key = render_hook_template(mapping.session_key, ctx).strip() or None

    name = render_hook_template(mapping.name, ctx).strip() if mapping.name else ""

    return AgentAction(
        message=message,
        name=name or None,
        agent_id=mapping.agent_id,
        model=mapping.model,
        session_key=session_key,
        thinking=mapping.thinking,
        deliver=mapping.deliver,
        to=mapping.to,
        timeout_seconds=mapping.timeout_seconds,
        wake_mode=mapping.wake_mode,
    )


async def apply_hook_mappings(
    mappings: Iterable[ResolvedHookMapping],
    ctx: ApplyContext,
    *,
    loader: Optional[TransformLoader] = None,
) -> Optional[HookApplyResult]:
    """
    Resolve ``ctx`` against the rule set.

    Returns ``None`` when no mapping matches. Otherwise only the first matching
    mapping is evaluated and its outcome is returned as ``HookApplyOk`` (with
    ``action=None, skipped=True`` when a transform skipped the event) or
    ``HookApplyError``. Per-request failures never raise.
    """
    mapping = find_mapping(mappings, ctx)
    if mapping is None:
        logger.info("Hook mapping no_match path=%s", ctx.path)
        return None

    with hook_span("hook_apply", path=ctx.path, mapping=mapping.id):
        if mapping.transform is not None:
            transform_loader = loader or default_transform_loader
            try:
                action = await transform_loader.invoke(mapping.transform, ctx)
            except TransformLoadError as exc:
                logger.warning("Hook transform load failed path=%s mapping=%s error=%s", ctx.path, mapping.id, exc)
                return HookApplyError(HookFailure.TRANSFORM_LOAD_FAILED, str(exc))
            except TransformRuntimeError as exc:
                logger.warning("Hook transform failed path=%s mapping=%s error=%s", ctx.path, mapping.id, exc)
                return HookApplyError(HookFailure.TRANSFORM_FAILED, str(exc))
            if action is None:
                logger.info("Hook mapping skipped path=%s mapping=%s", ctx.path, mapping.id)
                return HookApplyOk(action=None, skipped=True)
            logger.info("Hook mapping resolved path=%s mapping=%s action=%s", ctx.path, mapping.id, action.kind)
            return HookApplyOk(action=action)

        outcome = build_template_action(mapping, ctx)
        if isinstance(outcome, HookApplyError):
            logger.warning(
                "Hook mapping rejected path=%s mapping=%s reason=%s",
                ctx.path,
                mapping.id,
                outcome.error.value,
            )
            return outcome
        logger.info("Hook mapping resolved path=%s mapping=%s action=%s", ctx.path, mapping.id, outcome.kind)
        return HookApplyOk(action=outcome)
