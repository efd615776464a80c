"""Inbound webhook mapping and action resolution."""

from agent_hooks.engine import apply_hook_mappings
from agent_hooks.errors import (
    HookError,
    HookFailure,
    TransformError,
    TransformLoadError,
    TransformRuntimeError,
    UnknownHookPreset,
)
from agent_hooks.mapping import ResolvedRuleSet, resolve_hook_mappings
from agent_hooks.models import (
    AgentAction,
    ApplyContext,
    HookAction,
    HookApplyError,
    HookApplyOk,
    HookApplyResult,
    HookMappingConfig,
    HookMatchConfig,
    HooksConfig,
    HookTransformConfig,
    ResolvedHookMapping,
    WakeAction,
)
from agent_hooks.presets import HOOK_PRESETS, definitions_for
from agent_hooks.templating import render_hook_template, render_template
from agent_hooks.transforms import TransformLoader

__all__ = [
    "AgentAction",
    "ApplyContext",
    "HOOK_PRESETS",
    "HookAction",
    "HookApplyError",
    "HookApplyOk",
    "HookApplyResult",
    "HookError",
    "HookFailure",
    "HookMappingConfig",
    "HookMatchConfig",
    "HookTransformConfig",
    "HooksConfig",
    "ResolvedHookMapping",
    "ResolvedRuleSet",
    "TransformError",
    "TransformLoadError",
    "TransformLoader",
    "TransformRuntimeError",
    "UnknownHookPreset",
    "WakeAction",
    "apply_hook_mappings",
    "definitions_for",
    "render_hook_template",
    "render_template",
    "resolve_hook_mappings",
]
