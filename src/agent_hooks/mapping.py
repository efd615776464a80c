"""Merge explicit hook mappings and presets into one ordered rule set."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional, Tuple, Union

from agent_hooks.config import resolve_transforms_root
from agent_hooks.models import (
    DEFAULT_TRANSFORM_EXPORT,
    HookMappingConfig,
    HooksConfig,
    MessageBuilder,
    ResolvedHookMapping,
    ResolvedTransform,
)
from agent_hooks.presets import definitions_for

ResolvedRuleSet = Tuple[ResolvedHookMapping, ...]


def _normalize_match_path(path: Optional[str]) -> Optional[str]:
    if path is None:
        return None
    return path.strip().strip("/")


def _resolve_mapping(
    mapping: HookMappingConfig,
    index: int,
    transforms_root: Path,
    *,
    message_builder: Optional[MessageBuilder] = None,
    session_key_builder: Optional[MessageBuilder] = None,
) -> ResolvedHookMapping:
    match = mapping.match
    headers = tuple(
        sorted((str(name).lower(), str(value)) for name, value in ((match.headers or {}) if match else {}).items())
    )
    transform = None
    if mapping.transform:
        transform = ResolvedTransform(
            root=transforms_root,
            module=mapping.transform.module,
            export_name=(mapping.transform.export or "").strip() or DEFAULT_TRANSFORM_EXPORT,
        )
    return ResolvedHookMapping(
        id=(mapping.id or "").strip() or f"mapping-{index + 1}",
        match_path=_normalize_match_path(match.path if match else None),
        match_headers=headers,
        action=mapping.action,
        wake_mode=mapping.wake_mode,
        message_template=mapping.message_template,
        text_template=mapping.text_template,
        name=mapping.name,
        session_key=mapping.session_key,
        agent_id=mapping.agent_id,
        deliver=mapping.deliver,
        to=mapping.to,
        model=mapping.model,
        thinking=mapping.thinking,
        timeout_seconds=mapping.timeout_seconds,
        transform=transform,
        message_builder=message_builder,
        session_key_builder=session_key_builder,
    )


def resolve_hook_mappings(
    config: Union[HooksConfig, Mapping[str, Any], None],
    *,
    config_dir: Optional[Path] = None,
) -> ResolvedRuleSet:
    """
    Build the ordered rule set for a hooks config.

    Explicit mappings come first in declaration order, followed by presets in
    the order they are listed. Nothing is de-duplicated: the first rule that
    matches a request wins, so explicit mappings shadow presets on the same path.
    Raises ``UnknownHookPreset`` for unregistered preset names.
    """
    if config is None:
        config = HooksConfig()
    elif not isinstance(config, HooksConfig):
        config = HooksConfig.model_validate(dict(config))

    transforms_root = resolve_transforms_root(config.transforms_dir, config_dir)
    resolved = [
        _resolve_mapping(mapping, index, transforms_root)
        for index, mapping in enumerate(config.mappings)
    ]
    offset = len(resolved)
    for position, preset in enumerate(definitions_for(config.presets)):
        resolved.append(
            _resolve_mapping(
                preset.mapping,
                offset + position,
                transforms_root,
                message_builder=preset.message_builder,
                session_key_builder=preset.session_key_builder,
            )
        )
    return tuple(resolved)
