from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Union
from urllib.parse import parse_qsl, urlsplit

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from agent_hooks.errors import HookFailure

DEFAULT_HOOKS_PATH = "/hooks"
DEFAULT_HOOKS_MAX_BODY_BYTES = 256 * 1024
DEFAULT_TRANSFORM_EXPORT = "transform"


class _HookModel(BaseModel):
    # Config files use the camelCase keys of the gateway JSON; code uses snake_case.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HookMatchConfig(_HookModel):
    path: Optional[str] = None
    headers: Optional[Dict[str, str]] = None


class HookTransformConfig(_HookModel):
    module: str
    export: Optional[str] = None


class HookMappingConfig(_HookModel):
    id: Optional[str] = None
    match: Optional[HookMatchConfig] = None
    action: str = "agent"  # "wake" or "agent"
    wake_mode: str = "now"
    transform: Optional[HookTransformConfig] = None
    message_template: Optional[str] = None
    text_template: Optional[str] = None
    name: Optional[str] = None
    session_key: Optional[str] = None
    agent_id: Optional[str] = None
    deliver: bool = True
    to: Optional[str] = None
    model: Optional[str] = None
    thinking: Optional[str] = None
    timeout_seconds: Optional[int] = None


class HooksConfig(_HookModel):
    enabled: bool = False
    base_path: str = DEFAULT_HOOKS_PATH
    max_body_bytes: int = DEFAULT_HOOKS_MAX_BODY_BYTES
    transforms_dir: Optional[str] = None
    presets: List[str] = Field(default_factory=list)
    mappings: List[HookMappingConfig] = Field(default_factory=list)


class AgentAction(_HookModel):
    kind: Literal["agent"] = "agent"
    message: str = Field(min_length=1)
    name: Optional[str] = None
    agent_id: Optional[str] = None
    model: Optional[str] = None
    session_key: Optional[str] = None
    thinking: Optional[str] = None
    deliver: bool = True
    to: Optional[str] = None
    timeout_seconds: Optional[int] = None
    wake_mode: str = "now"


class WakeAction(_HookModel):
    kind: Literal["wake"] = "wake"
    text: str = Field(min_length=1)
    mode: str = "now"


HookAction = Annotated[Union[AgentAction, WakeAction], Field(discriminator="kind")]
HOOK_ACTION_ADAPTER: TypeAdapter[HookAction] = TypeAdapter(HookAction)


@dataclass(frozen=True)
class ApplyContext:
    """Normalized inbound request handed to the engine for one resolution."""

    payload: Any
    headers: Dict[str, str]
    url: str
    path: str

    @classmethod
    def build(cls, *, payload: Any, headers: Optional[Dict[str, Any]], url: str, path: str) -> "ApplyContext":
        normalized = {str(k).lower(): str(v) for k, v in (headers or {}).items()}
        return cls(payload=payload, headers=normalized, url=str(url), path=path.strip("/"))

    @property
    def query(self) -> Dict[str, str]:
        return dict(parse_qsl(urlsplit(self.url).query, keep_blank_values=True))

    def as_transform_input(self) -> dict[str, Any]:
        return {
            "payload": self.payload,
            "headers": dict(self.headers),
            "url": self.url,
            "path": self.path,
            "query": self.query,
        }


@dataclass(frozen=True)
class ResolvedTransform:
    root: Path
    module: str
    export_name: str = DEFAULT_TRANSFORM_EXPORT

    @property
    def module_path(self) -> Path:
        return (self.root / self.module).resolve()


MessageBuilder = Callable[[ApplyContext], Optional[str]]


@dataclass(frozen=True)
class ResolvedHookMapping:
    id: str
    match_path: Optional[str]
    match_headers: tuple[tuple[str, str], ...] = ()
    action: str = "agent"
    wake_mode: str = "now"
    message_template: Optional[str] = None
    text_template: Optional[str] = None
    name: Optional[str] = None
    session_key: Optional[str] = None
    agent_id: Optional[str] = None
    deliver: bool = True
    to: Optional[str] = None
    model: Optional[str] = None
    thinking: Optional[str] = None
    timeout_seconds: Optional[int] = None
    transform: Optional[ResolvedTransform] = None
    message_builder: Optional[MessageBuilder] = None
    session_key_builder: Optional[MessageBuilder] = None


@dataclass(frozen=True)
class HookApplyOk:
    action: Optional[Union[AgentAction, WakeAction]]
    skipped: bool = False

    ok: Literal[True] = field(default=True, init=False)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "ok": True,
            "action": self.action.model_dump(exclude_none=True) if self.action is not None else None,
        }
        if self.skipped:
            out["skipped"] = True
        return out


@dataclass(frozen=True)
class HookApplyError:
    error: HookFailure
    detail: str = ""

    ok: Literal[False] = field(default=False, init=False)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"ok": False, "error": self.error.value}
        if self.detail:
            out["detail"] = self.detail
        return out


HookApplyResult = Union[HookApplyOk, HookApplyError]
