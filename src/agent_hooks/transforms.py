"""
Loading and invocation of hook transform modules.

A transform is a Python file under the transforms root exporting a callable
(``transform`` unless the mapping names another export). It receives the
request as a dict with ``payload``, ``headers``, ``url``, ``path`` and
``query`` keys and returns an action dict, an action model, or ``None`` to
skip the event. The callable may be sync or async.
"""

from __future__ import annotations

import asyncio
import hashlib
import importlib.util
import inspect
import logging
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError

from agent_hooks.errors import TransformLoadError, TransformRuntimeError
from agent_hooks.models import (
    HOOK_ACTION_ADAPTER,
    AgentAction,
    ApplyContext,
    ResolvedTransform,
    WakeAction,
)

logger = logging.getLogger(__name__)

TRANSFORM_MODULE_PREFIX = "hook_transform_"


def _module_name(module_path: Path) -> str:
    digest = hashlib.sha256(str(module_path).encode("utf-8")).hexdigest()[:16]
    return f"{TRANSFORM_MODULE_PREFIX}{digest}"


def _exec_module(module_path: Path) -> ModuleType:
    if not module_path.is_file():
        raise TransformLoadError(f"Transform module not found: {module_path}")

    module_name = _module_name(module_path)
    spec = importlib.util.spec_from_file_location(module_name, module_path)
    if not spec or not spec.loader:
        raise TransformLoadError(f"Could not load spec for {module_path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(module_name, None)
        raise TransformLoadError(f"Transform module {module_path} failed to load: {exc}") from exc
    return module


def coerce_transform_result(
    result: Any, module_path: Path
) -> Optional[Union[AgentAction, WakeAction]]:
    if result is None:
        return None
    if isinstance(result, (AgentAction, WakeAction)):
        return result
    if not isinstance(result, dict):
        raise TransformRuntimeError(
            f"Transform {module_path} returned {type(result).__name__}, expected a dict or None"
        )
    if not result.get("kind"):
        raise TransformRuntimeError(f"Transform {module_path} returned an action without 'kind'")
    try:
        return HOOK_ACTION_ADAPTER.validate_python(result)
    except ValidationError as exc:
        raise TransformRuntimeError(f"Transform {module_path} returned an invalid action: {exc}") from exc


class TransformLoader:
    """
    Process-lifetime cache of loaded transform modules keyed by resolved path.

    Concurrent first use of a path shares a single in-flight load. Failed
    loads are not cached, so a fixed module is picked up on the next request.
    """

    def __init__(self) -> None:
        self._modules: Dict[str, ModuleType] = {}
        self._inflight: Dict[str, asyncio.Task] = {}

    def is_loaded(self, module_path: Path) -> bool:
        return str(module_path) in self._modules

    async def _load_into_cache(self, key: str, module_path: Path) -> ModuleType:
        module = await asyncio.to_thread(_exec_module, module_path)
        self._modules[key] = module
        logger.info("Hook transform loaded path=%s", module_path)
        return module

    def _evict(self, module_path: Path, module: ModuleType) -> None:
        # A module without a usable export is a failed load; the next request reloads it.
        key = str(module_path)
        if self._modules.get(key) is module:
            del self._modules[key]
            sys.modules.pop(module.__name__, None)

    def _forget_inflight(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def load_module(self, transform: ResolvedTransform) -> ModuleType:
        root = transform.root.resolve()
        module_path = transform.module_path
        if not module_path.is_relative_to(root):
            raise TransformLoadError(f"Transform module {transform.module!r} escapes transforms dir {root}")

        key = str(module_path)
        module = self._modules.get(key)
        if module is not None:
            return module

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load_into_cache(key, module_path))
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget_inflight(key, done))
        return await asyncio.shield(task)

    async def load(self, transform: ResolvedTransform) -> Callable[..., Any]:
        module = await self.load_module(transform)
        fn = getattr(module, transform.export_name, None)
        if fn is None:
            self._evict(transform.module_path, module)
            raise TransformLoadError(
                f"Module {transform.module_path} does not export '{transform.export_name}'"
            )
        if not callable(fn):
            self._evict(transform.module_path, module)
            raise TransformLoadError(
                f"Export '{transform.export_name}' of {transform.module_path} is not callable"
            )
        return fn

    async def invoke(
        self, transform: ResolvedTransform, ctx: ApplyContext
    ) -> Optional[Union[AgentAction, WakeAction]]:
        """Run the transform for ``ctx``; ``None`` means the event is skipped."""
        fn = await self.load(transform)
        try:
            result = fn(ctx.as_transform_input())
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            raise TransformRuntimeError(f"Transform {transform.module_path} raised: {exc}") from exc
        return coerce_transform_result(result, transform.module_path)


default_transform_loader = TransformLoader()
