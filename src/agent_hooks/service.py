import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Set, Union

from fastapi import APIRouter, Request, Response

from agent_hooks.config import load_hooks_config, resolve_ops_config_path
from agent_hooks.engine import apply_hook_mappings
from agent_hooks.mapping import resolve_hook_mappings
from agent_hooks.models import AgentAction, ApplyContext, HookApplyError, HooksConfig, WakeAction
from agent_hooks.observability import configure_logfire
from agent_hooks.transforms import TransformLoader

logger = logging.getLogger(__name__)

ActionDispatcher = Callable[[Union[AgentAction, WakeAction]], Awaitable[None]]


def _json_response(body: dict[str, Any], status_code: int = 200) -> Response:
    return Response(json.dumps(body), media_type="application/json", status_code=status_code)


class HooksService:
    """
    HTTP ingress for hook mappings.

    The rule set is resolved once at construction, so an unknown preset fails
    startup rather than the first request. Produced actions are handed to
    ``dispatcher`` in a background task; the HTTP response does not wait for it.
    """

    def __init__(
        self,
        config: HooksConfig,
        dispatcher: ActionDispatcher,
        *,
        config_dir: Optional[Path] = None,
        loader: Optional[TransformLoader] = None,
    ):
        self.config = config
        self.dispatcher = dispatcher
        self.loader = loader or TransformLoader()
        self.mappings = resolve_hook_mappings(config, config_dir=config_dir)
        self._dispatch_tasks: Set[asyncio.Task] = set()
        logger.info(
            "Hooks configured enabled=%s mappings=%s",
            config.enabled,
            [mapping.id for mapping in self.mappings],
        )

    @classmethod
    def from_ops_config(cls, dispatcher: ActionDispatcher, **kwargs: Any) -> "HooksService":
        configure_logfire()
        path = resolve_ops_config_path()
        return cls(load_hooks_config(path), dispatcher, config_dir=path.parent, **kwargs)

    def is_enabled(self) -> bool:
        return self.config.enabled

    def _schedule_dispatch(self, action: Union[AgentAction, WakeAction]) -> None:
        task = asyncio.create_task(self._dispatch_action(action))
        self._dispatch_tasks.add(task)
        task.add_done_callback(self._dispatch_tasks.discard)

    async def wait_for_dispatches(self) -> None:
        """Wait for actions handed to the dispatcher so far to finish."""
        if self._dispatch_tasks:
            await asyncio.gather(*list(self._dispatch_tasks), return_exceptions=True)

    async def _dispatch_action(self, action: Union[AgentAction, WakeAction]) -> None:
        logger.info("Dispatching hook action kind=%s", action.kind)
        try:
            await self.dispatcher(action)
        except Exception:
            logger.exception("Hook action dispatch failed kind=%s", action.kind)

    async def handle_request(self, request: Request, subpath: str) -> Response:
        if not self.config.enabled:
            return Response("Hooks disabled", status_code=404)

        # Read body
        try:
            body_bytes = await request.body()
        except Exception as e:
            logger.exception("Hook ingress rejected path=%s reason=body_read_error", subpath)
            return Response(f"Error reading body: {str(e)}", status_code=400)

        logger.info("Hook ingress received path=%s bytes=%d", subpath, len(body_bytes))
        if len(body_bytes) > self.config.max_body_bytes:
            logger.warning("Hook ingress rejected path=%s reason=payload_too_large", subpath)
            return Response("Payload too large", status_code=413)

        payload: Any = {}
        if body_bytes:
            try:
                payload = json.loads(body_bytes)
            except json.JSONDecodeError:
                logger.warning("Hook ingress rejected path=%s reason=invalid_json", subpath)
                return Response("Invalid JSON", status_code=400)

        ctx = ApplyContext.build(
            payload=payload,
            headers=dict(request.headers.items()),
            url=str(request.url),
            path=subpath,
        )
        result = await apply_hook_mappings(self.mappings, ctx, loader=self.loader)
        if result is None:
            logger.info("Hook ingress no_match path=%s", subpath)
            return Response("No matching hook found", status_code=404)
        if isinstance(result, HookApplyError):
            return _json_response(result.to_dict(), status_code=400)
        if result.action is None:
            return _json_response({"ok": True, "skipped": True})

        self._schedule_dispatch(result.action)
        logger.info("Hook ingress accepted path=%s action=%s", subpath, result.action.kind)
        return _json_response({"ok": True, "action": result.action.kind})

    async def dispatch_internal_payload(
        self,
        *,
        subpath: str,
        payload: Any,
        headers: Optional[dict[str, str]] = None,
    ) -> tuple[bool, str]:
        """
        Dispatch an internal payload through hook mappings.

        Intended for trusted in-process producers that want to reuse existing
        hook transforms and action routing without an HTTP round trip.
        """
        if not self.config.enabled:
            return False, "hooks_disabled"

        ctx = ApplyContext.build(
            payload=payload,
            headers=headers,
            url=f"internal://hooks/{subpath.strip('/')}",
            path=subpath,
        )
        result = await apply_hook_mappings(self.mappings, ctx, loader=self.loader)
        if result is None:
            return False, "no_match"
        if isinstance(result, HookApplyError):
            return False, result.error.value
        if result.action is None:
            return True, "skipped"
        self._schedule_dispatch(result.action)
        return True, result.action.kind


def create_hooks_router(service: HooksService) -> APIRouter:
    router = APIRouter()
    base = service.config.base_path.strip("/")
    base_path = f"/{base}" if base else ""

    @router.post(base_path + "/{subpath:path}")
    async def hooks_endpoint(subpath: str, request: Request) -> Response:
        return await service.handle_request(request, subpath)

    return router
