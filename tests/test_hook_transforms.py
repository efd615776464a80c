import asyncio
import textwrap

import pytest

from agent_hooks import (
    ApplyContext,
    HookApplyOk,
    HookFailure,
    TransformLoadError,
    TransformLoader,
    TransformRuntimeError,
    WakeAction,
    apply_hook_mappings,
    resolve_hook_mappings,
)
from agent_hooks.models import ResolvedTransform


def _write(path, source):
    path.write_text(textwrap.dedent(source))
    return path


def _ctx(path, payload=None):
    return ApplyContext.build(
        payload=payload if payload is not None else {},
        headers={},
        url=f"http://127.0.0.1:18789/hooks/{path}",
        path=path,
    )


def _mappings(transforms_dir, path, module="transform.py", **transform):
    return resolve_hook_mappings(
        {
            "transformsDir": str(transforms_dir),
            "mappings": [
                {"match": {"path": path}, "action": "agent", "transform": {"module": module, **transform}}
            ],
        }
    )


@pytest.mark.asyncio
async def test_runs_transform_module(tmp_path):
    _write(
        tmp_path / "transform.py",
        """
        def transform(ctx):
            return {"kind": "wake", "text": f"Ping {ctx['payload']['name']}"}
        """,
    )
    result = await apply_hook_mappings(
        _mappings(tmp_path, "custom"), _ctx("custom", {"name": "Ada"}), loader=TransformLoader()
    )
    assert isinstance(result, HookApplyOk)
    assert isinstance(result.action, WakeAction)
    assert result.action.kind == "wake"
    assert result.action.text == "Ping Ada"


@pytest.mark.asyncio
async def test_null_transform_is_a_handled_skip(tmp_path):
    _write(tmp_path / "transform.py", "def transform(ctx):\n    return None\n")
    result = await apply_hook_mappings(_mappings(tmp_path, "skip"), _ctx("skip"), loader=TransformLoader())
    assert result.ok is True
    assert result.action is None
    assert result.skipped is True
    assert result.to_dict() == {"ok": True, "action": None, "skipped": True}


@pytest.mark.asyncio
async def test_async_transform_with_named_export(tmp_path):
    _write(
        tmp_path / "hooks_async.py",
        """
        import asyncio

        async def handle(ctx):
            await asyncio.sleep(0)
            return {
                "kind": "agent",
                "message": "path=" + ctx["path"] + " q=" + ctx["query"].get("x", ""),
                "sessionKey": "hook:async:1",
                "agentId": "ops",
            }
        """,
    )
    ctx = ApplyContext.build(payload={}, headers={}, url="http://localhost/hooks/async?x=9", path="async")
    result = await apply_hook_mappings(
        _mappings(tmp_path, "async", module="hooks_async.py", export="handle"), ctx, loader=TransformLoader()
    )
    assert result.ok is True
    assert result.action.message == "path=async q=9"
    assert result.action.session_key == "hook:async:1"
    assert result.action.agent_id == "ops"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body, detail",
    [
        ("def transform(ctx):\n    raise RuntimeError('boom')\n", "boom"),
        ("def transform(ctx):\n    return 'hello'\n", "expected a dict"),
        ("def transform(ctx):\n    return {'message': 'no kind'}\n", "without 'kind'"),
        ("def transform(ctx):\n    return {'kind': 'teleport'}\n", "invalid action"),
        ("def transform(ctx):\n    return {'kind': 'agent'}\n", "invalid action"),
    ],
)
async def test_transform_runtime_failures_are_typed(tmp_path, body, detail):
    _write(tmp_path / "transform.py", body)
    result = await apply_hook_mappings(_mappings(tmp_path, "bad"), _ctx("bad"), loader=TransformLoader())
    assert result.ok is False
    assert result.error is HookFailure.TRANSFORM_FAILED
    assert detail in result.detail


@pytest.mark.asyncio
async def test_missing_module_is_a_load_failure(tmp_path):
    result = await apply_hook_mappings(_mappings(tmp_path, "gone"), _ctx("gone"), loader=TransformLoader())
    assert result.ok is False
    assert result.error is HookFailure.TRANSFORM_LOAD_FAILED
    assert "not found" in result.detail


@pytest.mark.asyncio
async def test_missing_export_is_a_load_failure(tmp_path):
    _write(tmp_path / "transform.py", "handler = 1\n")
    result = await apply_hook_mappings(_mappings(tmp_path, "x"), _ctx("x"), loader=TransformLoader())
    assert result.error is HookFailure.TRANSFORM_LOAD_FAILED
    assert "does not export 'transform'" in result.detail


@pytest.mark.asyncio
async def test_module_outside_transforms_dir_is_rejected(tmp_path):
    root = tmp_path / "transforms"
    root.mkdir()
    _write(tmp_path / "outside.py", "def transform(ctx):\n    return None\n")
    result = await apply_hook_mappings(
        _mappings(root, "x", module="../outside.py"), _ctx("x"), loader=TransformLoader()
    )
    assert result.error is HookFailure.TRANSFORM_LOAD_FAILED
    assert "escapes" in result.detail


@pytest.mark.asyncio
async def test_load_failures_are_retried(tmp_path):
    loader = TransformLoader()
    mappings = _mappings(tmp_path, "later")
    module_path = tmp_path / "transform.py"
    _write(module_path, "def transform(ctx) return None\n")

    first = await apply_hook_mappings(mappings, _ctx("later"), loader=loader)
    assert first.error is HookFailure.TRANSFORM_LOAD_FAILED
    assert not loader.is_loaded(module_path.resolve())

    _write(module_path, "def transform(ctx):\n    return {'kind': 'wake', 'text': 'fixed'}\n")
    second = await apply_hook_mappings(mappings, _ctx("later"), loader=loader)
    assert second.ok is True
    assert second.action.text == "fixed"
    assert loader.is_loaded(module_path.resolve())


@pytest.mark.asyncio
async def test_missing_export_is_retried_after_fix(tmp_path):
    loader = TransformLoader()
    mappings = _mappings(tmp_path, "later")
    module_path = tmp_path / "transform.py"
    _write(module_path, "handler = 1\n")

    first = await apply_hook_mappings(mappings, _ctx("later"), loader=loader)
    assert first.error is HookFailure.TRANSFORM_LOAD_FAILED
    assert "does not export" in first.detail
    assert not loader.is_loaded(module_path.resolve())

    _write(module_path, "def transform(ctx):\n    return {'kind': 'wake', 'text': 'exported'}\n")
    second = await apply_hook_mappings(mappings, _ctx("later"), loader=loader)
    assert second.ok is True
    assert second.action.text == "exported"


@pytest.mark.asyncio
async def test_transform_takes_precedence_over_message_template(tmp_path):
    _write(tmp_path / "transform.py", "def transform(ctx):\n    return None\n")
    _write(tmp_path / "wake.py", "def transform(ctx):\n    return {'kind': 'wake', 'text': 'from transform'}\n")
    mappings = resolve_hook_mappings(
        {
            "transformsDir": str(tmp_path),
            "mappings": [
                {
                    "match": {"path": "skip"},
                    "messageTemplate": "from template {{x}}",
                    "transform": {"module": "transform.py"},
                },
                {
                    "match": {"path": "wake"},
                    "messageTemplate": "from template {{x}}",
                    "transform": {"module": "wake.py"},
                },
            ],
        }
    )
    loader = TransformLoader()

    skipped = await apply_hook_mappings(mappings, _ctx("skip", {"x": 1}), loader=loader)
    assert skipped.ok is True
    assert skipped.action is None
    assert skipped.skipped is True

    woken = await apply_hook_mappings(mappings, _ctx("wake", {"x": 1}), loader=loader)
    assert isinstance(woken.action, WakeAction)
    assert woken.action.text == "from transform"


@pytest.mark.asyncio
async def test_loaded_module_is_reused(tmp_path):
    loader = TransformLoader()
    mappings = _mappings(tmp_path, "count")
    _write(
        tmp_path / "transform.py",
        """
        calls = []

        def transform(ctx):
            calls.append(ctx["payload"])
            return {"kind": "wake", "text": str(len(calls))}
        """,
    )
    first = await apply_hook_mappings(mappings, _ctx("count", {"n": 1}), loader=loader)
    second = await apply_hook_mappings(mappings, _ctx("count", {"n": 2}), loader=loader)
    assert first.action.text == "1"
    assert second.action.text == "2"


@pytest.mark.asyncio
async def test_concurrent_first_use_loads_once(tmp_path):
    counter = tmp_path / "loads.txt"
    _write(
        tmp_path / "transform.py",
        f"""
        import time
        from pathlib import Path

        _counter = Path({str(counter)!r})
        _counter.write_text(str(int(_counter.read_text() or 0) + 1) if _counter.exists() else "1")
        time.sleep(0.05)

        def transform(ctx):
            return {{"kind": "wake", "text": "ok"}}
        """,
    )
    loader = TransformLoader()
    transform = ResolvedTransform(root=tmp_path, module="transform.py")
    functions = await asyncio.gather(*(loader.load(transform) for _ in range(8)))
    assert counter.read_text() == "1"
    assert all(fn is functions[0] for fn in functions)


@pytest.mark.asyncio
async def test_loader_raises_typed_errors_directly(tmp_path):
    loader = TransformLoader()
    with pytest.raises(TransformLoadError):
        await loader.load(ResolvedTransform(root=tmp_path, module="absent.py"))

    _write(tmp_path / "transform.py", "def transform(ctx):\n    return 3\n")
    with pytest.raises(TransformRuntimeError):
        await loader.invoke(ResolvedTransform(root=tmp_path, module="transform.py"), _ctx("x"))
