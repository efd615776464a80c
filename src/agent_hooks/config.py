from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from agent_hooks.models import HooksConfig

logger = logging.getLogger(__name__)

DEFAULT_TRANSFORMS_SUBDIR = Path("hooks") / "transforms"
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def resolve_ops_config_path() -> Path:
    env_path = os.getenv("AGENT_HOOKS_OPS_CONFIG_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return _project_root() / "AGENT_RUN_WORKSPACES" / "ops_config.json"


def resolve_transforms_root(transforms_dir: Optional[str], config_dir: Optional[Path] = None) -> Path:
    """Resolve the directory transform modules are loaded from."""
    base_dir = config_dir if config_dir is not None else resolve_ops_config_path().parent
    if not transforms_dir:
        return (base_dir / DEFAULT_TRANSFORMS_SUBDIR).resolve()
    return (base_dir / Path(transforms_dir).expanduser()).resolve()


def load_ops_config(path: Optional[Path] = None) -> dict[str, Any]:
    path = path or resolve_ops_config_path()
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError):
        logger.warning("Ops config unreadable path=%s", path, exc_info=True)
        return {}
    return data if isinstance(data, dict) else {}


def load_hooks_config(path: Optional[Path] = None) -> HooksConfig:
    """Load the ``hooks`` section of the ops config, applying env overrides."""
    load_dotenv()
    hooks_data = load_ops_config(path).get("hooks", {})
    if not isinstance(hooks_data, dict):
        hooks_data = {}
    hooks_data = dict(hooks_data)

    # Env var overrides
    enabled_raw = (os.getenv("AGENT_HOOKS_ENABLED") or "").strip().lower()
    if enabled_raw in _TRUTHY:
        hooks_data["enabled"] = True
    elif enabled_raw in _FALSY:
        hooks_data["enabled"] = False
    if transforms_dir := (os.getenv("AGENT_HOOKS_TRANSFORMS_DIR") or "").strip():
        hooks_data["transforms_dir"] = transforms_dir
        hooks_data.pop("transformsDir", None)
    presets_raw = os.getenv("AGENT_HOOKS_PRESETS")
    if presets_raw is not None:
        hooks_data["presets"] = [name.strip() for name in presets_raw.split(",") if name.strip()]

    return HooksConfig.model_validate(hooks_data)
