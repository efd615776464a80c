import os

import pytest


os.environ["AGENT_HOOKS_DISABLE_LOGFIRE"] = "1"
os.environ["LOGFIRE_TOKEN"] = ""
os.environ["LOGFIRE_WRITE_TOKEN"] = ""
os.environ["LOGFIRE_API_KEY"] = ""


@pytest.fixture(autouse=True)
def isolated_hooks_env(monkeypatch, tmp_path):
    """Point config resolution at a temp dir and clear hook env overrides."""
    monkeypatch.setenv("AGENT_HOOKS_OPS_CONFIG_PATH", str(tmp_path / "ops_config.json"))
    for name in ("AGENT_HOOKS_ENABLED", "AGENT_HOOKS_TRANSFORMS_DIR", "AGENT_HOOKS_PRESETS"):
        monkeypatch.delenv(name, raising=False)
