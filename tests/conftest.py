from __future__ import annotations

from pathlib import Path

import pytest

from chat_bridge.config import LocalServerConfig


@pytest.fixture
def resources(tmp_path: Path) -> Path:
    """A resources dir with the bundled default model file and no executable."""
    models = tmp_path / "models"
    models.mkdir()
    (models / LocalServerConfig().model_filename).write_bytes(b"GGUF")
    return tmp_path


@pytest.fixture
def server_config(resources: Path) -> LocalServerConfig:
    return LocalServerConfig(
        resources_dir=resources,
        startup_timeout=10.0,
        poll_interval=0.05,
        health_timeout=1.0,
    )


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep real keys and saved configs out of the tests."""
    for var in (
        "OPENAI_API_KEY",
        "GEMINI_API_KEY",
        "ANTHROPIC_API_KEY",
        "LLAMA_SERVER_PORT",
        "CHAT_BRIDGE_RESOURCES",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("CHAT_BRIDGE_HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
