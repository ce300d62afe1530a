"""
Configuration for chat-bridge.

Two concerns live here:

- ``LocalServerConfig``: everything needed to spawn and talk to the bundled
  llama-server (paths, spawn flags, timeouts). Spawn arguments are generated
  from this config, never typed by the caller.
- ``ProviderConfig``: the persisted provider selection and credentials.
  Resolution order at startup is the saved JSON file, then the environment.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Final, Optional

from dotenv import load_dotenv

from chat_bridge.provider import DEFAULT_MODELS, ENV_VARS, Provider

logger = logging.getLogger(__name__)

__all__ = [
    "MAX_TOOL_STEPS",
    "STREAM_CHUNK_SIZE",
    "STREAM_CHUNK_DELAY",
    "LOCAL_MODELS",
    "LocalServerConfig",
    "ProviderConfig",
    "default_config_path",
    "load_saved_config",
    "save_config",
    "config_from_env",
    "resolve_startup_config",
]

# Hard cap on model reasoning/tool-execution rounds per remote invocation.
MAX_TOOL_STEPS: Final[int] = 5

# Simulated streaming for backends without native token streaming.
STREAM_CHUNK_SIZE: Final[int] = 5
STREAM_CHUNK_DELAY: Final[float] = 0.02

# Local model ids that may be passed instead of a path.
LOCAL_MODELS: Final[dict[str, str]] = {
    "llama3.2-3b-q4": "Llama-3.2-3B-Instruct-Q4_K_L.gguf",
    "functiongemma-270m-q4": "functiongemma-270m-it-Q4_K_M.gguf",
}

READY_MARKERS: Final[tuple[str, ...]] = ("HTTP server listening", "llama server listening")


def _is_packaged() -> bool:
    return bool(getattr(sys, "frozen", False))


@dataclass
class LocalServerConfig:
    """Spawn and polling parameters for the local llama-server."""

    model_filename: str = LOCAL_MODELS["llama3.2-3b-q4"]
    executable_name: str = "llama-server"
    resources_dir: Optional[Path] = None
    host: str = "127.0.0.1"
    port: int = 8080
    ctx_size: int = 2048
    threads: int = 4
    batch_size: int = 256
    n_gpu_layers: int = 0  # CPU only
    startup_timeout: float = 120.0
    poll_interval: float = 1.0
    health_timeout: float = 5.0
    request_timeout: float = 300.0
    temperature: float = 0.7
    max_tokens: int = 2048
    ready_markers: tuple[str, ...] = READY_MARKERS
    extra_args: list[str] = field(default_factory=list)

    @classmethod
    def from_env(cls, **overrides: Any) -> "LocalServerConfig":
        """Build a config honoring ``CHAT_BRIDGE_RESOURCES`` and ``LLAMA_SERVER_PORT``."""
        load_dotenv()
        values: dict[str, Any] = {}
        resources = os.getenv("CHAT_BRIDGE_RESOURCES")
        if resources:
            values["resources_dir"] = Path(resources)
        port = os.getenv("LLAMA_SERVER_PORT")
        if port:
            try:
                values["port"] = int(port)
            except ValueError:
                logger.warning("Ignoring invalid LLAMA_SERVER_PORT=%r", port)
        values.update(overrides)
        return cls(**values)

    @property
    def base_dir(self) -> Path:
        """Root of the bundled ``models/`` and ``bin/`` directories.

        Development layout: the current working directory. Packaged layout:
        the frozen bundle's resource directory.
        """
        if self.resources_dir is not None:
            return Path(self.resources_dir)
        if _is_packaged():
            return Path(getattr(sys, "_MEIPASS", Path(sys.executable).parent))
        return Path.cwd()

    @property
    def models_dir(self) -> Path:
        return self.base_dir / "models"

    @property
    def server_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def executable_path(self) -> Path:
        return self.base_dir / "bin" / self.executable_name

    def resolve_model_path(self, override: Optional[str | os.PathLike[str]] = None) -> Path:
        """Resolve an explicit path, a known local model id, or the bundled default."""
        if override is None or str(override) == "":
            return self.models_dir / self.model_filename
        text = str(override)
        if text in LOCAL_MODELS:
            return self.models_dir / LOCAL_MODELS[text]
        return Path(text).expanduser()

    def command(self, model_path: Path) -> list[str]:
        """Build the llama-server command line."""
        cmd = [
            str(self.executable_path()),
            "--model", str(model_path),
            "--ctx-size", str(self.ctx_size),
            "--threads", str(self.threads),
            "--batch-size", str(self.batch_size),
            "--port", str(self.port),
            "--host", self.host,
            "--n-gpu-layers", str(self.n_gpu_layers),
        ]
        cmd.extend(self.extra_args)
        return cmd

    def list_models(self) -> list[str]:
        """GGUF files present in the models directory."""
        if not self.models_dir.is_dir():
            return []
        return sorted(p.name for p in self.models_dir.glob("*.gguf"))


@dataclass
class ProviderConfig:
    """Persisted provider selection."""

    provider: Provider
    api_key: Optional[str] = None
    selected_model: Optional[str] = None
    model_path: Optional[str] = None

    @property
    def model(self) -> str:
        return self.selected_model or DEFAULT_MODELS[self.provider]

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["provider"] = self.provider.value
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProviderConfig":
        try:
            provider = Provider(data["provider"])
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Invalid provider in config: {data.get('provider')!r}") from exc
        if provider.is_remote and not data.get("api_key"):
            raise ValueError(f"Config for {provider} has no api_key")
        return cls(
            provider=provider,
            api_key=data.get("api_key"),
            selected_model=data.get("selected_model"),
            model_path=data.get("model_path"),
        )


def default_config_path() -> Path:
    home = os.getenv("CHAT_BRIDGE_HOME")
    base = Path(home) if home else Path.home() / ".chat-bridge"
    return base / "api-config.json"


def load_saved_config(path: Optional[Path] = None) -> Optional[ProviderConfig]:
    """Load the saved provider config, or None if it is missing or unusable."""
    config_path = path or default_config_path()
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.info("No saved provider config at %s", config_path)
        return None
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Could not read provider config %s: %s", config_path, exc)
        return None

    try:
        return ProviderConfig.from_dict(data)
    except ValueError as exc:
        logger.warning("Ignoring provider config %s: %s", config_path, exc)
        return None


def save_config(config: ProviderConfig, path: Optional[Path] = None) -> Path:
    config_path = path or default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(config.as_dict(), indent=2), encoding="utf-8")
    logger.info("Provider config saved to %s", config_path)
    return config_path


def config_from_env() -> Optional[ProviderConfig]:
    """First remote provider with an API key in the environment."""
    load_dotenv()
    for provider, env_var in ENV_VARS.items():
        key = os.getenv(env_var)
        if key:
            return ProviderConfig(provider=provider, api_key=key)
    return None


def resolve_startup_config(path: Optional[Path] = None) -> Optional[ProviderConfig]:
    config = load_saved_config(path)
    if config is not None:
        logger.info("Using saved %s config", config.provider)
        return config
    config = config_from_env()
    if config is not None:
        logger.info("Using %s key from environment", config.provider)
        return config
    logger.warning("No provider configured, chat stays uninitialized")
    return None
