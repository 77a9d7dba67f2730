"""Application configuration.

Values are resolved in three layers, later layers winning:

- dataclass defaults,
- an optional JSON file (``config/drawguess.json``),
- environment variables (``OLLAMA_BASE_URL``, ``OLLAMA_MODEL``,
  ``OLLAMA_TIMEOUT``, ``DRAWGUESS_HOST``, ``DRAWGUESS_PORT``).

CLI flags in ``drawguess.api.main`` are applied on top by the caller.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from ..ai.ollama_client import OllamaGuessClient

logger = logging.getLogger(__name__)


@dataclass
class ServerSettings:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class OllamaSettings:
    base_url: str = "http://localhost:11434"
    model: str = "qwen3-vl"
    timeout: float = 120.0
    temperature: float = 0.3
    max_output_tokens: int = 200
    keep_alive: str = "15m"

    def build_client(self) -> OllamaGuessClient:
        return OllamaGuessClient(
            base_url=self.base_url,
            model=self.model,
            timeout=self.timeout,
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
            keep_alive=self.keep_alive,
        )


@dataclass
class AppConfig:
    server: ServerSettings = field(default_factory=ServerSettings)
    ollama: OllamaSettings = field(default_factory=OllamaSettings)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AppConfig:
        server_data = data.get("server", {})
        if not isinstance(server_data, dict):
            server_data = {}
        ollama_data = data.get("ollama", {})
        if not isinstance(ollama_data, dict):
            ollama_data = {}

        server_defaults = ServerSettings()
        ollama_defaults = OllamaSettings()
        return cls(
            server=ServerSettings(
                host=_sanitize_str(server_data.get("host"), server_defaults.host),
                port=_sanitize_port(server_data.get("port"), server_defaults.port),
            ),
            ollama=OllamaSettings(
                base_url=_sanitize_str(ollama_data.get("base_url"), ollama_defaults.base_url),
                model=_sanitize_str(ollama_data.get("model"), ollama_defaults.model),
                timeout=_sanitize_positive_float(
                    ollama_data.get("timeout"), ollama_defaults.timeout
                ),
                temperature=_sanitize_temperature(
                    ollama_data.get("temperature"), ollama_defaults.temperature
                ),
                max_output_tokens=_sanitize_positive_int(
                    ollama_data.get("max_output_tokens"), ollama_defaults.max_output_tokens
                ),
                keep_alive=_sanitize_str(ollama_data.get("keep_alive"), ollama_defaults.keep_alive),
            ),
        )


def _sanitize_str(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if value is not None:
        logger.warning("Ignoring invalid string setting %r; using %r", value, default)
    return default


def _sanitize_port(value: Any, default: int) -> int:
    port = _sanitize_positive_int(value, default)
    if port > 65535:
        logger.warning("Ignoring out-of-range port %r; using %d", value, default)
        return default
    return port


def _sanitize_positive_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid integer setting %r; using %d", value, default)
        return default
    if number <= 0:
        logger.warning("Ignoring non-positive integer setting %r; using %d", value, default)
        return default
    return number


def _sanitize_positive_float(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid number setting %r; using %s", value, default)
        return default
    if number <= 0:
        logger.warning("Ignoring non-positive number setting %r; using %s", value, default)
        return default
    return number


def _sanitize_temperature(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid temperature %r; using %s", value, default)
        return default
    if number < 0:
        logger.warning("Ignoring negative temperature %r; using %s", value, default)
        return default
    return number


def _apply_env_overrides(config: AppConfig, environ: Mapping[str, str]) -> AppConfig:
    if environ.get("OLLAMA_BASE_URL"):
        config.ollama.base_url = environ["OLLAMA_BASE_URL"].strip()
    if environ.get("OLLAMA_MODEL"):
        config.ollama.model = environ["OLLAMA_MODEL"].strip()
    if environ.get("OLLAMA_TIMEOUT"):
        config.ollama.timeout = _sanitize_positive_float(
            environ["OLLAMA_TIMEOUT"], config.ollama.timeout
        )
    if environ.get("DRAWGUESS_HOST"):
        config.server.host = environ["DRAWGUESS_HOST"].strip()
    if environ.get("DRAWGUESS_PORT"):
        config.server.port = _sanitize_port(environ["DRAWGUESS_PORT"], config.server.port)
    return config


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load configuration from ``path`` (if given) and the environment.

    Raises:
        FileNotFoundError: ``path`` was given but does not exist.
        ValueError: the file is not valid JSON or not a JSON object.
    """
    data: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(config_path)
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Configuration file {config_path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {config_path} must contain a JSON object")
        logger.info("Loaded configuration from %s", config_path)

    config = AppConfig.from_dict(data)
    return _apply_env_overrides(config, os.environ if environ is None else environ)


__all__ = ["AppConfig", "OllamaSettings", "ServerSettings", "load_config"]
