from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

BACKENDS = ("python", "matlab")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
DEFAULT_BACKEND = "python"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_MAX_OUTPUT_KB = 1024

ENV_PREFIX = "ENGINE_GATEWAY_"


def _read_settings_toml(path: Path) -> dict[str, Any]:
    """Read a settings TOML file and return its gateway table.

    Example:
        ```python
        raw = _read_settings_toml(Path("/etc/engine-gateway.toml"))
        ```
    """
    if not path.is_file():
        raise FileNotFoundError(f"Gateway config file not found: {path}")
    raw = tomllib.loads(path.read_text(encoding="utf-8"))
    table = raw.get("gateway", raw)
    if not isinstance(table, dict):
        raise ValueError("Gateway config must be a TOML table")
    return table


def _as_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"'{field_name}' must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{field_name}' must be an integer") from exc


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True, slots=True)
class GatewaySettings:
    """Listener, engine backend and output limits for the gateway process.

    Example:
        ```python
        settings = GatewaySettings(port=9000, backend="matlab", session_name="gateway")
        ```
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    backend: str = DEFAULT_BACKEND
    session_name: str | None = None
    log_level: str = DEFAULT_LOG_LEVEL
    max_output_kb: int = DEFAULT_MAX_OUTPUT_KB
    config_path: str | None = None

    def __post_init__(self) -> None:
        """Validate field values after dataclass initialization.

        Example:
            ```python
            GatewaySettings(backend="python")
            ```
        """
        if self.backend not in BACKENDS:
            raise ValueError(f"backend must be one of {', '.join(BACKENDS)}")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        if isinstance(self.port, bool) or not isinstance(self.port, int) or not 1 <= self.port <= 65535:
            raise ValueError("port must be an integer between 1 and 65535")
        if self.max_output_kb < 1:
            raise ValueError("max_output_kb must be at least 1")

    @classmethod
    def from_file(cls, config_path: str) -> "GatewaySettings":
        """Create settings from a TOML file with an optional `[gateway]` table.

        Example:
            ```python
            settings = GatewaySettings.from_file("gateway.toml")
            ```
        """
        raw = _read_settings_toml(Path(config_path))
        return cls(
            host=str(raw.get("host", DEFAULT_HOST)),
            port=_as_int(raw.get("port", DEFAULT_PORT), "port"),
            backend=str(raw.get("backend", DEFAULT_BACKEND)).lower(),
            session_name=_optional_str(raw.get("session_name")),
            log_level=str(raw.get("log_level", DEFAULT_LOG_LEVEL)).upper(),
            max_output_kb=_as_int(raw.get("max_output_kb", DEFAULT_MAX_OUTPUT_KB), "max_output_kb"),
            config_path=config_path,
        )

    def with_env(self, environ: Mapping[str, str] | None = None) -> "GatewaySettings":
        """Apply `ENGINE_GATEWAY_*` environment overrides.

        Example:
            ```python
            settings = GatewaySettings().with_env({"ENGINE_GATEWAY_PORT": "9001"})
            ```
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        if env.get(f"{ENV_PREFIX}HOST"):
            overrides["host"] = env[f"{ENV_PREFIX}HOST"]
        if env.get(f"{ENV_PREFIX}PORT"):
            overrides["port"] = _as_int(env[f"{ENV_PREFIX}PORT"], "port")
        if env.get(f"{ENV_PREFIX}BACKEND"):
            overrides["backend"] = env[f"{ENV_PREFIX}BACKEND"].strip().lower()
        if env.get(f"{ENV_PREFIX}SESSION"):
            overrides["session_name"] = _optional_str(env[f"{ENV_PREFIX}SESSION"])
        return replace(self, **overrides) if overrides else self

    def with_overrides(self, **overrides: Any) -> "GatewaySettings":
        """Apply explicit overrides, ignoring `None` values.

        Example:
            ```python
            settings = settings.with_overrides(port=9002, host=None)
            ```
        """
        cleaned = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **cleaned) if cleaned else self


def load_settings(
    config_path: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> GatewaySettings:
    """Resolve settings from an optional file plus environment overrides.

    Example:
        ```python
        settings = load_settings("gateway.toml")
        ```
    """
    base = GatewaySettings.from_file(config_path) if config_path else GatewaySettings()
    return base.with_env(environ)
