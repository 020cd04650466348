from __future__ import annotations

import logging
import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Callable, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

from .config import ScoutConfig

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "MODELSCOUT_CONFIG_FILE"

_SECTION_MAP: dict[str, list[str]] = {
    "hub": ["hf_token", "hub_base_url", "request_timeout_s"],
    "storage": ["models_path", "last_models_path"],
    "cache": ["cache_ttl_minutes"],
    "ollama": ["ollama_host"],
    "comfyui": ["comfyui_path"],
}

_ENV_MAP: dict[str, str] = {
    "HF_TOKEN": "hf_token",
    "OLLAMA_MODELS": "models_path",
    "OLLAMA_HOST": "ollama_host",
    "COMFYUI_PATH": "comfyui_path",
    "MODELSCOUT_CACHE_TTL_MINUTES": "cache_ttl_minutes",
    "MODELSCOUT_HUB_URL": "hub_base_url",
    "MODELSCOUT_REQUEST_TIMEOUT_S": "request_timeout_s",
}


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_FILE_ENV)
    if override:
        return Path(override).expanduser()
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg_config).expanduser() if xdg_config else Path.home() / ".config"
    return base / "modelscout" / "config.toml"


def _coerce_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return int(str(value))


def _coerce_float(value: Any) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    return float(str(value))


def _coerce_optional_str(value: Any) -> Optional[str]:
    if value in ("", None):
        return None
    return str(value)


_CASTERS: dict[str, Callable[[Any], Any]] = {
    "hf_token": _coerce_optional_str,
    "models_path": _coerce_optional_str,
    "last_models_path": _coerce_optional_str,
    "comfyui_path": _coerce_optional_str,
    "cache_ttl_minutes": _coerce_int,
    "request_timeout_s": _coerce_float,
    "ollama_host": str,
    "hub_base_url": str,
}


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("rb") as fh:
        data = tomllib.load(fh)

    out: dict[str, Any] = {}
    for section, keys in _SECTION_MAP.items():
        section_values = data.get(section, {})
        if not isinstance(section_values, dict):
            continue
        for key in keys:
            if key in section_values:
                out[key] = section_values[key]
    return out


def _apply_env_overrides(values: dict[str, Any]) -> dict[str, Any]:
    for env_name, key in _ENV_MAP.items():
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        values[key] = raw
    return values


def _coerce_values(values: dict[str, Any]) -> dict[str, Any]:
    known = {f.name for f in fields(ScoutConfig)}
    coerced: dict[str, Any] = {}
    for key, value in values.items():
        if key not in known:
            continue
        caster = _CASTERS.get(key)
        if caster is None:
            coerced[key] = value
            continue
        try:
            coerced[key] = caster(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid config value %s=%r", key, value)
    return coerced


def load_config(path: Optional[Path] = None) -> ScoutConfig:
    """Build a :class:`ScoutConfig` from the TOML file and environment."""

    config_path = Path(path) if path else default_config_path()
    try:
        values = _read_config_file(config_path)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("Could not load config from %s: %s", config_path, exc)
        values = {}

    values = _coerce_values(_apply_env_overrides(values))
    values["config_file_path"] = str(config_path)
    return ScoutConfig(**values)


__all__ = ["load_config", "default_config_path", "CONFIG_FILE_ENV"]
