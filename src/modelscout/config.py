"""
Configuration for modelscout.

Holds the registry token, local store paths, cache TTL and service endpoints.
Values come from an optional TOML file plus environment overrides (see
:mod:`modelscout.config_loader`); every field has a default so a missing file
is never an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class ScoutConfig:
    """Main configuration for search, ranking and downloads."""

    hf_token: Optional[str] = None
    models_path: Optional[str] = None
    last_models_path: Optional[str] = None
    cache_ttl_minutes: int = 15
    ollama_host: str = "http://127.0.0.1:11434"
    comfyui_path: Optional[str] = None
    hub_base_url: str = "https://huggingface.co"
    request_timeout_s: float = 30.0
    config_file_path: Optional[str] = None

    @classmethod
    def load(cls) -> "ScoutConfig":
        from .config_loader import load_config

        return load_config()

    @property
    def cache_ttl_seconds(self) -> float:
        return max(self.cache_ttl_minutes, 0) * 60.0

    @property
    def hub_api_base(self) -> str:
        return f"{self.hub_base_url.rstrip('/')}/api"

    def effective_models_path(self) -> Path:
        """Model-store path: configured, then last used, then the Ollama default."""
        raw = self.models_path or self.last_models_path
        if raw:
            return Path(raw).expanduser()
        return Path.home() / ".ollama" / "models"


# Global config instance
_config_instance: Optional[ScoutConfig] = None


def get_config() -> ScoutConfig:
    """Get the global configuration instance."""
    global _config_instance
    if _config_instance is None:
        _config_instance = ScoutConfig.load()
    return _config_instance


def set_config(config: Optional[ScoutConfig]) -> None:
    """Set (or with ``None`` reset) the global configuration instance."""
    global _config_instance
    _config_instance = config
