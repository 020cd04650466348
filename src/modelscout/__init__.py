"""
modelscout

Find, rank and download locally runnable AI models.

This package provides:
- Registry search for GGUF models with quantization and metadata extraction
- Image-generation model search with model-type classification
- Hardware-aware multi-factor ranking of search results
- Disk space advice for the model stores
- Streaming downloads into ComfyUI and pulls into a local Ollama runtime
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import ScoutConfig  # pragma: no cover
    from .downloads import DownloadManager  # pragma: no cover
    from .hub_client import HubClient, SearchQuery  # pragma: no cover
    from .ollama_client import OllamaClient  # pragma: no cover
    from .session import SearchSession  # pragma: no cover


def __getattr__(name):
    if name == "ScoutConfig":
        from .config import ScoutConfig as _CFG

        return _CFG
    if name in ("HubClient", "SearchQuery"):
        from . import hub_client as _hub

        return getattr(_hub, name)
    if name == "SearchSession":
        from .session import SearchSession as _SS

        return _SS
    if name == "DownloadManager":
        from .downloads import DownloadManager as _DM

        return _DM
    if name == "OllamaClient":
        from .ollama_client import OllamaClient as _OC

        return _OC
    raise AttributeError(name)


__version__ = "0.1.0"
__all__ = [
    "ScoutConfig",
    "HubClient",
    "SearchQuery",
    "SearchSession",
    "DownloadManager",
    "OllamaClient",
]
