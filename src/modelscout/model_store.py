"""Local ComfyUI model store: locate it, map model types to folders, list and delete files."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from .config import ScoutConfig, get_config
from .extractor import DIFFUSION_EXTENSIONS
from .format_utils import format_bytes
from .results import OperationResult

logger = logging.getLogger(__name__)

DIFFUSION_MODEL_DIRS: Dict[str, str] = {
    "checkpoint": "models/checkpoints",
    "lora": "models/loras",
    "vae": "models/vae",
    "controlnet": "models/controlnet",
    "upscaler": "models/upscale_models",
}


@dataclass
class InstalledDiffusionModel:
    filename: str
    model_type: str
    path: str
    size_bytes: int
    size_human: str


def candidate_roots() -> List[Path]:
    """Well-known ComfyUI install locations, most specific first."""
    roots: List[Path] = []
    appimage = os.environ.get("APPIMAGE")
    if appimage:
        roots.append(Path(appimage).parent / "ComfyUI")
    roots.append(Path.cwd() / "ComfyUI")
    home = Path.home()
    roots.extend(
        [
            home / "ComfyUI",
            home / "comfyui",
            home / ".comfyui",
            Path("/opt/ComfyUI"),
            Path("/opt/comfyui"),
        ]
    )
    return roots


def resolve_comfyui_path(config: Optional[ScoutConfig] = None) -> Optional[Path]:
    config = config or get_config()
    if config.comfyui_path:
        configured = Path(config.comfyui_path).expanduser()
        if configured.exists():
            return configured

    for root in candidate_roots():
        if (root / "main.py").exists() or (root / "models").exists():
            return root
    return None


def get_model_dir(root: Path, model_type: str, *, create: bool = True) -> Path:
    try:
        subdir = DIFFUSION_MODEL_DIRS[model_type]
    except KeyError:
        raise ValueError(f"Unknown model type '{model_type}'") from None
    directory = root / subdir
    if create:
        directory.mkdir(parents=True, exist_ok=True)
    return directory


def list_installed(config: Optional[ScoutConfig] = None) -> List[InstalledDiffusionModel]:
    root = resolve_comfyui_path(config)
    if root is None:
        return []

    results: List[InstalledDiffusionModel] = []
    for model_type, subdir in DIFFUSION_MODEL_DIRS.items():
        directory = root / subdir
        if not directory.is_dir():
            continue
        try:
            entries = sorted(directory.iterdir())
        except OSError as exc:
            logger.warning("Failed to scan ComfyUI directory %s: %s", directory, exc)
            continue
        for entry in entries:
            if not entry.is_file() or entry.suffix.lower() not in DIFFUSION_EXTENSIONS:
                continue
            size = entry.stat().st_size
            results.append(
                InstalledDiffusionModel(
                    filename=entry.name,
                    model_type=model_type,
                    path=str(entry),
                    size_bytes=size,
                    size_human=format_bytes(size),
                )
            )
    return results


def delete_installed(file_path: str | Path) -> OperationResult:
    path = Path(file_path)
    if not path.exists():
        return OperationResult.fail(f"File not found: {path}")
    try:
        path.unlink()
    except OSError as exc:
        logger.error("Failed to delete diffusion model %s: %s", path, exc)
        return OperationResult.fail(f"Failed to delete: {exc}")
    logger.info("Diffusion model deleted: %s", path)
    return OperationResult.ok(f"Deleted: {path.name}")


__all__ = [
    "DIFFUSION_MODEL_DIRS",
    "InstalledDiffusionModel",
    "resolve_comfyui_path",
    "get_model_dir",
    "list_installed",
    "delete_installed",
]
