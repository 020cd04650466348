"""
Disk space advisor.

Reports capacity for mounted filesystems and the model store, and answers
"does a file of N bytes fit here?" with a low-space warning when less than
20% of the volume would remain free. The verdict is informational; nothing
here blocks a transfer.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional

from .config import ScoutConfig, get_config, set_config
from .format_utils import format_bytes, format_percent
from .results import OperationResult

logger = logging.getLogger(__name__)

LOW_SPACE_THRESHOLD_PERCENT = 20
_EXCLUDED_MOUNT_PREFIXES = ("/snap", "/boot")


@dataclass
class DiskInfo:
    path: str
    total_bytes: int
    free_bytes: int
    used_bytes: int
    used_percent: int
    free_percent: int
    total_human: str
    free_human: str


@dataclass
class DiskReport:
    disks: List[DiskInfo] = field(default_factory=list)
    current_models_path: Optional[str] = None
    current_models_path_free: Optional[str] = None


@dataclass
class SpaceCheck:
    fits: bool
    free_bytes: int
    free_after: int
    low_space_warning: bool
    message: str


def get_disk_info(path: str | Path) -> Optional[DiskInfo]:
    """Capacity of the filesystem holding ``path``; ``None`` if unavailable."""
    target = Path(path)
    if not target.exists():
        return None
    try:
        usage = shutil.disk_usage(target)
    except OSError as exc:
        logger.warning("Failed to get disk stats for %s: %s", target, exc)
        return None

    total, free = int(usage.total), int(usage.free)
    used = total - free
    return DiskInfo(
        path=str(target),
        total_bytes=total,
        free_bytes=free,
        used_bytes=used,
        used_percent=format_percent(used, total),
        free_percent=format_percent(free, total),
        total_human=format_bytes(total),
        free_human=format_bytes(free),
    )


def list_mount_points() -> List[str]:
    """Mount targets reported by ``df``; falls back to ``/``."""
    try:
        result = subprocess.run(
            ["df", "--output=target"],
            capture_output=True,
            text=True,
            check=True,
            timeout=5,
        )
    except (subprocess.SubprocessError, FileNotFoundError, OSError) as exc:
        logger.debug("df unavailable (%s); using /", exc)
        return ["/"]

    mounts = []
    for line in result.stdout.splitlines()[1:]:
        target = line.strip()
        if not target or target.startswith(_EXCLUDED_MOUNT_PREFIXES):
            continue
        mounts.append(target)
    return mounts or ["/"]


def get_disk_report(config: Optional[ScoutConfig] = None) -> DiskReport:
    config = config or get_config()
    disks = [info for info in map(get_disk_info, list_mount_points()) if info]
    models_path = config.effective_models_path()
    models_disk = get_disk_info(models_path)
    return DiskReport(
        disks=disks,
        current_models_path=str(models_path),
        current_models_path_free=models_disk.free_human if models_disk else None,
    )


def _nearest_existing(path: Path) -> Path:
    for candidate in [path, *path.parents]:
        if candidate.exists():
            return candidate
    return path


def check_space(
    size_bytes: int,
    target_path: str | Path | None = None,
    config: Optional[ScoutConfig] = None,
) -> SpaceCheck:
    """Would ``size_bytes`` fit at ``target_path`` (default: the model store)?"""
    if target_path is None:
        target_path = (config or get_config()).effective_models_path()
    path = _nearest_existing(Path(target_path).expanduser())
    info = get_disk_info(path)

    if info is None:
        return SpaceCheck(
            fits=False,
            free_bytes=0,
            free_after=0,
            low_space_warning=True,
            message=f"Cannot determine free space for: {target_path}",
        )

    free_after = info.free_bytes - size_bytes
    percent_after = free_after / info.total_bytes * 100 if info.total_bytes else 0.0
    low_space = percent_after < LOW_SPACE_THRESHOLD_PERCENT

    if free_after <= 0:
        message = (
            f"Not enough space. Need {format_bytes(size_bytes)}, "
            f"only {format_bytes(info.free_bytes)} available"
        )
    elif low_space:
        message = (
            f"Model fits but only {format_bytes(free_after)} "
            f"({percent_after:.0f}%) will remain free"
        )
    else:
        message = f"Model fits. {format_bytes(free_after)} will remain free"

    return SpaceCheck(
        fits=free_after > 0,
        free_bytes=info.free_bytes,
        free_after=max(free_after, 0),
        low_space_warning=low_space,
        message=message,
    )


def set_models_path(new_path: str | Path) -> OperationResult:
    """Point the in-process configuration at a different model store."""
    path = Path(new_path).expanduser()
    if not path.exists():
        return OperationResult.fail(f"Path does not exist: {path}")
    config = get_config()
    set_config(replace(config, models_path=str(path), last_models_path=str(path)))
    logger.info("Models path updated to %s", path)
    return OperationResult.ok(f"Models path set to: {path}", str(path))


__all__ = [
    "DiskInfo",
    "DiskReport",
    "SpaceCheck",
    "LOW_SPACE_THRESHOLD_PERCENT",
    "get_disk_info",
    "list_mount_points",
    "get_disk_report",
    "check_space",
    "set_models_path",
]
