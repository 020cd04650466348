from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class OperationResult:
    """Terminal outcome of a user-facing operation; ``message`` is display-ready."""

    success: bool
    message: str
    path: Optional[str] = None

    @classmethod
    def ok(cls, message: str, path: Optional[str] = None) -> "OperationResult":
        return cls(True, message, path)

    @classmethod
    def fail(cls, message: str) -> "OperationResult":
        return cls(False, message)


# Downloads and pulls report the same shape.
DownloadResult = OperationResult

__all__ = ["OperationResult", "DownloadResult"]
