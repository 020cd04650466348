from __future__ import annotations

from typing import Optional

BODY_PREVIEW_CHARS = 200


def truncate_body(body: Optional[str], limit: int = BODY_PREVIEW_CHARS) -> str:
    text = (body or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "…"


class ScoutError(Exception):
    """Base error; ``str(exc)`` is safe to show to an end user."""


class RegistryError(ScoutError):
    def __init__(self, service: str, status_code: int, body: Optional[str] = None):
        self.service = service
        self.status_code = status_code
        self.body = truncate_body(body)
        message = f"{service} returned {status_code}"
        if self.body:
            message += f": {self.body}"
        super().__init__(message)


class DownloadError(ScoutError):
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        self.status_code = status_code
        self.body = truncate_body(body)
        super().__init__(message)


def err_registry(status_code: int, body: Optional[str] = None) -> RegistryError:
    return RegistryError("Hugging Face API", status_code, body)


def err_ollama(status_code: int, body: Optional[str] = None) -> RegistryError:
    return RegistryError("Ollama API", status_code, body)


def err_download_status(status_code: int, body: Optional[str] = None) -> DownloadError:
    preview = truncate_body(body)
    message = f"Download failed: HTTP {status_code}"
    if preview:
        message += f" ({preview})"
    return DownloadError(message, status_code=status_code, body=body)
