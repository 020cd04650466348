"""
Streaming download manager for image-generation model files.

A download is a :class:`DownloadJob` that moves through
``idle -> requested -> streaming -> completed | cancelled | failed``. There is
no retry transition: a cancelled or failed job is never resumed; the caller
starts a fresh job, which begins from zero.

The caller owns a :class:`CancellationToken` per job. The copy loop checks it
between chunks and the token also cancels the task doing the copy, so a
stalled read ends at once. Any stream or write error observed after the token
fired is reported as a clean cancellation. Either way the partial file is
removed.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Awaitable, Callable, List, Optional, TypeVar

import aiofiles
import httpx

from .config import ScoutConfig, get_config
from .disk import SpaceCheck, check_space
from .errors import DownloadError, err_download_status
from .format_utils import format_bytes
from .hub_client import auth_headers, build_resolve_url
from .model_store import DIFFUSION_MODEL_DIRS, get_model_dir, resolve_comfyui_path
from .results import DownloadResult

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
CANCELLED_MESSAGE = "Download cancelled"

T = TypeVar("T")


class CancellationToken:
    """One-shot, caller-owned cancellation signal for a single job."""

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        for callback in self._callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancel (immediately if already cancelled)."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)


class JobState(str, enum.Enum):
    IDLE = "idle"
    REQUESTED = "requested"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.CANCELLED, JobState.FAILED)


@dataclass(frozen=True)
class DownloadProgress:
    status: str
    percent: Optional[int] = None
    downloaded_bytes: Optional[int] = None
    total_bytes: Optional[int] = None
    digest: Optional[str] = None


ProgressSink = Callable[[DownloadProgress], None]


@dataclass
class DownloadJob:
    artifact_id: str
    filename: str
    destination_kind: str
    token: CancellationToken = field(default_factory=CancellationToken)
    downloaded_bytes: int = 0
    total_bytes: Optional[int] = None
    state: JobState = JobState.IDLE
    target_path: Optional[Path] = None
    result: Optional[DownloadResult] = None

    def cancel(self) -> None:
        """Signal cancellation; a no-op once the job has finished."""
        if not self.state.is_terminal:
            self.token.cancel()

    def finish(self, state: JobState, result: Optional[DownloadResult] = None) -> Optional[DownloadResult]:
        self.state = state
        self.result = result
        return result


def progress_percent(downloaded: int, total: Optional[int]) -> Optional[int]:
    if not total:
        return None
    return min(int(round(downloaded / total * 100)), 100)


def transfer_status(downloaded: int, total: Optional[int]) -> str:
    if total:
        return f"Downloading: {format_bytes(downloaded)} / {format_bytes(total)}"
    return f"Downloading: {format_bytes(downloaded)}"


def _content_length(response: httpx.Response) -> Optional[int]:
    raw = response.headers.get("content-length")
    try:
        value = int(raw) if raw is not None else 0
    except ValueError:
        return None
    return value if value > 0 else None


def remove_partial(path: Path) -> None:
    with suppress(OSError):
        path.unlink(missing_ok=True)


async def await_cancellable(work: Awaitable[T], token: CancellationToken) -> Optional[T]:
    """Await ``work`` in its own task that ``token`` cancels at once.

    A stalled read is interrupted instead of waiting for the next chunk.
    Returns ``None`` when the token stopped the work; cancellation of the
    caller itself still propagates.
    """
    task = asyncio.ensure_future(work)
    token.add_callback(task.cancel)
    try:
        return await task
    except asyncio.CancelledError:
        if token.cancelled and task.done():
            return None
        raise


class DownloadManager:
    """Fetches single files from the registry into the local ComfyUI store."""

    def __init__(
        self,
        config: Optional[ScoutConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        store_root: Optional[Path] = None,
    ):
        self.config = config or get_config()
        self.store_root = store_root
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.request_timeout_s, read=None)
        )
        self.active_job: Optional[DownloadJob] = None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def _resolve_root(self) -> Optional[Path]:
        return self.store_root or resolve_comfyui_path(self.config)

    def precheck(self, size_bytes: int, destination_kind: str) -> SpaceCheck:
        """Informational fit check for a file of ``size_bytes``."""
        root = self._resolve_root()
        subdir = DIFFUSION_MODEL_DIRS.get(destination_kind, "")
        target = root / subdir if root else None
        return check_space(size_bytes, target, self.config)

    async def start(
        self,
        artifact_id: str,
        filename: str,
        destination_kind: str,
        on_progress: Optional[ProgressSink] = None,
        token: Optional[CancellationToken] = None,
        *,
        expected_bytes: Optional[int] = None,
    ) -> DownloadResult:
        job = DownloadJob(
            artifact_id=artifact_id,
            filename=filename,
            destination_kind=destination_kind,
            token=token or CancellationToken(),
        )
        return await self.run(job, on_progress, expected_bytes=expected_bytes)

    async def run(
        self,
        job: DownloadJob,
        on_progress: Optional[ProgressSink] = None,
        *,
        expected_bytes: Optional[int] = None,
    ) -> DownloadResult:
        """Drive ``job`` to a terminal state.

        Precondition failures and cancellation return a non-success result.
        HTTP status failures raise :class:`DownloadError`; stream and write
        errors propagate after the partial file is removed.
        """
        self.active_job = job
        job.state = JobState.REQUESTED

        root = self._resolve_root()
        if root is None:
            return job.finish(
                JobState.FAILED,
                DownloadResult.fail("ComfyUI path not configured. Set it in Settings."),
            )
        if job.destination_kind not in DIFFUSION_MODEL_DIRS:
            return job.finish(
                JobState.FAILED,
                DownloadResult.fail(f"Unknown model type: {job.destination_kind}"),
            )

        try:
            target_dir = get_model_dir(root, job.destination_kind)
        except OSError as exc:
            logger.error("Cannot create model directory under %s: %s", root, exc)
            subdir = DIFFUSION_MODEL_DIRS[job.destination_kind]
            return job.finish(
                JobState.FAILED, DownloadResult.fail(f"Cannot create {subdir}: {exc}")
            )
        target_path = target_dir / PurePosixPath(job.filename).name
        job.target_path = target_path
        if target_path.exists():
            return job.finish(
                JobState.FAILED, DownloadResult.fail(f"File already exists: {target_path}")
            )

        if expected_bytes:
            verdict = self.precheck(expected_bytes, job.destination_kind)
            if not verdict.fits or verdict.low_space_warning:
                logger.warning("Space check for %s: %s", job.filename, verdict.message)

        if job.token.cancelled:
            return job.finish(JobState.CANCELLED, DownloadResult.fail(CANCELLED_MESSAGE))

        url = build_resolve_url(self.config, job.artifact_id, job.filename)
        logger.info(
            "Downloading %s/%s to %s", job.artifact_id, job.filename, target_path
        )
        headers = auth_headers(self.config, accept_json=False)

        async with self._http.stream(
            "GET", url, headers=headers, follow_redirects=True
        ) as response:
            if response.status_code >= 400:
                body = (await response.aread()).decode("utf-8", errors="replace")
                logger.error(
                    "Download failed for %s: HTTP %s %s",
                    url,
                    response.status_code,
                    body[:200],
                )
                job.finish(JobState.FAILED)
                raise err_download_status(response.status_code, body)

            job.total_bytes = _content_length(response)
            job.state = JobState.STREAMING
            try:
                await await_cancellable(
                    self._copy(response, target_path, job, on_progress), job.token
                )
            except asyncio.CancelledError:
                remove_partial(target_path)
                job.finish(JobState.CANCELLED)
                raise
            except Exception:
                remove_partial(target_path)
                if job.token.cancelled:
                    return self._cancelled(job)
                job.finish(JobState.FAILED)
                raise

        if job.token.cancelled:
            remove_partial(target_path)
            return self._cancelled(job)

        logger.info("Downloaded %s/%s to %s", job.artifact_id, job.filename, target_path)
        return job.finish(
            JobState.COMPLETED,
            DownloadResult.ok(f"Downloaded to {target_path}", str(target_path)),
        )

    async def _copy(
        self,
        response: httpx.Response,
        target_path: Path,
        job: DownloadJob,
        on_progress: Optional[ProgressSink],
    ) -> None:
        async with aiofiles.open(target_path, "wb") as fh:
            async for chunk in response.aiter_bytes(CHUNK_SIZE):
                if job.token.cancelled:
                    break
                await fh.write(chunk)
                job.downloaded_bytes += len(chunk)
                if on_progress is not None:
                    on_progress(
                        DownloadProgress(
                            status=transfer_status(job.downloaded_bytes, job.total_bytes),
                            percent=progress_percent(job.downloaded_bytes, job.total_bytes),
                            downloaded_bytes=job.downloaded_bytes,
                            total_bytes=job.total_bytes,
                        )
                    )

    def _cancelled(self, job: DownloadJob) -> DownloadResult:
        logger.info("Download cancelled: %s/%s", job.artifact_id, job.filename)
        return job.finish(JobState.CANCELLED, DownloadResult.fail(CANCELLED_MESSAGE))


__all__ = [
    "CancellationToken",
    "DownloadError",
    "DownloadJob",
    "DownloadManager",
    "DownloadProgress",
    "JobState",
    "ProgressSink",
    "await_cancellable",
    "progress_percent",
    "transfer_status",
]
