from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional

import httpx

from .config import ScoutConfig, get_config
from .downloads import (
    CANCELLED_MESSAGE,
    CancellationToken,
    DownloadJob,
    DownloadProgress,
    JobState,
    ProgressSink,
    await_cancellable,
)
from .errors import ScoutError, err_ollama
from .format_utils import format_bytes
from .hub_client import HubClient
from .results import DownloadResult, OperationResult

logger = logging.getLogger(__name__)

_HF_REF_PATTERN = re.compile(r"hf\.co/([^:]+)")
_FRACTION_PATTERN = re.compile(r"(\.\d{6})\d+")


@dataclass
class LocalModel:
    name: str
    id: str
    size: int
    size_human: str
    modified_at: str
    family: Optional[str] = None
    parameter_size: Optional[str] = None
    quantization_level: Optional[str] = None


@dataclass
class UpdateCheck:
    has_update: bool
    local_date: Optional[str]
    message: str


def hf_reference(model_id: str, quantization: str) -> str:
    return f"hf.co/{model_id}:{quantization.lower()}"


def humanize_status(raw: str) -> str:
    if raw.startswith("pulling"):
        return f"Downloading: {raw.replace('pulling ', '', 1)}"
    if raw == "verifying sha256 digest":
        return "Verifying checksum..."
    if raw == "writing manifest":
        return "Writing manifest..."
    if raw == "success":
        return "Done!"
    if raw.startswith("converting"):
        return "Converting..."
    return raw


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse ISO timestamps, tolerating ``Z`` and nanosecond fractions."""
    if not value:
        return None
    text = _FRACTION_PATTERN.sub(r"\1", value.strip()).replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def progress_from_line(line: dict[str, Any]) -> DownloadProgress:
    status = humanize_status(str(line.get("status", "")))
    total = line.get("total")
    completed = line.get("completed")
    if total and completed:
        return DownloadProgress(
            status=f"{status} - {format_bytes(completed)} / {format_bytes(total)}",
            percent=int(round(completed / total * 100)),
            downloaded_bytes=completed,
            total_bytes=total,
            digest=line.get("digest"),
        )
    return DownloadProgress(
        status=status,
        downloaded_bytes=completed,
        total_bytes=total,
        digest=line.get("digest"),
    )


class OllamaClient:
    """Talks to the local Ollama runtime that stores primary (GGUF) models."""

    def __init__(
        self,
        config: Optional[ScoutConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or get_config()
        self.base_url = self.config.ollama_host.rstrip("/")
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.request_timeout_s, read=None)
        )
        self.active_job: Optional[DownloadJob] = None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def list_local_models(self) -> List[LocalModel]:
        logger.info("Listing local models from %s", self.base_url)
        resp = await self._http.get(f"{self.base_url}/api/tags")
        if resp.status_code >= 400:
            raise err_ollama(resp.status_code, resp.text)

        models = resp.json().get("models") or []
        result: List[LocalModel] = []
        for model in models:
            details = model.get("details") or {}
            size = int(model.get("size") or 0)
            result.append(
                LocalModel(
                    name=model.get("name") or model.get("model") or "",
                    id=(model.get("digest") or "")[:12],
                    size=size,
                    size_human=format_bytes(size),
                    modified_at=model.get("modified_at") or "",
                    family=details.get("family"),
                    parameter_size=details.get("parameter_size"),
                    quantization_level=details.get("quantization_level"),
                )
            )
        return result

    async def pull_model(
        self,
        model_id: str,
        quantization: str,
        on_progress: Optional[ProgressSink] = None,
        token: Optional[CancellationToken] = None,
    ) -> DownloadResult:
        """Pull ``hf.co/<model_id>:<quant>`` streaming NDJSON progress.

        Error lines reported by the stream fail the pull once it ends.
        """
        ref = hf_reference(model_id, quantization)
        job = DownloadJob(
            artifact_id=model_id,
            filename=quantization,
            destination_kind="ollama",
            token=token or CancellationToken(),
        )
        self.active_job = job
        job.state = JobState.REQUESTED
        logger.info("Starting model pull via API: %s", ref)

        if job.token.cancelled:
            return self._cancelled(job, ref)

        last_error: Optional[str] = ""
        try:
            async with self._http.stream(
                "POST",
                f"{self.base_url}/api/pull",
                json={"name": ref, "stream": True},
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    logger.error("Pull API error: HTTP %s %s", response.status_code, body[:200])
                    job.finish(JobState.FAILED)
                    raise err_ollama(response.status_code, body)

                job.state = JobState.STREAMING
                last_error = await await_cancellable(
                    self._read_progress(response, job, on_progress), job.token
                )
        except httpx.HTTPError:
            if job.token.cancelled:
                return self._cancelled(job, ref)
            job.finish(JobState.FAILED)
            raise

        if job.token.cancelled:
            return self._cancelled(job, ref)

        if last_error:
            logger.error("Pull failed for %s: %s", ref, last_error)
            job.finish(JobState.FAILED)
            raise ScoutError(last_error)

        logger.info("Model pull completed: %s", ref)
        return job.finish(JobState.COMPLETED, DownloadResult.ok(f"Model pulled: {ref}"))

    async def _read_progress(
        self,
        response: httpx.Response,
        job: DownloadJob,
        on_progress: Optional[ProgressSink],
    ) -> str:
        """Consume NDJSON progress lines; return the last reported error, if any."""
        last_error = ""
        async for raw_line in response.aiter_lines():
            if job.token.cancelled:
                break
            line = raw_line.strip()
            if not line:
                continue
            try:
                parsed = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(parsed, dict):
                continue
            if parsed.get("error"):
                last_error = str(parsed["error"])
                continue

            progress = progress_from_line(parsed)
            job.downloaded_bytes = progress.downloaded_bytes or job.downloaded_bytes
            job.total_bytes = progress.total_bytes or job.total_bytes
            if on_progress is not None:
                on_progress(progress)
        return last_error

    def _cancelled(self, job: DownloadJob, ref: str) -> DownloadResult:
        logger.info("Model pull cancelled: %s", ref)
        return job.finish(JobState.CANCELLED, DownloadResult.fail(CANCELLED_MESSAGE))

    async def delete_model(self, model_name: str) -> OperationResult:
        logger.info("Deleting model %s", model_name)
        resp = await self._http.request(
            "DELETE", f"{self.base_url}/api/delete", json={"name": model_name}
        )
        if resp.status_code >= 400:
            logger.error(
                "Failed to delete model %s: HTTP %s %s",
                model_name,
                resp.status_code,
                resp.text[:200],
            )
            return OperationResult.fail(f"Failed to delete {model_name}: {resp.text}")
        logger.info("Model deleted: %s", model_name)
        return OperationResult.ok(f"Deleted {model_name}")

    async def check_model_update(self, model_name: str, hub: HubClient) -> UpdateCheck:
        """Compare a local HF-sourced model with the registry's modification time."""
        models = await self.list_local_models()
        local = next((m for m in models if m.name == model_name), None)
        if local is None:
            return UpdateCheck(False, None, f"Model {model_name} is not installed locally")

        match = _HF_REF_PATTERN.search(model_name)
        if not match:
            return UpdateCheck(False, local.modified_at, "Cannot check updates for non-HF models")

        remote = await hub.get_model_details(match.group(1))
        if remote is None:
            return UpdateCheck(
                False,
                local.modified_at,
                f"Model {match.group(1)} not found on Hugging Face",
            )

        local_date = parse_timestamp(local.modified_at)
        remote_date = remote.last_modified
        if local_date is not None and remote_date > local_date:
            return UpdateCheck(
                True,
                local.modified_at,
                f"Update available: remote {remote_date.isoformat()} > local {local.modified_at}",
            )
        return UpdateCheck(
            False, local.modified_at, f"Model is up to date (local: {local.modified_at})"
        )


__all__ = [
    "OllamaClient",
    "LocalModel",
    "UpdateCheck",
    "hf_reference",
    "humanize_status",
    "parse_timestamp",
]
