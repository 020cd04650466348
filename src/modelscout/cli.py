"""
Command-line interface for modelscout.

Search the registry, rank results against local hardware, check disk space
and download models with live progress, following typer/rich conventions.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from contextlib import suppress
from dataclasses import asdict
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import httpx
import typer
from rich import print as rprint
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .config import get_config
from .disk import SpaceCheck, check_space, get_disk_report
from .downloads import CancellationToken, DownloadManager, DownloadProgress
from .errors import ScoutError
from .extractor import MODEL_TYPES
from .hub_client import DiffusionSearchQuery, HubClient, SearchQuery
from .logging_utils import configure_logging
from .model_store import delete_installed, list_installed
from .ollama_client import OllamaClient, hf_reference
from .ranking import TASK_PREFERENCES, RankPreferences
from .session import SearchSession

app = typer.Typer(
    name="modelscout",
    help="modelscout - find, rank and download local AI models",
    no_args_is_help=True,
)
console = Console()

T = TypeVar("T")

_HANDLED_ERRORS = (ScoutError, httpx.HTTPError, OSError, ValueError)


def _hub_client() -> HubClient:
    return HubClient(get_config())


def _download_manager() -> DownloadManager:
    return DownloadManager(get_config())


def _ollama_client() -> OllamaClient:
    return OllamaClient(get_config())


def _run(factory: Callable[[], Awaitable[T]], failure: str) -> T:
    try:
        return asyncio.run(factory())
    except _HANDLED_ERRORS as exc:
        rprint(f"❌ [red]{failure}:[/red] {exc}")
        raise typer.Exit(code=1)


def _dump_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _print_verdict(verdict: SpaceCheck) -> None:
    if not verdict.fits:
        colour = "red"
    elif verdict.low_space_warning:
        colour = "yellow"
    else:
        colour = "green"
    rprint(f"[{colour}]{verdict.message}[/{colour}]")


def _install_interrupt(token: CancellationToken) -> None:
    loop = asyncio.get_running_loop()
    with suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, token.cancel)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Echo log lines to the console"),
):
    """Configure logging for every command."""
    configure_logging(
        "modelscout",
        level=logging.DEBUG if verbose else logging.INFO,
        include_console=verbose,
    )


@app.command("search")
def search_models(
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Free-text search"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Filter by author/org"),
    tags: Optional[List[str]] = typer.Option(None, "--tag", "-t", help="Filter tag (repeatable)"),
    min_quant: str = typer.Option("Q4", "--min-quant", help="Minimum quantization: Q2..Q8, F16, F32"),
    limit: int = typer.Option(20, "--limit", "-n", help="Results per page (max 100)"),
    offset: int = typer.Option(0, "--offset", help="Pagination offset"),
    sort: str = typer.Option("downloads", "--sort", help="downloads, likes or lastModified"),
    rank: bool = typer.Option(False, "--rank", help="Rank the results"),
    ram_gb: Optional[float] = typer.Option(None, "--ram", help="Available memory in GB for ranking"),
    task: str = typer.Option("code", "--task", help="Task preference: code, chat, general"),
    top_k: int = typer.Option(10, "--top-k", help="Number of ranked results"),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON"),
):
    """Search the registry for GGUF models, optionally ranking them."""

    if task not in TASK_PREFERENCES:
        rprint(f"❌ [red]Unknown task preference:[/red] {task}")
        raise typer.Exit(code=1)

    search_query = SearchQuery(
        query=query,
        author=author,
        tags=tuple(tags or ()),
        min_quant=min_quant,
        limit=limit,
        offset=offset,
        sort=sort,
    )
    session = SearchSession()

    async def _search():
        async with _hub_client() as hub:
            return await session.search(hub, search_query)

    result = _run(_search, "Search failed")

    if rank:
        report = session.rank(
            RankPreferences(available_ram_gb=ram_gb, task_preference=task, top_k=top_k)
        )
        if as_json:
            _dump_json([asdict(item) for item in report.ranked])
            return
        if report.is_empty:
            rprint(f"[yellow]{report.message}[/yellow]")
            return
        table = Table(title=report.message)
        table.add_column("#", justify="right")
        table.add_column("Model")
        table.add_column("Score", justify="right")
        table.add_column("Best quant")
        table.add_column("Params")
        table.add_column("size/quant/fresh/pop/task/chat")
        for idx, item in enumerate(report.ranked, start=1):
            b = item.breakdown
            table.add_row(
                str(idx),
                item.model_id,
                f"{item.score:.3f}",
                item.best_quant,
                item.parameter_size or "?",
                f"{b.size}/{b.quant}/{b.freshness}/{b.popularity}/{b.task}/{b.chat}",
            )
        console.print(table)
        return

    if as_json:
        _dump_json([asdict(model) for model in result.models])
        return

    table = Table(title=f"Found {result.total} GGUF models")
    table.add_column("Model")
    table.add_column("Downloads", justify="right")
    table.add_column("Likes", justify="right")
    table.add_column("Params")
    table.add_column("Quants")
    table.add_column("Chat")
    table.add_column("Updated")
    for model in result.models:
        table.add_row(
            model.id,
            f"{model.downloads:,}",
            str(model.likes),
            model.parameter_size or "unknown",
            ", ".join(model.quant_labels),
            "Yes" if model.has_chat_template else "No",
            model.last_modified.date().isoformat(),
        )
    console.print(table)


@app.command("details")
def model_details(model_id: str = typer.Argument(..., help="owner/repo")):
    """Show registry metadata for one model."""

    async def _details():
        async with _hub_client() as hub:
            return await hub.get_model_details(model_id)

    model = _run(_details, "Lookup failed")
    if model is None:
        rprint(f"❌ [red]Model not found:[/red] {model_id}")
        raise typer.Exit(code=1)
    _dump_json(asdict(model))


@app.command("diffusion-search")
def search_diffusion(
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Free-text search"),
    model_type: Optional[str] = typer.Option(
        None, "--type", help=f"Model type: {', '.join(MODEL_TYPES)}"
    ),
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    limit: int = typer.Option(20, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
    sort: str = typer.Option("downloads", "--sort"),
):
    """Search the registry for image-generation weights."""

    search_query = DiffusionSearchQuery(
        query=query,
        model_type=model_type,
        author=author,
        limit=limit,
        offset=offset,
        sort=sort,
    )

    async def _search():
        async with _hub_client() as hub:
            return await hub.search_diffusion_models(search_query)

    result = _run(_search, "Search failed")
    table = Table(title=f"Found {result.total} image models")
    table.add_column("Model")
    table.add_column("Type")
    table.add_column("Downloads", justify="right")
    table.add_column("Files")
    for model in result.models:
        files = ", ".join(f.filename for f in model.files[:3])
        if len(model.files) > 3:
            files += ", …"
        table.add_row(model.id, model.model_type, f"{model.downloads:,}", files)
    console.print(table)


@app.command("download")
def download_file(
    repo_id: str = typer.Argument(..., help="owner/repo"),
    filename: str = typer.Argument(..., help="File inside the repository"),
    model_type: str = typer.Option("checkpoint", "--type", help="Destination model type"),
    expected_gb: Optional[float] = typer.Option(
        None, "--expected-gb", help="Expected size, used for a space check"
    ),
):
    """Download one weight file into the ComfyUI model store."""

    expected_bytes = int(expected_gb * 1024**3) if expected_gb else None
    manager = _download_manager()
    if expected_bytes:
        _print_verdict(manager.precheck(expected_bytes, model_type))
    token = CancellationToken()

    async def _download():
        _install_interrupt(token)
        try:
            with Progress(
                SpinnerColumn(),
                TextColumn("{task.description}"),
                BarColumn(),
                console=console,
                transient=True,
            ) as progress:
                task_id = progress.add_task(f"Fetching {filename}", total=None)

                def _on_progress(event: DownloadProgress) -> None:
                    progress.update(
                        task_id,
                        description=event.status,
                        total=100 if event.percent is not None else None,
                        completed=event.percent or 0,
                    )

                return await manager.start(
                    repo_id,
                    filename,
                    model_type,
                    _on_progress,
                    token,
                    expected_bytes=expected_bytes,
                )
        finally:
            await manager.aclose()

    result = _run(_download, "Download failed")
    if result.success:
        rprint(f"✅ [green]{result.message}[/green]")
    else:
        rprint(f"❌ [red]{result.message}[/red]")
        raise typer.Exit(code=1)


@app.command("pull")
def pull_model(
    model_id: str = typer.Argument(..., help="owner/repo of a GGUF repository"),
    quantization: str = typer.Argument(..., help="Quantization, e.g. Q4_K_M"),
):
    """Pull a GGUF model into the local Ollama runtime."""

    client = _ollama_client()
    token = CancellationToken()

    async def _pull():
        _install_interrupt(token)
        try:
            with console.status(f"Pulling {hf_reference(model_id, quantization)}") as status:

                def _on_progress(event: DownloadProgress) -> None:
                    suffix = f" ({event.percent}%)" if event.percent is not None else ""
                    status.update(f"{event.status}{suffix}")

                return await client.pull_model(model_id, quantization, _on_progress, token)
        finally:
            await client.aclose()

    result = _run(_pull, "Pull failed")
    if result.success:
        rprint(f"✅ [green]{result.message}[/green]")
    else:
        rprint(f"❌ [red]{result.message}[/red]")
        raise typer.Exit(code=1)


@app.command("local")
def list_local():
    """List models installed in the local Ollama runtime."""

    client = _ollama_client()

    async def _list():
        try:
            return await client.list_local_models()
        finally:
            await client.aclose()

    models = _run(_list, "Listing failed")
    table = Table(title=f"{len(models)} local models")
    for column in ("Name", "ID", "Size", "Params", "Quant", "Modified"):
        table.add_column(column)
    for model in models:
        table.add_row(
            model.name,
            model.id,
            model.size_human,
            model.parameter_size or "",
            model.quantization_level or "",
            model.modified_at.split("T")[0],
        )
    console.print(table)


@app.command("installed")
def list_installed_files():
    """List weight files in the ComfyUI model store."""

    models = list_installed()
    if not models:
        rprint("[yellow]No ComfyUI models found (or ComfyUI path not configured).[/yellow]")
        return
    table = Table(title=f"{len(models)} installed image models")
    for column in ("File", "Type", "Size", "Path"):
        table.add_column(column)
    for model in models:
        table.add_row(model.filename, model.model_type, model.size_human, model.path)
    console.print(table)


@app.command("delete-file")
def delete_file(path: Path = typer.Argument(..., help="Installed weight file to delete")):
    """Delete an installed image-model file."""

    result = delete_installed(path)
    if result.success:
        rprint(f"✅ [green]{result.message}[/green]")
    else:
        rprint(f"❌ [red]{result.message}[/red]")
        raise typer.Exit(code=1)


@app.command("disk")
def show_disk():
    """Show free space per mount point and at the model store."""

    report = get_disk_report()
    table = Table(title="Disk report")
    for column in ("Mount", "Free", "Total", "Free %"):
        table.add_column(column)
    for disk in report.disks:
        table.add_row(disk.path, disk.free_human, disk.total_human, f"{disk.free_percent}%")
    console.print(table)
    rprint(f"Models path: {report.current_models_path}")
    rprint(f"Free at models path: {report.current_models_path_free or 'unknown'}")


@app.command("space-check")
def space_check(
    size_gb: float = typer.Argument(..., help="Size of the planned download in GB"),
    path: Optional[Path] = typer.Option(None, "--path", help="Target path (default: model store)"),
):
    """Check whether a download of the given size fits."""

    verdict = check_space(int(size_gb * 1024**3), path)
    _print_verdict(verdict)
    if not verdict.fits:
        raise typer.Exit(code=1)


@app.command("config")
def show_config():
    """Show the effective configuration (token redacted)."""

    config = get_config()
    payload = asdict(config)
    if payload.get("hf_token"):
        payload["hf_token"] = "***"
    payload["effective_models_path"] = str(config.effective_models_path())
    _dump_json(payload)


def main():
    app()


if __name__ == "__main__":
    main()
