"""Service and cache commands: start, search, history and the cache-* commands.

``start`` runs the API server. The other commands work directly on the
persisted discovery cache, so they are usable without a running server.
"""

import asyncio
import json
from pathlib import Path
from typing import Any

import typer
import uvicorn
from rich.table import Table

from model_discovery.cli.utils import (
    check_service_health,
    console,
    exit_with_error,
    print_info,
    print_success,
    print_warning,
)
from model_discovery.config import get_settings
from model_discovery.core.discovery import DiscoveryResult, ModelDiscoveryService
from model_discovery.core.exceptions import CatalogError
from model_discovery.core.filters import (
    SearchFilters,
    estimate_vram_gb,
    format_bytes,
    primary_file,
    relative_time_label,
)
from model_discovery.core.logging import configure_logging
from model_discovery.dependencies import get_discovery_service


def _load_service() -> ModelDiscoveryService:
    settings = get_settings()
    configure_logging(log_format="console", log_level=settings.log_level)
    service = get_discovery_service()
    service.hydrate()
    return service


def start(
    host: str | None = typer.Option(
        None, "--host", "-h", help="Host to bind to (overrides config)."
    ),
    port: int | None = typer.Option(
        None, "--port", "-p", help="Port to bind to (overrides config)."
    ),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable hot reload for development."),
    workers: int = typer.Option(1, "--workers", "-w", help="Number of uvicorn workers."),
) -> None:
    """Start the model discovery API.

    Examples:
        model-discovery start                 # Start with defaults
        model-discovery start --reload        # Development mode
        model-discovery start -p 9000         # Custom port
    """
    settings = get_settings()
    actual_host = host or settings.host
    actual_port = port or settings.port

    if check_service_health(actual_host, actual_port):
        exit_with_error(f"Service is already running on port {actual_port}.")

    console.print()
    console.print("[bold green]Starting Model Discovery Service[/bold green]")
    console.print(f"  [dim]Host:[/dim] {actual_host}")
    console.print(f"  [dim]Port:[/dim] {actual_port}")
    console.print(f"  [dim]Workers:[/dim] {workers}")
    console.print(f"  [dim]Reload:[/dim] {'enabled' if reload else 'disabled'}")
    console.print(f"  [dim]Store:[/dim] {settings.store_path}")
    console.print()
    print_info(f"API docs: http://{actual_host}:{actual_port}/docs")
    console.print()

    uvicorn.run(
        "model_discovery.main:app",
        host=actual_host,
        port=actual_port,
        reload=reload,
        workers=workers if not reload else 1,  # Reload only works with 1 worker
    )


def search(
    query: str = typer.Argument("", help="Search query; omit to list trending models."),
    offset: int = typer.Option(0, "--offset", "-o", min=0, help="Page offset."),
    limit: int | None = typer.Option(
        None, "--limit", "-l", min=1, max=100, help="Page size (defaults to config)."
    ),
    architecture: list[str] = typer.Option(
        [], "--arch", "-a", help="Architecture filter, repeatable (llama, mistral, ...)."
    ),
    quantization: str = typer.Option("any", "--quant", "-q", help="Quantization, e.g. Q4_K_M."),
    size_bucket: str = typer.Option("any", "--size", help="any, lt4gb, 4to8gb or gt8gb."),
    parameter: str = typer.Option("any", "--params", help="Parameter bucket, e.g. 3to9b."),
    license_: str = typer.Option("any", "--license", help="License id or fragment."),
    language: str = typer.Option("any", "--language", help="Language code, e.g. en."),
    min_downloads: int = typer.Option(0, "--min-downloads", min=0, help="Minimum downloads."),
    sort_by: str = typer.Option("downloads", "--sort", help="downloads, likes, updated, file_size."),
    sort_order: str = typer.Option("desc", "--order", help="asc or desc."),
    refresh: bool = typer.Option(False, "--refresh", help="Ignore the cached page."),
    no_fallback: bool = typer.Option(
        False, "--no-fallback", help="Fail instead of serving cached substitutes."
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output raw JSON."),
) -> None:
    """Search the model catalog through the local cache.

    Examples:
        model-discovery search mistral
        model-discovery search llama --quant Q4_K_M --size lt4gb
        model-discovery search --offset 20        # second trending page
    """
    try:
        filters = SearchFilters(
            architectures=architecture,
            quantization=quantization,
            size_bucket=size_bucket,  # type: ignore[arg-type]
            parameter=parameter,
            license=license_,
            language=language,
            min_downloads=min_downloads,
            sort_by=sort_by,  # type: ignore[arg-type]
            sort_order=sort_order,  # type: ignore[arg-type]
        )
    except ValueError as e:
        exit_with_error(f"Invalid filters: {e}", code=2)

    settings = get_settings()
    service = _load_service()
    try:
        result = asyncio.run(
            service.search(
                query,
                filters,
                offset=offset,
                limit=limit or settings.default_page_size,
                refresh=refresh,
                use_fallback=not no_fallback,
            )
        )
    except CatalogError as e:
        exit_with_error(f"Model catalog unavailable: {e}")
    finally:
        service.flush()

    if json_output:
        payload = {
            "query": result.query,
            "offset": result.offset,
            "source": result.source,
            "error": result.error,
            "models": [record.to_raw() for record in result.records],
        }
        console.print_json(json.dumps(payload))
        return

    _print_result(result)


def _print_result(result: DiscoveryResult) -> None:
    if result.source == "fallback":
        print_warning(
            "Catalog unavailable, showing cached results"
            + (f" ({result.error})" if result.error else "")
        )

    if not result.records:
        print_info("No models found.")
        return

    table = Table(title=f"Models for '{result.query or 'trending'}' (offset {result.offset})")
    table.add_column("Model", style="cyan", no_wrap=True)
    table.add_column("Downloads", justify="right")
    table.add_column("Likes", justify="right")
    table.add_column("Params", justify="right")
    table.add_column("Quant")
    table.add_column("Size", justify="right")
    table.add_column("VRAM", justify="right")
    table.add_column("Updated", style="dim")

    for record in result.records:
        file = primary_file(record)
        size = file.size if file is not None and file.size else 0
        quant = file.quantization if file is not None else None
        vram = estimate_vram_gb(size, quant)
        table.add_row(
            record.repo_id,
            f"{record.downloads:,}",
            f"{record.likes:,}",
            record.parameter_count or "-",
            quant or "-",
            format_bytes(size),
            f"~{vram} GB" if vram else "-",
            relative_time_label(record.last_modified),
        )

    console.print()
    console.print(table)
    console.print(f"[dim]{len(result.records)} models, source: {result.source}[/dim]")
    console.print()


def history() -> None:
    """Show recent search queries, most recent first."""
    service = _load_service()
    if not service.history:
        print_info("No search history.")
        return
    for index, query in enumerate(service.history, start=1):
        console.print(f"  [dim]{index:>2}.[/dim] {query}")


def cache_stats(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output raw JSON."),
) -> None:
    """Show what the search cache currently holds."""
    stats: dict[str, Any] = _load_service().stats()

    if json_output:
        console.print_json(json.dumps(stats))
        return

    console.print()
    console.print(
        f"[bold]Search cache:[/bold] {stats['entries']}/{stats['max_entries']} queries, "
        f"{stats['items']} models"
    )
    if not stats["queries"]:
        console.print()
        return

    table = Table()
    table.add_column("Query", style="cyan")
    table.add_column("Pages", justify="right")
    table.add_column("Offsets")
    table.add_column("Models", justify="right")
    table.add_column("Age", justify="right", style="dim")
    for entry in stats["queries"]:
        table.add_row(
            entry["query"],
            str(entry["pages"]),
            ", ".join(str(offset) for offset in entry["offsets"]),
            str(entry["items"]),
            f"{entry['age_seconds']}s",
        )
    console.print(table)
    console.print()


def cache_clear(
    query: str | None = typer.Option(None, "--query", "-q", help="Only clear this query."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
) -> None:
    """Clear cached search results."""
    if query is None and not yes:
        typer.confirm("Clear every cached search?", abort=True)

    service = _load_service()
    if query is not None:
        if service.forget_query(query):
            print_success(f"Cleared cached results for '{query}'.")
        else:
            print_info(f"Nothing cached for '{query}'.")
    else:
        count = service.clear_cache()
        print_success(f"Cleared {count} cached searches.")
    service.flush()


def cache_import(
    path: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="JSON file written by 'search --json'."
    ),
    query: str | None = typer.Option(
        None, "--query", "-q", help="Query to store the models under (defaults to the file's)."
    ),
) -> None:
    """Store a saved result list in the cache, replacing that query's pages.

    Accepts the output of 'search --json' or a plain JSON list of models.

    Examples:
        model-discovery search llama --json > llama.json
        model-discovery cache-import llama.json
        model-discovery cache-import models.json --query mistral
    """
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        exit_with_error(f"Could not read {path}: {e}")

    if isinstance(payload, dict):
        models = payload.get("models")
        saved_query = payload.get("query")
    else:
        models, saved_query = payload, None
    if not isinstance(models, list):
        exit_with_error(f"No model list found in {path}.")
    target = query if query is not None else saved_query if isinstance(saved_query, str) else ""

    service = _load_service()
    stored = service.import_results(target, models)
    if not stored:
        print_warning("No valid models to import.")
        return
    service.flush()
    print_success(f"Imported {stored} models for '{target or 'trending'}'.")
