"""
CLI Main - Typer-based command-line interface.

Usage:
    sectionlens load data/sections.jsonl
    sectionlens query "headline for accordion-section for Korea"
    sectionlens query "hero copy" --section-key hero-section --locale en_US --json
    sectionlens serve
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from sectionlens.config import SectionLensError

app = typer.Typer(
    name="sectionlens",
    help="SectionLens - Content section retrieval",
    add_completion=False,
)
console = Console()


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
) -> None:
    """Configure logging for every command."""
    from sectionlens.config import get_settings

    level = logging.DEBUG if verbose else get_settings().log_level.upper()
    handlers: list[logging.Handler] = []
    if verbose:
        handlers.append(RichHandler(console=console, rich_tracebacks=True, show_path=False))
    logging.basicConfig(level=level, format="%(message)s", handlers=handlers or None)


@app.command()
def query(
    message: str = typer.Argument(..., help="Free-form request"),
    section_key: str | None = typer.Option(None, "--section-key", "-s", help="Section key"),
    role: str | None = typer.Option(None, "--role", "-r", help="Content role (hard filter)"),
    locale: str | None = typer.Option(None, "--locale", "-l", help="Locale, e.g. en_US"),
    country: str | None = typer.Option(None, "--country", "-c", help="Country code or name"),
    page_id: str | None = typer.Option(None, "--page-id", "-p", help="Page id"),
    tag: list[str] = typer.Option([], "--tag", "-t", help="Tag filter (repeatable)"),
    keyword: list[str] = typer.Option([], "--keyword", "-k", help="Keyword filter (repeatable)"),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Number of results"),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON"),
) -> None:
    """Query stored content sections."""
    from sectionlens.domains.retrieval import QueryRequest

    request = QueryRequest(
        message=message,
        section_key=section_key,
        role=role,
        locale=locale,
        country=country,
        page_id=page_id,
        tags=tag,
        keywords=keyword,
        limit=limit,
    )
    asyncio.run(_query_async(request, as_json))


async def _query_async(request, as_json: bool) -> None:
    """Async query implementation."""
    from sectionlens.interfaces.api.deps import cleanup_services, get_query_service, init_services

    await init_services()
    try:
        outcome = await get_query_service().run(request)
    except SectionLensError as e:
        console.print(f"[red]Error:[/red] [{e.code.value}] {e.message}")
        raise typer.Exit(1) from e
    finally:
        await cleanup_services()

    if as_json:
        console.print_json(json.dumps([r.model_dump(mode="json") for r in outcome.results]))
        return

    if not outcome.results:
        console.print("[yellow]No matching sections.[/yellow]")
        return

    table = Table(title=f"Results ({outcome.stage.value})")
    table.add_column("ID", style="cyan")
    table.add_column("Section")
    table.add_column("Role")
    table.add_column("Locale")
    table.add_column("Source", style="dim")
    table.add_column("Text", style="green")

    for result in outcome.results:
        table.add_row(
            result.sequence_id,
            result.section,
            result.content_role or "",
            result.locale or "",
            result.source.value,
            result.cleansed_text[:80],
        )
    console.print(table)


@app.command()
def load(
    path: Path = typer.Argument(..., help="JSONL file of cleansed sections"),
) -> None:
    """Load cleansed sections into the store and rebuild the vector index."""
    if not path.exists():
        console.print(f"[red]Error:[/red] File not found: {path}")
        raise typer.Exit(1)

    asyncio.run(_load_async(path))


def _read_sections(path: Path) -> list:
    from sectionlens.domains.retrieval import ContentRecord

    records = []
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, 1):
            if not line.strip():
                continue
            try:
                data = json.loads(line)
                data["id"] = data.get("id") or uuid.uuid4().hex
                records.append(ContentRecord.model_validate(data))
            except ValueError as e:
                console.print(f"[yellow]Skipping line {line_number}:[/yellow] {e}")
    return records


async def _load_async(path: Path) -> None:
    """Async load implementation."""
    from sectionlens.config import get_settings
    from sectionlens.interfaces.api.deps import (
        cleanup_services,
        get_faiss_index,
        get_sqlite_repository,
        get_vector_search,
    )

    settings = get_settings()
    records = _read_sections(path)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Storing sections...", total=None)

        repo = get_sqlite_repository()
        try:
            await repo.initialize()
            await repo.insert_sections(records)

            progress.update(task, description="Embedding sections...")
            index = get_faiss_index()
            await index.initialize()
            indexed = await get_vector_search().index_sections(await repo.iter_all())

            progress.update(task, description="Saving index...")
            await index.save(settings.vector_index_path)
            total = await repo.count_sections()
        except SectionLensError as e:
            console.print(f"[red]Error:[/red] [{e.code.value}] {e.message}")
            raise typer.Exit(1) from e
        finally:
            await cleanup_services()

    console.print(f"\n[green]Loaded {len(records)} sections[/green]")
    console.print(f"[dim]Store: {total} sections, index: {indexed} vectors[/dim]")


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Host to bind"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload"),
) -> None:
    """Start the API server."""
    import uvicorn

    from sectionlens.config import get_settings

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print("\n[green]Starting SectionLens API server[/green]")
    console.print(f"[dim]http://{host}:{port}[/dim]\n")

    uvicorn.run(
        "sectionlens.interfaces.api:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command()
def version() -> None:
    """Show version information."""
    from sectionlens import __version__

    console.print(f"SectionLens v{__version__}")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
