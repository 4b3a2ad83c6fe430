"""
Command-line interface for repodex.

Provides commands for indexing, searching, watching and maintaining the
repository index.
"""

import logging
import sys
import time
from pathlib import Path
from typing import Optional
import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeElapsedColumn
from rich.syntax import Syntax
from rich.table import Table

from .config import Config
from .engine import RepositoryIndex
from .exceptions import RepodexError
from .logging_config import configure_logging
from .progress import ProgressReporter
from .utils import detect_language
from . import __version__

logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()


def _open_index(ctx: click.Context) -> RepositoryIndex:
    config: Config = ctx.obj["config"]
    index = RepositoryIndex(config)
    try:
        index.open()
    except RepodexError as e:
        _fail(ctx, f"Could not open index: {e}")
    ctx.call_on_close(index.close)
    return index


def _fail(ctx: click.Context, message: str) -> None:
    logger.debug(message, exc_info=True)
    console.print(f"[red]Error: {message}[/red]")
    if ctx.obj.get("debug"):
        raise
    sys.exit(1)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--config-root", type=click.Path(file_okay=False, path_type=Path),
              help="Directory containing .repodex/config.toml (defaults to current directory)")
@click.option("--db", type=click.Path(dir_okay=False, path_type=Path), help="Index database file")
@click.version_option(version=__version__, prog_name="repodex")
@click.pass_context
def main(ctx: click.Context, debug: bool, config_root: Optional[Path], db: Optional[Path]):
    """repodex - Semantic search over a local repository."""
    config = Config(config_root)
    if db is not None:
        config.set("store", "path", value=str(db))

    configure_logging(config, debug=debug)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["debug"] = debug


@main.command()
@click.argument("path", default=".", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--force", "-f", is_flag=True, help="Re-index files even if unchanged")
@click.pass_context
def index(ctx: click.Context, path: Path, force: bool):
    """Index every supported file under PATH."""
    repo_index = _open_index(ctx)
    root = path.resolve()
    console.print(f"[cyan]Indexing {root}...[/cyan]")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        TextColumn("[cyan]ETA: {task.fields[eta]}"),
        console=console,
    ) as progress:
        task = progress.add_task("Indexing files...", total=0, eta="calculating...")

        def progress_callback(event):
            progress.update(
                task,
                total=event.total,
                completed=event.current,
                description=f"Indexing: {Path(event.filename).name}",
                eta=ProgressReporter.format_eta(event.eta_seconds),
            )

        try:
            result = repo_index.index_repository(root, force=force, progress_callback=progress_callback)
        except (RepodexError, ValueError) as e:
            _fail(ctx, f"Indexing failed: {e}")

    console.print("\n[green]✓ Indexing complete![/green]\n")
    console.print(str(result))


@main.command()
@click.argument("query")
@click.option("--limit", "-n", type=int, default=None, help="Maximum number of results")
@click.pass_context
def search(ctx: click.Context, query: str, limit: Optional[int]):
    """Search the index for chunks similar to QUERY."""
    repo_index = _open_index(ctx)
    console.print(f'[cyan]Searching:[/cyan] "{query}"\n')

    try:
        results = repo_index.search_similar(query, top_k=limit)
    except RepodexError as e:
        _fail(ctx, f"Search failed: {e}")

    if not results:
        console.print("[yellow]No results found.[/yellow]")
        return

    for i, result in enumerate(results, 1):
        header = (
            f"[bold]{i}. {result.path}:{result.start_line}-{result.end_line}[/bold] "
            f"[dim](score: {result.score:.3f})[/dim]"
        )
        if result.embedding_state.value == "fallback":
            header += " [yellow](no embedding)[/yellow]"
        console.print(header)
        console.print(Syntax(
            result.content,
            detect_language(result.path) or "text",
            theme="monokai",
            line_numbers=True,
            start_line=result.start_line,
        ))
        console.print()


@main.command()
@click.argument("path", default=".", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--no-initial-index", is_flag=True, help="Skip the full scan before watching")
@click.pass_context
def watch(ctx: click.Context, path: Path, no_initial_index: bool):
    """Keep the index of PATH current until interrupted."""
    repo_index = _open_index(ctx)
    root = path.resolve()

    if not no_initial_index:
        console.print(f"[cyan]Indexing {root}...[/cyan]")
        console.print(str(repo_index.index_repository(root)))

    def on_change(event):
        console.print(f"[dim]{event.kind.value}:[/dim] {event.path}")

    try:
        repo_index.start_file_watching(root, on_change=on_change)
    except RepodexError as e:
        _fail(ctx, f"Could not watch {root}: {e}")

    console.print(f"[green]Watching {root}[/green] (Ctrl+C to stop)")
    try:
        while repo_index.is_watching:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping watcher...[/yellow]")
    finally:
        repo_index.stop_file_watching()


@main.command()
@click.pass_context
def stats(ctx: click.Context):
    """Show index statistics."""
    stats = _open_index(ctx).get_index_stats()

    table = Table(title="Index Statistics", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Total files", str(stats.total_files))
    table.add_row("Total chunks", str(stats.total_chunks))
    table.add_row("Total symbols", str(stats.total_symbols))
    table.add_row("Total relationships", str(stats.total_relationships))
    table.add_row("Indexed size", f"{stats.total_size_bytes / 1024 / 1024:.2f} MB")
    if stats.fallback_chunks:
        table.add_row("Chunks without embeddings", str(stats.fallback_chunks))
    if stats.last_indexed:
        import datetime
        dt = datetime.datetime.fromtimestamp(stats.last_indexed)
        table.add_row("Last indexed", dt.strftime("%Y-%m-%d %H:%M:%S"))
    if stats.database_path:
        table.add_row("Database", stats.database_path)

    console.print(table)

    if stats.languages:
        console.print("\n[bold]Languages:[/bold]")
        for lang, count in sorted(stats.languages.items(), key=lambda x: -x[1]):
            console.print(f"  {lang}: {count}")


@main.command()
@click.pass_context
def files(ctx: click.Context):
    """List indexed files."""
    records = _open_index(ctx).list_indexed_files()
    if not records:
        console.print("[yellow]No files indexed.[/yellow]")
        return

    table = Table(show_header=True)
    table.add_column("Path", style="cyan")
    table.add_column("Language")
    table.add_column("Size", justify="right")
    for record in records:
        table.add_row(record.path, record.language or "-", str(record.file_size))
    console.print(table)


@main.command()
@click.confirmation_option("--yes", "-y", prompt="Are you sure you want to delete all indexed data?")
@click.pass_context
def clear(ctx: click.Context):
    """Remove all indexed data."""
    _open_index(ctx).clear_index()
    console.print("[green]✓ Cleared all indexed data.[/green]")


@main.command()
@click.pass_context
def vacuum(ctx: click.Context):
    """Reclaim space freed by deleted index data."""
    _open_index(ctx).vacuum_index()
    console.print("[green]✓ Index vacuumed.[/green]")


if __name__ == "__main__":
    main()
