"""memindex index — bring the search index in line with the memory directory.

Only files whose content hash changed are re-chunked and re-embedded; removed
files are pruned. ``--rebuild`` drops the index first (required after switching
to an embedding model with a different vector size).
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from memindex.cli.common import console, indexer_config, load_cli_config, open_store, setup_logging
from memindex.cli.errors import (
    err_dimension_mismatch,
    err_memory_dir_missing,
    err_provider,
    err_storage,
)
from memindex.db.repository import Repository
from memindex.exceptions import (
    DimensionMismatchError,
    DiscoveryError,
    ProviderError,
    StorageError,
)
from memindex.ingest.embeddings import create_provider
from memindex.ingest.indexer import DeltaIndexer, IndexResult


def index_cmd(
    memory_dir: Annotated[
        Path | None,
        typer.Option("--memory-dir", help="Memory directory (default: ~/.memindex/memory)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Index database (default: <memory-dir>/.search-index.db)."),
    ] = None,
    rebuild: Annotated[
        bool,
        typer.Option("--rebuild", help="Drop all indexed files, chunks and cached embeddings first."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """Index new and changed memory files."""
    setup_logging(verbose)
    cfg = load_cli_config(memory_dir, db)

    root = cfg.paths.memory_dir
    if not root.is_dir():
        console.print(err_memory_dir_missing(str(root)))
        raise typer.Exit(1)

    conn = open_store(cfg.paths.db_path)
    provider = create_provider(cfg.embedding.model)
    try:
        repo = Repository(conn)
        if rebuild:
            repo.reset_index()
            console.print("[yellow]↻ Index cleared — rebuilding[/]")
        result = DeltaIndexer(repo, provider, indexer_config(cfg)).reindex(root)
    except DimensionMismatchError as exc:
        console.print(err_dimension_mismatch(str(exc)))
        raise typer.Exit(2) from exc
    except StorageError as exc:
        console.print(err_storage(str(exc)))
        raise typer.Exit(2) from exc
    except ProviderError as exc:
        console.print(err_provider(provider.model_id, str(exc)))
        raise typer.Exit(1) from exc
    except DiscoveryError as exc:
        console.print(f"[red]Error:[/] {escape(str(exc))}")
        raise typer.Exit(1) from exc
    finally:
        provider.dispose()
        conn.close()

    _show_result(result)


def _show_result(result: IndexResult) -> None:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold", justify="right")
    table.add_row("Files scanned", str(result.files_scanned))
    table.add_row("Files changed", str(result.files_changed))
    table.add_row("Chunks indexed", str(result.chunks_indexed))
    table.add_row("Embeddings generated", str(result.embeddings_generated))
    table.add_row("Embeddings cached", str(result.embeddings_cached))
    table.add_row("Files removed", str(result.files_removed))
    console.print(table)

    if result.files_failed:
        console.print(
            f"[yellow]⚠ {len(result.files_failed)} file(s) skipped; "
            "they will be retried on the next run:[/]"
        )
        for path in result.files_failed:
            console.print(f"  {escape(path)}")
    else:
        console.print("[green]✓[/] Index up to date")
