"""memindex query — hybrid search over indexed memories."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from memindex.cli.common import (
    console,
    load_cli_config,
    open_store,
    retriever_config,
    setup_logging,
)
from memindex.cli.errors import err_dimension_mismatch, err_no_index
from memindex.db.repository import Repository
from memindex.exceptions import DimensionMismatchError
from memindex.ingest.embeddings import create_provider
from memindex.rag.retriever import search


def query_cmd(
    text: Annotated[str, typer.Argument(help="What to search for.")],
    max_results: Annotated[
        int | None,
        typer.Option("--max-results", "-n", min=1, help="Number of results (default: 10)."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print results as JSON."),
    ] = False,
    memory_dir: Annotated[
        Path | None,
        typer.Option("--memory-dir", help="Memory directory (default: ~/.memindex/memory)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Index database (default: <memory-dir>/.search-index.db)."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """Search memories by meaning and keyword."""
    setup_logging(verbose)
    cfg = load_cli_config(memory_dir, db)
    db_path = cfg.paths.db_path
    if not db_path.exists():
        console.print(err_no_index(str(db_path)))
        raise typer.Exit(1)

    conn = open_store(db_path)
    provider = create_provider(cfg.embedding.model)
    try:
        results = search(
            text, Repository(conn), provider, max_results=max_results, config=retriever_config(cfg)
        )
    except DimensionMismatchError as exc:
        console.print(err_dimension_mismatch(str(exc)))
        raise typer.Exit(2) from exc
    finally:
        provider.dispose()
        conn.close()

    if as_json:
        typer.echo(json.dumps([asdict(r) for r in results], indent=2))
        return

    if not results:
        console.print("[dim]No results.[/]")
        return

    for r in results:
        console.print(
            f"[bold]{escape(r.path)}[/]:{r.start_line}-{r.end_line}  [dim]{r.score:.3f}[/]"
        )
        console.print(escape(r.snippet), highlight=False)
        console.print()
