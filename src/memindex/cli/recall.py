"""memindex recall — print the session briefing for the current project."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from memindex.beliefs.solutions import SolutionLog
from memindex.beliefs.store import BeliefStore, detect_project
from memindex.cli.common import (
    console,
    load_cli_config,
    open_store,
    retriever_config,
    setup_logging,
)
from memindex.cli.errors import err_dimension_mismatch
from memindex.db.repository import Repository
from memindex.exceptions import DimensionMismatchError
from memindex.ingest.embeddings import create_provider
from memindex.rag.recall import RecallConfig, compose_recall
from memindex.rag.retriever import search


def recall_cmd(
    project: Annotated[
        str | None,
        typer.Option("--project", "-p", help="Project name (default: current git repository)."),
    ] = None,
    query: Annotated[
        str | None,
        typer.Option("--query", "-q", help="Also include memories relevant to this text."),
    ] = None,
    max_entries: Annotated[
        int | None,
        typer.Option("--max-entries", min=1, help="Entries per section (default: 10)."),
    ] = None,
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
    """Compose a briefing from beliefs, known solutions and memories."""
    setup_logging(verbose)
    cfg = load_cli_config(memory_dir, db)
    project = project or detect_project(Path.cwd())

    config = RecallConfig(
        max_entries=max_entries or cfg.recall.max_entries,
        max_memories=cfg.recall.max_memories,
    )

    conn = open_store(cfg.paths.db_path)
    try:
        memories = []
        if query:
            provider = create_provider(cfg.embedding.model)
            try:
                memories = search(
                    query,
                    Repository(conn),
                    provider,
                    max_results=config.max_memories,
                    config=retriever_config(cfg),
                )
            except DimensionMismatchError as exc:
                console.print(err_dimension_mismatch(str(exc)))
                raise typer.Exit(2) from exc
            finally:
                provider.dispose()
        text = compose_recall(
            BeliefStore(conn),
            SolutionLog(conn),
            project=project,
            memories=memories,
            config=config,
        )
    finally:
        conn.close()

    if not text:
        console.print("[dim]Nothing recalled yet.[/]")
        return
    typer.echo(text, nl=False)
