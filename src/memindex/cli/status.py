"""memindex status command.

Shows the index (files, chunks, cache entries, embedding model) and the belief
graph (beliefs, projects, sessions, error/solution log).
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.panel import Panel

from memindex.beliefs.store import BeliefStore
from memindex.cli.common import console, load_cli_config, open_store
from memindex.config import MemIndexConfig
from memindex.db.models import IndexStats
from memindex.db.repository import Repository


def status_cmd(
    memory_dir: Annotated[
        Path | None,
        typer.Option("--memory-dir", help="Memory directory (default: ~/.memindex/memory)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Index database (default: <memory-dir>/.search-index.db)."),
    ] = None,
) -> None:
    """Show index and belief-store status."""
    cfg = load_cli_config(memory_dir, db)
    db_path = cfg.paths.db_path

    _show_paths_panel(cfg, db_path)

    if not db_path.exists():
        console.print(
            Panel(
                "[yellow]No index found.[/]\n  Run:  memindex index",
                title="[bold]Index[/]",
                expand=False,
            )
        )
        return

    conn = open_store(db_path)
    try:
        index_stats = Repository(conn).stats()
        belief_stats = BeliefStore(conn).stats()
    finally:
        conn.close()

    _show_index_panel(index_stats, cfg.embedding.model)
    _show_beliefs_panel(belief_stats)


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_paths_panel(cfg: MemIndexConfig, db_path: Path) -> None:
    db_info = escape(str(db_path))
    if db_path.exists():
        size_mb = db_path.stat().st_size / (1024 * 1024)
        db_info = f"{db_info} ({size_mb:.1f} MB)"
    lines = [
        f"Memory:    {escape(str(cfg.paths.memory_dir))}",
        f"Database:  {db_info}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Store[/]", expand=False))


def _show_index_panel(stats: IndexStats, configured_model: str) -> None:
    lines = [
        f"Files: [bold]{stats.files:,}[/]  |  "
        f"Chunks: [bold]{stats.chunks:,}[/]  |  "
        f"Cached embeddings: [bold]{stats.cache_entries:,}[/]",
    ]
    if stats.model:
        dims = f" ({stats.dimensions} dims)" if stats.dimensions else ""
        lines.append(f"Model: {escape(stats.model)}{dims}")
        if stats.model != configured_model:
            lines.append(
                f"[yellow]⚠ Configured model is {escape(configured_model)}.[/]\n"
                "  Run:  memindex index --rebuild"
            )
    else:
        lines.append("[dim]Nothing indexed yet.[/]")
    console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))


def _show_beliefs_panel(stats: dict[str, int]) -> None:
    lines = [
        f"Beliefs: [bold]{stats['beliefs']:,}[/]  "
        f"[dim]({stats['contradicted']:,} contradicted)[/]",
        f"Projects: [bold]{stats['projects']:,}[/]  |  Sessions: [bold]{stats['sessions']:,}[/]",
        f"Errors: [bold]{stats['errors']:,}[/]  |  Solutions: [bold]{stats['solutions']:,}[/]",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Beliefs[/]", expand=False))
