"""memindex init — scaffold a memory directory.

Creates:
  <memory-dir>/MEMORY.md          — top-level index file (left alone if present)
  <memory-dir>/sessions/          — logs subtree picked up by ``memindex index``
  <memory-dir>/.search-index.db   — empty store with schema
  ~/.memindex/config.yaml         — global model config (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from memindex.cli.common import console, load_cli_config, open_store
from memindex.config import ensure_global_config

_INDEX_TEMPLATE = (
    "# Memory\n\n"
    "Durable notes for the assistant. Session logs live in sessions/.\n"
)


def init_cmd(
    memory_dir: Annotated[
        Path | None,
        typer.Option("--memory-dir", help="Memory directory (default: ~/.memindex/memory)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Index database (default: <memory-dir>/.search-index.db)."),
    ] = None,
) -> None:
    """Create the memory directory, an empty store and the global config."""
    cfg_path = ensure_global_config()
    cfg = load_cli_config(memory_dir, db)
    root = cfg.paths.memory_dir

    logs = root / cfg.index.logs_dir
    logs.mkdir(parents=True, exist_ok=True)
    console.print(f"  [green]✓[/] {escape(str(logs))}/")

    index_file = root / cfg.index.index_file
    if index_file.exists():
        console.print(f"  [dim]{escape(str(index_file))} already exists — kept[/]")
    else:
        index_file.write_text(_INDEX_TEMPLATE, encoding="utf-8")
        console.print(f"  [green]✓[/] {escape(str(index_file))}")

    conn = open_store(cfg.paths.db_path)
    conn.close()
    console.print(f"  [green]✓[/] {escape(str(cfg.paths.db_path))}")
    console.print(f"  [green]✓[/] {escape(str(cfg_path))} (global config)")

    console.print("\nNext steps:")
    console.print("  1. Add notes to MEMORY.md and session logs to sessions/")
    console.print("  2. memindex index")
    console.print("  3. memindex query \"...\"")
