"""memindex rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from memindex.cli.errors import err_no_index
    console.print(err_no_index(db_path))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape


def err_provider(model: str, detail: str) -> str:
    """Embedding provider failed before the index had any vectors."""
    return (
        f"[red]Error:[/] Embedding model '{escape(model)}' failed: {escape(detail)}\n"
        "  Check the model name and API key, then run:  memindex index"
    )


def err_config(detail: str) -> str:
    """A config file is invalid or contains a forbidden key."""
    return (
        f"[red]Error:[/] Invalid configuration.\n  {escape(detail)}\n"
        "  Fix ~/.memindex/config.yaml or memindex.yaml in the memory directory."
    )


def err_memory_dir_missing(path: str) -> str:
    """The memory directory does not exist."""
    return (
        f"[red]Error:[/] Memory directory not found: '{escape(path)}'.\n"
        "  Create it, or point to another one:  memindex index --memory-dir PATH"
    )


def err_no_index(db_path: str) -> str:
    """No index database found."""
    return (
        f"[red]Error:[/] No index found at '{escape(db_path)}'.\n"
        "  Run:  memindex index"
    )


def err_dimension_mismatch(detail: str) -> str:
    """Embedding dimensionality changed without a rebuild."""
    return (
        f"[red]Error:[/] Embedding model mismatch.\n  {escape(detail)}\n"
        "  Rebuild the index:  memindex index --rebuild"
    )


def err_storage(detail: str) -> str:
    """SQLite rejected a read or write."""
    return (
        f"[red]Error:[/] The index database rejected a write: {escape(detail)}\n"
        "  Nothing was partially written. Check disk space and permissions, then retry."
    )


def err_invalid_input(detail: str) -> str:
    """A belief, payload or argument could not be accepted."""
    return f"[red]Error:[/] {escape(detail)}"


def err_belief_not_found(belief_id: str) -> str:
    return (
        f"[red]Error:[/] No belief with id '{escape(belief_id)}'.\n"
        "  Run:  memindex beliefs list --include-contradicted"
    )
