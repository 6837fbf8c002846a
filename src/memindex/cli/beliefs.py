"""memindex beliefs / lessons CLI commands.

Commands:
  memindex beliefs add PREDICATE OBJECT   — record one observation of a belief
  memindex beliefs import FILE            — merge an extracted-beliefs JSON payload
  memindex beliefs contradict ID          — mark a belief contradicted
  memindex beliefs list                   — beliefs by confidence, optionally scoped
  memindex beliefs search QUERY           — keyword search over belief text
  memindex lessons record ERROR SOLUTION  — log whether a solution fixed an error
  memindex lessons list                   — known error → solution pairs
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from memindex.beliefs.extraction import import_beliefs
from memindex.beliefs.solutions import SolutionLog
from memindex.beliefs.store import DEFAULT_SUBJECT, PREDICATES, BeliefStore
from memindex.cli.common import console, load_cli_config, open_store
from memindex.cli.errors import err_belief_not_found, err_invalid_input, err_storage
from memindex.db.models import BeliefNode
from memindex.exceptions import MalformedInputError, StorageError

beliefs_app = typer.Typer(
    name="beliefs",
    help="Record, correct and query durable beliefs.",
    add_completion=False,
)

lessons_app = typer.Typer(
    name="lessons",
    help="Track which solutions fixed which errors.",
    add_completion=False,
)

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Index database (default: <memory-dir>/.search-index.db)."),
]
_MemoryDirOption = Annotated[
    Path | None,
    typer.Option("--memory-dir", help="Memory directory (default: ~/.memindex/memory)."),
]


def _open(memory_dir: Path | None, db: Path | None):
    cfg = load_cli_config(memory_dir, db)
    return open_store(cfg.paths.db_path)


# ---------------------------------------------------------------------------
# beliefs
# ---------------------------------------------------------------------------


@beliefs_app.command("add")
def beliefs_add_cmd(
    predicate: Annotated[str, typer.Argument(help=f"One of: {', '.join(PREDICATES)}.")],
    obj: Annotated[str, typer.Argument(metavar="OBJECT", help="What is believed.")],
    subject: Annotated[str, typer.Option("--subject", help="Who holds the belief.")] = DEFAULT_SUBJECT,
    confidence: Annotated[
        float, typer.Option("--confidence", "-c", min=0.0, max=1.0, help="0.0 – 1.0.")
    ] = 0.9,
    project: Annotated[
        str | None, typer.Option("--project", "-p", help="Scope to a project (default: global).")
    ] = None,
    context: Annotated[str | None, typer.Option("--context", help="Optional qualifier.")] = None,
    source: Annotated[str, typer.Option("--source", help="Provenance reference.")] = "cli",
    memory_dir: _MemoryDirOption = None,
    db: _DbOption = None,
) -> None:
    """Record one observation of a belief."""
    conn = _open(memory_dir, db)
    try:
        store = BeliefStore(conn)
        belief_id = store.upsert_belief(
            predicate,
            obj,
            confidence,
            source,
            subject=subject,
            context=context,
            project_scope=project,
        )
        belief = store.get_belief(belief_id)
    except MalformedInputError as exc:
        console.print(err_invalid_input(str(exc)))
        raise typer.Exit(1) from exc
    except StorageError as exc:
        console.print(err_storage(str(exc)))
        raise typer.Exit(2) from exc
    finally:
        conn.close()

    console.print(
        f"[green]✓[/] {escape(belief.predicate)} {escape(belief.object)} "
        f"[dim]({belief.confidence:.0%}, {belief.strength}, "
        f"confirmed {belief.times_confirmed}x)[/]"
    )
    console.print(f"  [dim]id: {belief.id}[/]")


@beliefs_app.command("import")
def beliefs_import_cmd(
    file: Annotated[str, typer.Argument(help="JSON payload file, or '-' for stdin.")],
    source: Annotated[
        str | None, typer.Option("--source", help="Provenance reference (default: file name).")
    ] = None,
    project: Annotated[
        str | None, typer.Option("--project", "-p", help="Record this project as seen.")
    ] = None,
    memory_dir: _MemoryDirOption = None,
    db: _DbOption = None,
) -> None:
    """Merge an extracted-beliefs payload; nothing is written if any entry is invalid."""
    if file == "-":
        raw = sys.stdin.read()
        source_ref = source or "stdin"
    else:
        path = Path(file)
        if not path.is_file():
            console.print(err_invalid_input(f"File not found: '{file}'"))
            raise typer.Exit(1)
        raw = path.read_text(encoding="utf-8")
        source_ref = source or path.name

    conn = _open(memory_dir, db)
    try:
        ids = import_beliefs(BeliefStore(conn), raw, source_ref, project=project)
    except MalformedInputError as exc:
        console.print(err_invalid_input(str(exc)))
        raise typer.Exit(1) from exc
    except StorageError as exc:
        console.print(err_storage(str(exc)))
        raise typer.Exit(2) from exc
    finally:
        conn.close()

    console.print(f"[green]✓[/] Imported {len(ids)} belief(s) from {escape(source_ref)}")


@beliefs_app.command("contradict")
def beliefs_contradict_cmd(
    belief_id: Annotated[str, typer.Argument(metavar="ID", help="Belief id.")],
    superseded_by: Annotated[
        str | None, typer.Option("--superseded-by", help="Id of the belief that replaces it.")
    ] = None,
    memory_dir: _MemoryDirOption = None,
    db: _DbOption = None,
) -> None:
    """Mark a belief contradicted. The belief is kept for history."""
    conn = _open(memory_dir, db)
    try:
        found = BeliefStore(conn).contradict_belief(belief_id, superseded_by)
    except MalformedInputError as exc:
        console.print(err_invalid_input(str(exc)))
        raise typer.Exit(1) from exc
    except StorageError as exc:
        console.print(err_storage(str(exc)))
        raise typer.Exit(2) from exc
    finally:
        conn.close()

    if not found:
        console.print(err_belief_not_found(belief_id))
        raise typer.Exit(1)
    console.print(f"[green]✓[/] Contradicted {escape(belief_id)}")


@beliefs_app.command("list")
def beliefs_list_cmd(
    predicate: Annotated[
        str | None, typer.Option("--predicate", help="Only this predicate.")
    ] = None,
    project: Annotated[
        str | None,
        typer.Option("--project", "-p", help="Global beliefs plus this project's."),
    ] = None,
    global_only: Annotated[
        bool, typer.Option("--global-only", help="Only global beliefs.")
    ] = False,
    include_contradicted: Annotated[
        bool, typer.Option("--include-contradicted", help="Also show contradicted beliefs.")
    ] = False,
    limit: Annotated[int, typer.Option("--limit", min=1)] = 50,
    memory_dir: _MemoryDirOption = None,
    db: _DbOption = None,
) -> None:
    """List beliefs, strongest first."""
    conn = _open(memory_dir, db)
    try:
        beliefs = BeliefStore(conn).query_beliefs(
            predicate=predicate,
            project_scope=project,
            global_only=global_only,
            include_contradicted=include_contradicted,
            limit=limit,
        )
    finally:
        conn.close()

    if not beliefs:
        console.print("[dim]No beliefs found.[/]")
        return
    console.print(_beliefs_table(beliefs))


@beliefs_app.command("search")
def beliefs_search_cmd(
    query: Annotated[str, typer.Argument(help="Keywords to look for.")],
    limit: Annotated[int, typer.Option("--limit", min=1)] = 10,
    memory_dir: _MemoryDirOption = None,
    db: _DbOption = None,
) -> None:
    """Keyword search over belief text."""
    conn = _open(memory_dir, db)
    try:
        hits = BeliefStore(conn).search_beliefs(query, limit=limit)
    finally:
        conn.close()

    if not hits:
        console.print("[dim]No matching beliefs.[/]")
        return
    console.print(_beliefs_table([belief for belief, _ in hits]))


def _beliefs_table(beliefs: list[BeliefNode]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Predicate", style="bold")
    table.add_column("Object")
    table.add_column("Scope", style="dim")
    table.add_column("Confidence", justify="right")
    table.add_column("Seen", justify="right")
    table.add_column("Id", style="dim")
    for b in beliefs:
        obj = escape(b.object)
        if b.contradicted:
            obj = f"[strike]{obj}[/strike]"
        table.add_row(
            b.predicate,
            obj,
            escape(b.scope_label),
            f"{b.confidence:.0%} {b.strength}",
            str(b.times_confirmed),
            b.id[:12],
        )
    return table


# ---------------------------------------------------------------------------
# lessons
# ---------------------------------------------------------------------------


@lessons_app.command("record")
def lessons_record_cmd(
    error: Annotated[str, typer.Argument(help="The error that occurred.")],
    solution: Annotated[str, typer.Argument(help="What was tried.")],
    failed: Annotated[
        bool, typer.Option("--failed", help="The solution did not fix the error.")
    ] = False,
    context: Annotated[str | None, typer.Option("--context", help="Where it happened.")] = None,
    memory_dir: _MemoryDirOption = None,
    db: _DbOption = None,
) -> None:
    """Record that SOLUTION was applied to ERROR."""
    conn = _open(memory_dir, db)
    try:
        SolutionLog(conn).record(error, solution, worked=not failed, context=context)
    except MalformedInputError as exc:
        console.print(err_invalid_input(str(exc)))
        raise typer.Exit(1) from exc
    except StorageError as exc:
        console.print(err_storage(str(exc)))
        raise typer.Exit(2) from exc
    finally:
        conn.close()

    outcome = "[red]failed[/]" if failed else "[green]worked[/]"
    console.print(f"[green]✓[/] Recorded: {escape(solution)} {outcome}")


@lessons_app.command("list")
def lessons_list_cmd(
    limit: Annotated[int, typer.Option("--limit", min=1)] = 20,
    memory_dir: _MemoryDirOption = None,
    db: _DbOption = None,
) -> None:
    """Known error → solution pairs, most reliable first."""
    conn = _open(memory_dir, db)
    try:
        known = SolutionLog(conn).known_solutions(limit=limit)
    finally:
        conn.close()

    if not known:
        console.print("[dim]No lessons recorded yet.[/]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Error", style="bold")
    table.add_column("Solution")
    table.add_column("Success", justify="right")
    table.add_column("Tries", justify="right")
    for k in known:
        table.add_row(
            escape(k.error), escape(k.solution), f"{k.success_rate:.0%}", str(k.times_applied)
        )
    console.print(table)
