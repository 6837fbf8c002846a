"""memindex CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from memindex.cli.beliefs import beliefs_app, lessons_app
from memindex.cli.index import index_cmd
from memindex.cli.init import init_cmd
from memindex.cli.query import query_cmd
from memindex.cli.recall import recall_cmd
from memindex.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("memindex")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"memindex {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="memindex",
    help=(
        "memindex — searchable memory and durable beliefs for a coding assistant.\n\n"
        "  memindex init     Scaffold a memory directory.\n"
        "  memindex index    Index new and changed memory files.\n"
        "  memindex query    Hybrid (vector + keyword) search over memories.\n"
        "  memindex recall   Briefing from beliefs, lessons and memories."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """memindex — searchable memory and durable beliefs."""


app.command("init")(init_cmd)
app.command("index")(index_cmd)
app.command("query")(query_cmd)
app.command("status")(status_cmd)
app.command("recall")(recall_cmd)
app.add_typer(beliefs_app, name="beliefs")
app.add_typer(lessons_app, name="lessons")


@app.command("version")
def version_cmd() -> None:
    """Show the installed memindex version."""
    typer.echo(f"memindex {_installed_version()}")


if __name__ == "__main__":
    app()
