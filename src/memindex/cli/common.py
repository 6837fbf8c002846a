"""Helpers shared by the memindex commands: config, logging and store access."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from memindex.cli.errors import err_config
from memindex.config import ConfigError, MemIndexConfig, load_config
from memindex.db.connection import Database
from memindex.db.schema import initialize
from memindex.ingest.indexer import IndexerConfig
from memindex.rag.retriever import RetrieverConfig

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Route library logging to stderr through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    # Third-party request logging stays quiet even with --verbose
    for name in ("LiteLLM", "httpx", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)


def load_cli_config(memory_dir: Path | None = None, db: Path | None = None) -> MemIndexConfig:
    """load_config() plus the CLI flag layer; exits 1 on ConfigError."""
    try:
        cfg = load_config(memory_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    if db is not None:
        cfg.paths.db = db.expanduser()
    return cfg


def open_store(db_path: Path) -> sqlite3.Connection:
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def indexer_config(cfg: MemIndexConfig) -> IndexerConfig:
    return IndexerConfig(
        index_file=cfg.index.index_file,
        logs_dir=cfg.index.logs_dir,
        extensions=tuple(cfg.index.extensions),
        max_chars=cfg.chunking.max_chars,
        include_breadcrumbs=cfg.chunking.include_breadcrumbs,
    )


def retriever_config(cfg: MemIndexConfig) -> RetrieverConfig:
    return RetrieverConfig(
        max_results=cfg.retrieval.max_results,
        candidate_multiplier=cfg.retrieval.candidate_multiplier,
        vector_weight=cfg.retrieval.vector_weight,
        text_weight=cfg.retrieval.text_weight,
        snippet_chars=cfg.retrieval.snippet_chars,
    )
