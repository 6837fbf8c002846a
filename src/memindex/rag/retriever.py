"""Hybrid retriever: weighted fusion of vector similarity and BM25 keyword relevance.

For every chunk among the candidates of either channel:

  both channels : score = 0.7 * similarity + 0.3 * (keyword / kw_max)
  vector only   : score = 0.7 * similarity
  keyword only  : score = 0.3 * (keyword / kw_max)

where similarity = 1 - cosine distance and kw_max is the best keyword score among
the candidates (1.0 when there are none). Each channel fetches
``candidate_multiplier * max_results`` candidates.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from memindex.db.models import Chunk
from memindex.db.repository import Repository
from memindex.db.vectors import get_dimensions
from memindex.exceptions import DimensionMismatchError, ProviderError
from memindex.ingest.embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)


@dataclass
class RetrieverConfig:
    """Fusion weights and result shaping.

    Attributes:
        max_results: Default number of results returned.
        candidate_multiplier: Candidates per channel = multiplier * max_results.
        vector_weight: Weight of cosine similarity in the fused score.
        text_weight: Weight of the normalized keyword score.
        snippet_chars: Character budget of each result's snippet.
    """

    max_results: int = 10
    candidate_multiplier: int = 4
    vector_weight: float = 0.7
    text_weight: float = 0.3
    snippet_chars: int = 700


@dataclass
class SearchResult:
    path: str
    start_line: int
    end_line: int
    score: float
    snippet: str
    source: str
    chunk_id: str


def hybrid_search(
    repo: Repository,
    query_vector: list[float] | None,
    query_text: str,
    max_results: int | None = None,
    config: RetrieverConfig | None = None,
) -> list[SearchResult]:
    """Rank chunks for a query, best-first.

    Args:
        repo: Open Repository.
        query_vector: Normalized query embedding, or None for keyword-only search.
        query_text: Raw query text for the keyword channel.
        max_results: Result limit; defaults to ``config.max_results``.
        config: Fusion configuration.

    Returns:
        Up to *max_results* results. Empty if nothing has been indexed yet.

    Raises:
        DimensionMismatchError: *query_vector* was produced by a model whose
            dimensionality differs from the index.
    """
    config = config or RetrieverConfig()
    limit = max_results if max_results is not None else config.max_results
    if limit < 1 or not repo.vector_index_ready():
        return []

    if query_vector is None:
        try:
            keyword = repo.search_fts(query_text, limit=limit)
        except sqlite3.OperationalError as exc:
            logger.warning("Keyword search failed: %s", exc)
            return []
        return [_to_result(chunk, score, config) for chunk, score in keyword]

    expected = get_dimensions(repo.conn)
    if expected is not None and len(query_vector) != expected:
        raise DimensionMismatchError(expected, len(query_vector))

    n_candidates = limit * config.candidate_multiplier
    vector = repo.search_vec(query_vector, limit=n_candidates)
    try:
        keyword = repo.search_fts(query_text, limit=n_candidates)
    except sqlite3.OperationalError as exc:
        logger.warning("Keyword search failed, using vector results only: %s", exc)
        keyword = []

    fused = fuse(
        [(chunk, 1.0 - distance) for chunk, distance in vector],
        keyword,
        vector_weight=config.vector_weight,
        text_weight=config.text_weight,
    )
    return [_to_result(chunk, score, config) for chunk, score in fused[:limit]]


def fuse(
    vector: list[tuple[Chunk, float]],
    keyword: list[tuple[Chunk, float]],
    vector_weight: float = 0.7,
    text_weight: float = 0.3,
) -> list[tuple[Chunk, float]]:
    """Combine (chunk, similarity) and (chunk, keyword score) lists.

    Returns every chunk from either list with its fused score, sorted descending.
    """
    kw_max = max((score for _, score in keyword), default=1.0)
    if kw_max <= 0:
        kw_max = 1.0

    chunks: dict[str, Chunk] = {}
    similarity: dict[str, float] = {}
    for chunk, sim in vector:
        chunks[chunk.id] = chunk
        similarity[chunk.id] = sim
    relevance: dict[str, float] = {}
    for chunk, score in keyword:
        chunks.setdefault(chunk.id, chunk)
        relevance[chunk.id] = score

    scored: list[tuple[Chunk, float]] = []
    for chunk_id, chunk in chunks.items():
        score = 0.0
        if chunk_id in similarity:
            score += vector_weight * similarity[chunk_id]
        if chunk_id in relevance:
            score += text_weight * (relevance[chunk_id] / kw_max)
        scored.append((chunk, score))

    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored


def search(
    query: str,
    repo: Repository,
    provider: EmbeddingProvider | None,
    max_results: int | None = None,
    config: RetrieverConfig | None = None,
) -> list[SearchResult]:
    """Embed *query* and run hybrid search; keyword-only if embedding fails."""
    query_vector: list[float] | None = None
    if provider is not None:
        try:
            query_vector = provider.embed(query)
        except ProviderError as exc:
            logger.warning("Query embedding failed, falling back to keyword search: %s", exc)
    return hybrid_search(repo, query_vector, query, max_results=max_results, config=config)


def truncate_snippet(text: str, max_chars: int) -> str:
    """Cut *text* to *max_chars*, never splitting a UTF-16 surrogate pair."""
    if len(text) <= max_chars:
        return text
    end = max_chars
    if end > 0 and 0xD800 <= ord(text[end - 1]) <= 0xDBFF:
        end -= 1
    return text[:end] + "..."


def _to_result(chunk: Chunk, score: float, config: RetrieverConfig) -> SearchResult:
    return SearchResult(
        path=chunk.path,
        start_line=chunk.start_line,
        end_line=chunk.end_line,
        score=score,
        snippet=truncate_snippet(chunk.text, config.snippet_chars),
        source=chunk.source,
        chunk_id=chunk.id,
    )
