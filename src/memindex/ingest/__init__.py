"""memindex ingest pipeline — chunkers, embedding provider, cache and delta indexer."""

from memindex.ingest.base import BaseChunker
from memindex.ingest.embedding_cache import EmbeddingCache
from memindex.ingest.embeddings import (
    EmbeddingProvider,
    LiteLLMEmbeddingProvider,
    create_provider,
    normalize_embedding,
)
from memindex.ingest.indexer import DeltaIndexer, IndexerConfig, IndexResult, reindex
from memindex.ingest.markdown import MarkdownChunker
from memindex.ingest.plaintext import PlainTextChunker

__all__ = [
    "BaseChunker",
    "DeltaIndexer",
    "EmbeddingCache",
    "EmbeddingProvider",
    "IndexResult",
    "IndexerConfig",
    "LiteLLMEmbeddingProvider",
    "MarkdownChunker",
    "PlainTextChunker",
    "create_provider",
    "normalize_embedding",
    "reindex",
]
