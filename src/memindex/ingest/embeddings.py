"""Embedding provider interface and the LiteLLM-backed implementation.

Every vector handed to the indexer or the retriever is sanitized and
L2-normalized by ``normalize_embedding()``: non-finite components become 0 and
near-zero vectors are returned as-is rather than divided by ~0.
"""

from __future__ import annotations

import logging
import math
import os
import threading
from abc import ABC, abstractmethod

import litellm

from memindex.exceptions import ProviderError

litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "openai/text-embedding-3-small"

_MIN_MAGNITUDE = 1e-10

# Provider prefix → env var holding its API key. Local providers need none.
_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,
}


def normalize_embedding(vector: list[float]) -> list[float]:
    """Replace non-finite components with 0 and scale to unit length.

    Vectors whose magnitude is below 1e-10 are returned sanitized but
    unnormalized.
    """
    sanitized = [float(v) if math.isfinite(v) else 0.0 for v in vector]
    magnitude = math.sqrt(sum(v * v for v in sanitized))
    if magnitude < _MIN_MAGNITUDE:
        return sanitized
    return [v / magnitude for v in sanitized]


class EmbeddingProvider(ABC):
    """Opaque embedding capability consumed by the indexer and the retriever."""

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Identifier recorded with every chunk and cache entry."""

    @property
    def dimensions(self) -> int | None:
        """Vector size, or None until the first embedding has been produced."""
        return None

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Return the normalized embedding of *text*.

        Raises:
            ProviderError: If the provider is unavailable or fails.
        """

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(t) for t in texts]

    def dispose(self) -> None:
        """Release underlying resources. Safe to call more than once."""


class LiteLLMEmbeddingProvider(EmbeddingProvider):
    """Embeddings through ``litellm.embedding()``.

    The API-key check runs once, lazily, on the first ``embed()`` call. A lock
    makes concurrent first callers wait for the same initialization.

    Args:
        model: LiteLLM model string in 'provider/model' format.
        num_retries: Retries on transient provider errors (LiteLLM backoff).
    """

    def __init__(self, model: str = DEFAULT_MODEL, num_retries: int = 3) -> None:
        self._model = model
        self._num_retries = num_retries
        self._dimensions: int | None = None
        self._ready = False
        self._lock = threading.Lock()

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int | None:
        return self._dimensions

    def embed(self, text: str) -> list[float]:
        self._ensure_ready()
        try:
            response = litellm.embedding(
                model=self._model, input=[text], num_retries=self._num_retries
            )
            raw = response.data[0]["embedding"]
        except Exception as exc:
            raise ProviderError(f"Embedding call to '{self._model}' failed: {exc}") from exc

        if not raw:
            raise ProviderError(f"Provider '{self._model}' returned an empty embedding")
        vector = normalize_embedding(list(raw))
        self._dimensions = len(vector)
        return vector

    def dispose(self) -> None:
        with self._lock:
            self._ready = False

    def _ensure_ready(self) -> None:
        if self._ready:
            return
        with self._lock:
            if self._ready:
                return
            self._check_api_key()
            logger.debug("Embedding provider ready: %s", self._model)
            self._ready = True

    def _check_api_key(self) -> None:
        """Raise ProviderError if the hosted provider's API key is not set."""
        provider = self._model.split("/")[0].lower() if "/" in self._model else "openai"
        env_var = _PROVIDER_ENV.get(provider)
        if env_var and not os.environ.get(env_var):
            raise ProviderError(
                f"No API key found for provider '{provider}'. "
                f"Set the {env_var} environment variable."
            )


def create_provider(model: str = DEFAULT_MODEL) -> EmbeddingProvider:
    """Build the embedding provider used by the CLI."""
    return LiteLLMEmbeddingProvider(model)
