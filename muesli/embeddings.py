"""Embedding engine wrapping a pluggable provider backend."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence

import numpy as np

from .config import (
    DEFAULT_EMBED_CHAR_BUDGET,
    SUPPORTED_EMBED_PROVIDERS,
    Config,
    resolve_embed_model,
)
from .errors import EmbeddingError
from .text import Messages

OPENAI_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class EmbeddingBackend(Protocol):
    """Minimal protocol for components that can embed text batches."""

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        """Return embeddings for *texts* as a 2D numpy array."""
        raise NotImplementedError  # pragma: no cover


def build_embedding_input(
    title: str | None,
    body: str,
    budget: int = DEFAULT_EMBED_CHAR_BUDGET,
) -> str:
    """Join title and body, bounded to *budget* characters."""
    text = f"{title}\n\n{body}" if title else body
    return text[:budget]


class EmbeddingEngine:
    """Turn passages and queries into unit-length vectors of a fixed dimension.

    E5-style models expect ``passage: `` and ``query: `` prefixes; other
    backends are called with the raw text.
    """

    def __init__(
        self,
        backend: EmbeddingBackend,
        *,
        model_name: str = "custom",
        dim: int | None = None,
        passage_prefix: str = "",
        query_prefix: str = "",
    ) -> None:
        self._backend = backend
        self.model_name = model_name
        self.passage_prefix = passage_prefix
        self.query_prefix = query_prefix
        self._dim = dim

    @property
    def dim(self) -> int:
        if self._dim is None:
            self._dim = int(self._encode(f"{self.passage_prefix}dimension check").shape[0])
        return self._dim

    def _encode(self, text: str) -> np.ndarray:
        try:
            embeddings = self._backend.embed([text])
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(Messages.ERROR_EMBED_FAILED.format(reason=exc)) from exc
        embeddings = np.asarray(embeddings, dtype=np.float32)
        if embeddings.size == 0:
            raise EmbeddingError(Messages.ERROR_NO_EMBEDDINGS)
        vector = embeddings.reshape(embeddings.shape[0], -1)[0]
        norm = float(np.linalg.norm(vector))
        if norm == 0.0:
            return vector
        return vector / norm

    def embed_passage(self, text: str) -> np.ndarray:
        return self._encode(f"{self.passage_prefix}{text}")

    def embed_query(self, text: str) -> np.ndarray:
        return self._encode(f"{self.query_prefix}{text}")


def _is_e5(model_name: str) -> bool:
    return "e5" in model_name.lower()


def create_engine(config: Config, *, models_dir: Path, api_key: str | None = None) -> EmbeddingEngine:
    """Build the engine selected by *config*; heavy backends load lazily here."""
    provider = (config.embed_provider or "").lower()
    model_name = resolve_embed_model(provider, config.embed_model)
    prefixes = ("passage: ", "query: ") if _is_e5(model_name) else ("", "")
    if provider == "local":
        from .providers.local import LocalEmbeddingBackend, known_dimension

        backend = LocalEmbeddingBackend(model_name=model_name, cache_dir=models_dir)
        dim = known_dimension(model_name)
    elif provider == "openai":
        from .providers.openai import OpenAIEmbeddingBackend

        backend = OpenAIEmbeddingBackend(model_name=model_name, api_key=api_key)
        dim = OPENAI_DIMENSIONS.get(model_name)
    else:
        allowed = ", ".join(SUPPORTED_EMBED_PROVIDERS)
        raise EmbeddingError(
            Messages.ERROR_EMBED_PROVIDER_INVALID.format(value=provider, allowed=allowed)
        )
    return EmbeddingEngine(
        backend,
        model_name=model_name,
        dim=dim,
        passage_prefix=prefixes[0],
        query_prefix=prefixes[1],
    )
