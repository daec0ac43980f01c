"""OpenAI-backed embedding backend for muesli."""

from __future__ import annotations

from typing import Sequence

import numpy as np
from dotenv import load_dotenv
from openai import OpenAI

from ..errors import AuthError, EmbeddingError
from ..text import Messages

# Transient failures (429, 5xx, timeouts) are retried by the SDK itself.
MAX_RETRIES = 2


class OpenAIEmbeddingBackend:
    """Embedding backend that calls OpenAI's embeddings API."""

    def __init__(self, *, model_name: str, api_key: str | None) -> None:
        load_dotenv()
        self.model_name = model_name
        if not api_key:
            raise AuthError(Messages.ERROR_OPENAI_KEY_MISSING)
        self._client = OpenAI(api_key=api_key, max_retries=MAX_RETRIES)

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        if not texts:
            return np.empty((0, 0), dtype=np.float32)
        try:
            response = self._client.embeddings.create(
                model=self.model_name,
                input=list(texts),
            )
        except Exception as exc:
            raise EmbeddingError(_format_openai_error(exc)) from exc
        vectors = [
            np.asarray(item.embedding, dtype=np.float32)
            for item in getattr(response, "data", None) or []
            if getattr(item, "embedding", None) is not None
        ]
        if not vectors:
            raise EmbeddingError(Messages.ERROR_NO_EMBEDDINGS)
        return np.vstack(vectors)


def _format_openai_error(exc: Exception) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return f"{Messages.ERROR_OPENAI_PREFIX}{message}"
