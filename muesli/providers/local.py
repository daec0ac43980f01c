"""Local embedding backend for muesli."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np

from ..errors import EmbeddingError
from ..text import Messages


def _load_fastembed():
    try:
        from fastembed import TextEmbedding
    except ImportError as exc:
        raise EmbeddingError(Messages.ERROR_LOCAL_DEP_MISSING) from exc
    return TextEmbedding


_CUSTOM_TEXT_MODELS: dict[str, dict[str, object]] = {
    "intfloat/multilingual-e5-small": {
        "model": "intfloat/multilingual-e5-small",
        "pooling": "MEAN",
        "normalization": True,
        "hf": "intfloat/multilingual-e5-small",
        "dim": 384,
        "model_file": "onnx/model.onnx",
        "description": "Multilingual E5 model for cross-lingual retrieval",
        "license": "MIT",
        "size_in_gb": 0.12,
    },
}


def _is_unsupported_model_error(exc: Exception) -> bool:
    return isinstance(exc, ValueError) and "not supported in TextEmbedding" in str(exc)


def _register_custom_model(text_embedding_cls, model_name: str) -> bool:
    spec = _CUSTOM_TEXT_MODELS.get(model_name.strip().lower())
    if not spec:
        return False
    try:
        from fastembed.common.model_description import ModelSource, PoolingType
    except ImportError as exc:
        raise EmbeddingError(
            Messages.ERROR_LOCAL_MODEL_LOAD.format(model=model_name, reason=str(exc))
        ) from exc
    try:
        text_embedding_cls.add_custom_model(
            model=spec["model"],
            pooling=getattr(PoolingType, str(spec["pooling"])),
            normalization=bool(spec["normalization"]),
            sources=ModelSource(hf=str(spec["hf"])),
            dim=int(spec["dim"]),
            model_file=str(spec["model_file"]),
            description=str(spec["description"]),
            license=str(spec["license"]),
            size_in_gb=float(spec["size_in_gb"]),
        )
    except ValueError as exc:
        if "already registered" not in str(exc).lower():
            raise
    return True


def known_dimension(model_name: str) -> int | None:
    spec = _CUSTOM_TEXT_MODELS.get(model_name.strip().lower())
    return int(spec["dim"]) if spec else None


class LocalEmbeddingBackend:
    """Embedding backend that runs a small local model via fastembed."""

    def __init__(self, *, model_name: str, cache_dir: Path) -> None:
        self.model_name = model_name
        TextEmbedding = _load_fastembed()
        cache_dir.mkdir(parents=True, exist_ok=True)
        try:
            self._model = TextEmbedding(model_name=model_name, cache_dir=str(cache_dir))
        except Exception as exc:
            if not (
                _is_unsupported_model_error(exc)
                and _register_custom_model(TextEmbedding, model_name)
            ):
                raise EmbeddingError(
                    Messages.ERROR_LOCAL_MODEL_LOAD.format(model=model_name, reason=str(exc))
                ) from exc
            try:
                self._model = TextEmbedding(model_name=model_name, cache_dir=str(cache_dir))
            except Exception as retry_exc:
                raise EmbeddingError(
                    Messages.ERROR_LOCAL_MODEL_LOAD.format(model=model_name, reason=str(retry_exc))
                ) from retry_exc

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        if not texts:
            return np.empty((0, 0), dtype=np.float32)
        try:
            vectors = [np.asarray(item, dtype=np.float32) for item in self._model.embed(list(texts))]
        except Exception as exc:
            raise EmbeddingError(Messages.ERROR_LOCAL_MODEL_EMBED.format(reason=str(exc))) from exc
        if not vectors:
            raise EmbeddingError(Messages.ERROR_NO_EMBEDDINGS)
        return np.vstack(vectors)
