"""Flat on-disk vector store with brute-force cosine similarity search.

Vectors live in one contiguous float32 buffer; ``mapping`` records where each
document's vector begins. ``save`` writes two sibling files:
``<path>.meta.json`` with ``{"dim", "mapping"}`` and ``<path>.vectors.bin``
holding every float as 4-byte little-endian values with no header.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as _pairwise_cosine

from .errors import DimensionMismatchError, VectorStoreError
from .storage import write_atomic
from .text import Messages

_LE_FLOAT32 = np.dtype("<f4")


@dataclass(slots=True)
class VectorMapping:
    doc_id: str
    offset: int


def metadata_path(path: Path) -> Path:
    return path.with_name(f"{path.name}.meta.json")


def vectors_path(path: Path) -> Path:
    return path.with_name(f"{path.name}.vectors.bin")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine similarity of *a* and *b*; 0.0 when either norm is zero."""
    vec_a = np.asarray(a, dtype=np.float32)
    vec_b = np.asarray(b, dtype=np.float32)
    norm_a = float(np.linalg.norm(vec_a))
    norm_b = float(np.linalg.norm(vec_b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / (norm_a * norm_b))


class VectorStore:
    def __init__(self, dim: int) -> None:
        if dim <= 0:
            raise ValueError("dim must be greater than 0")
        self.dim = int(dim)
        self._vectors = np.empty(0, dtype=np.float32)
        self._mapping: list[VectorMapping] = []

    @property
    def vectors(self) -> np.ndarray:
        return self._vectors

    @property
    def mapping(self) -> list[VectorMapping]:
        return list(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    @property
    def is_empty(self) -> bool:
        return not self._mapping

    def has_document(self, doc_id: str) -> bool:
        return any(entry.doc_id == doc_id for entry in self._mapping)

    def check_offsets(self) -> None:
        """Raise :class:`VectorStoreError` when a mapping entry points past the buffer."""
        size = int(self._vectors.shape[0])
        for entry in self._mapping:
            if entry.offset < 0 or entry.offset + self.dim > size:
                raise VectorStoreError(
                    Messages.ERROR_VECTORS_MAPPING.format(doc_id=entry.doc_id, offset=entry.offset)
                )

    def _coerce(self, vector: Sequence[float], what: str) -> np.ndarray:
        array = np.asarray(vector, dtype=np.float32).reshape(-1)
        if array.shape[0] != self.dim:
            raise DimensionMismatchError(self.dim, int(array.shape[0]), what=what)
        return array

    def add_document(self, doc_id: str, vector: Sequence[float]) -> None:
        """Store *vector* for *doc_id*, replacing any vector already stored for it."""
        array = self._coerce(vector, "Vector")
        for entry in self._mapping:
            if entry.doc_id == doc_id:
                self._vectors[entry.offset : entry.offset + self.dim] = array
                return
        offset = int(self._vectors.shape[0])
        self._mapping.append(VectorMapping(doc_id=doc_id, offset=offset))
        self._vectors = np.concatenate([self._vectors, array])

    def search(self, query: Sequence[float], top_k: int) -> list[tuple[str, float]]:
        """Return up to *top_k* ``(doc_id, score)`` pairs, best first.

        Equal scores keep insertion order.
        """
        query_vec = self._coerce(query, "Query vector")
        if not self._mapping or top_k <= 0:
            return []
        matrix = np.stack(
            [self._vectors[entry.offset : entry.offset + self.dim] for entry in self._mapping]
        )
        # Zero-norm rows and queries score 0.0 rather than NaN.
        scores = _pairwise_cosine(query_vec.reshape(1, -1), matrix)[0]
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [(self._mapping[idx].doc_id, float(scores[idx])) for idx in order]

    def save(self, path: Path) -> None:
        meta = {"dim": self.dim, "mapping": [asdict(entry) for entry in self._mapping]}
        # Vectors first: metadata must never reference floats that were not written.
        write_atomic(vectors_path(path), self._vectors.astype(_LE_FLOAT32).tobytes())
        write_atomic(metadata_path(path), json.dumps(meta))

    @classmethod
    def load(cls, path: Path) -> "VectorStore":
        meta_file = metadata_path(path)
        data_file = vectors_path(path)
        try:
            meta = json.loads(meta_file.read_text(encoding="utf-8"))
            raw = data_file.read_bytes()
        except (OSError, json.JSONDecodeError) as exc:
            raise VectorStoreError(
                Messages.ERROR_VECTORS_READ.format(path=path, reason=exc)
            ) from exc
        if len(raw) % 4 != 0:
            raise VectorStoreError(
                Messages.ERROR_VECTORS_CORRUPT.format(path=data_file, size=len(raw))
            )
        try:
            store = cls(int(meta["dim"]))
            store._mapping = [
                VectorMapping(doc_id=str(item["doc_id"]), offset=int(item["offset"]))
                for item in meta.get("mapping", [])
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise VectorStoreError(
                Messages.ERROR_VECTORS_READ.format(path=path, reason=exc)
            ) from exc
        store._vectors = np.frombuffer(raw, dtype=_LE_FLOAT32).astype(np.float32)
        return store

    @classmethod
    def exists(cls, path: Path) -> bool:
        return metadata_path(path).exists()

    @classmethod
    def load_or_create(cls, path: Path, dim: int) -> "VectorStore":
        """Load the store at *path* when its dimension matches, else start empty."""
        if not cls.exists(path):
            return cls(dim)
        store = cls.load(path)
        if store.dim != dim:
            return cls(dim)
        store.check_offsets()
        return store
