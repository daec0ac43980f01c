"""Full-text and semantic search over synced transcripts."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..cache import SyncCache
from ..embeddings import EmbeddingEngine
from ..errors import IndexingError, ParseError, VectorStoreError
from ..models import Frontmatter
from ..storage import Paths, iter_transcripts, read_frontmatter
from ..text import Messages
from ..vectors import VectorStore
from .index_service import TextHit, TextIndex

UNKNOWN = "unknown"


@dataclass(slots=True)
class SemanticHit:
    doc_id: str
    title: str | None
    date: str
    path: str
    score: float


def text_search(paths: Paths, query: str, limit: int = 10) -> list[TextHit]:
    """Run a bm25-ranked query against the FTS5 index."""
    if not paths.text_index_path.exists():
        raise IndexingError(Messages.ERROR_INDEX_MISSING)
    with TextIndex.open(paths.text_index_path) as index:
        return index.search(query, limit)


def _frontmatter_at(md_path: Path, doc_id: str) -> Frontmatter | None:
    try:
        frontmatter = read_frontmatter(md_path)
    except ParseError:
        return None
    if frontmatter is None or frontmatter.doc_id != doc_id:
        return None
    return frontmatter


def _locate(paths: Paths, cache: SyncCache, doc_id: str) -> tuple[Path, Frontmatter] | None:
    entry = cache.get(doc_id)
    if entry is not None:
        md_path = paths.markdown_path(entry.filename)
        frontmatter = _frontmatter_at(md_path, doc_id)
        if frontmatter is not None:
            return md_path, frontmatter
    for md_path in iter_transcripts(paths):
        frontmatter = _frontmatter_at(md_path, doc_id)
        if frontmatter is not None:
            return md_path, frontmatter
    return None


def semantic_search(
    paths: Paths,
    engine: EmbeddingEngine,
    query: str,
    limit: int = 10,
) -> list[SemanticHit]:
    """Embed *query* and return the nearest stored documents.

    Hits whose Markdown file can no longer be found are still returned, with
    ``unknown`` date and path.
    """

    if not VectorStore.exists(paths.vectors_path):
        raise VectorStoreError(Messages.ERROR_VECTORS_MISSING)
    store = VectorStore.load(paths.vectors_path)
    store.check_offsets()
    query_vec = engine.embed_query(query)
    cache = SyncCache.load(paths.cache_path)

    hits: list[SemanticHit] = []
    for doc_id, score in store.search(query_vec, limit):
        located = _locate(paths, cache, doc_id)
        if located is None:
            hits.append(SemanticHit(doc_id=doc_id, title=None, date=UNKNOWN, path=UNKNOWN, score=score))
            continue
        md_path, frontmatter = located
        hits.append(
            SemanticHit(
                doc_id=doc_id,
                title=frontmatter.title,
                date=frontmatter.created_at.strftime("%Y-%m-%d"),
                path=str(md_path),
                score=score,
            )
        )
    return hits
