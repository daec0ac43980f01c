"""Incremental sync of remote documents into Markdown, search and vector indices.

One :class:`SyncEngine` pass walks the remote document list in order. For
each record it decides, before any network call, whether the Markdown output
is stale (via :class:`~muesli.cache.SyncCache`) and whether an embedding is
missing (via :class:`~muesli.vectors.VectorStore`). Primary content failures
(fetch, render, file write) abort the pass; failures of the derived indices
are reported as warnings and the pass carries on. The text index is committed
and the vector store saved once, after the last record.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Protocol

from ..cache import SyncCache
from ..config import DEFAULT_EMBED_CHAR_BUDGET
from ..convert import MarkdownOutput, to_markdown
from ..embeddings import EmbeddingEngine, build_embedding_input
from ..errors import EmbeddingError, IndexingError, MuesliError, ParseError, VectorStoreError
from ..models import DocumentMetadata, DocumentSummary, RawTranscript
from ..storage import (
    Paths,
    iter_transcripts,
    read_body,
    read_frontmatter,
    remove_outputs,
    render_document,
    set_file_time,
    write_atomic,
)
from ..text import Messages
from ..utils import base_filename, slugify
from ..vectors import VectorStore
from .index_service import IndexWriter, TextIndex, flush

Renderer = Callable[[RawTranscript, DocumentMetadata, str], MarkdownOutput]
WarnFn = Callable[[str], None]
ProgressFn = Callable[[int, int], None]


class RecordSource(Protocol):
    def list_documents(self) -> list[DocumentSummary]:
        raise NotImplementedError  # pragma: no cover

    def get_metadata(self, doc_id: str) -> DocumentMetadata:
        raise NotImplementedError  # pragma: no cover

    def get_transcript(self, doc_id: str) -> RawTranscript:
        raise NotImplementedError  # pragma: no cover


@dataclass(frozen=True, slots=True)
class SyncDecision:
    needs_content_refresh: bool
    needs_embedding: bool

    @property
    def needs_fetch(self) -> bool:
        return self.needs_content_refresh or self.needs_embedding


@dataclass(slots=True)
class SyncResult:
    total: int = 0
    updated: int = 0
    skipped: int = 0
    embedded: int = 0
    indexed: int = 0
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ReindexResult:
    indexed: int = 0
    embedded: int = 0
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class WrittenRecord:
    stem: str
    markdown_path: Path
    raw_path: Path


def _date_string(meta: DocumentMetadata) -> str:
    return meta.created_at.strftime("%Y-%m-%d")


def write_record(
    paths: Paths,
    stem: str,
    raw: RawTranscript,
    meta: DocumentMetadata,
    output: MarkdownOutput,
) -> WrittenRecord:
    """Write the raw JSON then the Markdown file atomically and date them."""
    raw_path = paths.raw_path(stem)
    md_path = paths.markdown_path(stem)
    write_atomic(raw_path, json.dumps(raw.to_list(), ensure_ascii=False, indent=2))
    write_atomic(md_path, render_document(output.frontmatter_yaml, output.body))
    set_file_time(raw_path, meta.created_at)
    set_file_time(md_path, meta.created_at)
    return WrittenRecord(stem=stem, markdown_path=md_path, raw_path=raw_path)


def fetch_document(
    source: RecordSource,
    paths: Paths,
    doc_id: str,
    *,
    renderer: Renderer = to_markdown,
) -> WrittenRecord:
    """Fetch and write one document without touching the sync cache."""
    paths.ensure_dirs()
    meta = source.get_metadata(doc_id)
    raw = source.get_transcript(doc_id)
    output = renderer(raw, meta, doc_id)
    return write_record(paths, base_filename(meta.created_at, meta.title), raw, meta, output)


class SyncEngine:
    """Drive one sync pass with optional text index and embedding pipelines."""

    def __init__(
        self,
        source: RecordSource,
        paths: Paths,
        *,
        cache: SyncCache | None = None,
        renderer: Renderer = to_markdown,
        text_index: TextIndex | None = None,
        embedder: EmbeddingEngine | None = None,
        vector_store: VectorStore | None = None,
        embed_char_budget: int = DEFAULT_EMBED_CHAR_BUDGET,
        warn: WarnFn | None = None,
        progress: ProgressFn | None = None,
    ) -> None:
        self.source = source
        self.paths = paths
        self.cache = cache
        self.renderer = renderer
        self.text_index = text_index
        self.embedder = embedder
        self.vector_store = vector_store
        self.embed_char_budget = embed_char_budget
        self._warn_fn = warn
        self._progress_fn = progress
        self._result = SyncResult()

    def _warn(self, message: str) -> None:
        self._result.warnings.append(message)
        if self._warn_fn is not None:
            self._warn_fn(message)

    def _progress(self, done: int, total: int) -> None:
        if self._progress_fn is not None:
            self._progress_fn(done, total)

    def _prepare_vector_store(self) -> VectorStore | None:
        if self.embedder is None:
            return None
        if self.vector_store is not None:
            return self.vector_store
        try:
            dim = self.embedder.dim
        except EmbeddingError as exc:
            self._warn(Messages.WARNING_EMBED_SETUP.format(reason=exc))
            self.embedder = None
            return None
        path = self.paths.vectors_path
        try:
            store = VectorStore.load_or_create(path, dim)
        except VectorStoreError as exc:
            self._warn(Messages.WARNING_VECTORS_RESET.format(path=path, reason=exc))
            store = VectorStore(dim)
        self.vector_store = store
        return store

    def decide(self, summary: DocumentSummary, cache: SyncCache) -> SyncDecision:
        needs_content = cache.needs_refresh(summary.id, summary.remote_updated_at)
        store = self.vector_store
        needs_embedding = (
            self.embedder is not None
            and store is not None
            and not store.has_document(summary.id)
        )
        return SyncDecision(needs_content_refresh=needs_content, needs_embedding=needs_embedding)

    def _resolve_stem(self, cache: SyncCache, doc_id: str, meta: DocumentMetadata) -> str:
        stem = base_filename(meta.created_at, meta.title)
        owner = cache.find_by_filename(stem)
        if owner is not None and owner != doc_id:
            suffix = slugify(doc_id)[:8] or "doc"
            stem = f"{stem}_{suffix}"
        return stem

    def _refresh_content(
        self,
        cache: SyncCache,
        summary: DocumentSummary,
        raw: RawTranscript,
        meta: DocumentMetadata,
        output: MarkdownOutput,
        writer: IndexWriter | None,
    ) -> None:
        stem = self._resolve_stem(cache, summary.id, meta)
        previous = cache.get(summary.id)
        if previous is not None and previous.filename != stem:
            remove_outputs(self.paths, previous.filename)
        written = write_record(self.paths, stem, raw, meta, output)
        # Stored timestamp must be the one compared in needs_refresh.
        cache.record_success(summary.id, stem, summary.remote_updated_at)
        self._result.updated += 1
        if writer is None:
            return
        try:
            writer.upsert(
                summary.id,
                meta.title,
                _date_string(meta),
                output.body,
                written.markdown_path,
            )
        except IndexingError as exc:
            self._warn(Messages.WARNING_INDEX_DOC.format(doc_id=summary.id, reason=exc))
            return
        self._result.indexed += 1

    def _embed(self, doc_id: str, title: str | None, body: str) -> bool:
        embedder = self.embedder
        store = self.vector_store
        if embedder is None or store is None:
            return False
        text = build_embedding_input(title, body, self.embed_char_budget)
        try:
            vector = embedder.embed_passage(text)
            store.add_document(doc_id, vector)
        except (EmbeddingError, VectorStoreError) as exc:
            self._warn(Messages.WARNING_EMBED_DOC.format(doc_id=doc_id, reason=exc))
            return False
        return True

    def _finish(self, writer: IndexWriter | None) -> None:
        flush(writer, self._warn)
        if self.vector_store is not None and self._result.embedded:
            try:
                self.vector_store.save(self.paths.vectors_path)
            except MuesliError as exc:
                self._warn(Messages.WARNING_VECTORS_SAVE.format(reason=exc))

    def run(self) -> SyncResult:
        """Run one full pass and return its counts."""
        self._result = SyncResult()
        self.paths.ensure_dirs()
        cache = self.cache if self.cache is not None else SyncCache.load(self.paths.cache_path)
        self.cache = cache
        docs = self.source.list_documents()
        self._result.total = len(docs)
        writer = self.text_index.writer() if self.text_index is not None else None
        self._prepare_vector_store()

        # Records completed before an abort are already in the cache, so
        # their index and vector entries are flushed either way.
        try:
            for position, summary in enumerate(docs, start=1):
                decision = self.decide(summary, cache)
                if not decision.needs_fetch:
                    self._result.skipped += 1
                    self._progress(position, len(docs))
                    continue

                meta = self.source.get_metadata(summary.id)
                raw = self.source.get_transcript(summary.id)
                output = self.renderer(raw, meta, summary.id)

                if decision.needs_content_refresh:
                    self._refresh_content(cache, summary, raw, meta, output, writer)
                if decision.needs_embedding and self._embed(summary.id, meta.title, output.body):
                    self._result.embedded += 1
                self._progress(position, len(docs))
        finally:
            self._finish(writer)
        return self._result


def reindex(
    paths: Paths,
    *,
    text_index: TextIndex | None = None,
    embedder: EmbeddingEngine | None = None,
    vector_store: VectorStore | None = None,
    embed_char_budget: int = DEFAULT_EMBED_CHAR_BUDGET,
    warn: WarnFn | None = None,
) -> ReindexResult:
    """Rebuild derived indices from local Markdown without downloading.

    Every transcript is upserted into the text index; embeddings are only
    computed for documents the vector store does not hold yet.
    """

    result = ReindexResult()

    def _report(message: str) -> None:
        result.warnings.append(message)
        if warn is not None:
            warn(message)

    store = vector_store
    if embedder is not None and store is None:
        try:
            store = VectorStore.load_or_create(paths.vectors_path, embedder.dim)
        except VectorStoreError as exc:
            _report(Messages.WARNING_VECTORS_RESET.format(path=paths.vectors_path, reason=exc))
            store = VectorStore(embedder.dim)
        except EmbeddingError as exc:
            _report(Messages.WARNING_EMBED_SETUP.format(reason=exc))
            embedder = None
    writer = text_index.writer() if text_index is not None else None
    if writer is not None:
        # Entries for transcripts deleted from disk go away with the rebuild.
        try:
            writer.clear()
        except IndexingError as exc:
            _report(Messages.WARNING_INDEX_SETUP.format(reason=exc))
            writer = None

    for md_path in iter_transcripts(paths):
        try:
            frontmatter = read_frontmatter(md_path)
        except ParseError as exc:
            _report(Messages.WARNING_FRONTMATTER_SKIP.format(path=md_path, reason=exc))
            continue
        if frontmatter is None:
            continue
        body = read_body(md_path)
        if writer is not None:
            try:
                writer.upsert(
                    frontmatter.doc_id,
                    frontmatter.title,
                    frontmatter.created_at.strftime("%Y-%m-%d"),
                    body,
                    md_path,
                )
                result.indexed += 1
            except IndexingError as exc:
                _report(Messages.WARNING_INDEX_DOC.format(doc_id=frontmatter.doc_id, reason=exc))
        if embedder is not None and store is not None and not store.has_document(frontmatter.doc_id):
            text = build_embedding_input(frontmatter.title, body, embed_char_budget)
            try:
                store.add_document(frontmatter.doc_id, embedder.embed_passage(text))
                result.embedded += 1
            except (EmbeddingError, VectorStoreError) as exc:
                _report(Messages.WARNING_EMBED_DOC.format(doc_id=frontmatter.doc_id, reason=exc))

    flush(writer, _report)
    if store is not None and result.embedded:
        try:
            store.save(paths.vectors_path)
        except MuesliError as exc:
            _report(Messages.WARNING_VECTORS_SAVE.format(reason=exc))
    return result


def fix_dates(paths: Paths, *, warn: WarnFn | None = None) -> int:
    """Set Markdown and raw JSON mtimes to each meeting's creation date."""
    updated = 0
    for md_path in iter_transcripts(paths):
        try:
            frontmatter = read_frontmatter(md_path)
        except ParseError as exc:
            if warn is not None:
                warn(Messages.WARNING_FRONTMATTER_SKIP.format(path=md_path, reason=exc))
            continue
        if frontmatter is None:
            continue
        set_file_time(md_path, frontmatter.created_at)
        updated += 1
        raw_path = paths.raw_path(md_path.stem)
        if raw_path.exists():
            set_file_time(raw_path, frontmatter.created_at)
            updated += 1
    return updated
