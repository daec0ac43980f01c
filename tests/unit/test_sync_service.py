import json
import os
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from muesli.cache import SyncCache
from muesli.embeddings import EmbeddingEngine
from muesli.errors import FilesystemError, IndexingError, NetworkError
from muesli.models import DocumentMetadata, DocumentSummary, RawTranscript, TranscriptEntry
from muesli.services import sync_service
from muesli.services.index_service import TextIndex
from muesli.services.sync_service import SyncEngine, fetch_document, fix_dates, reindex
from muesli.storage import Paths, read_frontmatter
from muesli.vectors import VectorStore

CREATED = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)
UPDATED = datetime(2024, 3, 2, 10, 0, tzinfo=timezone.utc)


class FakeSource:
    def __init__(self):
        self.docs: dict[str, DocumentSummary] = {}
        self.metas: dict[str, DocumentMetadata] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[str] = set()

    def add(self, doc_id, title, *, updated_at=UPDATED, meta_updated_at=None, created_at=CREATED):
        self.docs[doc_id] = DocumentSummary(
            id=doc_id, created_at=created_at, title=title, updated_at=updated_at
        )
        self.metas[doc_id] = DocumentMetadata(
            id=doc_id,
            created_at=created_at,
            title=title,
            updated_at=meta_updated_at or updated_at,
            participants=["Ada", "Grace"],
            duration_seconds=1800,
        )

    def list_documents(self):
        return list(self.docs.values())

    def get_metadata(self, doc_id):
        self.calls.append(("meta", doc_id))
        if doc_id in self.fail_on:
            raise NetworkError(f"connection reset for {doc_id}")
        return self.metas[doc_id]

    def get_transcript(self, doc_id):
        self.calls.append(("transcript", doc_id))
        title = self.metas[doc_id].title or ""
        return RawTranscript(
            entries=[
                TranscriptEntry(text=f"Discussing {title} roadmap", speaker="Ada", start=5.0),
                TranscriptEntry(text="Sounds good", speaker="Grace", start=65.0),
            ]
        )


class FakeBackend:
    def __init__(self, fail_marker=None):
        self.fail_marker = fail_marker
        self.calls = 0

    def embed(self, texts):
        self.calls += 1
        text = texts[0]
        if self.fail_marker and self.fail_marker in text:
            raise RuntimeError("model exploded")
        return np.asarray([[len(text) % 7 + 1.0, 1.0, 0.5, 0.0]], dtype=np.float32)


class FailingWriter:
    pending = 0

    def upsert(self, doc_id, *args):
        raise IndexingError(f"disk full while indexing {doc_id}")

    def commit(self):
        raise AssertionError("nothing to commit")


class FailingIndex:
    def writer(self):
        return FailingWriter()


class LockedWriter:
    def __init__(self):
        self.pending = 0
        self.rolled_back = False

    def upsert(self, doc_id, *args):
        self.pending += 1

    def commit(self):
        raise IndexingError("database is locked")

    def rollback(self):
        self.rolled_back = True
        self.pending = 0


class LockedIndex:
    def __init__(self):
        self.last_writer = None

    def writer(self):
        self.last_writer = LockedWriter()
        return self.last_writer


def _paths(tmp_path):
    return Paths.from_data_dir(tmp_path / "data")


def _engine(dim=4, fail_marker=None):
    return EmbeddingEngine(FakeBackend(fail_marker), model_name="fake", dim=dim)


def _fetches(source):
    return [doc_id for kind, doc_id in source.calls if kind == "meta"]


def test_first_sync_writes_markdown_raw_and_cache(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "Weekly Sync")
    source.add("b", None)

    result = SyncEngine(source, paths).run()

    assert (result.total, result.updated, result.skipped) == (2, 2, 0)
    md_path = paths.markdown_path("2024-03-01_weekly-sync")
    raw_path = paths.raw_path("2024-03-01_weekly-sync")
    assert md_path.exists() and raw_path.exists()
    assert paths.markdown_path("2024-03-01_untitled").exists()
    assert read_frontmatter(md_path).doc_id == "a"
    assert json.loads(raw_path.read_text())[0]["speaker"] == "Ada"
    assert int(md_path.stat().st_mtime) == int(CREATED.timestamp())
    cache = SyncCache.load(paths.cache_path)
    assert cache.get("a").filename == "2024-03-01_weekly-sync"
    assert cache.get("a").updated_at == UPDATED


def test_second_sync_is_idempotent(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "Weekly Sync")
    source.add("b", "Planning")
    SyncEngine(source, paths).run()
    source.calls.clear()

    result = SyncEngine(source, paths).run()

    assert (result.updated, result.skipped) == (0, 2)
    assert source.calls == []


def test_newer_remote_timestamp_triggers_refresh(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "Weekly Sync")
    source.add("b", "Planning")
    SyncEngine(source, paths).run()
    source.calls.clear()

    source.add("b", "Planning", updated_at=UPDATED + timedelta(minutes=5))
    result = SyncEngine(source, paths).run()

    assert (result.updated, result.skipped) == (1, 1)
    assert _fetches(source) == ["b"]


def test_cache_stores_summary_timestamp_not_metadata_timestamp(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "Weekly Sync", meta_updated_at=UPDATED + timedelta(hours=3))

    SyncEngine(source, paths).run()
    cache = SyncCache.load(paths.cache_path)
    assert cache.get("a").updated_at == UPDATED

    source.calls.clear()
    result = SyncEngine(source, paths).run()
    assert result.skipped == 1
    assert source.calls == []


def test_summary_without_updated_at_uses_created_at(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "Weekly Sync", updated_at=None)

    SyncEngine(source, paths).run()

    assert SyncCache.load(paths.cache_path).get("a").updated_at == CREATED


def test_title_change_removes_previous_outputs(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "Old Name")
    SyncEngine(source, paths).run()

    source.add("a", "New Name", updated_at=UPDATED + timedelta(days=1))
    SyncEngine(source, paths).run()

    assert not paths.markdown_path("2024-03-01_old-name").exists()
    assert not paths.raw_path("2024-03-01_old-name").exists()
    assert paths.markdown_path("2024-03-01_new-name").exists()
    assert paths.raw_path("2024-03-01_new-name").exists()
    assert SyncCache.load(paths.cache_path).get("a").filename == "2024-03-01_new-name"


def test_same_title_on_same_day_gets_distinct_files(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("alpha-1", "Standup")
    source.add("beta-22", "Standup")

    SyncEngine(source, paths).run()

    cache = SyncCache.load(paths.cache_path)
    assert cache.get("alpha-1").filename == "2024-03-01_standup"
    assert cache.get("beta-22").filename == "2024-03-01_standup_beta-22"
    assert read_frontmatter(paths.markdown_path("2024-03-01_standup")).doc_id == "alpha-1"


def test_fetch_failure_aborts_pass_and_keeps_completed_records(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "First")
    source.add("b", "Second")
    source.add("c", "Third")
    source.fail_on.add("b")

    with pytest.raises(NetworkError):
        SyncEngine(source, paths).run()

    cache = SyncCache.load(paths.cache_path)
    assert "a" in cache
    assert "b" not in cache
    assert "c" not in _fetches(source)


def test_write_failure_aborts_pass_before_cache_update(tmp_path, monkeypatch):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "One")
    source.add("b", "Two")
    real_write = sync_service.write_atomic

    def flaky_write(path, data):
        if path.stem == "2024-03-01_two":
            raise FilesystemError(f"no space left writing {path.name}")
        real_write(path, data)

    monkeypatch.setattr(sync_service, "write_atomic", flaky_write)

    with pytest.raises(FilesystemError):
        SyncEngine(source, paths).run()

    cache = SyncCache.load(paths.cache_path)
    assert cache.get("a").filename == "2024-03-01_one"
    assert "b" not in cache
    assert not paths.markdown_path("2024-03-01_two").exists()


def test_commit_failure_is_reported_and_rolled_back(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "First")
    index = LockedIndex()

    result = SyncEngine(source, paths, text_index=index).run()

    assert result.updated == 1
    assert result.warnings == ["Warning: Failed to commit index changes: database is locked"]
    assert index.last_writer.rolled_back is True
    assert index.last_writer.pending == 0


def test_index_failure_is_reported_and_sync_continues(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "First")
    source.add("b", "Second")
    seen = []

    result = SyncEngine(source, paths, text_index=FailingIndex(), warn=seen.append).run()

    assert result.updated == 2
    assert result.indexed == 0
    assert len(result.warnings) == 2
    assert seen == result.warnings
    assert "disk full" in result.warnings[0]
    assert len(SyncCache.load(paths.cache_path)) == 2


def test_text_index_committed_once_and_visible(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "Weekly Sync")
    source.add("b", "Budget Review")

    with TextIndex.open(paths.text_index_path) as index:
        result = SyncEngine(source, paths, text_index=index).run()

    assert result.indexed == 2
    with TextIndex.open(paths.text_index_path) as reader:
        assert reader.count() == 2
        hits = reader.search("budget")
        assert [hit.doc_id for hit in hits] == ["b"]
        assert hits[0].date == "2024-03-01"
        assert hits[0].path.endswith("2024-03-01_budget-review.md")


def test_lost_cache_does_not_duplicate_index_entries(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "Weekly Sync")
    source.add("b", "Budget Review")
    with TextIndex.open(paths.text_index_path) as index:
        SyncEngine(source, paths, text_index=index).run()

    paths.cache_path.unlink()
    with TextIndex.open(paths.text_index_path) as index:
        result = SyncEngine(source, paths, text_index=index).run()

    assert result.updated == 2
    with TextIndex.open(paths.text_index_path) as reader:
        assert reader.count("a") == 1
        assert reader.count("b") == 1


def test_aborted_pass_commits_completed_index_entries(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "Weekly Sync")
    source.add("b", "Budget Review")
    source.fail_on.add("b")

    with TextIndex.open(paths.text_index_path) as index:
        with pytest.raises(NetworkError):
            SyncEngine(source, paths, text_index=index).run()

    with TextIndex.open(paths.text_index_path) as reader:
        assert reader.count("a") == 1
        assert reader.count("b") == 0

    source.fail_on.clear()
    with TextIndex.open(paths.text_index_path) as index:
        SyncEngine(source, paths, text_index=index).run()
    with TextIndex.open(paths.text_index_path) as reader:
        assert reader.count("a") == 1
        assert reader.count("b") == 1


def test_embeddings_generated_and_saved_once(tmp_path, monkeypatch):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "Weekly Sync")
    source.add("b", "Budget Review")
    saves = []
    original_save = VectorStore.save

    def counting_save(self, path):
        saves.append(path)
        original_save(self, path)

    monkeypatch.setattr(VectorStore, "save", counting_save)

    result = SyncEngine(source, paths, embedder=_engine()).run()

    assert result.embedded == 2
    assert saves == [paths.vectors_path]
    store = VectorStore.load(paths.vectors_path)
    assert store.has_document("a") and store.has_document("b")


def test_embedding_failure_is_isolated_and_retried_next_pass(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "Weekly Sync")
    source.add("b", "Broken Meeting")

    first = SyncEngine(source, paths, embedder=_engine(fail_marker="Broken")).run()

    assert first.updated == 2
    assert first.embedded == 1
    assert len(first.warnings) == 1
    assert "b" in first.warnings[0]
    store = VectorStore.load(paths.vectors_path)
    assert store.has_document("a") and not store.has_document("b")

    source.calls.clear()
    second = SyncEngine(source, paths, embedder=_engine()).run()

    assert _fetches(source) == ["b"]
    assert second.updated == 0
    assert second.embedded == 1
    assert second.skipped == 1
    assert VectorStore.load(paths.vectors_path).has_document("b")


def test_corrupt_vector_store_starts_fresh_with_warning(tmp_path):
    paths = _paths(tmp_path)
    paths.ensure_dirs()
    (paths.index_dir / "vectors.meta.json").write_text(json.dumps({"dim": 4, "mapping": []}))
    (paths.index_dir / "vectors.vectors.bin").write_bytes(b"\x00\x01\x02")
    source = FakeSource()
    source.add("a", "Weekly Sync")

    result = SyncEngine(source, paths, embedder=_engine()).run()

    assert result.embedded == 1
    assert any("starting fresh" in warning for warning in result.warnings)
    assert VectorStore.load(paths.vectors_path).has_document("a")


def test_progress_reports_each_record(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "One")
    source.add("b", "Two")
    ticks = []

    SyncEngine(source, paths, progress=lambda done, total: ticks.append((done, total))).run()

    assert ticks == [(1, 2), (2, 2)]


def test_reindex_rebuilds_from_local_markdown(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "Weekly Sync")
    source.add("b", "Budget Review")
    SyncEngine(source, paths).run()

    with TextIndex.open(paths.text_index_path) as index:
        result = reindex(paths, text_index=index, embedder=_engine())

    assert (result.indexed, result.embedded) == (2, 2)
    assert result.warnings == []
    with TextIndex.open(paths.text_index_path) as reader:
        assert reader.count() == 2
    assert len(VectorStore.load(paths.vectors_path)) == 2


def test_reindex_drops_entries_for_deleted_transcripts(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "Weekly Sync")
    source.add("b", "Budget Review")
    with TextIndex.open(paths.text_index_path) as index:
        SyncEngine(source, paths, text_index=index).run()
    paths.markdown_path("2024-03-01_budget-review").unlink()

    with TextIndex.open(paths.text_index_path) as index:
        result = reindex(paths, text_index=index)

    assert result.indexed == 1
    with TextIndex.open(paths.text_index_path) as reader:
        assert reader.count("a") == 1
        assert reader.count("b") == 0


def test_reindex_skips_broken_front_matter(tmp_path):
    paths = _paths(tmp_path)
    paths.ensure_dirs()
    paths.markdown_path("broken").write_text("---\ntitle: [unclosed\n---\n\nbody\n")

    result = reindex(paths, text_index=None, embedder=None)

    assert result.indexed == 0
    assert len(result.warnings) == 1


def test_fix_dates_resets_modification_times(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "Weekly Sync")
    SyncEngine(source, paths).run()
    md_path = paths.markdown_path("2024-03-01_weekly-sync")
    raw_path = paths.raw_path("2024-03-01_weekly-sync")
    os.utime(md_path, None)
    os.utime(raw_path, None)

    count = fix_dates(paths)

    assert count == 2
    assert int(md_path.stat().st_mtime) == int(CREATED.timestamp())
    assert int(raw_path.stat().st_mtime) == int(CREATED.timestamp())


def test_fetch_document_writes_without_touching_cache(tmp_path):
    paths = _paths(tmp_path)
    source = FakeSource()
    source.add("a", "Weekly Sync")

    written = fetch_document(source, paths, "a")

    assert written.markdown_path == paths.markdown_path("2024-03-01_weekly-sync")
    assert written.raw_path.exists()
    assert not paths.cache_path.exists()
