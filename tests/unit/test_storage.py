import os
import stat
import sys
from datetime import datetime, timezone

import pytest

from muesli import storage as storage_module
from muesli.errors import FilesystemError, ParseError
from muesli.storage import (
    Paths,
    find_transcript_by_id,
    read_body,
    read_frontmatter,
    remove_outputs,
    set_file_time,
    split_frontmatter,
    write_atomic,
)


def _write_md(paths, stem, doc_id, body="# Title\n"):
    paths.transcripts_dir.mkdir(parents=True, exist_ok=True)
    path = paths.markdown_path(stem)
    path.write_text(
        f"---\ndoc_id: {doc_id}\nsource: granola\ncreated_at: '2024-03-01T09:00:00Z'\n"
        f"generator: muesli\ntitle: Standup\n---\n\n{body}"
    )
    return path


def test_paths_layout(tmp_path):
    paths = Paths.from_data_dir(tmp_path)

    assert paths.raw_path("x") == tmp_path / "raw" / "x.json"
    assert paths.markdown_path("x") == tmp_path / "transcripts" / "x.md"
    assert paths.cache_path == tmp_path / "sync_cache.json"
    assert paths.vectors_path == tmp_path / "index" / "vectors"


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
def test_ensure_dirs_and_write_atomic_permissions(tmp_path):
    paths = Paths.from_data_dir(tmp_path / "data")
    paths.ensure_dirs()
    target = paths.raw_path("x")

    write_atomic(target, "payload")

    assert target.read_text() == "payload"
    assert stat.S_IMODE(target.stat().st_mode) == 0o600
    assert stat.S_IMODE(paths.raw_dir.stat().st_mode) == 0o700
    assert sorted(p.name for p in paths.raw_dir.iterdir()) == ["x.json"]


def test_write_atomic_cleans_up_on_failure(tmp_path, monkeypatch):
    target = tmp_path / "out.json"

    def broken_replace(src, dst):
        raise OSError("rename failed")

    monkeypatch.setattr(storage_module.os, "replace", broken_replace)

    with pytest.raises(FilesystemError):
        write_atomic(target, b"data")

    assert list(tmp_path.iterdir()) == []


def test_split_frontmatter_without_header():
    assert split_frontmatter("# Just body\n") == (None, "# Just body\n")
    assert split_frontmatter("---\nunterminated") == (None, "---\nunterminated")


def test_read_frontmatter_and_body(tmp_path):
    paths = Paths.from_data_dir(tmp_path)
    md_path = _write_md(paths, "2024-03-01_standup", "doc-1", body="# Standup\n\nhello\n")

    fm = read_frontmatter(md_path)

    assert fm.doc_id == "doc-1"
    assert fm.created_at == datetime(2024, 3, 1, 9, tzinfo=timezone.utc)
    assert read_body(md_path) == "# Standup\n\nhello\n"
    assert read_frontmatter(tmp_path / "missing.md") is None


def test_read_frontmatter_invalid_yaml(tmp_path):
    path = tmp_path / "bad.md"
    path.write_text("---\ndoc_id: [oops\n---\n\nbody")

    with pytest.raises(ParseError):
        read_frontmatter(path)


def test_find_transcript_by_id(tmp_path):
    paths = Paths.from_data_dir(tmp_path)
    _write_md(paths, "a", "doc-a")
    target = _write_md(paths, "b", "doc-b")
    (paths.transcripts_dir / "c.md").write_text("---\n[broken\n---\n")

    assert find_transcript_by_id(paths, "doc-b") == target
    with pytest.raises(FilesystemError):
        find_transcript_by_id(paths, "doc-z")


def test_remove_outputs_and_set_file_time(tmp_path):
    paths = Paths.from_data_dir(tmp_path)
    md_path = _write_md(paths, "old", "doc-1")
    when = datetime(2023, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    set_file_time(md_path, when)
    assert int(os.stat(md_path).st_mtime) == int(when.timestamp())

    remove_outputs(paths, "old")
    assert not md_path.exists()
    remove_outputs(paths, "old")
