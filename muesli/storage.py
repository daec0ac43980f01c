"""Data directory layout, atomic writes and front matter parsing."""

from __future__ import annotations

import os
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import yaml

from .errors import FilesystemError, ParseError
from .models import Frontmatter
from .text import Messages

DIR_MODE = 0o700
FILE_MODE = 0o600
CACHE_FILENAME = "sync_cache.json"
VECTORS_STEM = "vectors"
FRONTMATTER_DELIMITER = "---\n"


@dataclass(slots=True)
class Paths:
    data_dir: Path
    raw_dir: Path
    transcripts_dir: Path
    summaries_dir: Path
    index_dir: Path
    models_dir: Path

    @classmethod
    def from_data_dir(cls, data_dir: Path | str) -> "Paths":
        root = Path(data_dir).expanduser()
        return cls(
            data_dir=root,
            raw_dir=root / "raw",
            transcripts_dir=root / "transcripts",
            summaries_dir=root / "summaries",
            index_dir=root / "index",
            models_dir=root / "models",
        )

    @property
    def cache_path(self) -> Path:
        return self.data_dir / CACHE_FILENAME

    @property
    def text_index_path(self) -> Path:
        return self.index_dir / "fts.db"

    @property
    def vectors_path(self) -> Path:
        return self.index_dir / VECTORS_STEM

    def markdown_path(self, stem: str) -> Path:
        return self.transcripts_dir / f"{stem}.md"

    def raw_path(self, stem: str) -> Path:
        return self.raw_dir / f"{stem}.json"

    def ensure_dirs(self) -> None:
        for directory in (
            self.data_dir,
            self.raw_dir,
            self.transcripts_dir,
            self.summaries_dir,
            self.index_dir,
            self.models_dir,
        ):
            try:
                directory.mkdir(parents=True, exist_ok=True)
                if sys.platform != "win32":
                    os.chmod(directory, DIR_MODE)
            except OSError as exc:
                raise FilesystemError(
                    Messages.ERROR_WRITE_FAILED.format(path=directory, reason=exc)
                ) from exc


def write_atomic(path: Path, data: bytes | str) -> None:
    """Write *data* to a temp file beside *path*, then rename it into place."""

    payload = data.encode("utf-8") if isinstance(data, str) else data
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".part", dir=path.parent
        )
    except OSError as exc:
        raise FilesystemError(
            Messages.ERROR_WRITE_FAILED.format(path=path, reason=exc)
        ) from exc
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        if sys.platform != "win32":
            os.chmod(tmp_path, FILE_MODE)
        os.replace(tmp_path, path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise FilesystemError(
            Messages.ERROR_WRITE_FAILED.format(path=path, reason=exc)
        ) from exc


def split_frontmatter(content: str) -> tuple[str | None, str]:
    """Return ``(yaml_text, body)``; ``yaml_text`` is None without front matter."""
    if not content.startswith(FRONTMATTER_DELIMITER):
        return None, content
    rest = content[len(FRONTMATTER_DELIMITER) :]
    end = rest.find("\n---\n")
    if end < 0:
        return None, content
    yaml_text = rest[:end]
    body = rest[end + len("\n---\n") :]
    return yaml_text, body.lstrip("\n")


def render_document(frontmatter_yaml: str, body: str) -> str:
    return f"{FRONTMATTER_DELIMITER}{frontmatter_yaml}{FRONTMATTER_DELIMITER}\n{body}"


def read_frontmatter(md_path: Path) -> Frontmatter | None:
    """Parse the YAML header of *md_path*; None when missing or absent."""
    if not md_path.exists():
        return None
    content = md_path.read_text(encoding="utf-8")
    yaml_text, _ = split_frontmatter(content)
    if yaml_text is None:
        return None
    try:
        data = yaml.safe_load(yaml_text)
        return Frontmatter.from_dict(data)
    except (yaml.YAMLError, ParseError) as exc:
        raise ParseError(
            Messages.ERROR_FRONTMATTER.format(path=md_path, reason=exc)
        ) from exc


def read_body(md_path: Path) -> str:
    _, body = split_frontmatter(md_path.read_text(encoding="utf-8"))
    return body


def set_file_time(path: Path, when: datetime) -> None:
    """Set both access and modification time of *path* to *when*."""
    timestamp = when.timestamp()
    try:
        os.utime(path, (timestamp, timestamp))
    except OSError as exc:
        raise FilesystemError(
            Messages.ERROR_WRITE_FAILED.format(path=path, reason=exc)
        ) from exc


def remove_outputs(paths: Paths, stem: str) -> None:
    """Delete the Markdown and raw JSON files that share *stem*."""
    for target in (paths.markdown_path(stem), paths.raw_path(stem)):
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise FilesystemError(
                Messages.ERROR_WRITE_FAILED.format(path=target, reason=exc)
            ) from exc


def iter_transcripts(paths: Paths):
    """Yield Markdown transcript paths in name order."""
    if not paths.transcripts_dir.is_dir():
        return
    yield from sorted(paths.transcripts_dir.glob("*.md"))


def find_transcript_by_id(paths: Paths, doc_id: str) -> Path:
    for md_path in iter_transcripts(paths):
        try:
            frontmatter = read_frontmatter(md_path)
        except ParseError:
            continue
        if frontmatter is not None and frontmatter.doc_id == doc_id:
            return md_path
    raise FilesystemError(Messages.ERROR_TRANSCRIPT_NOT_FOUND.format(doc_id=doc_id))
