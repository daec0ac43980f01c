"""Full-text index over synced transcripts backed by SQLite FTS5."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from ..errors import IndexingError
from ..text import Messages

TABLE = "documents_fts"
# bm25 column weights: doc_id, title, date, body, path
_BM25_WEIGHTS = "0.0, 2.0, 0.0, 1.0, 0.0"


@dataclass(slots=True)
class TextHit:
    doc_id: str
    title: str | None
    date: str
    path: str
    score: float


def _connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA synchronous = NORMAL;")
    conn.execute("PRAGMA busy_timeout = 5000;")
    return conn


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        f"""
        CREATE VIRTUAL TABLE IF NOT EXISTS {TABLE} USING fts5(
            doc_id UNINDEXED,
            title,
            date UNINDEXED,
            body,
            path UNINDEXED
        )
        """
    )
    conn.commit()


def _match_expression(query: str) -> str:
    """Quote every term so user input never trips FTS5 query syntax."""
    terms = [term.replace('"', '""') for term in query.split()]
    return " ".join(f'"{term}"' for term in terms if term)


class IndexWriter:
    """Buffered writer: upserts stay invisible until :meth:`commit`."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self.pending = 0

    def upsert(
        self,
        doc_id: str,
        title: str | None,
        date: str,
        body: str,
        path: Path | str,
    ) -> None:
        try:
            self._conn.execute(f"DELETE FROM {TABLE} WHERE doc_id = ?", (doc_id,))
            self._conn.execute(
                f"INSERT INTO {TABLE} (doc_id, title, date, body, path) VALUES (?, ?, ?, ?, ?)",
                (doc_id, title or "", date, body, str(path)),
            )
        except sqlite3.Error as exc:
            raise IndexingError(
                Messages.ERROR_INDEX_WRITE.format(doc_id=doc_id, reason=exc)
            ) from exc
        self.pending += 1

    def clear(self) -> None:
        """Drop every entry; takes effect with the next commit."""
        try:
            self._conn.execute(f"DELETE FROM {TABLE}")
        except sqlite3.Error as exc:
            raise IndexingError(Messages.ERROR_INDEX_CLEAR.format(reason=exc)) from exc
        self.pending += 1

    def commit(self) -> None:
        try:
            self._conn.commit()
        except sqlite3.Error as exc:
            raise IndexingError(Messages.ERROR_INDEX_COMMIT.format(reason=exc)) from exc
        self.pending = 0

    def rollback(self) -> None:
        try:
            self._conn.rollback()
        except sqlite3.Error as exc:
            raise IndexingError(Messages.ERROR_INDEX_ROLLBACK.format(reason=exc)) from exc
        self.pending = 0


def flush(writer: IndexWriter | None, warn: Callable[[str], None]) -> None:
    """Commit pending writes; on failure warn and discard them."""
    if writer is None or not writer.pending:
        return
    try:
        writer.commit()
    except IndexingError as exc:
        warn(Messages.WARNING_INDEX_COMMIT.format(reason=exc))
        writer.rollback()


class TextIndex:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = _connect(db_path)
            _ensure_schema(self._conn)
        except (OSError, sqlite3.Error) as exc:
            raise IndexingError(
                Messages.ERROR_INDEX_OPEN.format(path=db_path, reason=exc)
            ) from exc

    @classmethod
    def open(cls, db_path: Path) -> "TextIndex":
        return cls(db_path)

    def writer(self) -> IndexWriter:
        return IndexWriter(self._conn)

    def index_document(
        self,
        doc_id: str,
        title: str | None,
        date: str,
        body: str,
        path: Path | str,
    ) -> None:
        """Upsert a single document and commit immediately."""
        writer = self.writer()
        writer.upsert(doc_id, title, date, body, path)
        writer.commit()

    def count(self, doc_id: str | None = None) -> int:
        if doc_id is None:
            row = self._conn.execute(f"SELECT COUNT(*) FROM {TABLE}").fetchone()
        else:
            row = self._conn.execute(
                f"SELECT COUNT(*) FROM {TABLE} WHERE doc_id = ?", (doc_id,)
            ).fetchone()
        return int(row[0])

    def search(self, query: str, limit: int = 10) -> list[TextHit]:
        expression = _match_expression(query)
        if not expression:
            return []
        try:
            rows = self._conn.execute(
                f"""
                SELECT doc_id, title, date, path, bm25({TABLE}, {_BM25_WEIGHTS}) AS rank
                FROM {TABLE}
                WHERE {TABLE} MATCH ?
                ORDER BY rank
                LIMIT ?
                """,
                (expression, int(limit)),
            ).fetchall()
        except sqlite3.Error as exc:
            raise IndexingError(Messages.ERROR_INDEX_QUERY.format(reason=exc)) from exc
        return [
            TextHit(
                doc_id=row["doc_id"],
                title=row["title"] or None,
                date=row["date"],
                path=row["path"],
                score=-float(row["rank"]),
            )
            for row in rows
        ]

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "TextIndex":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
