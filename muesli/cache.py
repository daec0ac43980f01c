"""Persisted sync cache tracking the last written state of each document."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator

from .errors import ParseError
from .models import format_datetime, parse_datetime
from .storage import write_atomic


@dataclass(frozen=True, slots=True)
class CacheEntry:
    filename: str
    updated_at: datetime

    def to_dict(self) -> dict[str, str]:
        return {"filename": self.filename, "updated_at": format_datetime(self.updated_at)}

    @classmethod
    def from_dict(cls, data: object) -> "CacheEntry":
        if not isinstance(data, dict) or not isinstance(data.get("filename"), str):
            raise ParseError("Invalid cache entry")
        return cls(filename=data["filename"], updated_at=parse_datetime(data.get("updated_at")))


class SyncCache:
    """Mapping of document id to the output filename and remote timestamp.

    The whole file is rewritten atomically after every successful record so
    an interrupted pass only loses the record that was in flight.
    """

    def __init__(self, path: Path, entries: dict[str, CacheEntry] | None = None) -> None:
        self.path = path
        self._entries: dict[str, CacheEntry] = dict(entries or {})

    @classmethod
    def load(cls, path: Path) -> "SyncCache":
        """Load the cache, returning an empty one when missing or unreadable."""
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            return cls(path)
        if not isinstance(raw, dict):
            return cls(path)
        entries: dict[str, CacheEntry] = {}
        try:
            for doc_id, value in raw.items():
                entries[str(doc_id)] = CacheEntry.from_dict(value)
        except ParseError:
            return cls(path)
        return cls(path, entries)

    def get(self, doc_id: str) -> CacheEntry | None:
        return self._entries.get(doc_id)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def items(self):
        return self._entries.items()

    def find_by_filename(self, filename: str) -> str | None:
        for doc_id, entry in self._entries.items():
            if entry.filename == filename:
                return doc_id
        return None

    def needs_refresh(self, doc_id: str, remote_updated_at: datetime) -> bool:
        entry = self._entries.get(doc_id)
        if entry is None:
            return True
        return remote_updated_at > entry.updated_at

    def record_success(self, doc_id: str, filename: str, remote_updated_at: datetime) -> None:
        """Store the new state for *doc_id* and persist the cache immediately."""
        self._entries[doc_id] = CacheEntry(filename=filename, updated_at=remote_updated_at)
        self.save()

    def save(self) -> None:
        data = {doc_id: entry.to_dict() for doc_id, entry in self._entries.items()}
        write_atomic(self.path, json.dumps(data, ensure_ascii=False, indent=2))
