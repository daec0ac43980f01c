"""Data models for Granola API payloads and Markdown front matter.

Parsing is tolerant: unknown keys are ignored, optional fields default to
empty values, and timestamps accept RFC3339 strings with a trailing ``Z``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from .errors import ParseError
from .text import Messages

# Seconds fraction of any length, "." or "," separated.
_FRACTION_RE = re.compile(r"(T\d{2}:\d{2}:\d{2})[.,](\d+)")


def _normalize_fraction(text: str) -> str:
    """Pad or cut the seconds fraction to the six digits fromisoformat expects."""

    def _fix(match: re.Match) -> str:
        return f"{match.group(1)}.{match.group(2)[:6].ljust(6, '0')}"

    return _FRACTION_RE.sub(_fix, text, count=1)


def parse_datetime(value: object) -> datetime:
    """Parse an RFC3339 timestamp into an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = f"{text[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(_normalize_fraction(text))
        except ValueError as exc:
            raise ParseError(Messages.ERROR_PARSE_TIMESTAMP.format(value=value)) from exc
    else:
        raise ParseError(Messages.ERROR_PARSE_TIMESTAMP.format(value=value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_datetime(value: datetime) -> str:
    """Return *value* as an RFC3339 string in UTC with a ``Z`` suffix."""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _optional_datetime(value: object) -> datetime | None:
    if value is None or value == "":
        return None
    return parse_datetime(value)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text or None


def _str_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    items: list[str] = []
    for item in value:
        if isinstance(item, str):
            items.append(item)
        elif isinstance(item, Mapping):
            name = item.get("name") or item.get("email")
            if name:
                items.append(str(name))
    return items


def _optional_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _require(data: Mapping[str, Any], key: str, what: str) -> Any:
    value = data.get(key)
    if value is None:
        raise ParseError(Messages.ERROR_PARSE_FIELD.format(field=key, what=what))
    return value


def _require_mapping(data: object, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ParseError(Messages.ERROR_PARSE_FIELD.format(field="<root>", what=what))
    return data


@dataclass(slots=True)
class DocumentSummary:
    id: str
    created_at: datetime
    title: str | None = None
    updated_at: datetime | None = None

    @property
    def remote_updated_at(self) -> datetime:
        """Timestamp used for staleness checks and stored in the sync cache."""
        return self.updated_at or self.created_at

    @classmethod
    def from_dict(cls, data: object) -> "DocumentSummary":
        payload = _require_mapping(data, "document summary")
        return cls(
            id=str(_require(payload, "id", "document summary")),
            title=_optional_str(payload.get("title")),
            created_at=parse_datetime(_require(payload, "created_at", "document summary")),
            updated_at=_optional_datetime(payload.get("updated_at")),
        )


@dataclass(slots=True)
class DocumentMetadata:
    created_at: datetime
    id: str | None = None
    title: str | None = None
    updated_at: datetime | None = None
    participants: list[str] = field(default_factory=list)
    duration_seconds: int | None = None
    labels: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: object) -> "DocumentMetadata":
        payload = _require_mapping(data, "document metadata")
        return cls(
            id=_optional_str(payload.get("id")),
            title=_optional_str(payload.get("title")),
            created_at=parse_datetime(_require(payload, "created_at", "document metadata")),
            updated_at=_optional_datetime(payload.get("updated_at")),
            participants=_str_list(payload.get("participants")),
            duration_seconds=_optional_int(payload.get("duration_seconds")),
            labels=_str_list(payload.get("labels")),
        )


@dataclass(slots=True)
class TranscriptEntry:
    text: str
    speaker: str | None = None
    start: str | float | None = None
    end: str | float | None = None
    document_id: str | None = None
    source: str | None = None
    id: str | None = None
    is_final: bool | None = None

    @classmethod
    def from_dict(cls, data: object) -> "TranscriptEntry":
        payload = _require_mapping(data, "transcript entry")
        text = payload.get("text")
        if text is None and isinstance(payload.get("blocks"), list):
            text = " ".join(
                str(block.get("text", ""))
                for block in payload["blocks"]
                if isinstance(block, Mapping)
            )
        if text is None:
            raise ParseError(Messages.ERROR_PARSE_FIELD.format(field="text", what="transcript entry"))
        is_final = payload.get("is_final")
        return cls(
            text=str(text),
            speaker=_optional_str(payload.get("speaker")),
            start=_timestamp_value(payload.get("start_timestamp", payload.get("start"))),
            end=_timestamp_value(payload.get("end_timestamp", payload.get("end"))),
            document_id=_optional_str(payload.get("document_id")),
            source=_optional_str(payload.get("source")),
            id=_optional_str(payload.get("id")),
            is_final=bool(is_final) if is_final is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"text": self.text}
        for key in ("speaker", "start", "end", "document_id", "source", "id", "is_final"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


def _timestamp_value(value: object) -> str | float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return str(value)


@dataclass(slots=True)
class RawTranscript:
    entries: list[TranscriptEntry] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: object) -> "RawTranscript":
        """Accept a bare entry list or an object with entries/segments/monologues."""
        if data is None:
            return cls()
        if isinstance(data, list):
            items = data
        elif isinstance(data, Mapping):
            items = []
            for key in ("entries", "segments", "monologues"):
                value = data.get(key)
                if isinstance(value, list):
                    items.extend(value)
        else:
            raise ParseError(Messages.ERROR_PARSE_FIELD.format(field="<root>", what="transcript"))
        return cls(entries=[TranscriptEntry.from_dict(item) for item in items])

    def to_list(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self.entries]


@dataclass(slots=True)
class Frontmatter:
    doc_id: str
    source: str
    created_at: datetime
    generator: str
    remote_updated_at: datetime | None = None
    title: str | None = None
    participants: list[str] = field(default_factory=list)
    duration_seconds: int | None = None
    labels: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: object) -> "Frontmatter":
        payload = _require_mapping(data, "frontmatter")
        return cls(
            doc_id=str(_require(payload, "doc_id", "frontmatter")),
            source=str(payload.get("source") or "granola"),
            created_at=parse_datetime(_require(payload, "created_at", "frontmatter")),
            generator=str(payload.get("generator") or ""),
            remote_updated_at=_optional_datetime(payload.get("remote_updated_at")),
            title=_optional_str(payload.get("title")),
            participants=_str_list(payload.get("participants")),
            duration_seconds=_optional_int(payload.get("duration_seconds")),
            labels=_str_list(payload.get("labels")),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "doc_id": self.doc_id,
            "source": self.source,
            "created_at": format_datetime(self.created_at),
        }
        if self.remote_updated_at is not None:
            data["remote_updated_at"] = format_datetime(self.remote_updated_at)
        if self.title is not None:
            data["title"] = self.title
        data["participants"] = list(self.participants)
        if self.duration_seconds is not None:
            data["duration_seconds"] = self.duration_seconds
        data["labels"] = list(self.labels)
        data["generator"] = self.generator
        return data
