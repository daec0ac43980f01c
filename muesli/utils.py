"""Utility helpers for filenames, timestamps and text trimming."""

from __future__ import annotations

from datetime import datetime

from slugify import slugify as _slugify


def slugify(text: str) -> str:
    """Return a lowercase ASCII slug for *text* (``""`` for empty input)."""
    return _slugify(text or "")


def base_filename(created_at: datetime, title: str | None) -> str:
    """Return the ``YYYY-MM-DD_slug`` stem shared by a document's output files."""
    date = created_at.strftime("%Y-%m-%d")
    slug = slugify(title or "untitled") or "untitled"
    return f"{date}_{slug}"


def _format_clock(total_seconds: float) -> str:
    total = int(max(total_seconds, 0))
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def normalize_timestamp(value: str | float | int | None) -> str | None:
    """Normalize a transcript timestamp to ``HH:MM:SS``.

    Accepts offsets in seconds, clock strings with optional fractions
    (``00:12:34.567``) and RFC3339 datetimes, which map to their UTC time of day.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _format_clock(float(value))
    text = value.strip()
    if not text:
        return None
    if "T" in text:
        from .models import parse_datetime  # local import avoids a cycle
        from .errors import ParseError

        try:
            return parse_datetime(text).strftime("%H:%M:%S")
        except ParseError:
            return None
    try:
        return _format_clock(float(text))
    except ValueError:
        pass
    if "." in text:
        return text.split(".", 1)[0]
    return text


def truncate_text(text: str, max_chars: int, *, ellipsis: str = "...") -> str:
    """Trim *text* to at most *max_chars* characters, appending *ellipsis* when cut."""
    if len(text) <= max_chars:
        return text
    if max_chars <= 0:
        return ""
    return f"{text[:max_chars]}{ellipsis}"


def ensure_positive(value: int, name: str) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be greater than 0")
