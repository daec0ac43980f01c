"""Render raw transcripts to Markdown with a YAML front matter header."""

from __future__ import annotations

from dataclasses import dataclass

import yaml

from . import __version__
from .errors import ParseError
from .models import DocumentMetadata, Frontmatter, RawTranscript
from .text import Messages
from .utils import normalize_timestamp

SOURCE_NAME = "granola"
GENERATOR = f"muesli {__version__}"
UNTITLED = "Untitled Meeting"
EMPTY_TRANSCRIPT = "_No transcript content available._"


@dataclass(slots=True)
class MarkdownOutput:
    frontmatter: Frontmatter
    frontmatter_yaml: str
    body: str


def build_frontmatter(meta: DocumentMetadata, doc_id: str) -> Frontmatter:
    return Frontmatter(
        doc_id=doc_id,
        source=SOURCE_NAME,
        created_at=meta.created_at,
        remote_updated_at=meta.updated_at,
        title=meta.title,
        participants=list(meta.participants),
        duration_seconds=meta.duration_seconds,
        labels=list(meta.labels),
        generator=GENERATOR,
    )


def to_markdown(raw: RawTranscript, meta: DocumentMetadata, doc_id: str) -> MarkdownOutput:
    frontmatter = build_frontmatter(meta, doc_id)
    try:
        frontmatter_yaml = yaml.safe_dump(
            frontmatter.to_dict(),
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        )
    except yaml.YAMLError as exc:
        raise ParseError(Messages.ERROR_FRONTMATTER_DUMP.format(reason=exc)) from exc

    title = meta.title or UNTITLED
    lines = [f"# {title}", ""]

    meta_parts = [f"Date: {meta.created_at.strftime('%Y-%m-%d')}"]
    if meta.duration_seconds is not None:
        meta_parts.append(f"Duration: {meta.duration_seconds // 60}m")
    if meta.participants:
        meta_parts.append(f"Participants: {', '.join(meta.participants)}")
    lines.append(f"_{' · '.join(meta_parts)}_")
    lines.append("")

    if not raw.entries:
        lines.append(EMPTY_TRANSCRIPT)
    else:
        for entry in raw.entries:
            speaker = entry.speaker or "Speaker"
            clock = normalize_timestamp(entry.start)
            stamp = f" ({clock})" if clock else ""
            lines.append(f"**{speaker}{stamp}:** {entry.text}")
    body = "\n".join(lines) + "\n"
    return MarkdownOutput(frontmatter=frontmatter, frontmatter_yaml=frontmatter_yaml, body=body)
