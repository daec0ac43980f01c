from datetime import datetime, timezone

import pytest

from muesli.errors import ParseError
from muesli.models import (
    DocumentMetadata,
    DocumentSummary,
    Frontmatter,
    RawTranscript,
    format_datetime,
    parse_datetime,
)


def test_parse_datetime_accepts_z_and_offsets():
    assert parse_datetime("2024-03-01T09:00:00Z") == datetime(2024, 3, 1, 9, tzinfo=timezone.utc)
    assert parse_datetime("2024-03-01T11:00:00+02:00") == datetime(2024, 3, 1, 9, tzinfo=timezone.utc)
    assert format_datetime(parse_datetime("2024-03-01T09:00:00.500Z")) == "2024-03-01T09:00:00.500000Z"


@pytest.mark.parametrize(
    ("text", "micros"),
    [
        ("2024-01-01T10:00:00.12Z", 120000),
        ("2024-01-01T10:00:00,5Z", 500000),
        ("2024-01-01T10:00:00.1234567Z", 123456),
        ("2024-01-01T12:00:00.1+02:00", 100000),
    ],
)
def test_parse_datetime_accepts_any_fraction_length(text, micros):
    assert parse_datetime(text) == datetime(2024, 1, 1, 10, 0, 0, micros, tzinfo=timezone.utc)


def test_parse_datetime_rejects_garbage():
    with pytest.raises(ParseError):
        parse_datetime("yesterday")
    with pytest.raises(ParseError):
        parse_datetime(12345)


def test_document_summary_ignores_unknown_keys():
    doc = DocumentSummary.from_dict(
        {"id": "a", "created_at": "2024-03-01T09:00:00Z", "workspace": {"x": 1}, "title": ""}
    )

    assert doc.title is None
    assert doc.updated_at is None
    assert doc.remote_updated_at == doc.created_at


def test_document_summary_requires_id():
    with pytest.raises(ParseError):
        DocumentSummary.from_dict({"created_at": "2024-03-01T09:00:00Z"})


def test_metadata_normalizes_participants():
    meta = DocumentMetadata.from_dict(
        {
            "created_at": "2024-03-01T09:00:00Z",
            "participants": ["Ada", {"name": "Grace"}, {"email": "linus@example.com"}, 7],
            "duration_seconds": "1800",
            "labels": "not-a-list",
        }
    )

    assert meta.participants == ["Ada", "Grace", "linus@example.com"]
    assert meta.duration_seconds == 1800
    assert meta.labels == []


def test_raw_transcript_accepts_list_and_wrapped_payloads():
    bare = RawTranscript.from_payload([{"text": "hi", "start_timestamp": 4}])
    wrapped = RawTranscript.from_payload({"segments": [{"blocks": [{"text": "a"}, {"text": "b"}]}]})

    assert bare.entries[0].start == 4.0
    assert wrapped.entries[0].text == "a b"
    assert RawTranscript.from_payload(None).entries == []
    assert bare.to_list() == [{"text": "hi", "start": 4.0}]


def test_raw_transcript_rejects_entry_without_text():
    with pytest.raises(ParseError):
        RawTranscript.from_payload([{"speaker": "Ada"}])


def test_frontmatter_to_dict_round_trip():
    fm = Frontmatter(
        doc_id="a",
        source="granola",
        created_at=datetime(2024, 3, 1, 9, tzinfo=timezone.utc),
        generator="muesli 0.1.0",
        title="Standup",
        participants=["Ada"],
    )

    data = fm.to_dict()

    assert data["created_at"] == "2024-03-01T09:00:00Z"
    assert "remote_updated_at" not in data
    assert Frontmatter.from_dict(data) == fm
