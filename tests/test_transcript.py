import json
from pathlib import Path

from cortexmem.ingest.transcript import (
    detect_record,
    extract_text,
    parse_lines,
    parse_transcript,
    session_id_for,
)
from cortexmem.ingest.types import DirectRecord, WrappedRecord


def _line(data: dict) -> str:
    return json.dumps(data)


def test_detect_direct_record() -> None:
    record = detect_record({"role": "assistant", "content": "hi", "timestamp": "2024-01-01"})
    assert record == DirectRecord(role="assistant", content="hi", timestamp="2024-01-01")


def test_detect_wrapped_record_takes_role_from_message() -> None:
    record = detect_record(
        {"type": "assistant", "message": {"role": "assistant", "content": [{"text": "ok"}]}}
    )
    assert isinstance(record, WrappedRecord)
    assert record.type == "assistant"
    assert record.role == "assistant"


def test_detect_wrapped_record_falls_back_to_type_for_role() -> None:
    record = detect_record({"type": "user", "message": {"content": "question"}})
    assert isinstance(record, WrappedRecord)
    assert record.role == "user"


def test_detect_unknown_shapes() -> None:
    assert detect_record(["not", "a", "dict"]) is None
    assert detect_record({"type": "summary", "summary": "x"}) is None
    assert detect_record({"type": "assistant", "message": "flat string"}) is None
    assert detect_record({"role": "assistant", "content": ""}) is None


def test_extract_text_joins_text_blocks() -> None:
    content = [
        {"type": "text", "text": "first"},
        {"type": "tool_use", "name": "bash", "input": {}},
        "second",
        {"type": "text", "text": "third"},
    ]
    assert extract_text(content) == "first\nsecond\nthird"
    assert extract_text("plain") == "plain"
    assert extract_text(None) == ""
    assert extract_text({"text": "dict is not a block list"}) == ""


def test_parse_lines_counts_every_outcome() -> None:
    lines = [
        _line({"role": "user", "content": "Add retries", "timestamp": "2024-05-01T10:00:00Z"}),
        "",
        "{not json",
        _line({"type": "summary", "summary": "ignored"}),
        _line(
            {
                "type": "assistant",
                "timestamp": "2024-05-01T10:01:00Z",
                "message": {"role": "assistant", "content": [{"type": "text", "text": "Done."}]},
            }
        ),
        _line({"type": "assistant", "message": {"role": "assistant", "content": []}}),
        "   ",
    ]

    result = parse_lines(lines)

    assert [(t.role, t.content, t.timestamp) for t in result.turns] == [
        ("user", "Add retries", "2024-05-01T10:00:00Z"),
        ("assistant", "Done.", "2024-05-01T10:01:00Z"),
    ]
    stats = result.stats
    assert stats.total_lines == 7
    assert stats.parsed_lines == 2
    assert stats.empty_lines == 2
    assert stats.parse_errors == 1
    assert stats.skipped_lines == 2


def test_parse_lines_survives_pathological_json() -> None:
    good = _line({"role": "assistant", "content": "Kept the good turn."})
    deeply_nested = "[" * 100000
    huge_integer = '{"role": "assistant", "content": "x", "n": ' + "9" * 5000 + "}"

    for bad in (deeply_nested, huge_integer):
        result = parse_lines([bad, good])
        assert [t.content for t in result.turns] == ["Kept the good turn."]
        assert result.stats.parse_errors == 1
        assert result.stats.parsed_lines == 1


def test_parse_transcript_missing_file_is_empty(tmp_path: Path) -> None:
    result = parse_transcript(tmp_path / "nope.jsonl")
    assert result.turns == []
    assert result.stats.total_lines == 0


def test_parse_transcript_reads_file(tmp_path: Path) -> None:
    path = tmp_path / "abc-123.jsonl"
    path.write_text(
        "\n".join(
            [
                _line({"role": "assistant", "content": "one"}),
                _line({"role": "assistant", "content": "two"}),
            ]
        )
        + "\n"
    )
    result = parse_transcript(path)
    assert [t.content for t in result.turns] == ["one", "two"]
    assert session_id_for(path) == "abc-123"
