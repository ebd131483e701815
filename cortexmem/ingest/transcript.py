from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from .types import DirectRecord, ParseResult, TranscriptRecord, Turn, WrappedRecord

logger = logging.getLogger(__name__)

WRAPPED_TYPES = {"message", "user", "assistant"}


def detect_record(data: Any) -> TranscriptRecord | None:
    """Resolve one decoded JSONL line to its record shape, or None when unrecognized."""
    if not isinstance(data, dict):
        return None
    timestamp = data.get("timestamp")
    timestamp = str(timestamp) if isinstance(timestamp, (str, int, float)) else None
    role = data.get("role")
    if isinstance(role, str) and role and data.get("content"):
        return DirectRecord(role=role, content=data["content"], timestamp=timestamp)
    record_type = data.get("type")
    message = data.get("message")
    if record_type in WRAPPED_TYPES and isinstance(message, dict):
        wrapped_role = message.get("role")
        if not isinstance(wrapped_role, str) or not wrapped_role:
            wrapped_role = record_type if record_type != "message" else ""
        return WrappedRecord(
            type=str(record_type),
            role=wrapped_role,
            content=message.get("content"),
            timestamp=timestamp,
        )
    return None


def extract_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and isinstance(block.get("text"), str):
                parts.append(block["text"])
        return "\n".join(parts)
    return ""


def parse_lines(lines: Iterable[str]) -> ParseResult:
    result = ParseResult()
    stats = result.stats
    for line in lines:
        stats.total_lines += 1
        if not line.strip():
            stats.empty_lines += 1
            continue
        try:
            data = json.loads(line)
        except (ValueError, RecursionError):
            # JSONDecodeError, oversized integer literals, pathological nesting.
            stats.parse_errors += 1
            continue
        record = detect_record(data)
        if record is None:
            stats.skipped_lines += 1
            continue
        text = extract_text(record.content)
        if not text:
            stats.skipped_lines += 1
            continue
        result.turns.append(Turn(role=record.role, content=text, timestamp=record.timestamp))
        stats.parsed_lines += 1
    if stats.parse_errors:
        logger.warning(
            "skipped %d malformed transcript lines of %d", stats.parse_errors, stats.total_lines
        )
    return result


def parse_transcript(path: Path | str) -> ParseResult:
    transcript = Path(path).expanduser()
    if not transcript.is_file():
        return ParseResult()
    with transcript.open(encoding="utf-8", errors="replace") as handle:
        return parse_lines(handle)


def session_id_for(path: Path | str) -> str:
    return Path(path).stem
