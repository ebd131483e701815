from __future__ import annotations

from .chunking import extract_chunks, split_text
from .insights import extract_session_insights
from .transcript import parse_lines, parse_transcript, session_id_for
from .types import Chunk, ChunkingResult, DirectRecord, ParseResult, Turn, WrappedRecord

__all__ = [
    "Chunk",
    "ChunkingResult",
    "DirectRecord",
    "ParseResult",
    "Turn",
    "WrappedRecord",
    "extract_chunks",
    "extract_session_insights",
    "parse_lines",
    "parse_transcript",
    "session_id_for",
    "split_text",
]
