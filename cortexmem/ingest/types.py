from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NamedTuple


@dataclass(frozen=True, slots=True)
class DirectRecord:
    """`{"role": ..., "content": ...}` on the top level of a line."""

    role: str
    content: Any
    timestamp: str | None = None


@dataclass(frozen=True, slots=True)
class WrappedRecord:
    """`{"type": "user"|"assistant"|"message", "message": {"role", "content"}}`."""

    type: str
    role: str
    content: Any
    timestamp: str | None = None


TranscriptRecord = DirectRecord | WrappedRecord


@dataclass(frozen=True, slots=True)
class Turn:
    role: str
    content: str
    timestamp: str | None = None


@dataclass
class ParseStats:
    total_lines: int = 0
    parsed_lines: int = 0
    skipped_lines: int = 0
    empty_lines: int = 0
    parse_errors: int = 0


@dataclass
class ParseResult:
    turns: list[Turn] = field(default_factory=list)
    stats: ParseStats = field(default_factory=ParseStats)


class Chunk(NamedTuple):
    text: str
    timestamp: str | None


@dataclass
class ChunkingResult:
    chunks: list[Chunk] = field(default_factory=list)
    discarded: dict[str, int] = field(
        default_factory=lambda: {"too_short": 0, "low_information": 0, "not_valuable": 0}
    )

    @property
    def skipped(self) -> int:
        return sum(self.discarded.values())


@dataclass(frozen=True)
class SessionInsights:
    decisions: list[str]
    outcomes: list[str]
    blockers: list[str]
    summary: str
