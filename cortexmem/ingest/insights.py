from __future__ import annotations

import re
from collections.abc import Sequence

from .types import SessionInsights, Turn

MAX_DECISIONS = 5
MAX_OUTCOMES = 5
MAX_BLOCKERS = 3
MAX_ITEM_LENGTH = 150
MAX_SUMMARY_LENGTH = 500

DECISION_PATTERNS = [
    re.compile(
        r"(?:decided|chose|went with|opted for|selected|picked|using)\s+(.{20,150})", re.I
    ),
    re.compile(r"(?:the approach|the solution|the fix)\s+(?:is|was|will be)\s+(.{20,150})", re.I),
    re.compile(
        r"(?:we(?:'ll| will)|I(?:'ll| will))\s+(?:use|implement|go with)\s+(.{20,100})", re.I
    ),
]

OUTCOME_PATTERNS = [
    re.compile(
        r"(?:implemented|completed|fixed|resolved|added|created|built)\s+(.{20,150})", re.I
    ),
    re.compile(r"(?:now works|is working|successfully)\s+(.{10,100})", re.I),
    re.compile(r"(?:the (?:feature|bug|issue|problem))\s+(?:has been|was)\s+(.{20,100})", re.I),
]

BLOCKER_PATTERNS = [
    re.compile(r"(?:blocked by|stuck on|can't|cannot|unable to)\s+(.{20,150})", re.I),
    re.compile(r"(?:error|issue|problem|bug)(?::|was|is)\s+(.{20,150})", re.I),
    re.compile(r"(?:need to|have to|must)\s+(?:first|before)\s+(.{20,100})", re.I),
]


def _collect(
    patterns: Sequence[re.Pattern[str]],
    text: str,
    found: list[str],
    *,
    min_length: int,
    cap: int,
) -> None:
    for pattern in patterns:
        for match in pattern.finditer(text):
            if len(found) >= cap:
                return
            extracted = match.group(1).strip()
            if len(extracted) > min_length and extracted[:MAX_ITEM_LENGTH] not in found:
                found.append(extracted[:MAX_ITEM_LENGTH])


def extract_session_insights(turns: Sequence[Turn]) -> SessionInsights:
    """Pattern-match decisions, outcomes and blockers out of a parsed transcript."""
    decisions: list[str] = []
    outcomes: list[str] = []
    blockers: list[str] = []
    topics: list[str] = []

    for turn in turns:
        content = turn.content
        _collect(DECISION_PATTERNS, content, decisions, min_length=20, cap=MAX_DECISIONS)
        _collect(OUTCOME_PATTERNS, content, outcomes, min_length=15, cap=MAX_OUTCOMES)
        _collect(BLOCKER_PATTERNS, content, blockers, min_length=15, cap=MAX_BLOCKERS)
        if turn.role == "user" and len(content) > 30:
            first = re.split(r"[.!?]", content, maxsplit=1)[0].strip()
            if len(first) > 10 and first[:80] not in topics:
                topics.append(first[:80])

    parts: list[str] = []
    if topics:
        parts.append(f"Session topics: {'; '.join(topics[:3])}")
    if outcomes:
        parts.append(f"Completed: {', '.join(outcomes[:2])}")
    if decisions:
        parts.append(f"Key decisions: {len(decisions)}")
    summary = ". ".join(parts) if parts else f"Session with {len(turns)} messages"

    return SessionInsights(
        decisions=decisions,
        outcomes=outcomes,
        blockers=blockers,
        summary=summary[:MAX_SUMMARY_LENGTH],
    )
