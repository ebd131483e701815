from __future__ import annotations

import re
from collections.abc import Iterable

from .types import Chunk, ChunkingResult, Turn

PARAGRAPH_CEILING = 1000
CHUNK_SOFT_CAP = 800
DEFAULT_MIN_LENGTH = 50
MIN_VALUABLE_WORDS = 10

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

LOW_INFORMATION_PATTERNS = [
    re.compile(
        r"^(ok|okay|done|yes|no|sure|thanks|thank you|got it|understood|alright)[.!]?$",
        re.IGNORECASE,
    ),
    re.compile(r"^(hello|hi|hey|bye|goodbye)[.!]?$", re.IGNORECASE),
    re.compile(r"^y(es)?$", re.IGNORECASE),
    re.compile(r"^n(o)?$", re.IGNORECASE),
    re.compile(r"^\d+$"),
    re.compile(r"^[\W_]+$"),
    re.compile(r"^```[\s\S]*```$"),
    re.compile(r"^\[Cortex\]"),
    re.compile(r"^Running:", re.IGNORECASE),
]

VALUABLE_PATTERNS = [
    # reasoning and decisions
    re.compile(r"decided to|chose to|went with|opted for", re.IGNORECASE),
    re.compile(r"\b(because|since|therefore|the reason)\b", re.IGNORECASE),
    re.compile(r"trade-?off|pros? and cons?|alternative", re.IGNORECASE),
    re.compile(r"\b(however|although|whereas)\b", re.IGNORECASE),
    re.compile(r"architect|design|pattern|approach|strategy", re.IGNORECASE),
    re.compile(r"structure|schema|interface|contract", re.IGNORECASE),
    # changes and outcomes
    re.compile(r"implemented|completed|fixed|resolved|solved", re.IGNORECASE),
    re.compile(r"created|added|updated|modified|refactored", re.IGNORECASE),
    re.compile(r"important|critical|note that|keep in mind", re.IGNORECASE),
    re.compile(r"caveat|limitation|constraint|requirement", re.IGNORECASE),
    re.compile(r"blocker|issue|problem|error|bug", re.IGNORECASE),
    # code constructs
    re.compile(r"\bfunction\s+\w+"),
    re.compile(r"\bclass\s+\w+"),
    re.compile(r"\binterface\s+\w+"),
    re.compile(r"\bdef\s+\w+"),
    re.compile(r"^\s*(import|from)\s+\w+", re.MULTILINE),
    re.compile(r"\b(const|let|var)\s+\w+\s*="),
]


def split_paragraph(paragraph: str) -> list[str]:
    if len(paragraph) <= PARAGRAPH_CEILING:
        return [paragraph]
    sentences = [s for s in _SENTENCE_SPLIT.split(paragraph) if s]
    if len(sentences) <= 1:
        return [paragraph]
    chunks: list[str] = []
    current = ""
    for sentence in sentences:
        candidate = f"{current} {sentence}" if current else sentence
        if current and len(candidate) > CHUNK_SOFT_CAP:
            chunks.append(current)
            current = sentence
        else:
            current = candidate
    if current.strip():
        chunks.append(current)
    return chunks


def split_text(text: str) -> list[str]:
    chunks: list[str] = []
    for raw in _PARAGRAPH_SPLIT.split(text):
        paragraph = raw.strip()
        if not paragraph:
            continue
        chunks.extend(split_paragraph(paragraph))
    return chunks


def is_low_information(text: str) -> bool:
    return any(pattern.search(text) for pattern in LOW_INFORMATION_PATTERNS)


def is_valuable(text: str) -> bool:
    if any(pattern.search(text) for pattern in VALUABLE_PATTERNS):
        return True
    return len(text.split()) >= MIN_VALUABLE_WORDS


def classify(text: str, *, min_length: int = DEFAULT_MIN_LENGTH) -> str | None:
    """Return the discard reason for a chunk, or None when it should be kept."""
    trimmed = text.strip()
    if len(trimmed) < min_length:
        return "too_short"
    if is_low_information(trimmed):
        return "low_information"
    if not is_valuable(trimmed):
        return "not_valuable"
    return None


def extract_chunks(
    turns: Iterable[Turn], *, min_length: int = DEFAULT_MIN_LENGTH
) -> ChunkingResult:
    result = ChunkingResult()
    for turn in turns:
        if turn.role != "assistant":
            continue
        for text in split_text(turn.content):
            reason = classify(text, min_length=min_length)
            if reason is not None:
                result.discarded[reason] += 1
                continue
            result.chunks.append(Chunk(text=text.strip(), timestamp=turn.timestamp))
    return result
