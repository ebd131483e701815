from cortexmem.ingest.chunking import (
    CHUNK_SOFT_CAP,
    classify,
    extract_chunks,
    split_paragraph,
    split_text,
)
from cortexmem.ingest.types import Turn

DECISION = (
    "We decided to keep the fragment store in SQLite because a single local file "
    "keeps installs simple."
)


class TestSplitting:
    """Paragraph and sentence splitting."""

    def test_blank_lines_separate_paragraphs(self) -> None:
        text = "First paragraph here.\n\nSecond paragraph.\n   \n\nThird."
        assert split_text(text) == ["First paragraph here.", "Second paragraph.", "Third."]

    def test_paragraph_under_ceiling_is_one_chunk(self) -> None:
        paragraph = "Sentence one is here. " * 40
        paragraph = paragraph.strip()
        assert len(paragraph) < 1000
        assert split_paragraph(paragraph) == [paragraph]

    def test_long_paragraph_splits_on_sentences_under_soft_cap(self) -> None:
        sentence = "The migration rewrites every embedding blob in place."
        paragraph = " ".join([sentence] * 40)
        assert len(paragraph) > 1000

        chunks = split_paragraph(paragraph)

        assert len(chunks) > 1
        assert all(len(chunk) <= CHUNK_SOFT_CAP for chunk in chunks)
        assert " ".join(chunks) == paragraph

    def test_paragraph_without_sentence_breaks_is_kept_whole(self) -> None:
        paragraph = ("word " * 240).strip()
        paragraph = paragraph + "x" * (1200 - len(paragraph))
        assert len(paragraph) == 1200

        chunks = split_text(paragraph)

        assert chunks == [paragraph]

    def test_oversized_sentence_becomes_its_own_chunk(self) -> None:
        huge = "a" * 1000 + "."
        paragraph = f"Short lead sentence. {huge} Short tail sentence."
        chunks = split_paragraph(paragraph)
        assert huge in chunks
        assert chunks[0] == "Short lead sentence."


class TestFiltering:
    """Discard reasons for individual chunks."""

    def test_too_short(self) -> None:
        assert classify("Thanks!") == "too_short"
        assert classify("x" * 49) == "too_short"
        assert classify("x" * 30, min_length=10) != "too_short"

    def test_low_information(self) -> None:
        assert classify("```\n" + "print('hello world')\n" * 4 + "```") == "low_information"
        assert classify("[Cortex] Auto-saved 4 fragments. Run /clear to continue.") == (
            "low_information"
        )
        assert classify("Running: pytest -q tests/test_store.py --maxfail=1 -x") == (
            "low_information"
        )
        assert classify("1" * 60) == "low_information"
        assert classify("." * 60) == "low_information"

    def test_not_valuable(self) -> None:
        assert classify("Supercalifragilisticexpialidocious xylophones zebras quokkas") == (
            "not_valuable"
        )

    def test_valuable_by_pattern(self) -> None:
        assert classify(DECISION) is None
        assert classify("def load_config(path): return CortexConfig() # short helper") is None

    def test_valuable_by_word_count(self) -> None:
        text = "one two three four five six seven eight nine ten eleven twelve"
        assert len(text) >= 50
        assert classify(text) is None


class TestExtraction:
    """Turn-level extraction."""

    def test_only_assistant_turns_are_chunked(self) -> None:
        turns = [
            Turn(role="user", content=DECISION, timestamp="2024-01-01T00:00:00Z"),
            Turn(role="assistant", content=DECISION, timestamp="2024-01-02T00:00:00Z"),
            Turn(role="system", content=DECISION),
        ]
        result = extract_chunks(turns)
        assert [(c.text, c.timestamp) for c in result.chunks] == [
            (DECISION, "2024-01-02T00:00:00Z")
        ]
        assert result.skipped == 0

    def test_discard_counts_by_reason(self) -> None:
        content = "\n\n".join(
            [
                "Thanks!",
                "[Cortex] status line that is long enough to pass the length check",
                "Supercalifragilisticexpialidocious xylophones zebras quokkas",
                DECISION,
            ]
        )
        result = extract_chunks([Turn(role="assistant", content=content)])
        assert [c.text for c in result.chunks] == [DECISION]
        assert result.discarded == {"too_short": 1, "low_information": 1, "not_valuable": 1}
        assert result.skipped == 3

    def test_min_length_is_configurable(self) -> None:
        result = extract_chunks(
            [Turn(role="assistant", content=DECISION)], min_length=len(DECISION) + 1
        )
        assert result.chunks == []
        assert result.discarded["too_short"] == 1
