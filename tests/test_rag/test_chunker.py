"""Tests for word-window chunking."""

import pytest

from talkbridge.rag.chunker import chunk_step, chunk_text, chunk_words, normalize_text


def _reconstruct(chunks: list[str], chunk_size: int, overlap: int) -> str:
    step = chunk_step(chunk_size, overlap)
    words: list[str] = []
    for chunk in chunks[:-1]:
        words.extend(chunk.split(" ")[:step])
    words.extend(chunks[-1].split(" "))
    return " ".join(words)


class TestChunkText:
    """Tests for chunk_text."""

    def test_blank_text(self):
        assert chunk_text("") == []
        assert chunk_text("   \n\t ") == []

    def test_short_text_single_chunk(self):
        assert chunk_text("one  two\nthree", chunk_size=10, overlap=2) == ["one two three"]

    def test_overlapping_windows(self):
        text = " ".join(str(i) for i in range(10))

        chunks = chunk_text(text, chunk_size=4, overlap=1)

        assert chunks == ["0 1 2 3", "3 4 5 6", "6 7 8 9"]

    def test_last_chunk_may_be_short(self):
        text = " ".join(str(i) for i in range(7))

        chunks = chunk_text(text, chunk_size=4, overlap=2)

        assert chunks == ["0 1 2 3", "2 3 4 5", "4 5 6"]

    @pytest.mark.parametrize(
        "size,overlap,count",
        [(5, 0, 23), (5, 2, 50), (10, 9, 101), (3, 3, 7), (7, 10, 1), (1000, 200, 17)],
    )
    def test_reconstruction(self, size, overlap, count):
        """Joining the non-overlapping part of each chunk gives back the text."""
        text = "  ".join(f"word{i}" for i in range(count))

        chunks = chunk_text(text, chunk_size=size, overlap=overlap)

        assert _reconstruct(chunks, size, overlap) == normalize_text(text)

    def test_overlap_not_smaller_than_size_advances_full_chunk(self):
        assert chunk_step(3, 3) == 3
        assert chunk_step(3, 5) == 3
        assert chunk_text("a b c d e", chunk_size=3, overlap=3) == ["a b c", "d e"]


class TestChunkWords:
    """Tests for argument validation."""

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            chunk_words(["a"], 0, 0)

    def test_negative_overlap(self):
        with pytest.raises(ValueError):
            chunk_words(["a"], 5, -1)

    def test_empty_words(self):
        assert chunk_words([], 5, 1) == []
