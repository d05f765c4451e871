"""Tests for the overlapping text chunker."""
import math

import pytest

from proofrag.rag.chunker import TextChunker, reconstruct


SAMPLE_TEXT = (
    "# Needham-Schroeder\n\n"
    + "Alice sends a nonce to Bob under the shared key. " * 40
    + "\n\n## Analysis\n\n"
    + "Bob believes the nonce is fresh because he generated it! " * 40
    + "\nNo trailing punctuation here"
)


class TestTextChunker:

    def test_empty_text_gives_no_chunks(self):
        assert TextChunker(100, 20).chunk_text("") == []

    def test_short_text_is_single_chunk(self):
        chunks = TextChunker(100, 20).chunk_text("short text")

        assert len(chunks) == 1
        assert chunks[0].content == "short text"
        assert (chunks[0].char_start, chunks[0].char_end) == (0, 10)

    @pytest.mark.parametrize("size,overlap", [(1000, 200), (300, 50), (120, 100), (50, 0)])
    def test_reconstruction_recovers_text(self, size, overlap):
        chunks = TextChunker(size, overlap).chunk_text(SAMPLE_TEXT)

        assert reconstruct(chunks) == SAMPLE_TEXT

    def test_chunks_overlap_and_advance(self):
        chunks = TextChunker(300, 50).chunk_text(SAMPLE_TEXT)

        for previous, current in zip(chunks, chunks[1:]):
            assert current.char_start > previous.char_start
            assert current.char_end > previous.char_end
            assert current.char_start <= previous.char_end
        assert chunks[-1].char_end == len(SAMPLE_TEXT)

    def test_chunk_indexes_are_sequential(self):
        chunks = TextChunker(300, 50).chunk_text(SAMPLE_TEXT)

        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))

    def test_deterministic(self):
        chunker = TextChunker(300, 50)

        assert chunker.chunk_text(SAMPLE_TEXT) == chunker.chunk_text(SAMPLE_TEXT)

    @pytest.mark.parametrize("length", [1001, 1800, 2600, 5000])
    def test_boundary_free_chunk_count(self, length):
        size, overlap = 1000, 200
        chunks = TextChunker(size, overlap).chunk_text("x" * length)

        assert len(chunks) == math.ceil((length - overlap) / (size - overlap))
        assert all(len(c.content) <= size for c in chunks)

    def test_prefers_sentence_boundaries(self):
        text = "Sentence one. " * 50
        chunks = TextChunker(100, 20).chunk_text(text)

        for chunk in chunks[:-1]:
            assert chunk.content.endswith(". ")

    def test_rejects_invalid_parameters(self):
        with pytest.raises(ValueError):
            TextChunker(0, 0)
        with pytest.raises(ValueError):
            TextChunker(100, -1)
        with pytest.raises(ValueError):
            TextChunker(100, 100)

