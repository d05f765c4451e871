"""Text chunking with overlap for the ingest pipeline.

Implements character-based chunking to avoid tokenizer dependencies.
"""
from typing import List
from dataclasses import dataclass
import structlog

from proofrag import config

logger = structlog.get_logger()

# Boundaries are only accepted in the tail of a chunk
BOUNDARY_LOOKBACK = 0.3
WORD_LOOKBACK = 0.2

PARAGRAPH_BREAKS = ("\n\n",)
SENTENCE_BREAKS = (". ", "! ", "? ", ".\n", "!\n", "?\n")


@dataclass(frozen=True)
class TextChunk:
    """Represents a chunk of text with position information."""

    content: str
    char_start: int
    char_end: int
    chunk_index: int


class TextChunker:
    """Character-based text chunker with overlap support."""

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Size of each chunk in characters (default from config)
            chunk_overlap: Overlap between chunks in characters (default from config)
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

        # Validate parameters
        if self.chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")
        if self.chunk_overlap < 0:
            raise ValueError(f"Overlap must not be negative, got {self.chunk_overlap}")
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"Overlap ({self.chunk_overlap}) must be less than "
                f"chunk size ({self.chunk_size})"
            )

        logger.debug(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping chunks.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects
        """
        if not text:
            return []

        text_length = len(text)

        # Handle text shorter than chunk size
        if text_length <= self.chunk_size:
            logger.debug(
                "text_shorter_than_chunk_size",
                text_length=text_length,
                chunk_size=self.chunk_size,
            )
            return [
                TextChunk(
                    content=text,
                    char_start=0,
                    char_end=text_length,
                    chunk_index=0,
                )
            ]

        chunks = []
        start = 0

        while True:
            end = min(start + self.chunk_size, text_length)

            # Only adjust boundaries if we're not at the end of the text
            if end < text_length:
                adjusted = start + self._find_break(text[start:end])
                # A chunk must extend past its predecessor
                if not chunks or adjusted > chunks[-1].char_end:
                    end = adjusted

            chunks.append(
                TextChunk(
                    content=text[start:end],
                    char_start=start,
                    char_end=end,
                    chunk_index=len(chunks),
                )
            )

            if end >= text_length:
                break

            # Move to next chunk with overlap, always making progress
            start = max(end - self.chunk_overlap, chunks[-1].char_start + 1)

        logger.info(
            "text_chunked",
            text_length=text_length,
            chunk_count=len(chunks),
            avg_chunk_size=sum(len(c.content) for c in chunks) // len(chunks),
        )

        return chunks

    def _find_break(self, window: str) -> int:
        """Return the cut offset inside ``window`` (a full-size chunk).

        Prefers the latest paragraph or sentence break within the lookback
        window, then a newline, then a space. Falls back to a hard cut.
        """
        size = len(window)
        floor = size * (1 - BOUNDARY_LOOKBACK)

        best = -1
        for marker in PARAGRAPH_BREAKS + SENTENCE_BREAKS:
            pos = window.rfind(marker)
            if pos != -1:
                best = max(best, pos + len(marker))
        if best > floor:
            return best

        last_newline = window.rfind("\n")
        if last_newline != -1 and last_newline + 1 > floor:
            return last_newline + 1

        last_space = window.rfind(" ")
        if last_space != -1 and last_space + 1 > size * (1 - WORD_LOOKBACK):
            return last_space + 1

        return size


def reconstruct(chunks: List[TextChunk]) -> str:
    """Rebuild the source text, dropping each chunk's overlap with its predecessor."""
    if not chunks:
        return ""

    parts = [chunks[0].content]
    covered = chunks[0].char_end
    for chunk in chunks[1:]:
        parts.append(chunk.content[covered - chunk.char_start:])
        covered = chunk.char_end
    return "".join(parts)
