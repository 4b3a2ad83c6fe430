"""
Line-bounded chunking strategy.

Packs whole lines into chunks under a character budget.
"""

import logging

from .base import ChunkStrategy
from ..models import TextChunk

logger = logging.getLogger(__name__)


class LineChunker(ChunkStrategy):
    """
    Accumulates lines until the next one would exceed the size budget.

    Each line counts for its length plus one for its line break. The
    budget is a soft ceiling: a single line longer than the budget still
    gets a chunk of its own instead of being split. Joining the chunk
    contents with "\\n" reproduces the input exactly.
    """

    def __init__(self, max_chunk_size: int = 1000):
        """
        Initialize the line chunker.

        Args:
            max_chunk_size: Size budget per chunk in characters
        """
        if max_chunk_size < 1:
            raise ValueError("max_chunk_size must be positive")
        self.max_chunk_size = max_chunk_size

    def chunk(self, content: str, path: str = "") -> list[TextChunk]:
        if not content:
            return []

        lines = content.split("\n")
        chunks: list[TextChunk] = []
        current: list[str] = []
        current_size = 0
        start_line = 1

        for i, line in enumerate(lines):
            line_length = len(line) + 1

            if current and current_size + line_length > self.max_chunk_size:
                chunks.append(TextChunk(
                    content="\n".join(current),
                    start_line=start_line,
                    end_line=i,
                ))
                current = [line]
                current_size = line_length
                start_line = i + 1
            else:
                current.append(line)
                current_size += line_length

        if current:
            chunks.append(TextChunk(
                content="\n".join(current),
                start_line=start_line,
                end_line=len(lines),
            ))

        if path:
            logger.debug(f"Chunked {path} into {len(chunks)} chunks")
        return chunks

    def __repr__(self) -> str:
        return f"LineChunker(max_chunk_size={self.max_chunk_size})"
