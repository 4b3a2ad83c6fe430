"""
Base chunking strategy interface for repodex.

Defines the abstract base class that all chunking strategies must implement.
"""

from abc import ABC, abstractmethod

from ..models import TextChunk


class ChunkStrategy(ABC):
    """
    Abstract base class for chunking strategies.

    Chunkers are stateless: they keep nothing between calls.
    """

    @abstractmethod
    def chunk(self, content: str, path: str = "") -> list[TextChunk]:
        """
        Split content into chunks.

        Args:
            content: The file content to chunk
            path: File path (for logging)

        Returns:
            Ordered list of TextChunk objects with 1-indexed, inclusive line ranges
        """
        pass
