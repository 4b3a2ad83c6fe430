"""
Similarity search for repodex.

Ranks every stored chunk against a query by exact cosine similarity.
This is a brute-force scan, O(chunks x dimension) per query, which is the
intended baseline at the scale of one repository.
"""

import logging
from typing import Sequence
import numpy as np

from .embeddings import EmbeddingClient
from .models import SearchResult
from .storage.base import Storage

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Defined as 0 when either vector has zero norm or the lengths differ.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape or va.size == 0:
        return 0.0
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    score = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, score))


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """
    Cosine similarity of a query against every row of matrix.

    Rows with zero norm (and a zero query) score 0.
    """
    q = np.asarray(query, dtype=np.float64)
    if matrix.size == 0:
        return np.zeros(matrix.shape[0])
    q_norm = np.linalg.norm(q)
    row_norms = np.linalg.norm(matrix, axis=1)
    if q_norm == 0:
        return np.zeros(matrix.shape[0])
    denom = row_norms * q_norm
    dots = matrix @ q
    scores = np.divide(dots, denom, out=np.zeros_like(dots), where=denom != 0)
    return np.clip(scores, -1.0, 1.0)


class SearchEngine:
    """
    Embeds a query and ranks all stored chunks against it.

    The query must go through the same EmbeddingClient used for indexing
    so both vectors live in the same embedding space.
    """

    def __init__(self, storage: Storage, embedder: EmbeddingClient):
        self.storage = storage
        self.embedder = embedder

    def search_similar(self, query: str, top_k: int = 5) -> list[SearchResult]:
        """
        Find the chunks most similar to a query.

        Args:
            query: Natural-language or code query
            top_k: Maximum number of results

        Returns:
            At most top_k results sorted by descending score
        """
        if top_k <= 0:
            return []

        query_embedding = self.embedder.embed(query)
        if query_embedding.is_fallback:
            logger.warning("Query could not be embedded; all scores will be 0")

        candidates = list(self.storage.iter_chunks())
        if not candidates:
            return []

        dimension = len(query_embedding.vector)
        matrix = np.zeros((len(candidates), dimension), dtype=np.float64)
        mismatched = 0
        for row, (_, chunk) in enumerate(candidates):
            if len(chunk.embedding) == dimension:
                matrix[row] = chunk.embedding
            else:
                mismatched += 1
        if mismatched:
            logger.debug(f"{mismatched} chunks have no usable embedding and score 0")

        scores = cosine_similarities(query_embedding.vector, matrix)
        # Stable sort keeps storage order (path, chunk_index) among equal scores
        order = np.argsort(-scores, kind="stable")[:top_k]

        results = []
        for idx in order:
            path, chunk = candidates[idx]
            results.append(SearchResult(
                path=path,
                content=chunk.content,
                score=float(scores[idx]),
                start_line=chunk.start_line,
                end_line=chunk.end_line,
                embedding_state=chunk.embedding_state,
            ))

        logger.debug(f"Search returned {len(results)} of {len(candidates)} chunks")
        return results
