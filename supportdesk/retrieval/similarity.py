from typing import Sequence

import numpy as np


def cosine_similarity(embedding1: Sequence[float],
                      embedding2: Sequence[float]) -> float:
    """Cosine similarity of two vectors.

    Returns 0.0 when either vector has zero magnitude or the lengths differ.
    """
    if len(embedding1) != len(embedding2):
        return 0.0

    vec1 = np.asarray(embedding1, dtype=float)
    vec2 = np.asarray(embedding2, dtype=float)

    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    similarity = np.dot(vec1, vec2) / (norm1 * norm2)
    return float(np.clip(similarity, -1.0, 1.0))


def similarity_scores(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine similarity of ``query`` against every row of ``matrix``."""
    if matrix.size == 0:
        return np.zeros(0)
    row_norms = np.linalg.norm(matrix, axis=1)
    query_norm = np.linalg.norm(query)
    if query_norm == 0:
        return np.zeros(matrix.shape[0])

    denominators = row_norms * query_norm
    dots = matrix @ query
    scores = np.zeros(matrix.shape[0])
    nonzero = denominators > 0
    scores[nonzero] = dots[nonzero] / denominators[nonzero]
    return np.clip(scores, -1.0, 1.0)
