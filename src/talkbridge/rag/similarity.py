"""Vector similarity helpers (numpy)."""

from typing import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity ``dot(a, b) / (|a| * |b|)``.

    Defined as 0.0 when either vector has zero norm. The result is clipped
    to [-1, 1] to absorb floating point error.

    Raises:
        ValueError: If the vectors have different dimensions
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Dimension mismatch: {va.shape[0]} != {vb.shape[0]}")

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / (norm_a * norm_b), -1.0, 1.0))


def cosine_similarities(query: Sequence[float], matrix: Sequence[Sequence[float]]) -> np.ndarray:
    """
    Cosine similarity of one query against many vectors.

    Rows with zero norm (or a zero query) score 0.0.

    Returns:
        1-D array of similarities in [-1, 1], one per row
    """
    q = np.asarray(query, dtype=np.float64)
    m = np.asarray(matrix, dtype=np.float64)
    if m.size == 0:
        return np.zeros(0)
    if m.ndim != 2 or m.shape[1] != q.shape[0]:
        raise ValueError("Dimension mismatch between query and candidate vectors")

    q_norm = np.linalg.norm(q)
    row_norms = np.linalg.norm(m, axis=1)
    if q_norm == 0:
        return np.zeros(m.shape[0])

    denom = row_norms * q_norm
    dots = m @ q
    scores = np.divide(dots, denom, out=np.zeros_like(dots), where=denom != 0)
    return np.clip(scores, -1.0, 1.0)
