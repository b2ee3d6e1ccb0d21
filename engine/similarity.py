"""Cosine similarity over embedding vectors."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

from engine.constants import EMBEDDING_MIN_NORM, SIMILARITY_MAX, SIMILARITY_MIN


def cosine_similarity(a: ArrayLike, b: ArrayLike) -> float:
    """
    Dot product over the product of norms, in [-1, 1].

    Length mismatches, empty vectors and zero vectors score 0 instead of
    raising, so one malformed embedding cannot halt a batch.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.ndim != 1 or vb.ndim != 1 or va.shape[0] != vb.shape[0] or va.size == 0:
        return 0.0

    magnitude = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if magnitude < EMBEDDING_MIN_NORM:
        return 0.0

    sim = float(np.dot(va, vb)) / magnitude
    return min(SIMILARITY_MAX, max(SIMILARITY_MIN, sim))


def normalize_rows(embeddings: Sequence[Sequence[float]]) -> NDArray[np.float64] | None:
    """
    Stack equal-length embeddings into an L2-normalized matrix.

    Zero rows stay zero (so they score 0 against everything). Returns None
    when the rows are ragged; callers fall back to pairwise scoring.
    """
    if not embeddings:
        return np.zeros((0, 0), dtype=np.float64)
    dim = len(embeddings[0])
    if dim == 0 or any(len(e) != dim for e in embeddings):
        return None

    matrix = np.asarray(embeddings, dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    safe = np.where(norms < EMBEDDING_MIN_NORM, 1.0, norms)
    normalized = matrix / safe
    normalized[norms[:, 0] < EMBEDDING_MIN_NORM] = 0.0
    return normalized


def similarities_to_seed(
    normalized: NDArray[np.float64],
    seed_index: int,
    candidate_indices: NDArray[np.int64],
) -> NDArray[np.float64]:
    """Cosine similarity of one normalized row against a subset of rows."""
    if len(candidate_indices) == 0:
        return np.zeros(0, dtype=np.float64)
    sims = normalized[candidate_indices] @ normalized[seed_index]
    return np.clip(sims, SIMILARITY_MIN, SIMILARITY_MAX)
