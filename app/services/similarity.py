"""Vector similarity helpers for text-embedding search."""
from __future__ import annotations

from typing import Sequence, Union

import numpy as np

Vector = Union[Sequence[float], np.ndarray]


def cosine_similarity(vec_a: Vector, vec_b: Vector) -> float:
    """Cosine of the angle between two vectors.

    Vectors of different length (or a zero vector) score 0.0 instead of raising,
    so one bad embedding only sinks its own candidate.
    """
    a = np.asarray(vec_a, dtype="float64").ravel()
    b = np.asarray(vec_b, dtype="float64").ravel()
    if a.shape[0] != b.shape[0]:
        return 0.0
    denom = np.linalg.norm(a) * np.linalg.norm(b)
    if denom == 0.0 or not np.isfinite(denom):
        return 0.0
    return float(np.dot(a, b) / denom)


def score_against(query_vec: Vector, candidate_vecs: Sequence[Vector]) -> list[float]:
    """Cosine similarity of each candidate vector against the query (input order kept)."""
    return [cosine_similarity(query_vec, v) for v in candidate_vecs]
