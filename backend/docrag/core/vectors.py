"""Vector math helpers over numpy arrays."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ..errors import DimensionMismatchError

# Floor on the squared norm so an all-zero vector never divides by zero.
NORM_EPSILON = 1e-12


def as_array(vector: Sequence[float]) -> np.ndarray:
    return np.asarray(vector, dtype=np.float32).reshape(-1)


def normalize(vector: Sequence[float]) -> np.ndarray:
    """Return the L2-normalized copy of ``vector``.

    The zero vector maps to the zero vector.
    """
    arr = as_array(vector)
    norm = float(np.sqrt(max(float(np.dot(arr, arr)), NORM_EPSILON)))
    return (arr / norm).astype(np.float32)


def cosine(a: np.ndarray, b: np.ndarray) -> float:
    """Dot product of two unit vectors.

    Raises DimensionMismatchError when the lengths differ.
    """
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatchError(f"vector dimension mismatch: {a.shape[0]} vs {b.shape[0]}")
    return float(np.dot(a, b))
