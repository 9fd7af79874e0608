import math
import uuid
from typing import Dict, Optional, Sequence

import numpy as np

from copyscan.core.errors import FormatMismatch

__all__ = [
    "clamp",
    "cosine_similarity",
    "unit_cosine_similarity",
    "weighted_mean",
    "new_alert_id",
    "format_score",
]


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    """Clamp value into [lower, upper]."""
    return max(lower, min(upper, float(value)))


def cosine_similarity(vector1: Sequence[float], vector2: Sequence[float]) -> float:
    """
    Calculate cosine similarity between two vectors.

    Zero-norm vectors carry no direction and score 0.0. Vectors of different
    dimensionality are not comparable.
    """
    vec1 = np.asarray(vector1, dtype=np.float64)
    vec2 = np.asarray(vector2, dtype=np.float64)

    if vec1.shape != vec2.shape:
        raise FormatMismatch(
            f"Vector dimensions differ: {vec1.shape[0]} vs {vec2.shape[0]}"
        )

    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)

    if norm1 == 0 or norm2 == 0:
        return 0.0

    similarity = float(np.dot(vec1, vec2) / (norm1 * norm2))
    if not math.isfinite(similarity):
        return 0.0
    return similarity


def unit_cosine_similarity(vector1: Sequence[float], vector2: Sequence[float]) -> float:
    """Cosine similarity clamped to [0, 1]; opposed vectors count as unrelated."""
    return clamp(cosine_similarity(vector1, vector2))


def weighted_mean(scores: Dict[str, Optional[float]], weights: Dict[str, float]) -> Optional[float]:
    """
    Weighted mean over the scores that are present.

    Weights of missing scores are redistributed proportionally across the
    present ones. Returns None when no score is present.

    Raises:
        ValueError: present scores exist but their weights sum to zero
    """
    present = {name: score for name, score in scores.items() if score is not None}
    if not present:
        return None

    total_weight = sum(weights.get(name, 0.0) for name in sorted(present))
    if total_weight <= 0:
        raise ValueError(
            f"Weights sum to zero across present signals: {sorted(present)}"
        )

    # fixed summation order keeps the result bit-identical across calls
    return sum(weights.get(name, 0.0) * present[name] for name in sorted(present)) / total_weight


def new_alert_id() -> str:
    """Generate a new unique alert ID."""
    return f"alert-{uuid.uuid4()}"


def format_score(score: Optional[float]) -> str:
    """Format a sub-score for log output."""
    if score is None:
        return "n/a"
    return f"{score:.3f}"
