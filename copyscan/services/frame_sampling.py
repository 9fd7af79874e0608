"""
Sparse time-indexed frame comparison.

Independent of keyframe scoring: frame samples may use a different density,
which catches short reposted clips that keyframe-only comparison misses.
"""

from typing import List, Optional, Sequence, Tuple

import structlog

from copyscan import config
from copyscan.core.errors import FormatMismatch
from copyscan.core.utils import clamp
from copyscan.models.content import FrameSample
from copyscan.services.image_hash import ensure_uniform_bit_length, hash_similarity

logger = structlog.get_logger()


def select_interval_samples(
    samples: Sequence[FrameSample],
    intervals: Optional[Sequence[float]],
    epsilon: float = config.FRAME_INTERVAL_EPSILON,
) -> List[FrameSample]:
    """Keep samples whose timestamp lies on a multiple of any interval."""
    if not intervals:
        return list(samples)

    def on_interval(timestamp: float) -> bool:
        for interval in intervals:
            if interval <= 0:
                continue
            remainder = timestamp % interval
            if min(remainder, interval - remainder) <= epsilon:
                return True
        return False

    return [s for s in samples if on_interval(s.timestamp)]


def _nearest_within(
    sample: FrameSample,
    candidates: Sequence[FrameSample],
    tolerance: float,
) -> Optional[FrameSample]:
    best = min(
        candidates,
        key=lambda c: (abs(c.timestamp - sample.timestamp), c.timestamp),
    )
    if abs(best.timestamp - sample.timestamp) > tolerance:
        return None
    return best


def align_samples(
    samples1: Sequence[FrameSample],
    samples2: Sequence[FrameSample],
    tolerance: float,
) -> List[Tuple[FrameSample, FrameSample]]:
    """
    Nearest-timestamp pairs within tolerance, taken from both directions.

    Each pair is ordered (from samples1, from samples2).
    """
    pairs = []
    for sample in samples1:
        match = _nearest_within(sample, samples2, tolerance)
        if match is not None:
            pairs.append((sample, match))
    for sample in samples2:
        match = _nearest_within(sample, samples1, tolerance)
        if match is not None:
            pairs.append((match, sample))
    return pairs


class FrameSamplingComparator:
    """Compares two frame-sample sequences into a single score."""

    def __init__(self,
                 tolerance: float = config.FRAME_ALIGNMENT_TOLERANCE,
                 intervals: Optional[Sequence[float]] = None):
        self.tolerance = tolerance
        self.intervals = list(intervals) if intervals else None

    def compare(
        self,
        original: Optional[Sequence[FrameSample]],
        candidate: Optional[Sequence[FrameSample]],
    ) -> Optional[float]:
        """
        Compare two frame-sample sequences.

        Returns:
            Mean hash similarity over aligned pairs, or None when either side
            is empty or nothing aligns within the tolerance window

        Raises:
            FormatMismatch: frame hashes differ in bit length
        """
        samples1 = select_interval_samples(original or [], self.intervals)
        samples2 = select_interval_samples(candidate or [], self.intervals)

        if not samples1 or not samples2:
            logger.debug("Frame sampling skipped",
                         original_samples=len(samples1), candidate_samples=len(samples2))
            return None

        try:
            ensure_uniform_bit_length(
                [s.frame_hash for s in samples1],
                [s.frame_hash for s in samples2],
            )
        except FormatMismatch as e:
            logger.error("Frame hashes are incompatible", error=str(e))
            raise

        pairs = align_samples(samples1, samples2, self.tolerance)
        if not pairs:
            logger.debug("No frame samples aligned within tolerance", tolerance=self.tolerance)
            return None

        scores = sorted(hash_similarity(a.frame_hash, b.frame_hash) for a, b in pairs)
        score = clamp(sum(scores) / len(scores))

        logger.debug("Frame sampling comparison completed",
                     aligned_pairs=len(pairs), score=score)
        return score
