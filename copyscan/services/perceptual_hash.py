"""
Visual similarity across keyframes, OCR text, faces and motion.
"""

import math
import re
from typing import Callable, List, Optional, Sequence, TypeVar

import structlog

from copyscan.core.errors import FormatMismatch
from copyscan.core.utils import clamp, format_score, unit_cosine_similarity
from copyscan.models.content import FaceMatch, MotionVector, PerceptualHash
from copyscan.models.similarity import PerceptualHashComparison
from copyscan.services.image_hash import ensure_uniform_bit_length, hash_similarity

logger = structlog.get_logger()

T = TypeVar("T")

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def best_match_average(
    items1: Sequence[T],
    items2: Sequence[T],
    score: Callable[[T, T], float],
) -> float:
    """
    Average best-match score of the smaller sequence against the larger.

    When both sequences have the same size the two directions are averaged,
    so the result does not depend on argument order.
    """
    def one_way(source: Sequence[T], target: Sequence[T]) -> float:
        return sum(max(score(a, b) for b in target) for a in source) / len(source)

    if len(items1) < len(items2):
        return one_way(items1, items2)
    if len(items2) < len(items1):
        return one_way(items2, items1)
    return (one_way(items1, items2) + one_way(items2, items1)) / 2


def compare_keyframes(keyframes1: List[str], keyframes2: List[str]) -> Optional[float]:
    """Best-aligned Hamming similarity between two keyframe hash sequences."""
    if not keyframes1 or not keyframes2:
        return None

    ensure_uniform_bit_length(keyframes1, keyframes2)
    return best_match_average(keyframes1, keyframes2, hash_similarity)


def tokenize(texts: List[str]) -> set:
    return set(_TOKEN_RE.findall(" ".join(texts).lower()))


def compare_ocr(texts1: List[str], texts2: List[str]) -> Optional[float]:
    """Jaccard similarity of lowercased word tokens."""
    tokens1 = tokenize(texts1)
    tokens2 = tokenize(texts2)

    if not tokens1 and not tokens2:
        return None
    if not tokens1 or not tokens2:
        return 0.0

    return len(tokens1 & tokens2) / len(tokens1 | tokens2)


def face_similarity(face1: FaceMatch, face2: FaceMatch) -> float:
    """Embedding cosine when both faces carry one, bounding-box IoU otherwise."""
    if face1.embedding is not None and face2.embedding is not None:
        return unit_cosine_similarity(face1.embedding, face2.embedding)
    return face1.bounding_box.iou(face2.bounding_box)


def compare_faces(faces1: List[FaceMatch], faces2: List[FaceMatch]) -> Optional[float]:
    if not faces1 and not faces2:
        return None
    if not faces1 or not faces2:
        return 0.0

    return best_match_average(faces1, faces2, face_similarity)


def motion_similarity(vector1: MotionVector, vector2: MotionVector) -> float:
    """
    Direction agreement (cosine of the angle between them, floored at zero)
    scaled by magnitude agreement (min / max).
    """
    delta = math.radians(vector1.direction - vector2.direction)
    direction_score = max(0.0, math.cos(delta))

    larger = max(vector1.magnitude, vector2.magnitude)
    if larger == 0:
        # no motion on either side agrees fully
        return 1.0
    magnitude_score = min(vector1.magnitude, vector2.magnitude) / larger

    return min(1.0, direction_score * magnitude_score)


def _nearest_by_index(vector: MotionVector, candidates: List[MotionVector]) -> MotionVector:
    # ties resolve to the earlier frame
    return min(candidates, key=lambda c: (abs(c.frame_index - vector.frame_index), c.frame_index))


def compare_motion(vectors1: List[MotionVector], vectors2: List[MotionVector]) -> Optional[float]:
    """Average motion similarity with nearest-frame-index alignment in both directions."""
    if not vectors1 or not vectors2:
        return None

    scores = [motion_similarity(v, _nearest_by_index(v, vectors2)) for v in vectors1]
    scores += [motion_similarity(_nearest_by_index(v, vectors1), v) for v in vectors2]
    return sum(sorted(scores)) / len(scores)


def _bounded(score: Optional[float]) -> Optional[float]:
    return None if score is None else clamp(score)


class PerceptualHashComparator:
    """Compares two perceptual hash bundles into four independent sub-scores."""

    def compare(
        self,
        original: Optional[PerceptualHash],
        candidate: Optional[PerceptualHash],
    ) -> Optional[PerceptualHashComparison]:
        """
        Compare two perceptual hash bundles.

        Args:
            original: Bundle of the original content
            candidate: Bundle of the candidate content

        Returns:
            Sub-scores (each None when not computable), or None when either
            bundle is missing

        Raises:
            FormatMismatch: keyframe hashes or face embeddings are incompatible
        """
        if original is None or candidate is None:
            logger.debug("Perceptual hash comparison skipped",
                         has_original=original is not None,
                         has_candidate=candidate is not None)
            return None

        try:
            comparison = PerceptualHashComparison(
                keyframes=_bounded(compare_keyframes(original.keyframes, candidate.keyframes)),
                ocr=_bounded(compare_ocr(original.ocr_text, candidate.ocr_text)),
                faces=_bounded(compare_faces(original.faces, candidate.faces)),
                motion=_bounded(compare_motion(original.motion_vectors, candidate.motion_vectors)),
            )
        except FormatMismatch as e:
            logger.error("Perceptual hash inputs are incompatible", error=str(e))
            raise

        logger.debug("Perceptual hash comparison completed",
                     keyframes=format_score(comparison.keyframes),
                     ocr=format_score(comparison.ocr),
                     faces=format_score(comparison.faces),
                     motion=format_score(comparison.motion))

        return comparison
