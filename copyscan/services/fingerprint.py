import structlog
import numpy as np
from typing import Dict, List, Optional

from copyscan import config
from copyscan.core.errors import FormatMismatch
from copyscan.core.utils import clamp, format_score, unit_cosine_similarity
from copyscan.models.content import AudioFingerprint

logger = structlog.get_logger()

WORD_BITS = config.CHROMAPRINT_WORD_HEX * 4


def parse_chromaprint(chromaprint: str) -> np.ndarray:
    """
    Split a chromaprint-style hex hash into 32-bit sub-fingerprints.

    Raises:
        FormatMismatch: length is not a whole number of words, or not hex
    """
    if len(chromaprint) % config.CHROMAPRINT_WORD_HEX != 0:
        raise FormatMismatch(
            f"Chromaprint length {len(chromaprint)} is not a multiple of "
            f"{config.CHROMAPRINT_WORD_HEX} hex characters"
        )
    try:
        words = [
            int(chromaprint[i:i + config.CHROMAPRINT_WORD_HEX], 16)
            for i in range(0, len(chromaprint), config.CHROMAPRINT_WORD_HEX)
        ]
    except ValueError:
        raise FormatMismatch("Chromaprint is not a hex string")
    return np.array(words, dtype=np.uint32)


def _word_agreement(words1: np.ndarray, words2: np.ndarray) -> float:
    """Mean fraction of agreeing bits across aligned words."""
    differing = np.unpackbits(np.bitwise_xor(words1, words2).view(np.uint8)).sum()
    return 1.0 - float(differing) / (len(words1) * WORD_BITS)


def sliding_hash_similarity(chromaprint1: str, chromaprint2: str) -> Optional[float]:
    """
    Best alignment of the shorter hash sequence inside the longer one.

    Tolerates the candidate starting at any offset of the original, which
    covers clips excerpted from longer recordings.
    """
    words1 = parse_chromaprint(chromaprint1)
    words2 = parse_chromaprint(chromaprint2)

    if len(words1) == 0 or len(words2) == 0:
        return None

    shorter, longer = (words1, words2) if len(words1) <= len(words2) else (words2, words1)
    window = len(shorter)

    best = 0.0
    for offset in range(len(longer) - window + 1):
        best = max(best, _word_agreement(shorter, longer[offset:offset + window]))
        if best == 1.0:
            break
    return best


def _as_spectrogram(spectrogram: List[List[float]]) -> np.ndarray:
    try:
        matrix = np.asarray(spectrogram, dtype=np.float64)
    except ValueError:
        raise FormatMismatch("Spectrogram rows have different bin counts")
    if matrix.ndim != 2:
        raise FormatMismatch("Spectrogram must be a 2-D matrix (frames x bins)")
    return matrix


def _frame_agreement(frames1: np.ndarray, frames2: np.ndarray) -> float:
    diff = np.abs(frames1 - frames2)
    scale = np.maximum(np.maximum(np.abs(frames1), np.abs(frames2)), 1.0)
    return float(np.mean(1.0 - diff / scale))


def sliding_spectrogram_similarity(
    spectrogram1: List[List[float]],
    spectrogram2: List[List[float]],
) -> Optional[float]:
    """Best-offset relative-difference agreement between two spectrograms."""
    spec1 = _as_spectrogram(spectrogram1)
    spec2 = _as_spectrogram(spectrogram2)

    if spec1.shape[0] == 0 or spec2.shape[0] == 0:
        return None
    if spec1.shape[1] != spec2.shape[1]:
        logger.warning("Spectrogram bin counts differ, skipping spectrogram signal",
                       bins1=spec1.shape[1], bins2=spec2.shape[1])
        return None

    shorter, longer = (spec1, spec2) if spec1.shape[0] <= spec2.shape[0] else (spec2, spec1)
    window = shorter.shape[0]

    best = 0.0
    for offset in range(longer.shape[0] - window + 1):
        best = max(best, _frame_agreement(shorter, longer[offset:offset + window]))
    return clamp(best)


class AudioFingerprintComparator:
    """Compares two audio fingerprints into a single score."""

    def __init__(self,
                 duration_ratio_limit: float = config.DURATION_RATIO_LIMIT,
                 duration_cap: float = config.DURATION_MISMATCH_CAP):
        self.duration_ratio_limit = duration_ratio_limit
        self.duration_cap = duration_cap

    def signals(self, original: AudioFingerprint, candidate: AudioFingerprint) -> Dict[str, Optional[float]]:
        """Compute every available audio signal for the pair."""
        embedding = None
        if original.embedding and candidate.embedding:
            if len(original.embedding) == len(candidate.embedding):
                embedding = unit_cosine_similarity(original.embedding, candidate.embedding)
            else:
                logger.warning("Audio embedding dimensions differ, skipping embedding signal",
                               dims1=len(original.embedding), dims2=len(candidate.embedding))

        spectrogram = None
        if original.spectrogram and candidate.spectrogram:
            spectrogram = sliding_spectrogram_similarity(original.spectrogram, candidate.spectrogram)

        return {
            "hash": sliding_hash_similarity(original.chromaprint, candidate.chromaprint),
            "embedding": embedding,
            "spectrogram": spectrogram,
        }

    def is_duration_implausible(self, original: AudioFingerprint, candidate: AudioFingerprint) -> bool:
        shorter = min(original.duration_seconds, candidate.duration_seconds)
        longer = max(original.duration_seconds, candidate.duration_seconds)
        if longer == 0:
            return False
        if shorter == 0:
            return True
        return longer / shorter > self.duration_ratio_limit

    def compare(
        self,
        original: Optional[AudioFingerprint],
        candidate: Optional[AudioFingerprint],
    ) -> Optional[float]:
        """
        Compare two audio fingerprints.

        Hash alignment and embedding similarity are alternative evidence for
        the same underlying match, so the strongest signal wins rather than
        adding up.

        Returns:
            Score in [0, 1], or None when either side has no audio or no
            signal could be computed

        Raises:
            FormatMismatch: malformed chromaprint or spectrogram
        """
        if original is None or candidate is None:
            logger.debug("Audio comparison skipped",
                         has_original=original is not None,
                         has_candidate=candidate is not None)
            return None

        try:
            signals = self.signals(original, candidate)
        except FormatMismatch as e:
            logger.error("Audio fingerprints are incompatible", error=str(e))
            raise

        available = [score for score in signals.values() if score is not None]
        if not available:
            logger.debug("No audio signal available for comparison")
            return None

        score = clamp(max(available))

        if self.is_duration_implausible(original, candidate) and score > self.duration_cap:
            logger.warning("Audio duration mismatch, capping score",
                           original_duration=original.duration_seconds,
                           candidate_duration=candidate.duration_seconds,
                           uncapped_score=score,
                           cap=self.duration_cap)
            score = self.duration_cap

        logger.debug("Audio comparison completed",
                     hash=format_score(signals["hash"]),
                     embedding=format_score(signals["embedding"]),
                     spectrogram=format_score(signals["spectrogram"]),
                     score=score)

        return score
