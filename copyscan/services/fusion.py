"""
Signal fusion: combines whichever comparator outputs are available into one
AdvancedSimilarityScore.

Absent signals are excluded and their weight redistributed across the
present ones, so content lacking (for example) audio is not scored down for
the missing input. A fallback AI signal is discounted and may only lower the
overall score.
"""

from typing import Dict, Iterable, Mapping, Optional, Union

import structlog

from copyscan.core.errors import InvalidWeightConfig
from copyscan.core.utils import clamp, weighted_mean
from copyscan.models.similarity import (
    AdvancedSimilarityScore,
    AIEmbedding,
    PerceptualHashComparison,
    SignalName,
    SignalSet,
    SimilarityBreakdown,
    WeightConfig,
)

logger = structlog.get_logger()

WeightsInput = Union[WeightConfig, Mapping[str, float], None]


def resolve_weight_config(weights: WeightsInput) -> WeightConfig:
    """
    Normalize caller input into a WeightConfig.

    Raises:
        InvalidWeightConfig: the input is not a valid weight configuration
    """
    if weights is None:
        return WeightConfig()
    if isinstance(weights, WeightConfig):
        return weights
    if isinstance(weights, Mapping):
        return WeightConfig.from_overrides(weights)
    raise InvalidWeightConfig(f"Unsupported weight configuration type: {type(weights).__name__}")


def perceptual_score(comparison: Optional[PerceptualHashComparison], weights: WeightConfig) -> Optional[float]:
    """Weighted mean of the present visual sub-scores."""
    if comparison is None:
        return None
    try:
        score = weighted_mean(
            {
                "keyframes": comparison.keyframes,
                "ocr": comparison.ocr,
                "faces": comparison.faces,
                "motion": comparison.motion,
            },
            weights.perceptual(),
        )
    except ValueError as e:
        raise InvalidWeightConfig(f"Perceptual hash sub-weights: {e}") from e
    return None if score is None else clamp(score)


def embedding_score(embedding: Optional[AIEmbedding], weights: WeightConfig) -> Optional[float]:
    """
    Semantic similarity combined with the inverted classifier scores.

    Likely commentary or remix means the candidate transforms the original,
    which lowers the infringement-similarity signal.
    """
    if embedding is None:
        return None
    try:
        score = weighted_mean(
            {
                "semantic": embedding.semantic_similarity,
                "commentary": 1.0 - embedding.commentary,
                "remix": 1.0 - embedding.remix,
            },
            weights.embedding(),
        )
    except ValueError as e:
        raise InvalidWeightConfig(f"AI embedding sub-weights: {e}") from e
    return clamp(score)


def resolve_weights(present: Iterable[str], weights: WeightConfig, ai_fallback: bool = False) -> Dict[str, float]:
    """
    Effective top-level weights for the present signals, summing to 1.0.

    Raises:
        InvalidWeightConfig: present signals carry zero total weight
    """
    base = weights.top_level()
    raw = {name: base[name] for name in sorted(set(present))}
    if not raw:
        return {}

    if ai_fallback and SignalName.AI_EMBEDDING.value in raw:
        raw[SignalName.AI_EMBEDDING.value] *= weights.fallback_penalty

    total = sum(raw.values())
    if total <= 0:
        raise InvalidWeightConfig(
            f"Weights sum to zero across present signals: {sorted(raw)}"
        )
    return {name: weight / total for name, weight in raw.items()}


def _weighted_sum(scores: Dict[str, float], effective: Dict[str, float]) -> float:
    return sum(effective[name] * scores[name] for name in sorted(effective))


class SimilarityFusionEngine:
    """Merges comparator outputs into a single AdvancedSimilarityScore."""

    def __init__(self, weights: WeightsInput = None):
        self.weights = resolve_weight_config(weights)

    def validate(self, signals: Iterable[SignalName]):
        """
        Fail fast when the given signals could never be fused.

        Sub-weight groups of the perceptual and AI signals are checked too,
        since an all-zero group cannot weight any of its sub-scores.

        Raises:
            InvalidWeightConfig: weights of the given signals, or the
                sub-weights of an enabled group, sum to zero
        """
        names = [SignalName(s).value for s in signals]
        if names:
            resolve_weights(names, self.weights)

        groups = {
            SignalName.PERCEPTUAL_HASH.value: self.weights.perceptual(),
            SignalName.AI_EMBEDDING.value: self.weights.embedding(),
        }
        for name in sorted(set(names) & set(groups)):
            if sum(groups[name].values()) <= 0:
                raise InvalidWeightConfig(f"Sub-weights of {name} sum to zero: {sorted(groups[name])}")

    def fuse(self, signals: SignalSet, weights: WeightsInput = None) -> AdvancedSimilarityScore:
        """
        Fuse available signals into one score.

        Args:
            signals: Comparator outputs; None entries are not computed
            weights: Per-call override of the engine's weight config

        Returns:
            AdvancedSimilarityScore with overall, sub-scores and breakdown

        Raises:
            InvalidWeightConfig: invalid weights, or zero weight over present signals
        """
        config = self.weights if weights is None else resolve_weight_config(weights)

        perceptual = signals.perceptual_hash
        ai = signals.ai_embedding

        scores = {
            SignalName.PERCEPTUAL_HASH.value: perceptual_score(perceptual, config),
            SignalName.AUDIO_FINGERPRINT.value: signals.audio_fingerprint,
            SignalName.FRAME_SAMPLING.value: signals.frame_sampling,
            SignalName.AI_EMBEDDING.value: embedding_score(ai, config),
        }
        present = {name: score for name, score in scores.items() if score is not None}
        ai_fallback = ai is not None and ai.is_fallback

        effective = resolve_weights(present, config)
        overall = _weighted_sum(present, effective) if present else 0.0

        if ai_fallback and SignalName.AI_EMBEDDING.value in present:
            discounted = resolve_weights(present, config, ai_fallback=True)
            discounted_overall = _weighted_sum(present, discounted)
            # a low-confidence signal may pull the score down, never up
            if discounted_overall < overall:
                effective, overall = discounted, discounted_overall

        breakdown = SimilarityBreakdown(
            keyframes=perceptual.keyframes if perceptual else None,
            ocr=perceptual.ocr if perceptual else None,
            faces=perceptual.faces if perceptual else None,
            motion=perceptual.motion if perceptual else None,
            audio=signals.audio_fingerprint,
            frames=signals.frame_sampling,
            semantic=ai.semantic_similarity if ai else None,
            commentary=ai.commentary if ai else None,
            remix=ai.remix if ai else None,
        )

        result = AdvancedSimilarityScore(
            perceptual_hash=scores[SignalName.PERCEPTUAL_HASH.value],
            audio_fingerprint=scores[SignalName.AUDIO_FINGERPRINT.value],
            frame_sampling=scores[SignalName.FRAME_SAMPLING.value],
            ai_embedding=scores[SignalName.AI_EMBEDDING.value],
            overall=clamp(overall),
            breakdown=breakdown,
            ai_fallback=ai_fallback,
            effective_weights=effective,
        )

        logger.debug("Signals fused",
                     present=sorted(present),
                     overall=result.overall,
                     ai_fallback=ai_fallback)
        return result
