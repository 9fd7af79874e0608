"""
Semantic similarity and reuse classification through a pluggable backend.

External provider failures never fail a scan: they degrade to a neutral,
explicitly flagged fallback result that the fusion engine discounts.
"""

import asyncio
import math
from typing import List, Optional

import structlog

from copyscan import config
from copyscan.core.errors import ProviderError, ProviderResponseError, ProviderTimeout
from copyscan.core.utils import clamp, unit_cosine_similarity
from copyscan.models.similarity import (
    AIEmbedding,
    ClassificationKind,
    EmbeddingProviderTag,
    EmbeddingStatus,
)
from copyscan.providers.base import EmbeddingBackend

logger = structlog.get_logger()

FALLBACK_DIMENSIONS = {
    EmbeddingProviderTag.OPENAI: 1536,
    EmbeddingProviderTag.GEMINI: 768,
}


def fallback_vector(tag: EmbeddingProviderTag) -> List[float]:
    """Zero-information vector in the backend's dimensionality."""
    return [0.0] * FALLBACK_DIMENSIONS.get(tag, 0)


def validate_vector(vector, provider: str) -> List[float]:
    """
    Raises:
        ProviderResponseError: empty or non-finite vector
    """
    if not vector:
        raise ProviderResponseError("Backend returned an empty embedding", provider=provider)
    values = [float(v) for v in vector]
    if not all(math.isfinite(v) for v in values):
        raise ProviderResponseError("Backend returned a non-finite embedding", provider=provider)
    return values


class SemanticEmbeddingProvider:
    """Compares two texts through an ``EmbeddingBackend``."""

    def __init__(self, backend: EmbeddingBackend, timeout: float = config.PROVIDER_TIMEOUT):
        self.backend = backend
        self.timeout = timeout

    @property
    def tag(self) -> EmbeddingProviderTag:
        return self.backend.tag

    async def _call(self, coro, operation: str):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderTimeout(
                f"{operation} exceeded {self.timeout}s", provider=self.tag.value
            ) from e

    def _absorb(self, outcome, operation: str) -> bool:
        """Log a failed backend call. Returns True when the call failed."""
        if not isinstance(outcome, BaseException):
            return False
        if not isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, ProviderError):
            logger.warning("Embedding backend call failed, using fallback",
                           provider=self.tag.value, operation=operation,
                           error_type=type(outcome).__name__, error=str(outcome))
        else:
            logger.error("Unexpected embedding backend error, using fallback",
                         provider=self.tag.value, operation=operation,
                         error_type=type(outcome).__name__, error=str(outcome))
        return True

    def _semantic(self, original_vector, candidate_vector) -> Optional[tuple]:
        """Validated (candidate vector, similarity), or None when unusable."""
        try:
            vec1 = validate_vector(original_vector, self.tag.value)
            vec2 = validate_vector(candidate_vector, self.tag.value)
            if len(vec1) != len(vec2):
                raise ProviderResponseError(
                    f"Embedding dimensions differ: {len(vec1)} vs {len(vec2)}",
                    provider=self.tag.value,
                )
        except (ProviderResponseError, TypeError, ValueError) as e:
            self._absorb(e, "embedding")
            return None
        return vec2, unit_cosine_similarity(vec1, vec2)

    def _classifier_score(self, outcome, operation: str) -> tuple:
        """(score, failed); failures report the neutral prior."""
        if self._absorb(outcome, operation):
            return config.NEUTRAL_SCORE, True

        try:
            score = float(outcome)
        except (TypeError, ValueError):
            score = math.nan
        if not math.isfinite(score):
            error = ProviderResponseError(f"Unusable score: {outcome!r}", provider=self.tag.value)
            self._absorb(error, operation)
            return config.NEUTRAL_SCORE, True

        return clamp(score), False

    async def compare(self, original_text: str, candidate_text: str) -> AIEmbedding:
        """
        Compare original and candidate text.

        Embeddings and both classifier calls run concurrently, each under the
        per-call timeout.

        Returns:
            AIEmbedding; ``status`` is FALLBACK when any backend call failed
        """
        outcomes = await asyncio.gather(
            self._call(self.backend.embed(original_text), "embed original"),
            self._call(self.backend.embed(candidate_text), "embed candidate"),
            self._call(
                self.backend.classify(original_text, candidate_text, ClassificationKind.COMMENTARY),
                "classify commentary",
            ),
            self._call(
                self.backend.classify(original_text, candidate_text, ClassificationKind.REMIX),
                "classify remix",
            ),
            return_exceptions=True,
        )
        original_vec, candidate_vec, commentary, remix = outcomes

        original_failed = self._absorb(original_vec, "embed original")
        candidate_failed = self._absorb(candidate_vec, "embed candidate")

        semantic = None
        if not (original_failed or candidate_failed):
            semantic = self._semantic(original_vec, candidate_vec)
        fallback = semantic is None

        if semantic is None:
            vector, similarity = fallback_vector(self.tag), config.NEUTRAL_SCORE
        else:
            vector, similarity = semantic

        commentary, commentary_failed = self._classifier_score(commentary, "classify commentary")
        remix, remix_failed = self._classifier_score(remix, "classify remix")
        fallback = fallback or commentary_failed or remix_failed

        result = AIEmbedding(
            semantic=vector,
            semantic_similarity=similarity,
            commentary=commentary,
            remix=remix,
            provider=self.tag,
            status=EmbeddingStatus.FALLBACK if fallback else EmbeddingStatus.COMPUTED,
        )

        logger.info("Semantic comparison completed",
                    provider=self.tag.value,
                    status=result.status.value,
                    semantic=round(result.semantic_similarity, 4),
                    commentary=result.commentary,
                    remix=result.remix)
        return result
