import math
import re
from abc import ABC, abstractmethod
from typing import List

from copyscan.core.errors import ProviderResponseError, ProviderUnreachable
from copyscan.models.similarity import ClassificationKind, EmbeddingProviderTag

_SCORE_RE = re.compile(r"[-+]?\d*\.?\d+")

CLASSIFICATION_PROMPTS = {
    ClassificationKind.COMMENTARY: (
        "Analyze if the following content is transformative commentary or a direct repost:\n\n"
        "Original: \"{original}\"\n"
        "Candidate: \"{candidate}\"\n\n"
        "Respond with a score from 0.0 to 1.0 where:\n"
        "- 0.0-0.3 = Direct repost/copy\n"
        "- 0.4-0.6 = Partial reuse with some changes\n"
        "- 0.7-1.0 = Transformative commentary/remix\n\n"
        "Score only:"
    ),
    ClassificationKind.REMIX: (
        "Analyze if the candidate content is a remix of the original:\n\n"
        "Original: \"{original}\"\n"
        "Candidate: \"{candidate}\"\n\n"
        "Respond with a score from 0.0 to 1.0 where:\n"
        "- 0.0-0.3 = Not a remix (different content)\n"
        "- 0.4-0.6 = Possibly inspired by original\n"
        "- 0.7-1.0 = Clear remix/adaptation\n\n"
        "Score only:"
    ),
}


def build_classification_prompt(kind: ClassificationKind, original: str, candidate: str) -> str:
    return CLASSIFICATION_PROMPTS[kind].format(original=original, candidate=candidate)


def parse_score(text: str, provider: str = "unknown") -> float:
    """
    Extract a 0..1 score from a model reply.

    Raises:
        ProviderResponseError: no number in the reply
    """
    match = _SCORE_RE.search(text or "")
    if not match:
        raise ProviderResponseError(f"No score in model reply: {text!r}", provider=provider)
    score = float(match.group())
    if not math.isfinite(score):
        raise ProviderResponseError(f"Non-finite score in model reply: {text!r}", provider=provider)
    return max(0.0, min(1.0, score))


class EmbeddingBackend(ABC):
    """Capability interface for embedding/classification backends."""

    tag: EmbeddingProviderTag = EmbeddingProviderTag.CUSTOM

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Generate a semantic embedding for text."""
        pass

    @abstractmethod
    async def classify(self, original: str, candidate: str, kind: ClassificationKind) -> float:
        """Score 0..1 how strongly the candidate matches ``kind`` relative to the original."""
        pass

    async def close(self):
        """Release client resources."""
        pass


class UnavailableBackend(EmbeddingBackend):
    """Stands in for a backend that is not configured; every call fails."""

    def __init__(self, tag: EmbeddingProviderTag, reason: str):
        self.tag = tag
        self.reason = reason

    async def embed(self, text: str) -> List[float]:
        raise ProviderUnreachable(self.reason, provider=self.tag.value)

    async def classify(self, original: str, candidate: str, kind: ClassificationKind) -> float:
        raise ProviderUnreachable(self.reason, provider=self.tag.value)
