from typing import List

import openai
import structlog
from openai import AsyncOpenAI

from copyscan import config
from copyscan.config import ProviderConfig
from copyscan.core.errors import (
    ConfigurationError,
    ProviderResponseError,
    ProviderTimeout,
    ProviderUnreachable,
)
from copyscan.models.similarity import ClassificationKind, EmbeddingProviderTag
from copyscan.providers.base import EmbeddingBackend, build_classification_prompt, parse_score

logger = structlog.get_logger()


class OpenAIBackend(EmbeddingBackend):
    """OpenAI embeddings plus chat-completion classification."""

    tag = EmbeddingProviderTag.OPENAI

    def __init__(self, provider_config: ProviderConfig, client: AsyncOpenAI = None):
        if not provider_config.api_key and client is None:
            raise ConfigurationError("OpenAI API key is required")

        self.embedding_model = provider_config.embedding_model or config.OPENAI_EMBEDDING_MODEL
        self.classifier_model = provider_config.classifier_model or config.OPENAI_CLASSIFIER_MODEL
        self.client = client or AsyncOpenAI(
            api_key=provider_config.api_key,
            base_url=provider_config.base_url,
            timeout=provider_config.timeout,
            max_retries=provider_config.max_retries,
        )

    def _convert(self, error: Exception, operation: str) -> Exception:
        if isinstance(error, openai.APITimeoutError):
            return ProviderTimeout(f"OpenAI {operation} timed out", provider=self.tag.value)
        if isinstance(error, openai.APIError):
            return ProviderUnreachable(f"OpenAI {operation} failed: {error}", provider=self.tag.value)
        return ProviderResponseError(f"OpenAI {operation} returned a malformed response: {error}",
                                     provider=self.tag.value)

    async def embed(self, text: str) -> List[float]:
        """Generate embedding using OpenAI."""
        try:
            response = await self.client.embeddings.create(
                model=self.embedding_model,
                input=text,
            )
            return list(response.data[0].embedding)
        except (openai.APIError, IndexError, AttributeError, TypeError) as e:
            logger.warning("OpenAI embedding failed", model=self.embedding_model, error=str(e))
            raise self._convert(e, "embedding") from e

    async def classify(self, original: str, candidate: str, kind: ClassificationKind) -> float:
        """Ask the chat model for a 0..1 score."""
        prompt = build_classification_prompt(kind, original, candidate)
        try:
            response = await self.client.chat.completions.create(
                model=self.classifier_model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.3,
            )
            content = response.choices[0].message.content
        except (openai.APIError, IndexError, AttributeError, TypeError) as e:
            logger.warning("OpenAI classification failed",
                           model=self.classifier_model, kind=kind.value, error=str(e))
            raise self._convert(e, "classification") from e

        return parse_score(content, provider=self.tag.value)

    async def close(self):
        logger.info("Closing OpenAI client")
        await self.client.close()
