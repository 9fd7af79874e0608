from typing import Any, Dict, List

import httpx
import structlog

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


def _model_path(model: str) -> str:
    return model if model.startswith("models/") else f"models/{model}"


class GeminiBackend(EmbeddingBackend):
    """Google Gemini REST API: embedContent plus generateContent classification."""

    tag = EmbeddingProviderTag.GEMINI

    def __init__(self, provider_config: ProviderConfig, client: httpx.AsyncClient = None):
        if not provider_config.api_key:
            raise ConfigurationError("Gemini API key is required")

        self.api_key = provider_config.api_key
        self.embedding_model = _model_path(provider_config.embedding_model or config.GEMINI_EMBEDDING_MODEL)
        self.classifier_model = _model_path(provider_config.classifier_model or config.GEMINI_CLASSIFIER_MODEL)
        self.client = client or httpx.AsyncClient(
            base_url=provider_config.base_url or config.GEMINI_ENDPOINT,
            timeout=provider_config.timeout,
        )

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self.client.post(path, params={"key": self.api_key}, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            raise ProviderTimeout(f"Gemini request timed out: {path}", provider=self.tag.value) from e
        except httpx.HTTPStatusError as e:
            raise ProviderUnreachable(
                f"Gemini API error: {e.response.status_code}", provider=self.tag.value
            ) from e
        except httpx.RequestError as e:
            raise ProviderUnreachable(f"Gemini request failed: {e}", provider=self.tag.value) from e
        except ValueError as e:
            raise ProviderResponseError(f"Gemini returned invalid JSON: {e}", provider=self.tag.value) from e

    async def embed(self, text: str) -> List[float]:
        """Generate embedding using Gemini."""
        data = await self._post(
            f"/{self.embedding_model}:embedContent",
            {"model": self.embedding_model, "content": {"parts": [{"text": text}]}},
        )
        try:
            return [float(v) for v in data["embedding"]["values"]]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed Gemini embedding response", error=str(e))
            raise ProviderResponseError(
                f"Gemini embedding response malformed: {e}", provider=self.tag.value
            ) from e

    async def classify(self, original: str, candidate: str, kind: ClassificationKind) -> float:
        """Ask the generative model for a 0..1 score."""
        prompt = build_classification_prompt(kind, original, candidate)
        data = await self._post(
            f"/{self.classifier_model}:generateContent",
            {"contents": [{"parts": [{"text": prompt}]}]},
        )
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            logger.warning("Malformed Gemini classification response", kind=kind.value, error=str(e))
            raise ProviderResponseError(
                f"Gemini classification response malformed: {e}", provider=self.tag.value
            ) from e

        return parse_score(text, provider=self.tag.value)

    async def close(self):
        logger.info("Closing Gemini client")
        await self.client.aclose()
