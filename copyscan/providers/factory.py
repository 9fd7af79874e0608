from typing import Dict, Type

import structlog

from copyscan.config import ProviderConfig
from copyscan.core.errors import ConfigurationError
from copyscan.models.similarity import EmbeddingProviderTag
from copyscan.providers.base import EmbeddingBackend, UnavailableBackend
from copyscan.providers.gemini_backend import GeminiBackend
from copyscan.providers.openai_backend import OpenAIBackend

logger = structlog.get_logger()


class BackendFactory:
    """Factory class for creating embedding backend instances."""

    _backends: Dict[str, Type[EmbeddingBackend]] = {
        'openai': OpenAIBackend,
        'gemini': GeminiBackend,
    }

    @classmethod
    def register(cls, name: str, backend_class: Type[EmbeddingBackend]):
        """Register an additional backend under ``name``."""
        cls._backends[name.lower()] = backend_class
        logger.info("Registered embedding backend", name=name, backend=backend_class.__name__)

    @classmethod
    def available(cls) -> list:
        return sorted(cls._backends)

    @classmethod
    def create(cls, provider_config: ProviderConfig) -> EmbeddingBackend:
        """
        Create the backend named by ``provider_config``.

        A missing API key yields a backend whose calls fail, so scans degrade
        to the neutral fallback instead of refusing to start.

        Raises:
            ConfigurationError: unknown backend name
        """
        name = provider_config.name.lower()
        backend_class = cls._backends.get(name)
        if backend_class is None:
            raise ConfigurationError(
                f"Unknown embedding backend: {name}. Available: {', '.join(cls.available())}"
            )

        if not provider_config.api_key:
            logger.warning("Embedding backend has no API key, AI signals will use fallback values",
                           backend=name)
            try:
                tag = EmbeddingProviderTag(name)
            except ValueError:
                tag = EmbeddingProviderTag.CUSTOM
            return UnavailableBackend(tag, f"{name} API key not configured")

        backend = backend_class(provider_config)
        logger.info("Embedding backend created", backend=name)
        return backend
