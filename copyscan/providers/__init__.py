"""
Interchangeable embedding/classification backends.
"""

from .base import EmbeddingBackend, UnavailableBackend
from .factory import BackendFactory
from .gemini_backend import GeminiBackend
from .openai_backend import OpenAIBackend
