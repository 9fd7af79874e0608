"""
Engine defaults and runtime settings.

Constants below are the default scoring policy. Runtime settings (API keys,
timeouts, thresholds) are loaded once via ``Settings.from_env()`` and passed
explicitly into the components that need them.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

# Top-level signal weights (renormalized over present signals)
PERCEPTUAL_HASH_WEIGHT = 0.30
AUDIO_FINGERPRINT_WEIGHT = 0.20
FRAME_SAMPLING_WEIGHT = 0.20
AI_EMBEDDING_WEIGHT = 0.30

# Perceptual hash sub-weights
KEYFRAME_WEIGHT = 0.4
OCR_WEIGHT = 0.2
FACE_WEIGHT = 0.2
MOTION_WEIGHT = 0.2

# AI embedding sub-weights (commentary and remix are inverted before use)
SEMANTIC_WEIGHT = 0.5
COMMENTARY_WEIGHT = 0.25
REMIX_WEIGHT = 0.25

# Multiplier applied to the AI weight when the provider fell back
FALLBACK_PENALTY = 0.5

# Neutral prior reported when a classifier could not run
NEUTRAL_SCORE = 0.5

# Frame sampling
FRAME_ALIGNMENT_TOLERANCE = 1.0  # seconds
FRAME_INTERVAL_EPSILON = 0.05  # seconds

# Audio fingerprinting
CHROMAPRINT_WORD_HEX = 8  # 32-bit sub-fingerprints
DURATION_RATIO_LIMIT = 3.0
DURATION_MISMATCH_CAP = 0.7

# Scanning
ALERT_THRESHOLD = 0.6
HIGH_CONFIDENCE_SCORE = 0.85
MEDIUM_CONFIDENCE_SCORE = 0.7
MAX_CONCURRENT_COMPARISONS = 4

# Providers
DEFAULT_PROVIDER = "openai"
PROVIDER_TIMEOUT = 10.0  # seconds
PROVIDER_MAX_RETRIES = 2
OPENAI_EMBEDDING_MODEL = "text-embedding-3-small"
OPENAI_CLASSIFIER_MODEL = "gpt-4o-mini"
GEMINI_EMBEDDING_MODEL = "models/embedding-001"
GEMINI_CLASSIFIER_MODEL = "gemini-pro"
GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta"


class ProviderConfig(BaseModel):
    """Explicit configuration for one embedding/classification backend."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default=DEFAULT_PROVIDER, description="Backend name (openai, gemini)")
    api_key: Optional[str] = Field(default=None, description="Backend API key")
    embedding_model: Optional[str] = Field(default=None, description="Embedding model override")
    classifier_model: Optional[str] = Field(default=None, description="Classification model override")
    timeout: float = Field(default=PROVIDER_TIMEOUT, gt=0, description="Per-call timeout in seconds")
    max_retries: int = Field(default=PROVIDER_MAX_RETRIES, ge=0)
    base_url: Optional[str] = Field(default=None, description="Endpoint override")


class Settings(BaseModel):
    """Runtime settings for a scan."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    alert_threshold: float = Field(default=ALERT_THRESHOLD, ge=0.0, le=1.0)
    max_concurrent_comparisons: int = Field(default=MAX_CONCURRENT_COMPARISONS, ge=1)
    frame_tolerance: float = Field(default=FRAME_ALIGNMENT_TOLERANCE, ge=0.0)
    duration_ratio_limit: float = Field(default=DURATION_RATIO_LIMIT, ge=1.0)
    duration_cap: float = Field(default=DURATION_MISMATCH_CAP, ge=0.0, le=1.0)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Load settings from the environment (and a .env file if present)."""
        load_dotenv(env_file)

        provider_name = os.getenv("COPYSCAN_PROVIDER", DEFAULT_PROVIDER).lower()
        key_var = "GEMINI_API_KEY" if provider_name == "gemini" else "OPENAI_API_KEY"

        provider = ProviderConfig(
            name=provider_name,
            api_key=os.getenv(key_var) or None,
            embedding_model=os.getenv("COPYSCAN_EMBEDDING_MODEL") or None,
            classifier_model=os.getenv("COPYSCAN_CLASSIFIER_MODEL") or None,
            timeout=float(os.getenv("COPYSCAN_PROVIDER_TIMEOUT", PROVIDER_TIMEOUT)),
            max_retries=int(os.getenv("COPYSCAN_PROVIDER_MAX_RETRIES", PROVIDER_MAX_RETRIES)),
            base_url=os.getenv("COPYSCAN_PROVIDER_BASE_URL") or None,
        )

        return cls(
            provider=provider,
            alert_threshold=float(os.getenv("COPYSCAN_ALERT_THRESHOLD", ALERT_THRESHOLD)),
            max_concurrent_comparisons=int(
                os.getenv("COPYSCAN_MAX_CONCURRENCY", MAX_CONCURRENT_COMPARISONS)
            ),
            frame_tolerance=float(os.getenv("COPYSCAN_FRAME_TOLERANCE", FRAME_ALIGNMENT_TOLERANCE)),
            duration_ratio_limit=float(
                os.getenv("COPYSCAN_DURATION_RATIO_LIMIT", DURATION_RATIO_LIMIT)
            ),
            duration_cap=float(os.getenv("COPYSCAN_DURATION_CAP", DURATION_MISMATCH_CAP)),
        )
