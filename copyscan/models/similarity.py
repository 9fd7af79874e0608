"""
Pydantic models for similarity results, weighting policy and scan output.
"""

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from copyscan import config
from copyscan.core.errors import InvalidWeightConfig
from copyscan.models.content import ContentDescriptor, PlatformScraperResult

__all__ = [
    "SignalName",
    "ConfidenceLevel",
    "EmbeddingProviderTag",
    "EmbeddingStatus",
    "ClassificationKind",
    "AIEmbedding",
    "PerceptualHashComparison",
    "SimilarityBreakdown",
    "WeightConfig",
    "AdvancedOptions",
    "SignalSet",
    "AdvancedSimilarityScore",
    "CopyrightScanAlert",
    "ScanCandidate",
    "ScanFailure",
    "ScanMetadata",
    "ScanReport",
]


class SignalName(str, Enum):
    """Top-level signals combined by the fusion engine."""
    PERCEPTUAL_HASH = "perceptual_hash"
    AUDIO_FINGERPRINT = "audio_fingerprint"
    FRAME_SAMPLING = "frame_sampling"
    AI_EMBEDDING = "ai_embedding"


class ConfidenceLevel(str, Enum):
    """Enumeration of confidence levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EmbeddingProviderTag(str, Enum):
    """Supported embedding/classification backends."""
    OPENAI = "openai"
    GEMINI = "gemini"
    CUSTOM = "custom"


class EmbeddingStatus(str, Enum):
    """Whether an AI embedding was computed or is a low-confidence fallback."""
    COMPUTED = "computed"
    FALLBACK = "fallback"


class ClassificationKind(str, Enum):
    """Classifier questions asked of the backend."""
    COMMENTARY = "commentary"
    REMIX = "remix"


class AIEmbedding(BaseModel):
    """Semantic comparison result for one original/candidate text pair."""

    model_config = ConfigDict(frozen=True)

    semantic: List[float] = Field(..., description="Candidate embedding vector")
    semantic_similarity: float = Field(..., ge=0.0, le=1.0)
    commentary: float = Field(..., ge=0.0, le=1.0, description="Transformative commentary likelihood")
    remix: float = Field(..., ge=0.0, le=1.0, description="Remix/adaptation likelihood")
    provider: EmbeddingProviderTag
    status: EmbeddingStatus = Field(default=EmbeddingStatus.COMPUTED)

    @property
    def is_fallback(self) -> bool:
        return self.status == EmbeddingStatus.FALLBACK


class PerceptualHashComparison(BaseModel):
    """Four independent visual sub-scores; None means not computed."""

    model_config = ConfigDict(frozen=True)

    keyframes: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    ocr: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    faces: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    motion: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @property
    def has_scores(self) -> bool:
        return any(s is not None for s in (self.keyframes, self.ocr, self.faces, self.motion))


class SimilarityBreakdown(BaseModel):
    """The nine raw signals behind a score; None means not computed."""

    model_config = ConfigDict(frozen=True)

    keyframes: Optional[float] = None
    ocr: Optional[float] = None
    faces: Optional[float] = None
    motion: Optional[float] = None
    audio: Optional[float] = None
    frames: Optional[float] = None
    semantic: Optional[float] = None
    commentary: Optional[float] = None
    remix: Optional[float] = None


class WeightConfig(BaseModel):
    """Weighting policy for the fusion engine."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    perceptual_hash: float = Field(default=config.PERCEPTUAL_HASH_WEIGHT, ge=0.0, allow_inf_nan=False)
    audio_fingerprint: float = Field(default=config.AUDIO_FINGERPRINT_WEIGHT, ge=0.0, allow_inf_nan=False)
    frame_sampling: float = Field(default=config.FRAME_SAMPLING_WEIGHT, ge=0.0, allow_inf_nan=False)
    ai_embedding: float = Field(default=config.AI_EMBEDDING_WEIGHT, ge=0.0, allow_inf_nan=False)

    keyframes: float = Field(default=config.KEYFRAME_WEIGHT, ge=0.0, allow_inf_nan=False)
    ocr: float = Field(default=config.OCR_WEIGHT, ge=0.0, allow_inf_nan=False)
    faces: float = Field(default=config.FACE_WEIGHT, ge=0.0, allow_inf_nan=False)
    motion: float = Field(default=config.MOTION_WEIGHT, ge=0.0, allow_inf_nan=False)

    semantic: float = Field(default=config.SEMANTIC_WEIGHT, ge=0.0, allow_inf_nan=False)
    commentary: float = Field(default=config.COMMENTARY_WEIGHT, ge=0.0, allow_inf_nan=False)
    remix: float = Field(default=config.REMIX_WEIGHT, ge=0.0, allow_inf_nan=False)

    fallback_penalty: float = Field(default=config.FALLBACK_PENALTY, gt=0.0, le=1.0, allow_inf_nan=False)

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Any]] = None) -> "WeightConfig":
        """
        Build a config from caller-supplied overrides of the defaults.

        Raises:
            InvalidWeightConfig: unknown keys, negative, non-finite or non-numeric weights
        """
        try:
            return cls(**dict(overrides or {}))
        except ValidationError as e:
            raise InvalidWeightConfig(f"Invalid weight configuration: {e}") from e

    def top_level(self) -> Dict[str, float]:
        return {
            SignalName.PERCEPTUAL_HASH.value: self.perceptual_hash,
            SignalName.AUDIO_FINGERPRINT.value: self.audio_fingerprint,
            SignalName.FRAME_SAMPLING.value: self.frame_sampling,
            SignalName.AI_EMBEDDING.value: self.ai_embedding,
        }

    def perceptual(self) -> Dict[str, float]:
        return {"keyframes": self.keyframes, "ocr": self.ocr, "faces": self.faces, "motion": self.motion}

    def embedding(self) -> Dict[str, float]:
        return {"semantic": self.semantic, "commentary": self.commentary, "remix": self.remix}


class AdvancedOptions(BaseModel):
    """Request-level toggles for a scan."""

    model_config = ConfigDict(frozen=True)

    enable_perceptual_hash: bool = True
    enable_audio_fingerprint: bool = True
    enable_frame_sampling: bool = True
    enable_ai_embeddings: bool = True
    frame_intervals: Optional[List[float]] = Field(
        default=None, description="Keep only frame samples on multiples of these intervals (seconds)"
    )

    def enabled_signals(self) -> List[SignalName]:
        flags = [
            (SignalName.PERCEPTUAL_HASH, self.enable_perceptual_hash),
            (SignalName.AUDIO_FINGERPRINT, self.enable_audio_fingerprint),
            (SignalName.FRAME_SAMPLING, self.enable_frame_sampling),
            (SignalName.AI_EMBEDDING, self.enable_ai_embeddings),
        ]
        return [name for name, enabled in flags if enabled]

    def features_used(self) -> List[str]:
        labels = {
            SignalName.PERCEPTUAL_HASH: "Perceptual Hash",
            SignalName.AUDIO_FINGERPRINT: "Audio Fingerprinting",
            SignalName.FRAME_SAMPLING: "Frame Sampling",
            SignalName.AI_EMBEDDING: "AI Embeddings",
        }
        return [labels[name] for name in self.enabled_signals()]


class SignalSet(BaseModel):
    """Whichever comparator outputs are available for one pair."""

    model_config = ConfigDict(frozen=True)

    perceptual_hash: Optional[PerceptualHashComparison] = None
    audio_fingerprint: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    frame_sampling: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    ai_embedding: Optional[AIEmbedding] = None


class AdvancedSimilarityScore(BaseModel):
    """The fusion engine's output: overall score plus full breakdown."""

    model_config = ConfigDict(frozen=True)

    perceptual_hash: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    audio_fingerprint: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    frame_sampling: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    ai_embedding: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    overall: float = Field(..., ge=0.0, le=1.0)
    breakdown: SimilarityBreakdown
    ai_fallback: bool = Field(default=False, description="AI signal came from a provider fallback")
    effective_weights: Dict[str, float] = Field(
        default_factory=dict, description="Weights applied to present signals (sum to 1.0)"
    )


class CopyrightScanAlert(BaseModel):
    """A candidate whose overall score crossed the alert threshold."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    description: str
    platform: str
    infringing_url: str
    infringing_user: Optional[str] = None
    original_content_url: Optional[str] = None
    similarity_score: float = Field(..., ge=0.0, le=1.0)
    confidence_level: ConfidenceLevel
    advanced_similarity: AdvancedSimilarityScore
    screenshot_url: Optional[str] = None
    ai_embedding: Optional[AIEmbedding] = None


class ScanCandidate(BaseModel):
    """A scraped candidate paired with its extracted descriptor."""

    model_config = ConfigDict(frozen=True)

    result: PlatformScraperResult
    descriptor: ContentDescriptor


class ScanFailure(BaseModel):
    """A candidate that could not be scored."""

    url: str
    platform: str
    error: str = Field(..., description="Error type")
    message: str


class ScanMetadata(BaseModel):
    total_platforms_scanned: int = 0
    total_content_analyzed: int = 0
    analysis_time_ms: float = 0.0
    features_used: List[str] = Field(default_factory=list)


class ScanReport(BaseModel):
    """Alerts and metadata for one scan."""

    alerts: List[CopyrightScanAlert] = Field(default_factory=list)
    failures: List[ScanFailure] = Field(default_factory=list)
    metadata: ScanMetadata = Field(default_factory=ScanMetadata)
