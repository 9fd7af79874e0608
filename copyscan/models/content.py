"""
Pydantic models for analyzed content: descriptors and their signal bundles.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "FrameSample",
    "BoundingBox",
    "FaceMatch",
    "MotionVector",
    "PerceptualHash",
    "AudioFingerprint",
    "ContentDescriptor",
    "PlatformScraperResult",
]


class FrameSample(BaseModel):
    """A frame hash sampled at a point in time."""

    model_config = ConfigDict(frozen=True)

    timestamp: float = Field(..., ge=0.0, description="Offset in seconds")
    frame_hash: str = Field(..., description="Hex perceptual hash of the frame")
    thumbnail: Optional[bytes] = Field(default=None, description="Encoded thumbnail")


class BoundingBox(BaseModel):
    """Face bounding box; units are consistent within one descriptor."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float = Field(..., ge=0.0)
    height: float = Field(..., ge=0.0)

    @property
    def area(self) -> float:
        return self.width * self.height

    def iou(self, other: "BoundingBox") -> float:
        """Intersection over union with another box."""
        left = max(self.x, other.x)
        top = max(self.y, other.y)
        right = min(self.x + self.width, other.x + other.width)
        bottom = min(self.y + self.height, other.y + other.height)

        intersection = max(0.0, right - left) * max(0.0, bottom - top)
        union = self.area + other.area - intersection
        if union <= 0:
            # two degenerate boxes at the same point
            return 1.0 if self == other else 0.0
        return intersection / union


class FaceMatch(BaseModel):
    """A detected face. Used for presence and position, never identity."""

    model_config = ConfigDict(frozen=True)

    confidence: float = Field(..., ge=0.0, le=1.0)
    bounding_box: BoundingBox
    embedding: Optional[List[float]] = Field(default=None, description="Face embedding vector")


class MotionVector(BaseModel):
    """Dominant motion at a frame."""

    model_config = ConfigDict(frozen=True)

    frame_index: int = Field(..., ge=0)
    direction: float = Field(..., ge=0.0, lt=360.0, description="Angle in degrees")
    magnitude: float = Field(..., ge=0.0)


class PerceptualHash(BaseModel):
    """Visual signal bundle for a piece of content."""

    model_config = ConfigDict(frozen=True)

    keyframes: List[str] = Field(default_factory=list, description="Keyframe hashes in order")
    ocr_text: List[str] = Field(default_factory=list, description="OCR text in order")
    faces: List[FaceMatch] = Field(default_factory=list)
    motion_vectors: List[MotionVector] = Field(default_factory=list)

    @field_validator("motion_vectors")
    @classmethod
    def validate_motion_order(cls, v):
        indices = [mv.frame_index for mv in v]
        if any(b <= a for a, b in zip(indices, indices[1:])):
            raise ValueError("Motion vector frame indices must be strictly increasing")
        return v


class AudioFingerprint(BaseModel):
    """Audio signal bundle for a piece of content."""

    model_config = ConfigDict(frozen=True)

    chromaprint: str = Field(default="", description="Chromaprint-style hex hash")
    spectrogram: Optional[List[List[float]]] = Field(
        default=None, description="Time-major spectrogram (frames x bins)"
    )
    embedding: Optional[List[float]] = Field(default=None, description="Audio embedding vector")
    duration_seconds: float = Field(..., ge=0.0)


class ContentDescriptor(BaseModel):
    """One piece of content (original or candidate) as analyzed so far."""

    model_config = ConfigDict(frozen=True)

    content_id: str = Field(..., description="Unique identifier")
    frame_samples: Optional[List[FrameSample]] = Field(default=None)
    perceptual_hash: Optional[PerceptualHash] = Field(default=None)
    audio_fingerprint: Optional[AudioFingerprint] = Field(default=None)
    text: Optional[str] = Field(default=None, description="Title/description used for semantic comparison")
    source_url: Optional[str] = Field(default=None, description="Where the content lives")

    @property
    def is_scorable(self) -> bool:
        """At least one of perceptual hash, audio fingerprint, frame samples is present."""
        return (
            self.perceptual_hash is not None
            or self.audio_fingerprint is not None
            or bool(self.frame_samples)
        )


class PlatformScraperResult(BaseModel):
    """A candidate found by a platform scraper."""

    model_config = ConfigDict(frozen=True)

    url: str
    platform: str
    title: str = ""
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    video_url: Optional[str] = None
    audio_url: Optional[str] = None
    uploader: Optional[str] = None
    upload_date: Optional[datetime] = None
    view_count: Optional[int] = Field(default=None, ge=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def candidate_text(self) -> str:
        """Text used for semantic comparison: description, falling back to title."""
        return self.description or self.title
