"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Dict, List, Optional

import pytest

from copyscan.core.errors import ProviderUnreachable
from copyscan.models.content import (
    AudioFingerprint,
    BoundingBox,
    ContentDescriptor,
    FaceMatch,
    FrameSample,
    MotionVector,
    PerceptualHash,
    PlatformScraperResult,
)
from copyscan.models.similarity import ClassificationKind, EmbeddingProviderTag, ScanCandidate
from copyscan.providers.base import EmbeddingBackend

KEYFRAME_A = "ffff0000ffff0000"
KEYFRAME_B = "0f0f0f0f0f0f0f0f"
KEYFRAME_INVERTED = "0000ffff0000ffff"
CHROMAPRINT = "deadbeef" "01234567" "89abcdef" "cafebabe"


class FakeBackend(EmbeddingBackend):
    """In-memory backend: fixed vectors per text and fixed classifier scores."""

    tag = EmbeddingProviderTag.OPENAI

    def __init__(self,
                 vectors: Optional[Dict[str, List[float]]] = None,
                 scores: Optional[Dict[ClassificationKind, float]] = None,
                 default_vector: List[float] = (1.0, 0.0),
                 fail_embed: bool = False,
                 fail_classify: bool = False,
                 delay: float = 0.0):
        self.vectors = vectors or {}
        self.scores = scores or {ClassificationKind.COMMENTARY: 0.1, ClassificationKind.REMIX: 0.1}
        self.default_vector = list(default_vector)
        self.fail_embed = fail_embed
        self.fail_classify = fail_classify
        self.delay = delay
        self.embed_calls = 0
        self.classify_calls = 0
        self.closed = False

    async def embed(self, text: str) -> List[float]:
        self.embed_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_embed:
            raise ProviderUnreachable("embedding service down", provider=self.tag.value)
        return list(self.vectors.get(text, self.default_vector))

    async def classify(self, original: str, candidate: str, kind: ClassificationKind) -> float:
        self.classify_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_classify:
            raise ProviderUnreachable("classifier down", provider=self.tag.value)
        return self.scores[kind]

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def perceptual_bundle():
    return PerceptualHash(
        keyframes=[KEYFRAME_A, KEYFRAME_B],
        ocr_text=["Subscribe for more", "Original upload"],
        faces=[FaceMatch(confidence=0.9, bounding_box=BoundingBox(x=10, y=10, width=50, height=50))],
        motion_vectors=[
            MotionVector(frame_index=0, direction=90.0, magnitude=2.0),
            MotionVector(frame_index=10, direction=180.0, magnitude=1.0),
        ],
    )


@pytest.fixture
def frame_samples():
    return [
        FrameSample(timestamp=0.0, frame_hash=KEYFRAME_A),
        FrameSample(timestamp=1.0, frame_hash=KEYFRAME_B),
        FrameSample(timestamp=2.0, frame_hash=KEYFRAME_A),
    ]


@pytest.fixture
def audio_fingerprint():
    return AudioFingerprint(chromaprint=CHROMAPRINT, duration_seconds=30.0)


@pytest.fixture
def original_descriptor(perceptual_bundle, frame_samples, audio_fingerprint):
    return ContentDescriptor(
        content_id="original-1",
        frame_samples=frame_samples,
        perceptual_hash=perceptual_bundle,
        audio_fingerprint=audio_fingerprint,
        text="My dance tutorial",
        source_url="https://example.com/original",
    )


def make_candidate(descriptor: ContentDescriptor,
                   url: str = "https://tiktok.example/v/1",
                   platform: str = "TikTok",
                   title: str = "My dance tutorial") -> ScanCandidate:
    return ScanCandidate(
        result=PlatformScraperResult(
            url=url,
            platform=platform,
            title=title,
            uploader="user123",
            thumbnail="https://tiktok.example/thumb/1.jpg",
        ),
        descriptor=descriptor,
    )
