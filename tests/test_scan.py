import asyncio

import pytest

from conftest import KEYFRAME_INVERTED, FakeBackend, make_candidate
from copyscan.config import ProviderConfig, Settings
from copyscan.core.errors import FormatMismatch, InvalidWeightConfig
from copyscan.models.content import ContentDescriptor, PerceptualHash
from copyscan.models.similarity import AdvancedOptions, ClassificationKind, ConfidenceLevel
from copyscan.providers.base import UnavailableBackend
from copyscan.services.embedding import SemanticEmbeddingProvider
from copyscan.services.scan import ScanOrchestrator, confidence_for

UNRELATED_TEXT = "unrelated cooking show"


def _orchestrator(backend, **settings):
    return ScanOrchestrator(
        settings=Settings(**settings),
        embedding_provider=SemanticEmbeddingProvider(backend),
    )


def _copy(descriptor, content_id="candidate-1"):
    return descriptor.model_copy(update={"content_id": content_id, "source_url": None})


def _dissimilar():
    return ContentDescriptor(
        content_id="candidate-2",
        perceptual_hash=PerceptualHash(keyframes=[KEYFRAME_INVERTED]),
        text=UNRELATED_TEXT,
    )


def test_confidence_levels():
    assert confidence_for(0.9) == ConfidenceLevel.HIGH
    assert confidence_for(0.9, ai_fallback=True) == ConfidenceLevel.MEDIUM
    assert confidence_for(0.75) == ConfidenceLevel.MEDIUM
    assert confidence_for(0.65) == ConfidenceLevel.LOW


@pytest.mark.asyncio
async def test_compare_identical_content(original_descriptor, fake_backend):
    score = await _orchestrator(fake_backend).compare(original_descriptor, _copy(original_descriptor))

    assert score.perceptual_hash == 1.0
    assert score.audio_fingerprint == 1.0
    assert score.frame_sampling == 1.0
    assert score.ai_embedding == pytest.approx(0.95)
    assert score.overall == pytest.approx(0.985)
    assert not score.ai_fallback


@pytest.mark.asyncio
async def test_self_similarity_is_one(original_descriptor):
    backend = FakeBackend(scores={ClassificationKind.COMMENTARY: 0.0, ClassificationKind.REMIX: 0.0})
    score = await _orchestrator(backend).compare(original_descriptor, _copy(original_descriptor))

    breakdown = score.breakdown
    for value in (breakdown.keyframes, breakdown.ocr, breakdown.faces, breakdown.motion,
                  breakdown.audio, breakdown.frames, breakdown.semantic):
        assert value == pytest.approx(1.0)
    assert score.overall == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_comparison_is_symmetric(original_descriptor):
    backend = FakeBackend(vectors={UNRELATED_TEXT: [0.0, 1.0]})
    orchestrator = _orchestrator(backend)
    forward = await orchestrator.compare(original_descriptor, _dissimilar())
    backward = await orchestrator.compare(_dissimilar(), original_descriptor)

    assert forward.perceptual_hash == backward.perceptual_hash
    assert forward.audio_fingerprint == backward.audio_fingerprint
    assert forward.frame_sampling == backward.frame_sampling
    assert forward.ai_embedding == backward.ai_embedding


@pytest.mark.asyncio
async def test_compare_respects_disabled_signals(original_descriptor, fake_backend):
    options = AdvancedOptions(enable_ai_embeddings=False, enable_audio_fingerprint=False)
    score = await _orchestrator(fake_backend).compare(original_descriptor, _copy(original_descriptor), options)

    assert fake_backend.embed_calls == 0
    assert score.ai_embedding is None
    assert score.breakdown.semantic is None
    assert score.audio_fingerprint is None
    assert score.overall == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_compare_raises_format_mismatch(original_descriptor, fake_backend):
    broken = ContentDescriptor(content_id="broken", perceptual_hash=PerceptualHash(keyframes=["ff"]))
    with pytest.raises(FormatMismatch):
        await _orchestrator(fake_backend).compare(original_descriptor, broken)


@pytest.mark.asyncio
async def test_scan_collects_alerts_and_failures(original_descriptor):
    backend = FakeBackend(vectors={UNRELATED_TEXT: [0.0, 1.0]})
    candidates = [
        make_candidate(_copy(original_descriptor)),
        make_candidate(_dissimilar(), url="https://youtube.example/watch/2", platform="YouTube",
                       title=UNRELATED_TEXT),
        make_candidate(
            ContentDescriptor(content_id="broken", perceptual_hash=PerceptualHash(keyframes=["ff"])),
            url="https://instagram.example/p/3",
            platform="Instagram",
        ),
        make_candidate(ContentDescriptor(content_id="text-only", text="caption"),
                       url="https://tiktok.example/v/4"),
    ]

    report = await _orchestrator(backend).scan(original_descriptor, candidates)

    assert len(report.alerts) == 1
    alert = report.alerts[0]
    assert alert.id.startswith("alert-")
    assert alert.platform == "TikTok"
    assert alert.description == "Potential copyright match found on TikTok"
    assert alert.infringing_url == "https://tiktok.example/v/1"
    assert alert.infringing_user == "user123"
    assert alert.original_content_url == "https://example.com/original"
    assert alert.screenshot_url == "https://tiktok.example/thumb/1.jpg"
    assert alert.similarity_score == alert.advanced_similarity.overall
    assert alert.confidence_level == ConfidenceLevel.HIGH
    assert alert.ai_embedding is not None

    failures = {f.url: f.error for f in report.failures}
    assert failures == {
        "https://instagram.example/p/3": "FormatMismatch",
        "https://tiktok.example/v/4": "UnscorableContent",
    }

    assert report.metadata.total_platforms_scanned == 3
    assert report.metadata.total_content_analyzed == 2
    assert report.metadata.analysis_time_ms >= 0
    assert report.metadata.features_used == [
        "Perceptual Hash", "Audio Fingerprinting", "Frame Sampling", "AI Embeddings",
    ]


@pytest.mark.asyncio
async def test_dissimilar_candidate_below_threshold(original_descriptor):
    backend = FakeBackend(vectors={UNRELATED_TEXT: [0.0, 1.0]})
    orchestrator = _orchestrator(backend)

    score = await orchestrator.compare(original_descriptor, _dissimilar())
    # keyframes half match; the candidate has no OCR text or faces
    assert score.perceptual_hash == pytest.approx(0.25)
    assert score.ai_embedding == pytest.approx(0.45)
    assert score.overall == pytest.approx(0.35)

    report = await orchestrator.scan(original_descriptor, [make_candidate(_dissimilar())])
    assert report.alerts == []
    assert report.failures == []


@pytest.mark.asyncio
async def test_threshold_comes_from_settings(original_descriptor, fake_backend):
    orchestrator = _orchestrator(fake_backend, alert_threshold=0.99)
    report = await orchestrator.scan(original_descriptor, [make_candidate(_copy(original_descriptor))])
    assert report.alerts == []


@pytest.mark.asyncio
async def test_invalid_weights_fail_before_any_work(original_descriptor, fake_backend):
    zero = {"perceptual_hash": 0, "audio_fingerprint": 0, "frame_sampling": 0, "ai_embedding": 0}
    with pytest.raises(InvalidWeightConfig):
        await _orchestrator(fake_backend).scan(
            original_descriptor, [make_candidate(_copy(original_descriptor))], weights=zero
        )
    assert fake_backend.embed_calls == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("weights", [
    {"keyframes": 0, "ocr": 0, "faces": 0, "motion": 0},
    {"semantic": 0, "commentary": 0, "remix": 0},
])
async def test_zero_sub_weights_fail_before_any_work(original_descriptor, fake_backend, weights):
    with pytest.raises(InvalidWeightConfig):
        await _orchestrator(fake_backend).scan(
            original_descriptor, [make_candidate(_copy(original_descriptor))], weights=weights
        )
    assert fake_backend.embed_calls == 0
    assert fake_backend.classify_calls == 0


@pytest.mark.asyncio
async def test_format_mismatch_cancels_provider_calls(original_descriptor):
    class CountingBackend(FakeBackend):
        def __init__(self):
            super().__init__(delay=0.2)
            self.finished = 0

        async def embed(self, text):
            vector = await super().embed(text)
            self.finished += 1
            return vector

        async def classify(self, original, candidate, kind):
            score = await super().classify(original, candidate, kind)
            self.finished += 1
            return score

    backend = CountingBackend()
    broken = ContentDescriptor(
        content_id="broken", perceptual_hash=PerceptualHash(keyframes=["ff"]), text="My dance tutorial"
    )
    report = await _orchestrator(backend).scan(original_descriptor, [make_candidate(broken)])

    assert [f.error for f in report.failures] == ["FormatMismatch"]
    await asyncio.sleep(0.3)
    assert backend.finished == 0


@pytest.mark.asyncio
async def test_unscorable_original_yields_empty_report(fake_backend):
    original = ContentDescriptor(content_id="text-only", text="caption")
    report = await _orchestrator(fake_backend).scan(original, [make_candidate(_dissimilar())])
    assert report.alerts == []
    assert report.metadata.total_content_analyzed == 0
    assert fake_backend.embed_calls == 0


@pytest.mark.asyncio
async def test_concurrency_is_bounded(original_descriptor):
    class TrackingBackend(FakeBackend):
        def __init__(self):
            super().__init__(delay=0.01)
            self.active = 0
            self.max_active = 0

        async def embed(self, text):
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            try:
                return await super().embed(text)
            finally:
                self.active -= 1

    backend = TrackingBackend()
    candidates = [
        make_candidate(_copy(original_descriptor, f"candidate-{i}"), url=f"https://tiktok.example/v/{i}")
        for i in range(4)
    ]
    report = await _orchestrator(backend, max_concurrent_comparisons=1).scan(original_descriptor, candidates)

    assert len(report.alerts) == 4
    # one comparison at a time, each embedding both texts concurrently
    assert backend.max_active == 2


@pytest.mark.asyncio
async def test_from_settings_without_key_degrades_to_fallback(original_descriptor):
    settings = Settings(provider=ProviderConfig(name="openai", api_key=None))
    orchestrator = ScanOrchestrator.from_settings(settings)
    assert isinstance(orchestrator.embedding_provider.backend, UnavailableBackend)

    report = await orchestrator.scan(original_descriptor, [make_candidate(_copy(original_descriptor))])
    alert = report.alerts[0]
    assert alert.advanced_similarity.ai_fallback
    assert alert.confidence_level == ConfidenceLevel.MEDIUM
    await orchestrator.close()


@pytest.mark.asyncio
async def test_close_releases_backend(fake_backend):
    await _orchestrator(fake_backend).close()
    assert fake_backend.closed


def test_scan_is_usable_from_sync_code(original_descriptor, fake_backend):
    report = asyncio.run(
        _orchestrator(fake_backend).scan(original_descriptor, [make_candidate(_copy(original_descriptor))])
    )
    assert len(report.alerts) == 1
