"""
Scan orchestration: compares an original against scraped candidates and
collects alerts for the ones that cross the alert threshold.
"""

import asyncio
import time
from typing import Iterable, List, Optional, Union

import structlog

from copyscan import config
from copyscan.config import Settings
from copyscan.core.errors import FormatMismatch
from copyscan.core.utils import new_alert_id
from copyscan.models.content import ContentDescriptor
from copyscan.models.similarity import (
    AdvancedOptions,
    AdvancedSimilarityScore,
    AIEmbedding,
    ConfidenceLevel,
    CopyrightScanAlert,
    ScanCandidate,
    ScanFailure,
    ScanMetadata,
    ScanReport,
    SignalSet,
)
from copyscan.providers.factory import BackendFactory
from copyscan.services.embedding import SemanticEmbeddingProvider
from copyscan.services.fingerprint import AudioFingerprintComparator
from copyscan.services.frame_sampling import FrameSamplingComparator
from copyscan.services.fusion import SimilarityFusionEngine, WeightsInput
from copyscan.services.perceptual_hash import PerceptualHashComparator

logger = structlog.get_logger()


def confidence_for(score: float, ai_fallback: bool = False) -> ConfidenceLevel:
    """Map an overall score to a confidence level; fallback results top out at medium."""
    if score >= config.HIGH_CONFIDENCE_SCORE and not ai_fallback:
        return ConfidenceLevel.HIGH
    if score >= config.MEDIUM_CONFIDENCE_SCORE:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


async def _skipped():
    return None


class ScanOrchestrator:
    """Fans candidate comparisons out across the comparators and fusion engine."""

    def __init__(self,
                 settings: Optional[Settings] = None,
                 embedding_provider: Optional[SemanticEmbeddingProvider] = None,
                 fusion_engine: Optional[SimilarityFusionEngine] = None):
        self.settings = settings or Settings()
        self.embedding_provider = embedding_provider
        self.fusion = fusion_engine or SimilarityFusionEngine()
        self.perceptual = PerceptualHashComparator()
        self.audio = AudioFingerprintComparator(
            duration_ratio_limit=self.settings.duration_ratio_limit,
            duration_cap=self.settings.duration_cap,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ScanOrchestrator":
        """Build an orchestrator with the configured embedding backend."""
        settings = settings or Settings.from_env()
        backend = BackendFactory.create(settings.provider)
        provider = SemanticEmbeddingProvider(backend, timeout=settings.provider.timeout)
        return cls(settings=settings, embedding_provider=provider)

    async def close(self):
        if self.embedding_provider is not None:
            await self.embedding_provider.backend.close()

    def _semantic_call(self, original: ContentDescriptor, candidate_text: Optional[str],
                       options: AdvancedOptions):
        if not options.enable_ai_embeddings or self.embedding_provider is None:
            return _skipped()
        if not original.text or not candidate_text:
            logger.debug("Semantic comparison skipped, text missing",
                         has_original=bool(original.text), has_candidate=bool(candidate_text))
            return _skipped()
        return self.embedding_provider.compare(original.text, candidate_text)

    async def collect_signals(self,
                              original: ContentDescriptor,
                              candidate: ContentDescriptor,
                              options: AdvancedOptions,
                              candidate_text: Optional[str] = None) -> SignalSet:
        """
        Run every enabled comparator for one pair.

        CPU-bound comparators run in worker threads while the semantic
        provider call is awaited concurrently. If any branch raises, the
        rest are cancelled before the error propagates.

        Raises:
            FormatMismatch: the two descriptors carry incompatible data
        """
        text = candidate_text if candidate_text is not None else candidate.text

        frames = FrameSamplingComparator(
            tolerance=self.settings.frame_tolerance,
            intervals=options.frame_intervals,
        )

        tasks = [
            asyncio.ensure_future(call) for call in (
                asyncio.to_thread(self.perceptual.compare, original.perceptual_hash, candidate.perceptual_hash)
                if options.enable_perceptual_hash else _skipped(),
                asyncio.to_thread(self.audio.compare, original.audio_fingerprint, candidate.audio_fingerprint)
                if options.enable_audio_fingerprint else _skipped(),
                asyncio.to_thread(frames.compare, original.frame_samples, candidate.frame_samples)
                if options.enable_frame_sampling else _skipped(),
                self._semantic_call(original, text, options),
            )
        ]
        try:
            perceptual, audio, frame_score, ai = await asyncio.gather(*tasks)
        except BaseException:
            # one failed comparator makes the pair unscorable; stop the provider calls
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return SignalSet(
            perceptual_hash=perceptual,
            audio_fingerprint=audio,
            frame_sampling=frame_score,
            ai_embedding=ai,
        )

    async def compare(self,
                      original: ContentDescriptor,
                      candidate: ContentDescriptor,
                      options: Optional[AdvancedOptions] = None,
                      weights: WeightsInput = None,
                      candidate_text: Optional[str] = None) -> AdvancedSimilarityScore:
        """
        Compare one candidate against the original.

        Args:
            original: The creator's content
            candidate: The scraped content
            options: Signal toggles; disabled signals are not computed
            weights: Weight overrides for this comparison
            candidate_text: Text for semantic comparison (defaults to ``candidate.text``)

        Raises:
            FormatMismatch: the two descriptors carry incompatible data
            InvalidWeightConfig: invalid weights
        """
        signals = await self.collect_signals(original, candidate, options or AdvancedOptions(), candidate_text)
        return self.fusion.fuse(signals, weights)

    def _alert(self, original: ContentDescriptor, candidate: ScanCandidate,
               score: AdvancedSimilarityScore, ai: Optional[AIEmbedding]) -> CopyrightScanAlert:
        result = candidate.result
        return CopyrightScanAlert(
            id=new_alert_id(),
            description=f"Potential copyright match found on {result.platform}",
            platform=result.platform,
            infringing_url=result.url,
            infringing_user=result.uploader,
            original_content_url=original.source_url,
            similarity_score=score.overall,
            confidence_level=confidence_for(score.overall, score.ai_fallback),
            advanced_similarity=score,
            screenshot_url=result.thumbnail,
            ai_embedding=ai,
        )

    async def _evaluate(self, original: ContentDescriptor, candidate: ScanCandidate,
                        options: AdvancedOptions, engine: SimilarityFusionEngine,
                        threshold: float) -> Union[CopyrightScanAlert, ScanFailure, None]:
        result = candidate.result
        if not candidate.descriptor.is_scorable:
            logger.warning("Skipping candidate without scorable signals",
                           url=result.url, platform=result.platform)
            return ScanFailure(
                url=result.url,
                platform=result.platform,
                error="UnscorableContent",
                message="Candidate has no perceptual hash, audio fingerprint or frame samples",
            )

        text = candidate.descriptor.text or result.candidate_text()
        try:
            signals = await self.collect_signals(original, candidate.descriptor, options, candidate_text=text)
        except FormatMismatch as e:
            logger.error("Candidate could not be compared",
                         url=result.url, platform=result.platform, error=str(e))
            return ScanFailure(
                url=result.url,
                platform=result.platform,
                error=type(e).__name__,
                message=str(e),
            )

        score = engine.fuse(signals)
        logger.info("Candidate scored",
                    url=result.url,
                    platform=result.platform,
                    overall=round(score.overall, 4),
                    ai_fallback=score.ai_fallback)

        if score.overall < threshold:
            return None
        return self._alert(original, candidate, score, signals.ai_embedding)

    async def scan(self,
                   original: ContentDescriptor,
                   candidates: Iterable[ScanCandidate],
                   options: Optional[AdvancedOptions] = None,
                   weights: WeightsInput = None) -> ScanReport:
        """
        Compare the original against every candidate.

        Returns:
            ScanReport with alerts at or above the alert threshold, candidates
            that could not be scored, and scan metadata

        Raises:
            InvalidWeightConfig: weights are invalid for the enabled signals
        """
        options = options or AdvancedOptions()
        engine = self.fusion if weights is None else SimilarityFusionEngine(weights)
        engine.validate(options.enabled_signals())

        candidates = list(candidates)
        threshold = self.settings.alert_threshold
        started = time.perf_counter()

        logger.info("Starting copyright scan",
                    content_id=original.content_id,
                    candidates=len(candidates),
                    features=options.features_used())

        if not original.is_scorable:
            logger.error("Original content has no scorable signals", content_id=original.content_id)
            return ScanReport(metadata=self._metadata(candidates, 0, started, options))

        semaphore = asyncio.Semaphore(self.settings.max_concurrent_comparisons)

        async def bounded(candidate: ScanCandidate):
            async with semaphore:
                return await self._evaluate(original, candidate, options, engine, threshold)

        outcomes = await asyncio.gather(*(bounded(c) for c in candidates))

        alerts: List[CopyrightScanAlert] = []
        failures: List[ScanFailure] = []
        for outcome in outcomes:
            if isinstance(outcome, CopyrightScanAlert):
                alerts.append(outcome)
            elif isinstance(outcome, ScanFailure):
                failures.append(outcome)

        alerts.sort(key=lambda alert: alert.similarity_score, reverse=True)
        metadata = self._metadata(candidates, len(candidates) - len(failures), started, options)

        logger.info("Copyright scan completed",
                    content_id=original.content_id,
                    alerts=len(alerts),
                    failures=len(failures),
                    analysis_time_ms=round(metadata.analysis_time_ms, 1))

        return ScanReport(alerts=alerts, failures=failures, metadata=metadata)

    @staticmethod
    def _metadata(candidates: List[ScanCandidate], analyzed: int, started: float,
                  options: AdvancedOptions) -> ScanMetadata:
        return ScanMetadata(
            total_platforms_scanned=len({c.result.platform for c in candidates}),
            total_content_analyzed=analyzed,
            analysis_time_ms=(time.perf_counter() - started) * 1000.0,
            features_used=options.features_used(),
        )
