"""
Comparators, fusion and scan orchestration.
"""

from .embedding import SemanticEmbeddingProvider
from .fingerprint import AudioFingerprintComparator
from .frame_sampling import FrameSamplingComparator
from .fusion import SimilarityFusionEngine
from .perceptual_hash import PerceptualHashComparator
from .scan import ScanOrchestrator
