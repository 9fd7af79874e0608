"""
copyscan - Copyright Infringement Similarity Engine

Multi-signal similarity scoring for creator content: perceptual hashing,
audio fingerprinting, frame sampling and semantic embeddings fused into a
single actionable score.
"""

__version__ = "1.0.0"
__author__ = "copyscan Team"
__description__ = "Copyright infringement similarity engine"
