"""
Perceptual image hashing for keyframes and sampled frames.

Hashes are hex strings of ``hash_size * hash_size`` bits. Comparison is by
normalized Hamming distance; hashes of different bit lengths come from
different providers or settings and are never compared.
"""

from typing import Callable, Iterable, List, Tuple, Union

import cv2
import numpy as np
import structlog
from PIL import Image

from copyscan.core.errors import FormatMismatch
from copyscan.models.content import FrameSample

logger = structlog.get_logger()

ImageSource = Union[str, Image.Image]

DEFAULT_HASH_SIZE = 8


def _load_grayscale(source: ImageSource) -> Image.Image:
    if isinstance(source, Image.Image):
        return source.convert('L')
    return Image.open(source).convert('L')


def _bits_to_hex(bits: np.ndarray) -> str:
    hash_bits = ''.join('1' if b else '0' for b in bits.flatten())
    return hex(int(hash_bits, 2))[2:].rjust(len(hash_bits) // 4, '0')


def dhash(source: ImageSource, hash_size: int = DEFAULT_HASH_SIZE) -> str:
    """
    Generate difference hash (dHash) for an image.
    Good for detecting duplicates with minor modifications.
    """
    try:
        image = _load_grayscale(source)

        # Resize to hash_size + 1 x hash_size
        image = image.resize((hash_size + 1, hash_size), Image.Resampling.LANCZOS)
        pixels = np.array(image)

        # Horizontal gradient
        diff = pixels[:, 1:] > pixels[:, :-1]

        hash_hex = _bits_to_hex(diff)
        logger.debug("Generated dHash", hash_size=hash_size)
        return hash_hex

    except Exception as e:
        logger.error("Failed to generate dHash", error=str(e))
        raise


def phash(source: ImageSource, hash_size: int = DEFAULT_HASH_SIZE) -> str:
    """
    Generate perceptual hash (pHash) using DCT.
    Very robust for detecting duplicates with various modifications.
    """
    try:
        image = _load_grayscale(source)

        # Resize to hash_size * 4 for better DCT
        image = image.resize((hash_size * 4, hash_size * 4), Image.Resampling.LANCZOS)
        pixels = np.array(image, dtype=np.float32)

        dct = cv2.dct(pixels)

        # Top-left corner holds the low frequencies
        dct_low = dct[:hash_size, :hash_size]
        median = np.median(dct_low)

        hash_hex = _bits_to_hex(dct_low > median)
        logger.debug("Generated pHash", hash_size=hash_size)
        return hash_hex

    except Exception as e:
        logger.error("Failed to generate pHash", error=str(e))
        raise


def ahash(source: ImageSource, hash_size: int = DEFAULT_HASH_SIZE) -> str:
    """
    Generate average hash (aHash).
    Simple and fast, good for basic duplicate detection.
    """
    try:
        image = _load_grayscale(source)
        image = image.resize((hash_size, hash_size), Image.Resampling.LANCZOS)
        pixels = np.array(image)

        hash_hex = _bits_to_hex(pixels > np.mean(pixels))
        logger.debug("Generated aHash", hash_size=hash_size)
        return hash_hex

    except Exception as e:
        logger.error("Failed to generate aHash", error=str(e))
        raise


def keyframe_hashes(sources: Iterable[ImageSource],
                    hash_fn: Callable[..., str] = dhash,
                    hash_size: int = DEFAULT_HASH_SIZE) -> List[str]:
    """Hash keyframes in order, ready for ``PerceptualHash.keyframes``."""
    return [hash_fn(source, hash_size) for source in sources]


def sample_frames(frames: Iterable[Tuple[float, ImageSource]],
                  hash_fn: Callable[..., str] = phash,
                  hash_size: int = DEFAULT_HASH_SIZE) -> List[FrameSample]:
    """
    Build frame samples from (timestamp, image) pairs.

    Every sample uses the same hash function and size, so the result is
    comparable with other samples built the same way.
    """
    samples = [
        FrameSample(timestamp=timestamp, frame_hash=hash_fn(source, hash_size))
        for timestamp, source in frames
    ]
    logger.debug("Sampled frames", count=len(samples), hash_size=hash_size)
    return samples


def hash_bit_length(hash_hex: str) -> int:
    """Number of bits encoded by a hex hash string."""
    return len(hash_hex) * 4


def _parse_hex(hash_hex: str) -> int:
    try:
        return int(hash_hex, 16)
    except ValueError:
        raise FormatMismatch(f"Hash is not a hex string: {hash_hex!r}")


def hamming_distance(hash1: str, hash2: str) -> int:
    """
    Calculate Hamming distance between two hex hash strings.

    Raises:
        FormatMismatch: hashes differ in bit length or are not hex
    """
    if len(hash1) != len(hash2):
        raise FormatMismatch(
            f"Hash bit lengths differ: {hash_bit_length(hash1)} vs {hash_bit_length(hash2)}"
        )
    if not hash1:
        raise FormatMismatch("Cannot compare empty hashes")

    return bin(_parse_hex(hash1) ^ _parse_hex(hash2)).count('1')


def hash_similarity(hash1: str, hash2: str) -> float:
    """Similarity in [0, 1]: 1 - distance / bit_length."""
    distance = hamming_distance(hash1, hash2)
    return 1.0 - (distance / hash_bit_length(hash1))


def ensure_uniform_bit_length(*hash_groups) -> int:
    """
    Check that every hash across the given groups has the same bit length.

    Returns:
        The shared bit length, or 0 when all groups are empty

    Raises:
        FormatMismatch: any two hashes differ in bit length
    """
    lengths = {hash_bit_length(h) for group in hash_groups for h in group}
    if len(lengths) > 1:
        raise FormatMismatch(f"Mixed hash bit lengths: {sorted(lengths)}")
    for group in hash_groups:
        for h in group:
            _parse_hex(h)
    return lengths.pop() if lengths else 0
