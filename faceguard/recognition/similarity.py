"""
Template similarity module.

Fuses three measures computed on two normalized face images:
- Histogram correlation (256-bin intensity histograms)
- Normalized cross-correlation template matching
- Global structural similarity (SSIM)

Each measure is scaled to 0-100. Their spread drives the confidence,
so a single fooled measure lowers confidence instead of forcing a match.
"""

import math
from typing import Dict

import cv2
import numpy as np

from ..errors import InvalidTemplateError
from ..models import ComparisonResult
from .templates import decode_template_image, deserialize_template

HISTOGRAM_WEIGHT = 0.3
TEMPLATE_MATCH_WEIGHT = 0.4
STRUCTURAL_WEIGHT = 0.3

# SSIM stabilizers for the 8-bit range: (0.01*255)^2 and (0.03*255)^2
SSIM_C1 = 6.5025
SSIM_C2 = 58.5225


def _finite(value: float) -> float:
    value = float(value)
    return value if math.isfinite(value) else 0.0


def histogram_similarity(image_a: np.ndarray, image_b: np.ndarray) -> float:
    """Correlation of intensity histograms, 0-100 (negative correlation floors at 0)."""
    hist_a = cv2.calcHist([image_a], [0], None, [256], [0, 256])
    hist_b = cv2.calcHist([image_b], [0], None, [256], [0, 256])
    cv2.normalize(hist_a, hist_a)
    cv2.normalize(hist_b, hist_b)

    correlation = _finite(cv2.compareHist(hist_a, hist_b, cv2.HISTCMP_CORREL))
    return max(0.0, min(100.0, correlation * 100.0))


def template_match_similarity(image_a: np.ndarray, image_b: np.ndarray) -> float:
    """Best normalized correlation coefficient between the images, 0-100."""
    result = cv2.matchTemplate(image_a, image_b, cv2.TM_CCOEFF_NORMED)
    _, max_val, _, _ = cv2.minMaxLoc(result)
    return max(0.0, min(100.0, _finite(max_val) * 100.0))


def structural_similarity(image_a: np.ndarray, image_b: np.ndarray) -> float:
    """
    Global SSIM over the whole image, 0-100.

    Uses image-wide means, variances and covariance rather than a sliding
    window.
    """
    a = image_a.astype(np.float64)
    b = image_b.astype(np.float64)

    mu_a = a.mean()
    mu_b = b.mean()
    var_a = a.var()
    var_b = b.var()
    covariance = ((a - mu_a) * (b - mu_b)).mean()

    numerator = (2 * mu_a * mu_b + SSIM_C1) * (2 * covariance + SSIM_C2)
    denominator = (mu_a ** 2 + mu_b ** 2 + SSIM_C1) * (var_a + var_b + SSIM_C2)

    ssim = _finite(numerator / denominator)
    return max(0.0, min(100.0, ssim * 100.0))


def fuse_scores(histogram: float, template_match: float, structural: float) -> Dict[str, float]:
    """
    Combine component scores.

    Returns:
        Dict with similarity, distance and confidence (all 0-100)
    """
    components = [_finite(histogram), _finite(template_match), _finite(structural)]
    similarity = (
        components[0] * HISTOGRAM_WEIGHT +
        components[1] * TEMPLATE_MATCH_WEIGHT +
        components[2] * STRUCTURAL_WEIGHT
    )
    spread = float(np.std(components))

    return {
        'similarity': round(similarity, 6),
        'distance': round(100.0 - similarity, 6),
        'confidence': max(0.0, 100.0 - spread * 10.0),
    }


def meets_threshold(similarity: float, threshold: float) -> bool:
    """Inclusive match boundary."""
    return similarity >= threshold


def align(image_a: np.ndarray, image_b: np.ndarray) -> np.ndarray:
    """Resize the second image to the first one's size when they differ."""
    if image_a.shape[:2] == image_b.shape[:2]:
        return image_b
    height, width = image_a.shape[:2]
    return cv2.resize(image_b, (width, height), interpolation=cv2.INTER_AREA)


def compare_images(image_a: np.ndarray, image_b: np.ndarray, threshold: float) -> ComparisonResult:
    """Compare two normalized grayscale face images."""
    image_b = align(image_a, image_b)

    histogram = histogram_similarity(image_a, image_b)
    template_match = template_match_similarity(image_a, image_b)
    structural = structural_similarity(image_a, image_b)
    fused = fuse_scores(histogram, template_match, structural)

    return ComparisonResult(
        success=True,
        similarity=fused['similarity'],
        distance=fused['distance'],
        confidence=fused['confidence'],
        is_match=meets_threshold(fused['similarity'], threshold),
        metadata={
            'histogram_similarity': histogram,
            'template_match_similarity': template_match,
            'structural_similarity': structural,
            'threshold': threshold,
        },
    )


def compare_payloads(payload_a: bytes, payload_b: bytes, threshold: float) -> ComparisonResult:
    """
    Compare two serialized templates.

    Args:
        payload_a: Reference template payload
        payload_b: Template payload aligned to the reference
        threshold: Similarity required for a match

    Returns:
        ComparisonResult

    Raises:
        InvalidTemplateError: Either payload is malformed
    """
    image_a = decode_template_image(deserialize_template(payload_a))
    image_b = decode_template_image(deserialize_template(payload_b))
    return compare_images(image_a, image_b, threshold)


def invalid_template_result(error: InvalidTemplateError, threshold: float) -> ComparisonResult:
    return ComparisonResult(
        success=False,
        similarity=0.0,
        distance=100.0,
        confidence=0.0,
        is_match=False,
        metadata={'threshold': threshold},
        error_kind=error.kind,
        message=error.message,
    )
