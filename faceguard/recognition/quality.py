"""
Face quality assessment module.

Evaluates face quality based on:
- Brightness (mean intensity, ideal band 40-80%)
- Contrast (intensity standard deviation)
- Sharpness (Laplacian variance)
- Size (pixel area, ideal band 80x80 to 300x300)
"""

from typing import List

import cv2
import numpy as np

from ..config import Config
from ..errors import PoorQualityError
from ..models import FaceRegion, QualityReport
from .preprocessing import crop_face, to_gray

BRIGHTNESS_WEIGHT = 0.2
CONTRAST_WEIGHT = 0.2
SHARPNESS_WEIGHT = 0.3
SIZE_WEIGHT = 0.3

# Sub-scores below this are listed as issues.
ISSUE_LEVEL = 50.0


def measure_brightness_contrast(gray: np.ndarray) -> tuple[float, float]:
    """
    Measure brightness and contrast as percentages of the 8-bit range.

    Args:
        gray: Grayscale image

    Returns:
        Tuple of (brightness %, contrast %)
    """
    if gray.size == 0:
        return 0.0, 0.0

    mean, std = cv2.meanStdDev(gray)
    brightness = float(mean[0][0]) / 255.0 * 100.0
    contrast = float(std[0][0]) / 255.0 * 100.0
    return brightness, contrast


def compute_blur_score(gray_face: np.ndarray) -> float:
    """
    Compute blur score using Laplacian variance.

    Higher values indicate sharper images.

    Args:
        gray_face: Grayscale face image

    Returns:
        Blur score (Laplacian variance)
    """
    if gray_face.size == 0:
        return 0.0
    return float(cv2.Laplacian(gray_face, cv2.CV_64F).var())


def brightness_score(brightness: float) -> float:
    """Score brightness %: 100 inside 40-80, linear decay outside."""
    if 40.0 <= brightness <= 80.0:
        return 100.0
    if brightness < 40.0:
        return max(0.0, brightness / 40.0 * 100.0)
    return max(0.0, (100.0 - brightness) / 20.0 * 100.0)


def contrast_score(contrast: float) -> float:
    """Score contrast %: 30% standard deviation or more is full marks."""
    return max(0.0, min(100.0, contrast / 30.0 * 100.0))


def sharpness_score(laplacian_variance: float) -> float:
    return max(0.0, min(100.0, laplacian_variance / 1000.0 * 100.0))


def size_score(area: int, config: Config) -> float:
    """
    Score face pixel area.

    100 inside the ideal band; quadratic decay below it, gentle linear
    decay (floored at 50) above it.
    """
    low = config.ideal_face_area_min
    high = config.ideal_face_area_max

    if low <= area <= high:
        return 100.0
    if area < low:
        return 100.0 * (area / low) ** 2
    return max(50.0, 100.0 - (area - high) / high * 50.0)


def _collect_issues(brightness: float, b_score: float, c_score: float,
                    s_score: float, z_score: float) -> List[str]:
    issues = []
    if z_score < ISSUE_LEVEL:
        issues.append('Face too small')
    if s_score < ISSUE_LEVEL:
        issues.append('Image blurry')
    if b_score < ISSUE_LEVEL:
        issues.append('Image too dark' if brightness < 40.0 else 'Image too bright')
    if c_score < ISSUE_LEVEL:
        issues.append('Low contrast')
    return issues


def assess_face(face_img: np.ndarray, area: int, config: Config) -> QualityReport:
    """
    Assess an already-cropped face image.

    Args:
        face_img: Face crop (BGR or gray)
        area: Face box pixel area used for the size score
        config: Service configuration

    Returns:
        QualityReport
    """
    gray = to_gray(face_img)

    brightness, contrast = measure_brightness_contrast(gray)
    b_score = brightness_score(brightness)
    c_score = contrast_score(contrast)
    s_score = sharpness_score(compute_blur_score(gray))
    z_score = size_score(area, config)

    overall = (
        b_score * BRIGHTNESS_WEIGHT +
        c_score * CONTRAST_WEIGHT +
        s_score * SHARPNESS_WEIGHT +
        z_score * SIZE_WEIGHT
    )

    return QualityReport(
        brightness=b_score,
        contrast=c_score,
        sharpness=s_score,
        size=z_score,
        overall=overall,
        threshold=config.quality_threshold,
        acceptable=overall >= config.quality_threshold,
        issues=_collect_issues(brightness, b_score, c_score, s_score, z_score),
    )


def assess_region(gray: np.ndarray, region: FaceRegion, config: Config) -> QualityReport:
    """
    Assess quality of a face region inside a grayscale working image.

    Raises:
        InvalidImageError: Region does not overlap the image
    """
    face = crop_face(gray, region)
    return assess_face(face, region.area, config)


def require_acceptable(report: QualityReport) -> None:
    """
    Enforce the quality gate.

    Raises:
        PoorQualityError: Refined to TooSmall/BlurryImage/BadLighting
    """
    if report.acceptable:
        return

    kind = report.failure_kind
    issues = ', '.join(report.issues) or f'worst factor: {report.worst_factor}'
    raise PoorQualityError(
        f'Face quality {report.overall:.1f} below threshold {report.threshold:.1f} ({issues})',
        kind=kind,
        report=report,
    )
