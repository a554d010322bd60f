"""
Liveness placeholder.

Not an anti-spoofing measure: a face is reported live when its quality
passes the gate and the localizer was confident about it. Kept so the
authentication flow has a liveness stage to call.
"""

from ..config import Config
from ..models import FaceRegion, LivenessResult


def check_liveness(face: FaceRegion, config: Config) -> LivenessResult:
    """
    Score liveness of an accepted face region.

    Args:
        face: Quality-assessed face region
        config: Service configuration

    Returns:
        LivenessResult with a 0-100 confidence
    """
    quality = face.quality_score
    confidence = min(100.0, (quality + face.confidence) / 2.0)
    is_live = (
        quality >= config.quality_threshold and
        face.confidence >= config.liveness_min_confidence
    )

    return LivenessResult(
        success=True,
        is_live=is_live,
        confidence=confidence,
        quality_score=quality,
        message='Live face' if is_live else 'Liveness check failed',
    )
