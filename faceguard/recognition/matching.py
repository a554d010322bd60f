"""
Template matching module.

1:N comparison of a probe template against stored templates, and
best-of-N template selection for enrollment.
"""

import threading
from typing import Callable, Dict, Iterable, List, Optional

from ..errors import LIBRARY_FAULTS, ErrorKind, InvalidTemplateError
from ..logging_config import get_logger
from ..models import MatchCandidate, MatchResult, TemplateResult
from .similarity import compare_images
from .templates import decode_template_image, deserialize_template

logger = get_logger(__name__)


def rank_candidates(candidates: List[MatchCandidate]) -> List[MatchCandidate]:
    """
    Sort by similarity descending and assign ranks starting at 1.

    The sort is stable: equal scores keep their input order.
    """
    ranked = sorted(candidates, key=lambda c: c.similarity, reverse=True)
    for rank, candidate in enumerate(ranked, start=1):
        candidate.rank = rank
    return ranked


def match_template_against_many(
    probe_payload: bytes,
    candidates: Dict[str, bytes],
    threshold: float,
    cancel_event: Optional[threading.Event] = None
) -> MatchResult:
    """
    Compare a probe template with every stored template.

    Results are not threshold-filtered so near misses stay visible;
    is_match marks the ones at or above the threshold.

    Args:
        probe_payload: Serialized probe template
        candidates: Mapping of template id to serialized template
        threshold: Similarity required for is_match
        cancel_event: Optional signal checked between candidates

    Returns:
        MatchResult; on cancellation the comparisons finished so far are kept

    Raises:
        InvalidTemplateError: Probe payload is malformed
    """
    probe_image = decode_template_image(deserialize_template(probe_payload))

    scored: List[MatchCandidate] = []
    skipped: List[str] = []
    cancelled = False

    for template_id, payload in candidates.items():
        if cancel_event is not None and cancel_event.is_set():
            cancelled = True
            logger.info(f'Matching cancelled after {len(scored)} of {len(candidates)} candidate(s)')
            break

        try:
            stored_image = decode_template_image(deserialize_template(payload))
        except InvalidTemplateError as e:
            logger.warning(f'Skipping malformed template {template_id}: {e.message}')
            skipped.append(template_id)
            continue
        except LIBRARY_FAULTS as e:
            logger.warning(f'Skipping undecodable template {template_id}: {e}')
            skipped.append(template_id)
            continue

        comparison = compare_images(probe_image, stored_image, threshold)
        scored.append(MatchCandidate(
            template_id=template_id,
            similarity=comparison.similarity,
            distance=comparison.distance,
            confidence=comparison.confidence,
            is_match=comparison.is_match,
            metadata=comparison.metadata,
        ))

    ranked = rank_candidates(scored)
    result = MatchResult(
        success=not cancelled,
        candidates=ranked,
        skipped=skipped,
        cancelled=cancelled,
        threshold=threshold,
    )
    if cancelled:
        result.error_kind = ErrorKind.CANCELLED
        result.message = f'Cancelled after {len(ranked)} comparison(s)'
    return result


def select_best_template(
    images: Iterable[bytes],
    generate: Callable[[bytes], TemplateResult],
    cancel_event: Optional[threading.Event] = None
) -> TemplateResult:
    """
    Generate a template per image and keep the highest-quality one.

    Args:
        images: Candidate enrollment images
        generate: Single-image template generator
        cancel_event: Optional signal checked between images

    Returns:
        Best successful TemplateResult; when none succeeded, the failure of
        the best-scoring attempt (or a Cancelled/NoFaceDetected result)
    """
    best: Optional[TemplateResult] = None
    best_failure: Optional[TemplateResult] = None
    attempted = 0

    for image in images:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f'Template selection cancelled after {attempted} image(s)')
            if best is not None:
                return best
            return TemplateResult(
                success=False,
                error_kind=ErrorKind.CANCELLED,
                message=f'Cancelled after {attempted} image(s)',
            )

        attempted += 1
        result = generate(image)

        if not result.success:
            if best_failure is None or _failure_quality(result) >= _failure_quality(best_failure):
                best_failure = result
            continue

        if best is None or result.quality_score > best.quality_score:
            best = result

    if best is not None:
        logger.debug(f'Selected template with quality {best.quality_score:.1f} from {attempted} image(s)')
        return best

    if best_failure is not None:
        return best_failure

    return TemplateResult(
        success=False,
        error_kind=ErrorKind.NO_FACE_DETECTED,
        message='No images supplied',
    )


def _failure_quality(result: TemplateResult) -> float:
    return result.quality.overall if result.quality is not None else -1.0
