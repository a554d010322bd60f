"""
Face engine facade.

Public library contract of the verification core:
- detect / assess_quality: localize and score faces
- enroll / enroll_best: build templates from images
- compare / compare_with_image / match_against_many: 1:1 and 1:N comparison
- is_valid_template / get_template_info: payload inspection
- check_liveness, health_check, get_statistics

Every pipeline call is stateless. The only shared mutable state is the
telemetry counters, guarded by a single lock.
"""

import threading
import time
from typing import Any, Dict, Iterable, Mapping, Optional, Union

import cv2
import numpy as np

from .config import Config
from .errors import (
    LIBRARY_FAULTS,
    ErrorKind,
    FaceGuardError,
    InvalidImageError,
    InvalidTemplateError,
    NoFaceDetectedError,
    OperationCancelledError,
)
from .logging_config import get_logger
from .models import (
    ComparisonResult,
    DetectionResult,
    FaceRegion,
    FaceTemplate,
    LivenessResult,
    MatchResult,
    QualityReport,
    SizeCategory,
    TemplateInfo,
    TemplateResult,
)
from .recognition import liveness, templates
from .recognition.detection import FaceLocalizer, LocalizationOutput, create_localizer, geometric_landmarks
from .recognition.matching import match_template_against_many, select_best_template
from .recognition.preprocessing import PreparedImage, clip_box, prepare_image, scale_region
from .recognition.quality import assess_region, require_acceptable
from .recognition.similarity import compare_payloads, invalid_template_result
from .utils.timing import elapsed_ms, format_uptime

logger = get_logger(__name__)

TemplateLike = Union[bytes, FaceTemplate]

HEALTH_SIMILARITY = 95.0


def _payload_of(template: TemplateLike) -> bytes:
    if isinstance(template, FaceTemplate):
        return template.payload
    return template


class FaceEngine:
    """
    Stateless face pipeline with shared telemetry.

    The localizer (and the classifier handles inside it) is created once and
    only read afterwards, so one engine can serve concurrent callers.
    """

    def __init__(self, config: Config, localizer: Optional[FaceLocalizer] = None):
        """
        Initialize face engine.

        Args:
            config: Service configuration
            localizer: Localization strategy (selected from config if None)
        """
        self.config = config
        self.localizer = localizer or create_localizer(config)

        self._lock = threading.Lock()
        self._started_at = time.monotonic()
        self._processed_images = 0
        self._detected_faces = 0
        self._generated_templates = 0
        self._comparisons = 0
        self._total_processing_ms = 0.0

        logger.info(
            f'✅ Face engine ready (localizer={self.localizer.name}, '
            f'quality_threshold={config.quality_threshold}, '
            f'recognition_threshold={config.recognition_threshold})'
        )

    # ------------------------------------------------------------------
    # Detection and quality
    # ------------------------------------------------------------------

    def detect(
        self,
        image_data: bytes,
        multiple: bool = False,
        cancel_event: Optional[threading.Event] = None
    ) -> DetectionResult:
        """
        Localize quality-gated faces.

        Regions are reported in original-image coordinates.

        Args:
            image_data: Encoded image
            multiple: Return every passing face instead of the first one
            cancel_event: Optional cooperative cancellation signal

        Returns:
            DetectionResult
        """
        started = time.perf_counter()
        result = DetectionResult(degraded=self.localizer.degraded)

        try:
            prepared = prepare_image(image_data, self.config)
            output = self.localizer.locate(prepared, multiple=multiple, cancel_event=cancel_event)

            inverse = 1.0 / prepared.scale
            result.faces = [scale_region(face, inverse) for face in output.faces]
            result.rejected = [scale_region(face, inverse) for face in output.rejected]
            result.image_size = prepared.original_size
            result.timed_out = output.timed_out
            result.success = bool(result.faces)

            if not result.success:
                result.error_kind, result.error_message = self._explain_miss(output)
        except FaceGuardError as e:
            result.error_kind = e.kind
            result.error_message = e.message
        except LIBRARY_FAULTS as e:
            logger.error(f'Detection failed: {e}')
            result.error_kind = ErrorKind.SYSTEM_ERROR
            result.error_message = f'Detection failed: {e}'

        result.processing_time_ms = elapsed_ms(started)
        self._record(result.processing_time_ms, images=1, faces=len(result.faces))

        logger.debug(
            f'Detect: {len(result.faces)} face(s), {len(result.rejected)} rejected, '
            f'{result.processing_time_ms:.1f}ms'
        )
        return result

    def assess_quality(self, image_data: bytes, region: FaceRegion) -> QualityReport:
        """
        Score a caller-supplied region (original-image coordinates).

        Args:
            image_data: Encoded image
            region: Face region to score

        Returns:
            QualityReport; an unusable image or region yields an all-zero
            report carrying the error kind and message
        """
        started = time.perf_counter()

        try:
            prepared = prepare_image(image_data, self.config)
            report = self._explicit_region(prepared, region).quality
            if report.acceptable:
                report.message = 'Face quality acceptable'
            else:
                report.error_kind = report.failure_kind
                report.message = (
                    f'Face quality {report.overall:.1f} below threshold {report.threshold:.1f}'
                )
        except FaceGuardError as e:
            report = self._empty_report(e.kind, e.message)
        except LIBRARY_FAULTS as e:
            logger.error(f'Quality assessment failed: {e}')
            report = self._empty_report(ErrorKind.SYSTEM_ERROR, f'Quality assessment failed: {e}')

        report.processing_time_ms = elapsed_ms(started)
        return report

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def enroll(
        self,
        image_data: bytes,
        region: Optional[FaceRegion] = None,
        owner_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> TemplateResult:
        """
        Build a template from one image.

        Args:
            image_data: Encoded image
            region: Optional face region (original-image coordinates);
                the localizer is used when omitted
            owner_id: Optional owning employee stamped on the template
            cancel_event: Optional cooperative cancellation signal

        Returns:
            TemplateResult; quality failures carry the refined kind and report
        """
        started = time.perf_counter()
        result = TemplateResult()

        try:
            prepared = prepare_image(image_data, self.config)
            face = self._select_face(prepared, region, cancel_event)
            require_acceptable(face.quality)

            result.template = templates.build_template(
                prepared.gray, face, face.quality.overall, self.config, owner_id
            )
            result.source_face = face
            result.quality = face.quality
            result.success = True
            result.message = 'Template generated'
        except FaceGuardError as e:
            result.error_kind = e.kind
            result.message = e.message
            result.quality = getattr(e, 'report', None)
        except LIBRARY_FAULTS as e:
            logger.error(f'Template generation failed: {e}')
            result.error_kind = ErrorKind.SYSTEM_ERROR
            result.message = f'Template generation failed: {e}'

        result.processing_time_ms = elapsed_ms(started)
        self._record(result.processing_time_ms, images=1, generated=1 if result.success else 0)

        if result.success:
            logger.debug(f'Template generated (quality={result.quality_score:.1f})')
        else:
            logger.info(f'Template generation failed [{result.error_kind.value}]: {result.message}')
        return result

    def enroll_best(
        self,
        images: Iterable[bytes],
        owner_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> TemplateResult:
        """Best-of-N enrollment: the highest-quality template wins."""
        started = time.perf_counter()
        result = select_best_template(
            images,
            lambda image: self.enroll(image, owner_id=owner_id),
            cancel_event=cancel_event,
        )
        result.processing_time_ms = elapsed_ms(started)
        return result

    def is_valid_template(self, payload: TemplateLike) -> bool:
        return templates.is_valid_template(_payload_of(payload))

    def get_template_info(self, payload: TemplateLike) -> TemplateInfo:
        return templates.get_template_info(_payload_of(payload))

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def compare(
        self,
        template_a: TemplateLike,
        template_b: TemplateLike,
        threshold: Optional[float] = None
    ) -> ComparisonResult:
        """
        Compare two templates.

        Never raises for malformed payloads: they yield an InvalidTemplate
        result with similarity 0.

        Args:
            template_a: Reference template (payload or FaceTemplate)
            template_b: Template compared against the reference
            threshold: Match threshold (config recognition_threshold if None)

        Returns:
            ComparisonResult
        """
        started = time.perf_counter()
        if threshold is None:
            threshold = self.config.recognition_threshold

        try:
            result = compare_payloads(_payload_of(template_a), _payload_of(template_b), threshold)
        except InvalidTemplateError as e:
            logger.warning(f'Comparison rejected: {e.message}')
            result = invalid_template_result(e, threshold)
        except LIBRARY_FAULTS as e:
            logger.error(f'Comparison failed: {e}')
            result = ComparisonResult(
                error_kind=ErrorKind.SYSTEM_ERROR,
                message=f'Comparison failed: {e}',
                metadata={'threshold': threshold},
            )

        result.processing_time_ms = elapsed_ms(started)
        self._record(result.processing_time_ms, comparisons=1)
        return result

    def compare_with_image(
        self,
        template: TemplateLike,
        image_data: bytes,
        threshold: Optional[float] = None
    ) -> ComparisonResult:
        """Generate a probe template from an image and compare it with a stored one."""
        started = time.perf_counter()
        probe = self.enroll(image_data)

        if not probe.success:
            return ComparisonResult(
                error_kind=probe.error_kind,
                message=probe.message,
                processing_time_ms=elapsed_ms(started),
            )

        result = self.compare(template, probe.template, threshold)
        result.metadata['probe_quality'] = probe.quality_score
        result.processing_time_ms = elapsed_ms(started)
        return result

    def match_against_many(
        self,
        image_data: bytes,
        candidates: Mapping[str, TemplateLike],
        threshold: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> MatchResult:
        """
        1:N match of a probe image against stored templates.

        Args:
            image_data: Encoded probe image
            candidates: Mapping of template id to template
            threshold: Similarity marking is_match (config recognition_threshold if None)
            cancel_event: Optional signal checked between candidates

        Returns:
            MatchResult ranked by similarity; partial on cancellation
        """
        started = time.perf_counter()
        if threshold is None:
            threshold = self.config.recognition_threshold

        probe = self.enroll(image_data, cancel_event=cancel_event)
        if not probe.success:
            return MatchResult(
                threshold=threshold,
                error_kind=probe.error_kind,
                message=probe.message,
                processing_time_ms=elapsed_ms(started),
            )

        payloads = {template_id: _payload_of(t) for template_id, t in candidates.items()}
        try:
            result = match_template_against_many(
                probe.template.payload, payloads, threshold, cancel_event
            )
        except LIBRARY_FAULTS as e:
            logger.error(f'1:N matching failed: {e}')
            result = MatchResult(
                threshold=threshold,
                error_kind=ErrorKind.SYSTEM_ERROR,
                message=f'1:N matching failed: {e}',
            )

        result.processing_time_ms = elapsed_ms(started)
        self._record(0.0, comparisons=len(result.candidates))

        logger.info(
            f'1:N match: {len(result.candidates)} compared, {len(result.skipped)} skipped, '
            f'{len(result.matches)} at or above {threshold}'
        )
        return result

    # ------------------------------------------------------------------
    # Liveness, health and telemetry
    # ------------------------------------------------------------------

    def check_liveness(self, image_data: bytes) -> LivenessResult:
        """Placeholder liveness check on the best face of an image."""
        detection = self.detect(image_data)
        if not detection.success:
            return LivenessResult(message=detection.error_message or 'No face detected')
        return liveness.check_liveness(detection.best_face, self.config)

    def health_check(self) -> Dict[str, Any]:
        """
        Self-test: a synthetic template must match itself.

        Returns:
            Dict with healthy flag, localizer name, degraded flag and the
            self-similarity score
        """
        status: Dict[str, Any] = {
            'healthy': False,
            'localizer': self.localizer.name,
            'degraded': self.localizer.degraded,
            'self_similarity': 0.0,
        }

        try:
            gray = _synthetic_face()
            side = gray.shape[0] // 2
            region = FaceRegion(x=side // 2, y=side // 2, width=side, height=side)
            region.quality = assess_region(gray, region, self.config)

            template = templates.build_template(gray, region, region.quality_score, self.config)
            comparison = compare_payloads(template.payload, template.payload,
                                          self.config.recognition_threshold)
            status['self_similarity'] = comparison.similarity
            status['healthy'] = comparison.similarity > HEALTH_SIMILARITY
        except (FaceGuardError, *LIBRARY_FAULTS) as e:
            logger.error(f'Health check failed: {e}')
            status['error'] = str(e)

        return status

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            processed = self._processed_images
            total_ms = self._total_processing_ms
            stats = {
                'processed_images': processed,
                'detected_faces': self._detected_faces,
                'generated_templates': self._generated_templates,
                'comparisons': self._comparisons,
                'total_processing_ms': total_ms,
            }

        uptime = time.monotonic() - self._started_at
        stats['average_processing_ms'] = total_ms / processed if processed else 0.0
        stats['uptime_seconds'] = uptime
        stats['uptime'] = format_uptime(uptime)
        stats['localizer'] = self.localizer.name
        stats['degraded'] = self.localizer.degraded
        return stats

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record(
        self,
        processing_ms: float,
        images: int = 0,
        faces: int = 0,
        generated: int = 0,
        comparisons: int = 0
    ) -> None:
        with self._lock:
            self._processed_images += images
            self._detected_faces += faces
            self._generated_templates += generated
            self._comparisons += comparisons
            self._total_processing_ms += processing_ms

    def _select_face(
        self,
        prepared: PreparedImage,
        region: Optional[FaceRegion],
        cancel_event: Optional[threading.Event]
    ) -> FaceRegion:
        """Return the face a template is built from (working-copy coordinates)."""
        if region is not None:
            return self._explicit_region(prepared, region)

        output = self.localizer.locate(prepared, multiple=False, cancel_event=cancel_event)
        if output.faces:
            return output.faces[0]

        if output.rejected:
            return output.best_rejected

        kind, message = self._explain_miss(output)
        if kind == ErrorKind.CANCELLED:
            raise OperationCancelledError(message)
        raise NoFaceDetectedError(message)

    def _explicit_region(self, prepared: PreparedImage, region: FaceRegion) -> FaceRegion:
        scaled = scale_region(region, prepared.scale)
        x, y, w, h = clip_box(scaled.box, prepared.gray.shape)
        if w <= 0 or h <= 0:
            raise InvalidImageError(f'Face region {region.box} lies outside the image')

        face = FaceRegion(
            x=x,
            y=y,
            width=w,
            height=h,
            confidence=region.confidence,
            size_category=SizeCategory.from_area(w * h),
            metadata={
                'face_width': w,
                'face_height': h,
                'face_area': w * h,
                'detection_method': 'explicit_region',
            },
        )
        face.landmarks = geometric_landmarks(face)
        face.quality = assess_region(prepared.gray, face, self.config)
        return face

    def _empty_report(self, kind: ErrorKind, message: str) -> QualityReport:
        return QualityReport(
            brightness=0.0,
            contrast=0.0,
            sharpness=0.0,
            size=0.0,
            overall=0.0,
            threshold=self.config.quality_threshold,
            acceptable=False,
            error_kind=kind,
            message=message,
        )

    @staticmethod
    def _explain_miss(output: LocalizationOutput) -> tuple[ErrorKind, str]:
        if output.cancelled:
            return ErrorKind.CANCELLED, 'Detection cancelled'
        if output.rejected:
            report = output.best_rejected.quality
            return (
                report.failure_kind or ErrorKind.POOR_QUALITY,
                f'Face quality {report.overall:.1f} below threshold {report.threshold:.1f}',
            )
        if output.timed_out:
            return ErrorKind.NO_FACE_DETECTED, 'Localization timed out before a face was found'
        return ErrorKind.NO_FACE_DETECTED, 'No face detected'


def _synthetic_face(size: int = 200) -> np.ndarray:
    """Deterministic gray face-like pattern for the self-test."""
    rng = np.random.default_rng(0)
    image = rng.integers(80, 176, size=(size, size), dtype=np.uint8)
    center = (size // 2, size // 2)

    cv2.ellipse(image, center, (size // 4, size // 3), 0, 0, 360, 200, -1)
    cv2.circle(image, (size // 2 - size // 10, size // 2 - size // 12), size // 30, 40, -1)
    cv2.circle(image, (size // 2 + size // 10, size // 2 - size // 12), size // 30, 40, -1)
    cv2.ellipse(image, (size // 2, size // 2 + size // 8), (size // 12, size // 40), 0, 0, 360, 60, -1)
    return image
