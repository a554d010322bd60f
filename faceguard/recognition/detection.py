"""
Face localization module.

Two interchangeable strategies, selected once at startup:
- CascadeLocalizer: pretrained Haar cascade with eye-detector corroboration
- FallbackLocalizer: deterministic centered region, flagged as degraded

Both quality-gate their candidates with the same assessor.
"""

import os
import threading
import time
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import cv2
import numpy as np

from ..config import Config
from ..errors import LIBRARY_FAULTS, ModelUnavailableError
from ..logging_config import get_logger
from ..models import FaceRegion, Landmark, SizeCategory
from .preprocessing import PreparedImage, clip_box
from .quality import assess_region

logger = get_logger(__name__)

BASE_CONFIDENCE = 85.0
CORROBORATED_BONUS = 10.0
MAX_CONFIDENCE = 95.0
FALLBACK_CONFIDENCE = 70.0


def geometric_landmarks(region: FaceRegion) -> List[Landmark]:
    """Coarse landmark estimates from box geometry only."""
    x, y, w, h = region.box
    return [
        Landmark('LeftEye', x + w * 0.3, y + h * 0.3),
        Landmark('RightEye', x + w * 0.7, y + h * 0.3),
        Landmark('Nose', x + w * 0.5, y + h * 0.5),
        Landmark('Mouth', x + w * 0.5, y + h * 0.7),
    ]


@dataclass(frozen=True)
class LocalizationOutput:
    faces: List[FaceRegion]
    rejected: List[FaceRegion]
    timed_out: bool = False
    cancelled: bool = False

    @property
    def best_rejected(self) -> Optional[FaceRegion]:
        """Rejected candidate with the highest quality, carrying the refined failure."""
        if not self.rejected:
            return None
        return max(self.rejected, key=lambda face: face.quality_score)


@dataclass(frozen=True)
class ClassifierBundle:
    """Read-only classifier handles shared by every localizer call."""

    face: Any
    eye: Optional[Any] = None


def _load_cascade(path: str) -> Optional[cv2.CascadeClassifier]:
    if not path or not os.path.exists(path):
        return None
    classifier = cv2.CascadeClassifier(path)
    if classifier.empty():
        return None
    return classifier


def load_classifiers(config: Config) -> ClassifierBundle:
    """
    Load cascade models once.

    Args:
        config: Service configuration

    Returns:
        ClassifierBundle with the face model and, when available, the eye model

    Raises:
        ModelUnavailableError: Face model missing or empty
    """
    face = _load_cascade(config.face_cascade_path)
    if face is None:
        raise ModelUnavailableError(f'Failed to load face cascade: {config.face_cascade_path}')

    eye = _load_cascade(config.eye_cascade_path)
    if eye is None:
        logger.warning('Eye cascade unavailable, confidence corroboration disabled')

    logger.info(f'✅ Loaded face cascade from {config.face_cascade_path}')
    return ClassifierBundle(face=face, eye=eye)


class FaceLocalizer:
    """
    Base class for localization strategies.

    Subclasses implement candidate_boxes(); gating, ordering, timeout and
    cancellation handling live here.
    """

    name = 'base'
    degraded = False

    def __init__(self, config: Config):
        self.config = config

    def candidate_boxes(self, prepared: PreparedImage) -> List[Tuple[int, int, int, int]]:
        raise NotImplementedError

    def confidence_for(self, prepared: PreparedImage, box: Tuple[int, int, int, int]) -> float:
        return BASE_CONFIDENCE

    def locate(
        self,
        prepared: PreparedImage,
        multiple: bool = False,
        cancel_event: Optional[threading.Event] = None
    ) -> LocalizationOutput:
        """
        Find quality-gated face regions.

        Args:
            prepared: Preprocessed image
            multiple: Keep every passing candidate (sorted by quality)
                instead of stopping at the first one
            cancel_event: Optional signal checked between candidates

        Returns:
            LocalizationOutput with accepted and rejected regions
        """
        started = time.monotonic()
        boxes = self.candidate_boxes(prepared)
        logger.debug(f'{self.name} localizer produced {len(boxes)} candidate(s)')

        faces: List[FaceRegion] = []
        rejected: List[FaceRegion] = []
        timed_out = False
        cancelled = False

        for box in boxes:
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            if time.monotonic() - started > self.config.processing_timeout_seconds:
                logger.warning(
                    f'Localization timeout ({self.config.processing_timeout_seconds}s) '
                    f'after {len(faces) + len(rejected)} candidate(s)'
                )
                timed_out = True
                break

            region = self._build_region(prepared, box)
            if region is None:
                continue

            if region.quality.acceptable:
                faces.append(region)
                if not multiple:
                    break
            else:
                rejected.append(region)

        faces.sort(key=lambda face: face.quality_score, reverse=True)
        return LocalizationOutput(faces=faces, rejected=rejected,
                                  timed_out=timed_out, cancelled=cancelled)

    def _build_region(
        self,
        prepared: PreparedImage,
        box: Tuple[int, int, int, int]
    ) -> Optional[FaceRegion]:
        x, y, w, h = clip_box(box, prepared.gray.shape)
        if w <= 0 or h <= 0:
            return None

        region = FaceRegion(
            x=x,
            y=y,
            width=w,
            height=h,
            confidence=self.confidence_for(prepared, (x, y, w, h)),
            size_category=SizeCategory.from_area(w * h),
            degraded=self.degraded,
            metadata={
                'face_width': w,
                'face_height': h,
                'face_area': w * h,
                'detection_method': self.name,
            },
        )
        region.landmarks = geometric_landmarks(region)
        region.quality = assess_region(prepared.gray, region, self.config)
        return region


class CascadeLocalizer(FaceLocalizer):
    """Haar cascade localizer; classifier handles are injected and never reloaded."""

    name = 'haar_cascade'

    def __init__(self, classifiers: ClassifierBundle, config: Config):
        super().__init__(config)
        self.classifiers = classifiers

    def candidate_boxes(self, prepared: PreparedImage) -> List[Tuple[int, int, int, int]]:
        params = {
            'scaleFactor': self.config.scale_factor,
            'minNeighbors': self.config.min_neighbors,
            'flags': cv2.CASCADE_SCALE_IMAGE,
            'minSize': (self.config.min_face_size, self.config.min_face_size),
        }
        if self.config.max_face_size > 0:
            params['maxSize'] = (self.config.max_face_size, self.config.max_face_size)

        rects = self.classifiers.face.detectMultiScale(prepared.enhanced, **params)
        return [tuple(int(v) for v in rect) for rect in np.asarray(rects).reshape(-1, 4)]

    def confidence_for(self, prepared: PreparedImage, box: Tuple[int, int, int, int]) -> float:
        if self.classifiers.eye is None:
            return BASE_CONFIDENCE

        x, y, w, h = box
        face_gray = prepared.enhanced[y:y + h, x:x + w]
        try:
            eyes = self.classifiers.eye.detectMultiScale(face_gray, scaleFactor=1.1, minNeighbors=3)
        except LIBRARY_FAULTS as e:
            logger.warning(f'Eye detection failed: {e}')
            return BASE_CONFIDENCE

        if len(eyes) >= 2:
            return min(MAX_CONFIDENCE, BASE_CONFIDENCE + CORROBORATED_BONUS)
        return BASE_CONFIDENCE


class FallbackLocalizer(FaceLocalizer):
    """
    Model-free localizer.

    Assumes one face centered in the frame: a square of half the shorter
    side, offset by a quarter of width and height.
    """

    name = 'fallback_center'
    degraded = True

    def candidate_boxes(self, prepared: PreparedImage) -> List[Tuple[int, int, int, int]]:
        width, height = prepared.size
        side = min(width, height) // 2
        return [(width // 4, height // 4, side, side)]

    def confidence_for(self, prepared: PreparedImage, box: Tuple[int, int, int, int]) -> float:
        return FALLBACK_CONFIDENCE


def create_localizer(config: Config, classifiers: Optional[ClassifierBundle] = None) -> FaceLocalizer:
    """
    Select the localization strategy once.

    Args:
        config: Service configuration ('auto', 'cascade' or 'fallback')
        classifiers: Preloaded classifier handles (loaded from config if None)

    Returns:
        FaceLocalizer instance

    Raises:
        ModelUnavailableError: 'cascade' requested but the model cannot load
        ValueError: Unknown strategy name
    """
    strategy = config.localizer

    if strategy == 'fallback':
        logger.info('Using fallback localizer (degraded confidence)')
        return FallbackLocalizer(config)

    if strategy not in ('auto', 'cascade'):
        raise ValueError(f'Unknown localizer strategy: {strategy}')

    if classifiers is not None:
        return CascadeLocalizer(classifiers, config)

    try:
        return CascadeLocalizer(load_classifiers(config), config)
    except ModelUnavailableError as e:
        if strategy == 'cascade':
            raise
        logger.warning(f'{e.message} - using fallback localizer')
        return FallbackLocalizer(config)
