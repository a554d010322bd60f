"""
Error taxonomy.

Components raise FaceGuardError subclasses; the public facade and the
authentication orchestrator convert them into structured results carrying
an ErrorKind.
"""

from enum import Enum

import cv2


class ErrorKind(str, Enum):
    """Failure categories reported by every public operation."""

    INVALID_IMAGE = 'InvalidImage'
    NO_FACE_DETECTED = 'NoFaceDetected'
    POOR_QUALITY = 'PoorQuality'
    TOO_SMALL = 'TooSmall'
    BLURRY_IMAGE = 'BlurryImage'
    BAD_LIGHTING = 'BadLighting'
    INVALID_TEMPLATE = 'InvalidTemplate'
    EMPLOYEE_NOT_FOUND = 'EmployeeNotFound'
    NO_FACE_TEMPLATE = 'NoFaceTemplate'
    LIVENESS_CHECK_FAILED = 'LivenessCheckFailed'
    FACE_NOT_MATCHED = 'FaceNotMatched'
    CANCELLED = 'Cancelled'
    SYSTEM_ERROR = 'SystemError'

    @property
    def is_quality_failure(self) -> bool:
        return self in QUALITY_KINDS


QUALITY_KINDS = frozenset({
    ErrorKind.POOR_QUALITY,
    ErrorKind.TOO_SMALL,
    ErrorKind.BLURRY_IMAGE,
    ErrorKind.BAD_LIGHTING,
})

# Faults raised by OpenCV/numpy on bad data. Anything else escaping a
# component is a programming error and is not converted.
LIBRARY_FAULTS = (cv2.error, ValueError, OverflowError, MemoryError)


class FaceGuardError(Exception):
    """Base class for expected pipeline failures."""

    kind: ErrorKind = ErrorKind.SYSTEM_ERROR

    def __init__(self, message: str, kind: ErrorKind | None = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class InvalidImageError(FaceGuardError):
    kind = ErrorKind.INVALID_IMAGE


class NoFaceDetectedError(FaceGuardError):
    kind = ErrorKind.NO_FACE_DETECTED


class PoorQualityError(FaceGuardError):
    """Quality gate failure; kind is refined to TooSmall/BlurryImage/BadLighting."""

    kind = ErrorKind.POOR_QUALITY

    def __init__(self, message: str, kind: ErrorKind | None = None, report=None):
        super().__init__(message, kind)
        self.report = report


class InvalidTemplateError(FaceGuardError):
    kind = ErrorKind.INVALID_TEMPLATE


class OperationCancelledError(FaceGuardError):
    kind = ErrorKind.CANCELLED


class ModelUnavailableError(FaceGuardError):
    """Classifier model file missing or failed to load."""

    kind = ErrorKind.SYSTEM_ERROR
