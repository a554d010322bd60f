"""
Configuration module for FaceGuard.

Loads configuration from environment variables with sensible defaults.
All settings are immutable after initialization.
"""

import os
from dataclasses import dataclass, replace

import cv2


def _bundled_cascade(name: str) -> str:
    """Return path of a Haar cascade shipped with the OpenCV wheel."""
    return os.path.join(cv2.data.haarcascades, name)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


@dataclass(frozen=True)
class Config:
    """
    Immutable configuration for the face verification core.

    Service Identity:
        service_name: Name used in log context
        debug_mode: Enable debug logging

    Localization:
        localizer: Strategy selected at startup - 'auto', 'cascade' or 'fallback'
        face_cascade_path: Path to the frontal face cascade model
        eye_cascade_path: Path to the eye cascade model (corroboration only)
        scale_factor: Detection pyramid scale step
        min_neighbors: Minimum neighbor rectangles to keep a detection
        min_face_size: Minimum face box side in pixels
        max_face_size: Maximum face box side in pixels (0 = unlimited)
        processing_timeout_seconds: Budget for evaluating detection candidates

    Preprocessing:
        max_image_width / max_image_height: Working copy bounds (downscale only)
        min_image_size: Minimum accepted width and height of an input image
        max_image_bytes: Maximum accepted encoded image size
        enable_blur: Apply Gaussian noise suppression to the detection copy
        blur_kernel_size: Gaussian kernel size (odd)

    Quality:
        quality_threshold: Overall score (0-100) a face must reach
        ideal_face_area_min / ideal_face_area_max: Pixel area band scored 100

    Templates and matching:
        template_size: Canonical template side in pixels
        template_padding: Symmetric crop padding as a fraction of the box
        recognition_threshold: Similarity (0-100) required for a 1:1 match

    Authentication:
        lockout_window_minutes: Trailing window for counting failed attempts
        max_auth_attempts: Failed attempts in the window that mean "locked"
        liveness_min_confidence: Detection confidence required by the liveness placeholder

    Backend:
        backend_url: Base URL of the employee/audit backend
        request_timeout_seconds: Timeout for backend HTTP calls
    """

    # Service
    service_name: str = 'faceguard'
    debug_mode: bool = False

    # Localization
    localizer: str = 'auto'
    face_cascade_path: str = _bundled_cascade('haarcascade_frontalface_default.xml')
    eye_cascade_path: str = _bundled_cascade('haarcascade_eye.xml')
    scale_factor: float = 1.1
    min_neighbors: int = 5
    min_face_size: int = 80
    max_face_size: int = 0
    processing_timeout_seconds: float = 30.0

    # Preprocessing
    max_image_width: int = 1024
    max_image_height: int = 768
    min_image_size: int = 100
    max_image_bytes: int = 10 * 1024 * 1024
    enable_blur: bool = True
    blur_kernel_size: int = 3

    # Quality
    quality_threshold: float = 70.0
    ideal_face_area_min: int = 6400
    ideal_face_area_max: int = 90000

    # Templates / matching
    template_size: int = 200
    template_padding: float = 0.1
    recognition_threshold: float = 80.0

    # Authentication
    lockout_window_minutes: int = 15
    max_auth_attempts: int = 3
    liveness_min_confidence: float = 80.0

    # Backend
    backend_url: str = 'http://localhost:3000'
    request_timeout_seconds: float = 10.0


def load_config() -> Config:
    """
    Load configuration from environment variables.

    Returns:
        Config: Immutable configuration object
    """
    defaults = Config()

    return Config(
        # Service
        service_name=os.getenv('SERVICE_NAME', defaults.service_name),
        debug_mode=_env_bool('DEBUG', 'false'),

        # Localization
        localizer=os.getenv('LOCALIZER', defaults.localizer).lower(),
        face_cascade_path=os.getenv('FACE_CASCADE', defaults.face_cascade_path),
        eye_cascade_path=os.getenv('EYE_CASCADE', defaults.eye_cascade_path),
        scale_factor=float(os.getenv('SCALE_FACTOR', '1.1')),
        min_neighbors=int(os.getenv('MIN_NEIGHBORS', '5')),
        min_face_size=int(os.getenv('MIN_FACE_SIZE', '80')),
        max_face_size=int(os.getenv('MAX_FACE_SIZE', '0')),
        processing_timeout_seconds=float(os.getenv('PROCESSING_TIMEOUT', '30')),

        # Preprocessing
        max_image_width=int(os.getenv('MAX_IMAGE_WIDTH', '1024')),
        max_image_height=int(os.getenv('MAX_IMAGE_HEIGHT', '768')),
        min_image_size=int(os.getenv('MIN_IMAGE_SIZE', '100')),
        max_image_bytes=int(os.getenv('MAX_IMAGE_BYTES', str(10 * 1024 * 1024))),
        enable_blur=_env_bool('ENABLE_BLUR', 'true'),
        blur_kernel_size=int(os.getenv('BLUR_KERNEL', '3')),

        # Quality
        quality_threshold=float(os.getenv('QUALITY_THRESHOLD', '70.0')),

        # Templates / matching
        template_size=int(os.getenv('TEMPLATE_SIZE', '200')),
        template_padding=float(os.getenv('TEMPLATE_PADDING', '0.1')),
        recognition_threshold=float(os.getenv('RECOGNITION_THRESHOLD', '80.0')),

        # Authentication
        lockout_window_minutes=int(os.getenv('LOCKOUT_WINDOW_MINUTES', '15')),
        max_auth_attempts=int(os.getenv('MAX_AUTH_ATTEMPTS', '3')),
        liveness_min_confidence=float(os.getenv('LIVENESS_MIN_CONFIDENCE', '80.0')),

        # Backend
        backend_url=os.getenv('BACKEND_URL', defaults.backend_url),
        request_timeout_seconds=float(os.getenv('REQUEST_TIMEOUT', '10')),
    )


def high_accuracy_config(base: Config | None = None) -> Config:
    """Stricter preset: finer pyramid, higher thresholds, larger templates."""
    return replace(
        base or Config(),
        scale_factor=1.05,
        min_neighbors=7,
        min_face_size=60,
        max_image_width=1280,
        max_image_height=960,
        quality_threshold=80.0,
        recognition_threshold=85.0,
        template_size=250,
        processing_timeout_seconds=45.0,
    )


def fast_processing_config(base: Config | None = None) -> Config:
    """Faster preset: coarse pyramid, smaller working images and templates."""
    return replace(
        base or Config(),
        scale_factor=1.2,
        min_neighbors=3,
        min_face_size=100,
        max_face_size=400,
        max_image_width=640,
        max_image_height=480,
        quality_threshold=60.0,
        recognition_threshold=75.0,
        template_size=150,
        processing_timeout_seconds=15.0,
    )
