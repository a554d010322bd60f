"""
Image preprocessing module.

Normalizes raw image bytes into a canonical working copy:
1. Decode and validate (size limits, minimum dimensions)
2. Aspect-preserving downscale (never upscale)
3. Grayscale histogram equalization
4. Optional Gaussian noise suppression
"""

from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from ..config import Config
from ..errors import InvalidImageError
from ..models import FaceRegion, Landmark


@dataclass(frozen=True)
class PreparedImage:
    """
    Working copies of one input image.

    Attributes:
        color: Downscaled BGR image
        gray: Downscaled grayscale image (quality is measured here)
        enhanced: Equalized and optionally blurred gray image (detection input)
        scale: Factor applied to the original size (<= 1.0)
        original_size: (width, height) of the decoded input
    """

    color: np.ndarray
    gray: np.ndarray
    enhanced: np.ndarray
    scale: float
    original_size: Tuple[int, int]

    @property
    def size(self) -> Tuple[int, int]:
        return self.gray.shape[1], self.gray.shape[0]


def decode_image(image_data: bytes, config: Config) -> np.ndarray:
    """
    Decode encoded image bytes into a BGR array.

    Args:
        image_data: Encoded image (JPEG, PNG, BMP, ...)
        config: Service configuration

    Returns:
        Decoded BGR image

    Raises:
        InvalidImageError: Empty, oversized, undecodable or too small input
    """
    if not image_data:
        raise InvalidImageError('Image data is null or empty')

    if len(image_data) > config.max_image_bytes:
        raise InvalidImageError(
            f'Image exceeds {config.max_image_bytes} bytes ({len(image_data)} bytes)'
        )

    buffer = np.frombuffer(image_data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)

    if image is None or image.size == 0:
        raise InvalidImageError('Failed to decode image')

    height, width = image.shape[:2]
    if width < config.min_image_size or height < config.min_image_size:
        raise InvalidImageError(
            f'Image too small: {width}x{height} '
            f'(minimum {config.min_image_size}x{config.min_image_size})'
        )

    return image


def to_gray(image: np.ndarray) -> np.ndarray:
    """Return a grayscale view of a BGR or already-gray image."""
    if image.ndim == 3 and image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return image.copy()


def resize_keep_aspect(
    image: np.ndarray,
    max_width: int,
    max_height: int
) -> Tuple[np.ndarray, float]:
    """
    Downscale image to fit inside max_width x max_height.

    Images already inside the bounds are copied unchanged.

    Returns:
        Tuple of (resized image, scale factor)
    """
    height, width = image.shape[:2]

    if width <= max_width and height <= max_height:
        return image.copy(), 1.0

    scale = min(max_width / width, max_height / height)
    new_size = (max(1, int(width * scale)), max(1, int(height * scale)))

    resized = cv2.resize(image, new_size, interpolation=cv2.INTER_AREA)
    return resized, scale


def enhance_image(gray: np.ndarray, config: Config) -> np.ndarray:
    """
    Equalize histogram and optionally suppress noise.

    Args:
        gray: Grayscale image
        config: Service configuration

    Returns:
        Enhanced grayscale image
    """
    equalized = cv2.equalizeHist(gray)

    if not config.enable_blur:
        return equalized

    kernel = config.blur_kernel_size
    if kernel % 2 == 0:
        kernel += 1
    return cv2.GaussianBlur(equalized, (kernel, kernel), 0)


def prepare_image(image_data: bytes, config: Config) -> PreparedImage:
    """
    Decode and normalize an input image.

    Pure and deterministic: the same bytes and config always give the
    same working copies.

    Raises:
        InvalidImageError: See decode_image
    """
    image = decode_image(image_data, config)
    original_size = (image.shape[1], image.shape[0])

    color, scale = resize_keep_aspect(image, config.max_image_width, config.max_image_height)
    gray = to_gray(color)

    return PreparedImage(
        color=color,
        gray=gray,
        enhanced=enhance_image(gray, config),
        scale=scale,
        original_size=original_size,
    )


def clip_box(
    box: Tuple[int, int, int, int],
    image_shape: Tuple[int, ...]
) -> Tuple[int, int, int, int]:
    """Clip an (x, y, w, h) box to image bounds."""
    height, width = image_shape[:2]
    x, y, w, h = (int(v) for v in box)

    x1 = min(max(0, x), width)
    y1 = min(max(0, y), height)
    x2 = min(max(0, x + w), width)
    y2 = min(max(0, y + h), height)

    return x1, y1, x2 - x1, y2 - y1


def crop_face(image: np.ndarray, region: FaceRegion, padding: float = 0.0) -> np.ndarray:
    """
    Crop a face region with symmetric padding, clipped to image bounds.

    Args:
        image: Source image
        region: Face region
        padding: Padding as a fraction of box width/height (0.1 = 10%)

    Returns:
        Cropped copy

    Raises:
        InvalidImageError: Region does not overlap the image
    """
    pad_x = int(region.width * padding)
    pad_y = int(region.height * padding)

    x, y, w, h = clip_box(
        (region.x - pad_x, region.y - pad_y, region.width + 2 * pad_x, region.height + 2 * pad_y),
        image.shape,
    )

    if w <= 0 or h <= 0:
        raise InvalidImageError(f'Face region {region.box} lies outside the image')

    return image[y:y + h, x:x + w].copy()


def scale_region(region: FaceRegion, scale: float) -> FaceRegion:
    """
    Map a region between coordinate spaces.

    Use the working-copy scale to go from original-image pixels to
    working-copy pixels, and its inverse for the way back. Size metadata
    follows the box; quality is carried over unchanged.
    """
    if scale == 1.0:
        return region

    width = max(1, int(round(region.width * scale)))
    height = max(1, int(round(region.height * scale)))

    metadata = dict(region.metadata)
    if 'face_width' in metadata:
        metadata['face_width'] = width
    if 'face_height' in metadata:
        metadata['face_height'] = height
    if 'face_area' in metadata:
        metadata['face_area'] = width * height

    return FaceRegion(
        x=int(round(region.x * scale)),
        y=int(round(region.y * scale)),
        width=width,
        height=height,
        confidence=region.confidence,
        size_category=region.size_category,
        landmarks=[
            Landmark(lm.name, lm.x * scale, lm.y * scale, lm.confidence)
            for lm in region.landmarks
        ],
        quality=region.quality,
        degraded=region.degraded,
        metadata=metadata,
    )
