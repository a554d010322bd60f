"""
Face template codec.

A template is a normalized grayscale face image (padded crop, canonical
size, histogram-equalized, PNG-encoded) wrapped in a versioned JSON record.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

import cv2
import numpy as np

from ..config import Config
from ..errors import InvalidImageError, InvalidTemplateError
from ..models import FaceRegion, FaceTemplate, TemplateInfo, utcnow
from .preprocessing import crop_face

TEMPLATE_VERSION = 'GRAYEQ_1.0'


@dataclass
class TemplateRecord:
    """Decoded template payload."""

    version: str
    image_data: bytes
    created_at: Optional[datetime] = None
    quality_score: float = 0.0
    size: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return bool(self.version) and len(self.image_data) > 0


def normalize_face(gray: np.ndarray, region: FaceRegion, config: Config) -> np.ndarray:
    """
    Produce the canonical face image for a region.

    Args:
        gray: Grayscale working image
        region: Accepted face region
        config: Service configuration

    Returns:
        template_size x template_size equalized uint8 image
    """
    face = crop_face(gray, region, config.template_padding)
    size = (config.template_size, config.template_size)
    resized = cv2.resize(face, size, interpolation=cv2.INTER_AREA)
    return cv2.equalizeHist(resized)


def encode_png(image: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode('.png', image)
    if not ok:
        raise InvalidImageError('Failed to encode template image')
    return buffer.tobytes()


def serialize_template(record: TemplateRecord) -> bytes:
    data = {
        'version': record.version,
        'created_at': record.created_at.isoformat() if record.created_at else None,
        'quality_score': record.quality_score,
        'size': record.size,
        'image_data': base64.b64encode(record.image_data).decode('ascii'),
        'metadata': record.metadata,
    }
    return json.dumps(data, separators=(',', ':')).encode('utf-8')


def deserialize_template(payload: bytes) -> TemplateRecord:
    """
    Decode a template payload (structural validation only).

    Raises:
        InvalidTemplateError: Payload is not a well-formed template record
    """
    if not payload:
        raise InvalidTemplateError('Template payload is empty')

    try:
        data = json.loads(bytes(payload).decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError, TypeError, RecursionError) as e:
        raise InvalidTemplateError(f'Template payload is not a template record: {e}')

    if not isinstance(data, dict):
        raise InvalidTemplateError('Template payload is not a template record')

    try:
        image_data = base64.b64decode(data.get('image_data') or '', validate=True)
    except (binascii.Error, TypeError, ValueError) as e:
        raise InvalidTemplateError(f'Template image data is corrupt: {e}')

    created_at = None
    if data.get('created_at'):
        try:
            created_at = datetime.fromisoformat(str(data['created_at']))
        except ValueError:
            created_at = None

    try:
        quality_score = float(data.get('quality_score') or 0.0)
        size = int(data.get('size') or 0)
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidTemplateError(f'Template header is corrupt: {e}')

    metadata = data.get('metadata')
    record = TemplateRecord(
        version=str(data.get('version') or ''),
        image_data=image_data,
        created_at=created_at,
        quality_score=quality_score,
        size=size,
        metadata=metadata if isinstance(metadata, dict) else {},
    )

    if not record.is_valid:
        raise InvalidTemplateError('Template record has no version or image data')

    return record


def decode_template_image(record: TemplateRecord) -> np.ndarray:
    """
    Decode the stored face image of a template record.

    Raises:
        InvalidTemplateError: Image data cannot be decoded
    """
    buffer = np.frombuffer(record.image_data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_GRAYSCALE)
    if image is None or image.size == 0:
        raise InvalidTemplateError('Template image data cannot be decoded')
    return image


def is_valid_template(payload: bytes) -> bool:
    """Side-effect-free validity probe."""
    try:
        deserialize_template(payload)
    except InvalidTemplateError:
        return False
    return True


def get_template_info(payload: bytes) -> TemplateInfo:
    """Describe a payload; garbage yields an invalid TemplateInfo."""
    try:
        record = deserialize_template(payload)
    except InvalidTemplateError as e:
        return TemplateInfo(is_valid=False, payload_size=len(payload or b''),
                            metadata={'error': e.message})

    return TemplateInfo(
        is_valid=True,
        version=record.version,
        created_at=record.created_at,
        quality_score=record.quality_score,
        size=record.size,
        payload_size=len(payload),
        metadata=record.metadata,
    )


def build_template(
    gray: np.ndarray,
    region: FaceRegion,
    quality_score: float,
    config: Config,
    owner_id: Optional[str] = None
) -> FaceTemplate:
    """
    Create a versioned template from an accepted face region.

    Args:
        gray: Grayscale working image
        region: Face region that passed the quality gate
        quality_score: Overall quality at capture
        config: Service configuration
        owner_id: Optional owning employee

    Returns:
        FaceTemplate with serialized payload
    """
    face = normalize_face(gray, region, config)
    created_at = utcnow()

    record = TemplateRecord(
        version=TEMPLATE_VERSION,
        image_data=encode_png(face),
        created_at=created_at,
        quality_score=float(quality_score),
        size=config.template_size,
        metadata={
            'template_size': config.template_size,
            'padding': config.template_padding,
            'original_face_size': f'{region.width}x{region.height}',
            'detection_method': region.metadata.get('detection_method', 'explicit_region'),
            'degraded': region.degraded,
        },
    )

    return FaceTemplate(
        payload=serialize_template(record),
        version=TEMPLATE_VERSION,
        quality_score=float(quality_score),
        owner_id=owner_id,
        created_at=created_at,
        updated_at=created_at,
    )
