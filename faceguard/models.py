"""
Data model for the face verification core.

Plain dataclasses shared by the recognition pipeline, the face engine
facade and the authentication orchestrator.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import ErrorKind


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class SizeCategory(str, Enum):
    VERY_SMALL = 'VerySmall'
    SMALL = 'Small'
    MEDIUM = 'Medium'
    LARGE = 'Large'
    VERY_LARGE = 'VeryLarge'

    @classmethod
    def from_area(cls, area: int) -> 'SizeCategory':
        if area < 3600:      # < 60x60
            return cls.VERY_SMALL
        if area < 6400:      # < 80x80
            return cls.SMALL
        if area < 22500:     # < 150x150
            return cls.MEDIUM
        if area < 62500:     # < 250x250
            return cls.LARGE
        return cls.VERY_LARGE


@dataclass(frozen=True)
class Landmark:
    name: str
    x: float
    y: float
    confidence: float = 0.7


@dataclass
class QualityReport:
    """
    Quality sub-scores of one face region, each in [0, 100].

    overall = 0.2*brightness + 0.2*contrast + 0.3*sharpness + 0.3*size
    """

    brightness: float
    contrast: float
    sharpness: float
    size: float
    overall: float
    threshold: float
    acceptable: bool
    issues: List[str] = field(default_factory=list)
    error_kind: Optional[ErrorKind] = None
    message: str = ''
    processing_time_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.acceptable and self.error_kind is None

    @property
    def factors(self) -> Dict[str, float]:
        return {
            'brightness': self.brightness,
            'contrast': self.contrast,
            'sharpness': self.sharpness,
            'size': self.size,
        }

    @property
    def worst_factor(self) -> str:
        # Ties resolve in this order: size, sharpness, brightness, contrast.
        order = ('size', 'sharpness', 'brightness', 'contrast')
        factors = self.factors
        return min(order, key=lambda name: factors[name])

    @property
    def failure_kind(self) -> Optional[ErrorKind]:
        """Refined failure category, or None when acceptable."""
        if self.acceptable:
            return None
        return {
            'size': ErrorKind.TOO_SMALL,
            'sharpness': ErrorKind.BLURRY_IMAGE,
            'brightness': ErrorKind.BAD_LIGHTING,
            'contrast': ErrorKind.BAD_LIGHTING,
        }[self.worst_factor]


@dataclass
class FaceRegion:
    """Candidate face box in working-copy pixel coordinates."""

    x: int
    y: int
    width: int
    height: int
    confidence: float = 85.0
    size_category: SizeCategory = SizeCategory.MEDIUM
    landmarks: List[Landmark] = field(default_factory=list)
    quality: Optional[QualityReport] = None
    degraded: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def area(self) -> int:
        return int(self.width) * int(self.height)

    @property
    def box(self) -> Tuple[int, int, int, int]:
        return int(self.x), int(self.y), int(self.width), int(self.height)

    @property
    def quality_score(self) -> float:
        return self.quality.overall if self.quality is not None else 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['size_category'] = self.size_category.value
        return data


@dataclass
class DetectionResult:
    success: bool = False
    faces: List[FaceRegion] = field(default_factory=list)
    rejected: List[FaceRegion] = field(default_factory=list)
    image_size: Tuple[int, int] = (0, 0)
    degraded: bool = False
    timed_out: bool = False
    error_kind: Optional[ErrorKind] = None
    error_message: str = ''
    processing_time_ms: float = 0.0

    @property
    def best_face(self) -> Optional[FaceRegion]:
        return self.faces[0] if self.faces else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'faces': [face.to_dict() for face in self.faces],
            'processingTimeMs': round(self.processing_time_ms, 2),
            'errorMessage': self.error_message or None,
            'errorKind': self.error_kind.value if self.error_kind else None,
            'degraded': self.degraded,
        }


@dataclass(frozen=True)
class FaceTemplate:
    """
    Enrolled face template owned by exactly one employee.

    Immutable: re-enrollment replaces the template, it never mutates it.
    """

    payload: bytes
    version: str
    quality_score: float
    owner_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_valid(self) -> bool:
        return bool(self.payload) and bool(self.version)


@dataclass
class TemplateInfo:
    is_valid: bool = False
    version: str = ''
    created_at: Optional[datetime] = None
    quality_score: float = 0.0
    size: int = 0
    payload_size: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TemplateResult:
    success: bool = False
    template: Optional[FaceTemplate] = None
    source_face: Optional[FaceRegion] = None
    quality: Optional[QualityReport] = None
    error_kind: Optional[ErrorKind] = None
    message: str = ''
    processing_time_ms: float = 0.0

    @property
    def quality_score(self) -> float:
        return self.template.quality_score if self.template is not None else 0.0


@dataclass
class ComparisonResult:
    success: bool = False
    similarity: float = 0.0
    distance: float = 100.0
    confidence: float = 0.0
    is_match: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None
    message: str = ''
    processing_time_ms: float = 0.0


@dataclass
class MatchCandidate:
    template_id: str
    similarity: float
    distance: float
    confidence: float
    is_match: bool
    metadata: Dict[str, Any] = field(default_factory=dict)
    rank: int = 0


@dataclass
class MatchResult:
    success: bool = False
    candidates: List[MatchCandidate] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    cancelled: bool = False
    threshold: float = 0.0
    error_kind: Optional[ErrorKind] = None
    message: str = ''
    processing_time_ms: float = 0.0

    @property
    def best(self) -> Optional[MatchCandidate]:
        return self.candidates[0] if self.candidates else None

    @property
    def matches(self) -> List[MatchCandidate]:
        return [c for c in self.candidates if c.is_match]


@dataclass
class LivenessResult:
    success: bool = False
    is_live: bool = False
    confidence: float = 0.0
    quality_score: float = 0.0
    message: str = ''


class EmployeeStatus(str, Enum):
    ACTIVE = 'Active'
    INACTIVE = 'Inactive'
    SUSPENDED = 'Suspended'
    TERMINATED = 'Terminated'


@dataclass(frozen=True)
class Employee:
    """Directory entry: internal id plus the business employee id."""

    id: str
    employee_id: str
    full_name: str = ''
    status: EmployeeStatus = EmployeeStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == EmployeeStatus.ACTIVE


class AuthOutcome(str, Enum):
    SUCCESS = 'Success'
    EMPLOYEE_NOT_FOUND = 'EmployeeNotFound'
    NO_FACE_TEMPLATE = 'NoFaceTemplate'
    FACE_NOT_MATCHED = 'FaceNotMatched'
    LIVENESS_CHECK_FAILED = 'LivenessCheckFailed'
    POOR_IMAGE_QUALITY = 'PoorImageQuality'
    SYSTEM_ERROR = 'SystemError'


@dataclass(frozen=True)
class AuthenticationAttempt:
    """Append-only audit record, one per authentication call."""

    owner_id: Optional[str]
    outcome: AuthOutcome
    face_match_score: Optional[float] = None
    liveness_score: Optional[float] = None
    failure_reason: Optional[str] = None
    attempted_at: datetime = field(default_factory=utcnow)
    duration_ms: float = 0.0
    id: str = field(default_factory=new_id)

    @property
    def is_success(self) -> bool:
        return self.outcome == AuthOutcome.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'employeeId': self.owner_id,
            'authenticationResult': self.outcome.value,
            'faceMatchScore': self.face_match_score,
            'livenessScore': self.liveness_score,
            'failureReason': self.failure_reason,
            'attemptedAt': self.attempted_at.isoformat(),
            'durationMs': round(self.duration_ms, 2),
        }


@dataclass
class AuthenticationVerdict:
    outcome: AuthOutcome
    message: str
    employee: Optional[Employee] = None
    face_match_score: Optional[float] = None
    liveness_score: Optional[float] = None
    comparison: Optional[ComparisonResult] = None
    detection_error: Optional[ErrorKind] = None
    attempt: Optional[AuthenticationAttempt] = None
    processing_time_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.outcome == AuthOutcome.SUCCESS


@dataclass
class LockoutStatus:
    owner_id: str
    locked: bool
    failed_attempts: int
    max_attempts: int
    window_minutes: int


@dataclass
class AuthenticationStatistics:
    total_attempts: int = 0
    successful_attempts: int = 0
    failed_attempts: int = 0
    success_rate: float = 0.0
    failure_reasons: Dict[str, int] = field(default_factory=dict)
    attempts_per_day: Dict[str, int] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=utcnow)
