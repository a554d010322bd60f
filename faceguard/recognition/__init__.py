"""
Recognition algorithms package.

Contains modules for:
- Image preprocessing
- Face localization
- Face quality assessment
- Template encoding
- Template similarity and 1:N matching
- Liveness placeholder
"""

from .preprocessing import PreparedImage, prepare_image, crop_face, scale_region
from .detection import (
    CascadeLocalizer,
    ClassifierBundle,
    FaceLocalizer,
    FallbackLocalizer,
    create_localizer,
    load_classifiers,
)
from .quality import assess_face, assess_region, compute_blur_score, require_acceptable
from .templates import (
    TEMPLATE_VERSION,
    build_template,
    deserialize_template,
    get_template_info,
    is_valid_template,
)
from .similarity import compare_payloads, meets_threshold
from .matching import match_template_against_many, rank_candidates, select_best_template
from .liveness import check_liveness

__all__ = [
    'PreparedImage',
    'prepare_image',
    'crop_face',
    'scale_region',
    'CascadeLocalizer',
    'ClassifierBundle',
    'FaceLocalizer',
    'FallbackLocalizer',
    'create_localizer',
    'load_classifiers',
    'assess_face',
    'assess_region',
    'compute_blur_score',
    'require_acceptable',
    'TEMPLATE_VERSION',
    'build_template',
    'deserialize_template',
    'get_template_info',
    'is_valid_template',
    'compare_payloads',
    'meets_threshold',
    'match_template_against_many',
    'rank_candidates',
    'select_best_template',
    'check_liveness',
]
