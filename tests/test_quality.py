from __future__ import annotations

import cv2
import numpy as np
import pytest

from conftest import CENTER_REGION, draw_face, encode_png
from faceguard.config import Config
from faceguard.errors import ErrorKind, PoorQualityError
from faceguard.models import FaceRegion, QualityReport
from faceguard.recognition.quality import (
    assess_face,
    brightness_score,
    contrast_score,
    require_acceptable,
    sharpness_score,
    size_score,
)


def _region() -> FaceRegion:
    x, y, w, h = CENTER_REGION
    return FaceRegion(x=x, y=y, width=w, height=h)


def test_brightness_score_band():
    assert brightness_score(50.0) == 100.0
    assert brightness_score(20.0) == pytest.approx(50.0)
    assert brightness_score(90.0) == pytest.approx(50.0)
    assert brightness_score(100.0) == 0.0


def test_contrast_and_sharpness_scores_saturate():
    assert contrast_score(15.0) == pytest.approx(50.0)
    assert contrast_score(60.0) == 100.0
    assert sharpness_score(500.0) == pytest.approx(50.0)
    assert sharpness_score(5000.0) == 100.0


def test_size_score_band_and_decay():
    config = Config()
    assert size_score(6400, config) == 100.0
    assert size_score(90000, config) == 100.0
    assert size_score(3200, config) == pytest.approx(25.0)
    assert size_score(135000, config) == pytest.approx(75.0)
    assert size_score(1_000_000, config) == 50.0


def test_flat_face_is_rejected_as_blurry():
    face = np.full((150, 150), 128, dtype=np.uint8)
    report = assess_face(face, face.size, Config())

    assert not report.acceptable
    assert report.overall == pytest.approx(50.0)
    assert report.failure_kind == ErrorKind.BLURRY_IMAGE
    assert "Image blurry" in report.issues
    assert "Low contrast" in report.issues


def test_worst_factor_tie_prefers_size():
    report = QualityReport(brightness=100, contrast=10, sharpness=100, size=10,
                           overall=50, threshold=70, acceptable=False)
    assert report.worst_factor == "size"
    assert report.failure_kind == ErrorKind.TOO_SMALL


def test_contrast_failure_refines_to_bad_lighting():
    report = QualityReport(brightness=100, contrast=5, sharpness=100, size=100,
                           overall=69, threshold=70, acceptable=False)
    assert report.failure_kind == ErrorKind.BAD_LIGHTING


def test_require_acceptable_raises_refined_kind():
    report = QualityReport(brightness=100, contrast=30, sharpness=100, size=6.25,
                           overall=59, threshold=70, acceptable=False, issues=["Face too small"])
    with pytest.raises(PoorQualityError) as exc:
        require_acceptable(report)
    assert exc.value.kind == ErrorKind.TOO_SMALL
    assert exc.value.report is report


def test_well_lit_face_passes(engine, face_a):
    report = engine.assess_quality(face_a, _region())
    assert report.acceptable
    assert report.success
    assert report.error_kind is None
    assert report.overall >= 70.0
    assert report.size == 100.0


@pytest.mark.parametrize("factor", [0.6, 0.3])
def test_darkening_never_improves_quality(engine, factor):
    original = draw_face(seed=3)
    darker = (original.astype(np.float32) * factor).astype(np.uint8)

    before = engine.assess_quality(encode_png(original), _region())
    after = engine.assess_quality(encode_png(darker), _region())
    assert after.overall <= before.overall


@pytest.mark.parametrize("kernel", [5, 15])
def test_blurring_never_improves_quality(engine, kernel):
    original = draw_face(seed=4)
    blurred = cv2.GaussianBlur(original, (kernel, kernel), 0)

    before = engine.assess_quality(encode_png(original), _region())
    after = engine.assess_quality(encode_png(blurred), _region())
    assert after.overall <= before.overall
    assert after.sharpness <= before.sharpness
