from __future__ import annotations

import math

import numpy as np
import pytest

from conftest import DEEPLY_NESTED_TEMPLATE, OVERFLOWING_TEMPLATE
from faceguard.errors import ErrorKind
from faceguard.recognition.similarity import (
    fuse_scores,
    histogram_similarity,
    meets_threshold,
    structural_similarity,
    template_match_similarity,
)


@pytest.fixture
def templates(engine, face_a, face_a_brighter, face_b):
    results = {name: engine.enroll(image) for name, image in
               (("a", face_a), ("a_bright", face_a_brighter), ("b", face_b))}
    assert all(r.success for r in results.values())
    return {name: r.template for name, r in results.items()}


def test_template_matches_itself(engine, templates):
    result = engine.compare(templates["a"], templates["a"])
    assert result.success
    assert result.similarity >= 95.0
    assert result.is_match
    assert result.distance == pytest.approx(100.0 - result.similarity)
    assert result.confidence >= 95.0


def test_comparison_is_near_symmetric(engine, templates):
    forward = engine.compare(templates["a"], templates["b"])
    backward = engine.compare(templates["b"], templates["a"])
    assert abs(forward.similarity - backward.similarity) <= 1.0


def test_threshold_boundary_is_inclusive(engine, templates):
    first = engine.compare(templates["a"], templates["b"])
    at_threshold = engine.compare(templates["a"], templates["b"], threshold=first.similarity)
    assert at_threshold.is_match
    assert meets_threshold(80.0, 80.0)
    assert not meets_threshold(79.999, 80.0)


def test_compare_against_malformed_payload(engine, templates):
    result = engine.compare(templates["a"], b"garbage")
    assert result.success is False
    assert result.error_kind == ErrorKind.INVALID_TEMPLATE
    assert result.similarity == 0.0
    assert result.is_match is False


@pytest.mark.parametrize("payload", [DEEPLY_NESTED_TEMPLATE, OVERFLOWING_TEMPLATE])
def test_compare_against_hostile_payload_is_invalid_template(engine, templates, payload):
    result = engine.compare(templates["a"], payload)
    assert result.error_kind == ErrorKind.INVALID_TEMPLATE
    assert result.similarity == 0.0

    reversed_result = engine.compare(payload, templates["a"])
    assert reversed_result.error_kind == ErrorKind.INVALID_TEMPLATE


def test_component_breakdown_in_metadata(engine, templates):
    result = engine.compare(templates["a"], templates["a_bright"])
    for key in ("histogram_similarity", "template_match_similarity", "structural_similarity"):
        assert 0.0 <= result.metadata[key] <= 100.0


def test_fuse_scores_weights_and_confidence():
    fused = fuse_scores(100.0, 50.0, 0.0)
    assert fused["similarity"] == pytest.approx(50.0)
    assert fused["distance"] == pytest.approx(50.0)
    assert fused["confidence"] == 0.0

    agreeing = fuse_scores(90.0, 90.0, 90.0)
    assert agreeing["similarity"] == pytest.approx(90.0)
    assert agreeing["confidence"] == 100.0


def test_fuse_scores_treats_non_finite_as_zero():
    fused = fuse_scores(math.nan, 100.0, math.inf)
    assert fused["similarity"] == pytest.approx(40.0)
    assert math.isfinite(fused["confidence"])


def test_components_on_identical_images():
    rng = np.random.default_rng(1)
    image = rng.integers(0, 256, size=(64, 64), dtype=np.uint8)
    assert histogram_similarity(image, image) == pytest.approx(100.0)
    assert template_match_similarity(image, image) == pytest.approx(100.0, abs=1e-3)
    assert structural_similarity(image, image) == pytest.approx(100.0)


def test_inverted_image_scores_low_structurally():
    rng = np.random.default_rng(2)
    image = rng.integers(0, 256, size=(64, 64), dtype=np.uint8)
    inverted = 255 - image
    assert structural_similarity(image, inverted) == 0.0
    assert template_match_similarity(image, inverted) == 0.0
