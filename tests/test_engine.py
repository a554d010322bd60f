from __future__ import annotations

import threading
from dataclasses import replace

import pytest

from conftest import draw_face, encode_png
from faceguard.engine import FaceEngine
from faceguard.errors import ErrorKind
from faceguard.models import FaceRegion


def test_detect_reports_face(engine, face_a):
    result = engine.detect(face_a)

    assert result.success
    assert result.degraded
    assert result.best_face.box == (75, 75, 150, 150)
    assert result.image_size == (300, 300)
    assert result.processing_time_ms >= 0.0

    data = result.to_dict()
    assert data["success"] is True
    assert data["errorKind"] is None
    assert len(data["faces"]) == 1


def test_detect_maps_regions_to_original_coordinates(config):
    engine = FaceEngine(replace(config, max_image_width=300, max_image_height=300))
    result = engine.detect(encode_png(draw_face(size=600)))

    assert result.success
    assert result.image_size == (600, 600)
    assert result.best_face.box == (150, 150, 300, 300)


def test_detect_invalid_image(engine):
    result = engine.detect(b"not an image")
    assert not result.success
    assert result.error_kind == ErrorKind.INVALID_IMAGE
    assert result.error_message


def test_detect_poor_quality_reports_refined_kind(engine, flat_image):
    result = engine.detect(flat_image)
    assert not result.success
    assert result.error_kind == ErrorKind.BLURRY_IMAGE
    assert len(result.rejected) == 1


def test_assess_quality_outside_image_is_reported(engine, face_a):
    report = engine.assess_quality(face_a, FaceRegion(x=500, y=500, width=50, height=50))

    assert not report.success
    assert report.error_kind == ErrorKind.INVALID_IMAGE
    assert "outside the image" in report.message
    assert report.overall == 0.0
    assert report.processing_time_ms >= 0.0


def test_assess_quality_invalid_image_is_reported(engine):
    report = engine.assess_quality(b"not an image", FaceRegion(x=0, y=0, width=50, height=50))
    assert not report.success
    assert report.error_kind == ErrorKind.INVALID_IMAGE


def test_assess_quality_small_region_carries_refined_kind(engine, face_a):
    report = engine.assess_quality(face_a, FaceRegion(x=130, y=130, width=40, height=40))
    assert not report.success
    assert report.error_kind == ErrorKind.TOO_SMALL
    assert "below threshold" in report.message


def test_enroll_well_lit_face(engine, face_a):
    result = engine.enroll(face_a)

    assert result.success
    assert result.quality.overall >= 70.0
    assert result.template.payload
    assert engine.is_valid_template(result.template)
    assert engine.get_template_info(result.template).is_valid


def test_enroll_small_region_fails_too_small(engine, face_a):
    result = engine.enroll(face_a, region=FaceRegion(x=130, y=130, width=40, height=40))

    assert not result.success
    assert result.error_kind == ErrorKind.TOO_SMALL
    assert result.error_kind.is_quality_failure
    assert result.quality.size < 50.0
    assert result.quality.overall < 70.0
    assert result.template is None


def test_enroll_invalid_image(engine):
    result = engine.enroll(b"")
    assert not result.success
    assert result.error_kind == ErrorKind.INVALID_IMAGE


def test_enroll_best_picks_a_passing_image(engine, face_a, face_b, flat_image):
    result = engine.enroll_best([flat_image, face_a, face_b], owner_id="emp-1")
    assert result.success
    assert result.template.owner_id == "emp-1"


def test_compare_with_image(engine, face_a, face_a_brighter, face_b):
    stored = engine.enroll(face_a).template

    same = engine.compare_with_image(stored, face_a_brighter)
    assert same.is_match
    assert same.similarity > 95.0
    assert same.metadata["probe_quality"] >= 70.0

    other = engine.compare_with_image(stored, face_b)
    assert other.success
    assert not other.is_match
    assert other.similarity < 80.0


def test_compare_with_unusable_probe(engine, face_a, flat_image):
    stored = engine.enroll(face_a).template
    result = engine.compare_with_image(stored, flat_image)
    assert not result.success
    assert result.error_kind == ErrorKind.BLURRY_IMAGE


def test_liveness_placeholder_with_fallback_localizer(engine, face_a):
    # Fallback confidence (70) is below the liveness requirement (80).
    result = engine.check_liveness(face_a)
    assert result.success
    assert not result.is_live
    assert result.confidence == pytest.approx(min(100.0, (result.quality_score + 70.0) / 2))


def test_liveness_without_face(engine, flat_image):
    result = engine.check_liveness(flat_image)
    assert not result.success
    assert not result.is_live


def test_health_check(engine):
    status = engine.health_check()
    assert status["healthy"] is True
    assert status["self_similarity"] > 95.0
    assert status["localizer"] == "fallback_center"


def test_statistics_track_work(engine, face_a):
    engine.detect(face_a)
    template = engine.enroll(face_a).template
    engine.compare(template, template)

    stats = engine.get_statistics()
    assert stats["processed_images"] == 2
    assert stats["detected_faces"] == 1
    assert stats["generated_templates"] == 1
    assert stats["comparisons"] == 1
    assert stats["average_processing_ms"] >= 0.0
    assert stats["uptime"].endswith("s")


def test_concurrent_calls_share_telemetry(engine, face_a):
    workers = 8
    results = []

    def enroll_and_compare():
        result = engine.enroll(face_a)
        results.append(result)
        engine.compare(result.template, result.template)

    threads = [threading.Thread(target=enroll_and_compare) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == workers
    assert all(result.success for result in results)

    stats = engine.get_statistics()
    assert stats["processed_images"] == workers
    assert stats["generated_templates"] == workers
    assert stats["comparisons"] == workers
