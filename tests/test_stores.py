from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from faceguard.enrollment import EnrollmentService
from faceguard.errors import ErrorKind
from faceguard.models import AuthenticationAttempt, AuthOutcome, Employee, EmployeeStatus, FaceTemplate
from faceguard.stores import InMemoryAuditStore, InMemoryEmployeeDirectory, InMemoryTemplateStore


def _template(owner_id: str | None, payload: bytes = b"{}") -> FaceTemplate:
    return FaceTemplate(payload=payload, version="GRAYEQ_1.0", quality_score=80.0, owner_id=owner_id)


def test_template_store_last_writer_wins():
    store = InMemoryTemplateStore()
    first = _template("u-1", b"first")
    second = _template("u-1", b"second")

    store.put(first)
    store.put(second)

    assert store.get("u-1") is second
    assert list(store.all()) == [second.id]


def test_template_store_requires_owner():
    with pytest.raises(ValueError):
        InMemoryTemplateStore().put(_template(None))


def test_template_store_delete():
    store = InMemoryTemplateStore()
    store.put(_template("u-1"))
    assert store.delete("u-1") is True
    assert store.delete("u-1") is False
    assert store.get("u-1") is None


def test_audit_store_failed_count_window(clock):
    store = InMemoryAuditStore()
    store.append(AuthenticationAttempt("u-1", AuthOutcome.FACE_NOT_MATCHED, attempted_at=clock.now))
    store.append(AuthenticationAttempt("u-1", AuthOutcome.SUCCESS, attempted_at=clock.now))
    store.append(AuthenticationAttempt("u-2", AuthOutcome.FACE_NOT_MATCHED, attempted_at=clock.now))
    store.append(AuthenticationAttempt("u-1", AuthOutcome.POOR_IMAGE_QUALITY,
                                       attempted_at=clock.now - timedelta(hours=1)))

    since = clock.now - timedelta(minutes=15)
    assert store.count_failed_since("u-1", since) == 1
    assert store.count_failed_since("u-2", since) == 1
    assert [a.attempted_at for a in store.list_for("u-1")][-1] == clock.now - timedelta(hours=1)


def test_attempt_serialization(clock):
    attempt = AuthenticationAttempt("u-1", AuthOutcome.FACE_NOT_MATCHED, face_match_score=42.0,
                                    failure_reason="mismatch", attempted_at=clock.now)
    data = attempt.to_dict()
    assert data["employeeId"] == "u-1"
    assert data["authenticationResult"] == "FaceNotMatched"
    assert data["faceMatchScore"] == 42.0
    assert data["attemptedAt"] == "2024-03-01T09:00:00+00:00"


@pytest.fixture
def enrollment(engine):
    directory = InMemoryEmployeeDirectory([
        Employee(id="u-1", employee_id="E001"),
        Employee(id="u-9", employee_id="E009", status=EmployeeStatus.TERMINATED),
    ])
    return EnrollmentService(engine, directory, InMemoryTemplateStore())


def test_enrollment_replaces_template(enrollment, face_a, face_b):
    first = enrollment.enroll_employee("E001", [face_a])
    second = enrollment.enroll_employee("E001", [face_b])

    assert first.success and second.success
    assert enrollment.get_template("u-1").id == second.template.id
    assert enrollment.get_template("u-1").owner_id == "u-1"


def test_enrollment_refuses_unknown_or_inactive(enrollment, face_a):
    for employee_id in ("E404", "E009"):
        result = enrollment.enroll_employee(employee_id, [face_a])
        assert not result.success
        assert result.error_kind == ErrorKind.EMPLOYEE_NOT_FOUND


def test_failed_enrollment_keeps_previous_template(enrollment, face_a, flat_image):
    enrollment.enroll_employee("E001", [face_a])
    previous = enrollment.get_template("u-1")

    result = enrollment.enroll_employee("E001", [flat_image])
    assert not result.success
    assert enrollment.get_template("u-1") is previous


def test_revoke_template(enrollment, face_a):
    enrollment.enroll_employee("E001", [face_a])
    assert enrollment.revoke_template("u-1") is True
    assert enrollment.get_template("u-1") is None
    assert enrollment.revoke_template("u-1") is False


def test_audit_store_concurrent_appends():
    store = InMemoryAuditStore()
    now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    workers, per_worker = 8, 50

    def append_many():
        for _ in range(per_worker):
            store.append(AuthenticationAttempt(owner_id="u-1", outcome=AuthOutcome.FACE_NOT_MATCHED,
                                               attempted_at=now))

    threads = [threading.Thread(target=append_many) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    attempts = store.list_for("u-1")
    assert len(attempts) == workers * per_worker
    assert len({attempt.id for attempt in attempts}) == workers * per_worker
    assert store.count_failed_since("u-1", now - timedelta(minutes=1)) == workers * per_worker
