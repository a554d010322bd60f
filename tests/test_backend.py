from __future__ import annotations

import pytest
import requests

from faceguard import events
from faceguard.config import Config
from faceguard.employees import BackendEmployeeDirectory
from faceguard.events import PublishingAuditStore, send_attempt
from faceguard.models import AuthenticationAttempt, AuthOutcome, EmployeeStatus
from faceguard.stores import InMemoryAuditStore


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, text: str = ""):
        self.status_code = status_code
        self.payload = payload
        self.text = text

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        return self.payload

    def raise_for_status(self) -> None:
        if not self.ok:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, response: FakeResponse):
        self.response = response
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        return self.response


@pytest.fixture
def backend_config() -> Config:
    return Config(backend_url="http://backend.test", request_timeout_seconds=3.0, localizer="fallback")


def test_directory_fetches_employee(backend_config):
    session = FakeSession(FakeResponse(payload={
        "id": 17, "employeeId": "E017", "firstName": "Dana", "lastName": "Example",
        "status": "Active",
    }))
    employee = BackendEmployeeDirectory(backend_config, session=session).find_by_employee_id("E017")

    assert session.calls == [("http://backend.test/api/employees/E017", 3.0)]
    assert employee.id == "17"
    assert employee.employee_id == "E017"
    assert employee.full_name == "Dana Example"
    assert employee.is_active


def test_directory_unknown_status_is_inactive(backend_config):
    session = FakeSession(FakeResponse(payload={"id": 1, "status": "OnLeave"}))
    employee = BackendEmployeeDirectory(backend_config, session=session).find_by_employee_id("1")
    assert employee.status == EmployeeStatus.INACTIVE
    assert not employee.is_active


def test_directory_not_found(backend_config):
    session = FakeSession(FakeResponse(status_code=404))
    assert BackendEmployeeDirectory(backend_config, session=session).find_by_employee_id("E1") is None


def test_directory_server_error_propagates(backend_config):
    session = FakeSession(FakeResponse(status_code=500))
    with pytest.raises(requests.exceptions.HTTPError):
        BackendEmployeeDirectory(backend_config, session=session).find_by_employee_id("E1")


def _attempt() -> AuthenticationAttempt:
    return AuthenticationAttempt("u-1", AuthOutcome.FACE_NOT_MATCHED, face_match_score=41.5,
                                 failure_reason="mismatch")


def test_send_attempt_posts_json(monkeypatch, backend_config):
    sent = {}

    def fake_post(url, json=None, timeout=None):
        sent.update(url=url, json=json, timeout=timeout)
        return FakeResponse(status_code=201)

    monkeypatch.setattr(events.requests, "post", fake_post)

    assert send_attempt(_attempt(), backend_config) is True
    assert sent["url"] == "http://backend.test/api/auth-logs"
    assert sent["json"]["authenticationResult"] == "FaceNotMatched"
    assert sent["timeout"] == 3.0


@pytest.mark.parametrize("error", [
    requests.exceptions.Timeout("slow"),
    requests.exceptions.ConnectionError("down"),
])
def test_send_attempt_network_failures(monkeypatch, backend_config, error):
    def fake_post(url, json=None, timeout=None):
        raise error

    monkeypatch.setattr(events.requests, "post", fake_post)
    assert send_attempt(_attempt(), backend_config) is False


def test_publishing_store_records_even_when_publish_fails(monkeypatch, backend_config):
    monkeypatch.setattr(events.requests, "post",
                        lambda url, json=None, timeout=None: FakeResponse(status_code=503, text="busy"))
    inner = InMemoryAuditStore()
    store = PublishingAuditStore(inner, backend_config)
    attempt = _attempt()

    assert store.append(attempt) is False
    assert store.list_for("u-1") == [attempt]
    assert store.count_failed_since("u-1", attempt.attempted_at) == 1
