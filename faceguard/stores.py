"""
Collaborator contracts and in-memory implementations.

The authentication orchestrator depends on three collaborators:
- EmployeeDirectory: lookup by business employee id
- TemplateStore: one active template per owner, last writer wins
- AuditStore: append-only authentication attempts

The in-memory implementations are thread-safe and back tests, the CLI and
embedding hosts that keep their own persistence elsewhere.
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from .logging_config import get_logger
from .models import AuthenticationAttempt, Employee, FaceTemplate

logger = get_logger(__name__)


class EmployeeDirectory(Protocol):
    def find_by_employee_id(self, employee_id: str) -> Optional[Employee]:
        ...


class TemplateStore(Protocol):
    def get(self, owner_id: str) -> Optional[FaceTemplate]:
        ...

    def put(self, template: FaceTemplate) -> None:
        ...

    def delete(self, owner_id: str) -> bool:
        ...

    def all(self) -> Dict[str, FaceTemplate]:
        ...


class AuditStore(Protocol):
    def append(self, attempt: AuthenticationAttempt) -> None:
        ...

    def list_for(self, owner_id: str) -> List[AuthenticationAttempt]:
        ...

    def list_between(self, start: datetime, end: datetime) -> List[AuthenticationAttempt]:
        ...

    def count_failed_since(self, owner_id: str, since: datetime) -> int:
        ...


class InMemoryEmployeeDirectory:
    """Employee lookup keyed by business employee id."""

    def __init__(self, employees: Optional[List[Employee]] = None):
        self._lock = threading.Lock()
        self._employees: Dict[str, Employee] = {}
        for employee in employees or []:
            self.add(employee)

    def add(self, employee: Employee) -> None:
        with self._lock:
            self._employees[employee.employee_id] = employee

    def find_by_employee_id(self, employee_id: str) -> Optional[Employee]:
        with self._lock:
            return self._employees.get(employee_id)


class InMemoryTemplateStore:
    """Single active template per owner."""

    def __init__(self):
        self._lock = threading.Lock()
        self._templates: Dict[str, FaceTemplate] = {}

    def get(self, owner_id: str) -> Optional[FaceTemplate]:
        with self._lock:
            return self._templates.get(owner_id)

    def put(self, template: FaceTemplate) -> None:
        """
        Store a template, replacing any previous one of the same owner.

        Raises:
            ValueError: Template has no owner
        """
        if not template.owner_id:
            raise ValueError('Template has no owner')

        with self._lock:
            replaced = template.owner_id in self._templates
            self._templates[template.owner_id] = template

        if replaced:
            logger.info(f'Replaced face template of {template.owner_id}')

    def delete(self, owner_id: str) -> bool:
        with self._lock:
            return self._templates.pop(owner_id, None) is not None

    def all(self) -> Dict[str, FaceTemplate]:
        """Snapshot keyed by template id."""
        with self._lock:
            return {template.id: template for template in self._templates.values()}


class InMemoryAuditStore:
    """Append-only list of authentication attempts."""

    def __init__(self):
        self._lock = threading.Lock()
        self._attempts: List[AuthenticationAttempt] = []

    def append(self, attempt: AuthenticationAttempt) -> None:
        with self._lock:
            self._attempts.append(attempt)

    def list_for(self, owner_id: str) -> List[AuthenticationAttempt]:
        """Attempts of one owner, newest first."""
        with self._lock:
            attempts = [a for a in self._attempts if a.owner_id == owner_id]
        return sorted(attempts, key=lambda a: a.attempted_at, reverse=True)

    def list_between(self, start: datetime, end: datetime) -> List[AuthenticationAttempt]:
        with self._lock:
            return [a for a in self._attempts if start <= a.attempted_at <= end]

    def count_failed_since(self, owner_id: str, since: datetime) -> int:
        with self._lock:
            return sum(
                1 for a in self._attempts
                if a.owner_id == owner_id and not a.is_success and a.attempted_at >= since
            )
