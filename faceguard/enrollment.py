"""
Employee enrollment.

Builds the single active face template of an employee from one or more
images and replaces any previous template.
"""

import threading
from typing import Iterable, Optional

from .engine import FaceEngine
from .errors import ErrorKind
from .logging_config import get_logger
from .models import FaceTemplate, TemplateResult
from .stores import EmployeeDirectory, TemplateStore

logger = get_logger(__name__)


class EnrollmentService:
    """Per-employee template lifecycle: enroll (replace), revoke, fetch."""

    def __init__(self, engine: FaceEngine, directory: EmployeeDirectory, templates: TemplateStore):
        self.engine = engine
        self.directory = directory
        self.templates = templates

    def enroll_employee(
        self,
        employee_id: str,
        images: Iterable[bytes],
        cancel_event: Optional[threading.Event] = None
    ) -> TemplateResult:
        """
        Enroll an active employee from the best of several images.

        Args:
            employee_id: Business employee id
            images: Candidate enrollment images
            cancel_event: Optional signal checked between images

        Returns:
            TemplateResult; on success the template is stored
        """
        employee = self.directory.find_by_employee_id(employee_id)
        if employee is None or not employee.is_active:
            logger.warning(f'Enrollment refused: employee {employee_id} not found or inactive')
            return TemplateResult(
                error_kind=ErrorKind.EMPLOYEE_NOT_FOUND,
                message=f'Employee {employee_id} not found or inactive',
            )

        result = self.engine.enroll_best(images, owner_id=employee.id, cancel_event=cancel_event)
        if not result.success:
            logger.info(f'Enrollment of {employee_id} failed [{result.error_kind.value}]: {result.message}')
            return result

        self.templates.delete(employee.id)
        self.templates.put(result.template)

        logger.info(f'✅ Enrolled {employee_id} (quality={result.quality_score:.1f})')
        return result

    def revoke_template(self, owner_id: str) -> bool:
        removed = self.templates.delete(owner_id)
        if removed:
            logger.info(f'Revoked face template of {owner_id}')
        return removed

    def get_template(self, owner_id: str) -> Optional[FaceTemplate]:
        return self.templates.get(owner_id)
