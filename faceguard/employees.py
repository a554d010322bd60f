"""
Backend employee directory.

Looks employees up in the backend API by business employee id.
"""

from typing import Any, Dict, Optional

import requests

from .config import Config
from .logging_config import get_logger
from .models import Employee, EmployeeStatus

logger = get_logger(__name__)


def _parse_employee(data: Dict[str, Any]) -> Employee:
    """
    Convert backend JSON into an Employee.

    Unknown status values are treated as inactive.
    """
    raw_status = data.get('status', EmployeeStatus.ACTIVE.value)
    try:
        status = EmployeeStatus(raw_status)
    except ValueError:
        logger.warning(f"Unknown employee status '{raw_status}', treating as Inactive")
        status = EmployeeStatus.INACTIVE

    full_name = data.get('fullName') or ' '.join(
        part for part in (data.get('firstName'), data.get('lastName')) if part
    )

    return Employee(
        id=str(data['id']),
        employee_id=str(data.get('employeeId', data['id'])),
        full_name=full_name,
        status=status,
    )


class BackendEmployeeDirectory:
    """EmployeeDirectory backed by GET {backend_url}/api/employees/{employee_id}."""

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def find_by_employee_id(self, employee_id: str) -> Optional[Employee]:
        """
        Fetch one employee.

        Args:
            employee_id: Business employee id

        Returns:
            Employee or None when the backend answers 404

        Raises:
            requests.exceptions.RequestException: Network or non-404 HTTP error
        """
        url = f'{self.config.backend_url}/api/employees/{employee_id}'

        try:
            response = self.session.get(url, timeout=self.config.request_timeout_seconds)
            if response.status_code == 404:
                logger.info(f'Employee {employee_id} not found in backend')
                return None
            response.raise_for_status()
            return _parse_employee(response.json())

        except requests.exceptions.RequestException as e:
            logger.error(f'Failed to fetch employee {employee_id} from backend: {e}')
            raise
