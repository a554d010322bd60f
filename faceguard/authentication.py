"""
Authentication orchestrator.

Sequential verification of one employee against one probe image:

    lookup employee -> require template -> localize and quality-gate probe
    -> optional liveness -> compare -> verdict

The first failing stage decides the outcome. Every call appends exactly
one AuthenticationAttempt to the audit store. Lockout is a read-only
query; enforcing it is up to the caller.
"""

import time
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import requests

from .config import Config
from .engine import FaceEngine
from .errors import LIBRARY_FAULTS, ErrorKind, FaceGuardError
from .logging_config import get_logger
from .models import (
    AuthenticationAttempt,
    AuthenticationStatistics,
    AuthenticationVerdict,
    AuthOutcome,
    LockoutStatus,
    utcnow,
)
from .recognition.liveness import check_liveness
from .stores import AuditStore, EmployeeDirectory, TemplateStore
from .utils.timing import elapsed_ms

logger = get_logger(__name__)

STATISTICS_DEFAULT_DAYS = 30


class AuthenticationOrchestrator:
    """
    Face authentication state machine with audit trail.

    Args:
        engine: Face engine
        directory: Employee lookup
        templates: Enrolled templates
        audit: Append-only attempt log
        config: Service configuration
        clock: Returns the current UTC time (injectable for tests)
    """

    def __init__(
        self,
        engine: FaceEngine,
        directory: EmployeeDirectory,
        templates: TemplateStore,
        audit: AuditStore,
        config: Config,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.engine = engine
        self.directory = directory
        self.templates = templates
        self.audit = audit
        self.config = config
        self.clock = clock or utcnow

    def authenticate(
        self,
        employee_id: str,
        probe_image: bytes,
        perform_liveness: bool = False
    ) -> AuthenticationVerdict:
        """
        Verify that the probe image shows the given employee.

        Args:
            employee_id: Business employee id
            probe_image: Encoded probe image
            perform_liveness: Run the liveness stage before comparison

        Returns:
            AuthenticationVerdict with the recorded attempt attached
        """
        started = time.perf_counter()
        verdict = AuthenticationVerdict(outcome=AuthOutcome.SYSTEM_ERROR,
                                        message='Authentication did not complete')

        try:
            self._evaluate(verdict, employee_id, probe_image, perform_liveness)
        except (FaceGuardError, requests.exceptions.RequestException, *LIBRARY_FAULTS) as e:
            logger.error(f'Authentication of {employee_id} failed with system error: {e}')
            verdict.outcome = AuthOutcome.SYSTEM_ERROR
            verdict.message = f'Authentication failed: {e}'
        finally:
            # Unexpected errors still propagate, but never without an audit record.
            verdict.processing_time_ms = elapsed_ms(started)
            verdict.attempt = self._record(verdict, employee_id)

        score = f'{verdict.face_match_score:.1f}' if verdict.face_match_score is not None else '-'
        logger.info(
            f'Authentication {employee_id}: {verdict.outcome.value} '
            f'(score={score}, {verdict.processing_time_ms:.0f}ms)'
        )
        return verdict

    def _evaluate(
        self,
        verdict: AuthenticationVerdict,
        employee_id: str,
        probe_image: bytes,
        perform_liveness: bool
    ) -> None:
        employee = self.directory.find_by_employee_id(employee_id)
        if employee is None or not employee.is_active:
            self._finish(verdict, AuthOutcome.EMPLOYEE_NOT_FOUND,
                         f'Employee {employee_id} not found or inactive')
            return
        verdict.employee = employee

        template = self.templates.get(employee.id)
        if template is None or not template.is_valid:
            self._finish(verdict, AuthOutcome.NO_FACE_TEMPLATE,
                         f'No face template enrolled for {employee_id}')
            return

        probe = self.engine.enroll(probe_image)
        if not probe.success:
            verdict.detection_error = probe.error_kind
            if probe.error_kind == ErrorKind.SYSTEM_ERROR:
                self._finish(verdict, AuthOutcome.SYSTEM_ERROR, probe.message)
            else:
                self._finish(verdict, AuthOutcome.POOR_IMAGE_QUALITY, probe.message)
            return

        if perform_liveness:
            liveness = check_liveness(probe.source_face, self.config)
            verdict.liveness_score = liveness.confidence
            if not liveness.is_live:
                self._finish(verdict, AuthOutcome.LIVENESS_CHECK_FAILED, liveness.message)
                return

        comparison = self.engine.compare(template, probe.template)
        verdict.comparison = comparison

        if not comparison.success:
            if comparison.error_kind == ErrorKind.INVALID_TEMPLATE:
                # Stored template unusable; re-enrollment is required.
                self._finish(verdict, AuthOutcome.NO_FACE_TEMPLATE,
                             f'Stored face template is invalid: {comparison.message}')
            else:
                self._finish(verdict, AuthOutcome.SYSTEM_ERROR, comparison.message)
            return

        verdict.face_match_score = comparison.similarity
        if not comparison.is_match:
            self._finish(
                verdict,
                AuthOutcome.FACE_NOT_MATCHED,
                f'Face similarity {comparison.similarity:.1f} below threshold '
                f'{self.config.recognition_threshold:.1f}',
            )
            return

        self._finish(verdict, AuthOutcome.SUCCESS, 'Authentication successful')

    @staticmethod
    def _finish(verdict: AuthenticationVerdict, outcome: AuthOutcome, message: str) -> None:
        verdict.outcome = outcome
        verdict.message = message

    def _record(self, verdict: AuthenticationVerdict, employee_id: str) -> AuthenticationAttempt:
        attempt = AuthenticationAttempt(
            owner_id=verdict.employee.id if verdict.employee else None,
            outcome=verdict.outcome,
            face_match_score=verdict.face_match_score,
            liveness_score=verdict.liveness_score,
            failure_reason=None if verdict.success else verdict.message,
            attempted_at=self.clock(),
            duration_ms=verdict.processing_time_ms,
        )

        try:
            self.audit.append(attempt)
        except Exception as e:
            logger.error(f'Failed to record authentication attempt for {employee_id}: {e}')

        return attempt

    def check_lockout(self, owner_id: str) -> LockoutStatus:
        """
        Count failed attempts of an owner in the trailing window.

        Advisory only: authenticate() never refuses to run because of it.
        """
        window = self.config.lockout_window_minutes
        since = self.clock() - timedelta(minutes=window)
        failed = self.audit.count_failed_since(owner_id, since)

        status = LockoutStatus(
            owner_id=owner_id,
            locked=failed >= self.config.max_auth_attempts,
            failed_attempts=failed,
            max_attempts=self.config.max_auth_attempts,
            window_minutes=window,
        )
        if status.locked:
            logger.warning(f'Owner {owner_id} reached {failed} failed attempt(s) in {window} min')
        return status

    def get_attempts(self, owner_id: str) -> List[AuthenticationAttempt]:
        return self.audit.list_for(owner_id)

    def get_statistics(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> AuthenticationStatistics:
        """
        Aggregate attempts in a period (default: the last 30 days).

        Returns:
            AuthenticationStatistics with success rate in percent, failure
            counts per outcome and attempt counts per UTC day
        """
        end = end or self.clock()
        start = start or end - timedelta(days=STATISTICS_DEFAULT_DAYS)
        attempts = self.audit.list_between(start, end)

        total = len(attempts)
        successful = sum(1 for a in attempts if a.is_success)
        failure_reasons = Counter(a.outcome.value for a in attempts if not a.is_success)
        per_day = Counter(a.attempted_at.date().isoformat() for a in attempts)

        return AuthenticationStatistics(
            total_attempts=total,
            successful_attempts=successful,
            failed_attempts=total - successful,
            success_rate=successful / total * 100.0 if total else 0.0,
            failure_reasons=dict(failure_reasons),
            attempts_per_day=dict(sorted(per_day.items())),
            generated_at=self.clock(),
        )
