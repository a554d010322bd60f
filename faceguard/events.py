"""
Authentication event publishing.

Sends authentication attempts to the backend API after recording them
in a local audit store.
"""

from datetime import datetime
from typing import List, Optional

import requests

from .config import Config
from .logging_config import get_logger
from .models import AuthenticationAttempt
from .stores import AuditStore

logger = get_logger(__name__)


def send_attempt(
    attempt: AuthenticationAttempt,
    config: Config,
    session: Optional[requests.Session] = None
) -> bool:
    """
    Send authentication attempt to backend.

    Args:
        attempt: Recorded attempt
        config: Service configuration
        session: Optional HTTP session

    Returns:
        True if attempt published successfully
    """
    url = f'{config.backend_url}/api/auth-logs'
    http = session or requests

    try:
        logger.info(f'📤 Publishing {attempt.outcome.value} attempt for employee {attempt.owner_id}')

        response = http.post(url, json=attempt.to_dict(), timeout=config.request_timeout_seconds)

        if response.ok:
            logger.debug('Attempt published')
            return True
        else:
            logger.error(f'❌ Failed to publish attempt: {response.status_code} {response.text}')
            return False

    except requests.exceptions.Timeout:
        logger.error(f'❌ Timeout publishing attempt to {url}')
        return False
    except requests.exceptions.ConnectionError:
        logger.error(f'❌ Connection error publishing attempt to {url}')
        return False
    except requests.exceptions.RequestException as e:
        logger.error(f'❌ Error publishing attempt: {e}')
        return False


class PublishingAuditStore:
    """
    AuditStore decorator: records locally, then publishes to the backend.

    Queries are answered from the inner store only.
    """

    def __init__(self, inner: AuditStore, config: Config, session: Optional[requests.Session] = None):
        self.inner = inner
        self.config = config
        self.session = session

    def append(self, attempt: AuthenticationAttempt) -> bool:
        """Record the attempt; returns whether publishing succeeded."""
        self.inner.append(attempt)
        return send_attempt(attempt, self.config, self.session)

    def list_for(self, owner_id: str) -> List[AuthenticationAttempt]:
        return self.inner.list_for(owner_id)

    def list_between(self, start: datetime, end: datetime) -> List[AuthenticationAttempt]:
        return self.inner.list_between(start, end)

    def count_failed_since(self, owner_id: str, since: datetime) -> int:
        return self.inner.count_failed_since(owner_id, since)
