"""
Persistence collaborator for unsubscribe resolution.

Reads stored messages and cached link extractions, appends attempt records
and updates message status. Attempts are only ever inserted.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..unsubscribe.exceptions import ProcessingError
from ..unsubscribe.logging import UnsubscribeLogger
from ..unsubscribe.types import UnsubscribeLinks
from .models import (
    EmailMessage, UnsubscribeAttempt, ATTEMPT_STATUS_SUCCEEDED, ATTEMPT_STATUS_FAILED
)


class UnsubscribeStore:
    """Database access used by the orchestrator."""

    def __init__(self, session: Session):
        """
        Initialize store with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session
        self.logger = UnsubscribeLogger("store")

    def get_message(self, message_id: int, account_id: Optional[int] = None) -> Optional[EmailMessage]:
        """Return the message, or None if it is missing or owned by another account."""
        query = self.session.query(EmailMessage).filter_by(id=message_id)
        if account_id is not None:
            query = query.filter_by(account_id=account_id)
        return query.first()

    def get_stored_links(self, message: EmailMessage) -> Optional[UnsubscribeLinks]:
        """Cached extraction for the message; None when absent or malformed."""
        raw = message.unsubscribe_links_found
        if not raw:
            return None
        try:
            return UnsubscribeLinks.from_dict(json.loads(raw))
        except (json.JSONDecodeError, ValueError) as e:
            self.logger.warning("Ignoring malformed stored links", {
                'email_message_id': message.id,
                'error': str(e),
            })
            return None

    def store_links(self, message: EmailMessage, links: UnsubscribeLinks):
        message.unsubscribe_links_found = json.dumps(links.to_dict())
        self.session.commit()

    def record_attempt(
        self,
        message_id: int,
        method: str,
        success: bool,
        response_code: Optional[int] = None,
        error_message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        message_status: Optional[str] = None,
    ) -> UnsubscribeAttempt:
        """
        Append an attempt record.

        Args:
            message_id: ID of the email message
            method: Strategy used (one_click_post, agent, mailto, none)
            success: Whether the attempt succeeded
            response_code: HTTP status, if a request was made
            error_message: Error code or stringified error, if failed
            details: JSON-serializable diagnostics
            message_status: New message status, committed together with the record

        Returns:
            The persisted UnsubscribeAttempt
        """
        if message_status is not None:
            self._set_message_status(message_id, message_status)

        attempt = UnsubscribeAttempt(
            email_message_id=message_id,
            attempted_at=datetime.now(),
            method_used=method,
            status=ATTEMPT_STATUS_SUCCEEDED if success else ATTEMPT_STATUS_FAILED,
            response_code=response_code,
            error_message=error_message,
            details=json.dumps(details, default=str) if details is not None else None,
        )
        self.session.add(attempt)
        self.session.commit()
        self.logger.debug("Recorded unsubscribe attempt", {
            'email_message_id': message_id,
            'method': method,
            'status': attempt.status,
        })
        return attempt

    def _set_message_status(self, message_id: int, status: str):
        message = self.session.query(EmailMessage).filter_by(id=message_id).first()
        if message is None:
            raise ProcessingError(
                "Email message not found",
                stage='set_message_status',
                details={'email_message_id': message_id},
            )
        message.status = status

    def list_attempts(self, message_id: int) -> List[UnsubscribeAttempt]:
        """Attempts for a message, oldest first."""
        return self.session.query(UnsubscribeAttempt)\
            .filter_by(email_message_id=message_id)\
            .order_by(UnsubscribeAttempt.attempted_at, UnsubscribeAttempt.id)\
            .all()
