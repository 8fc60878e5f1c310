"""
Delivery history persistence.

History is append-only. The one permitted in-place change is the outcome
of a send: the record written before the delivery call moves from
``scheduled`` to ``sent`` or ``failed``.
"""

import logging
from datetime import datetime
from typing import Optional
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import EmailRecord, EmailStatus, OutgoingEmail

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS = {
    EmailStatus.SCHEDULED: {EmailStatus.SENT, EmailStatus.FAILED},
}


class RecordStoreError(Exception):
    """A delivery record could not be written."""


class InvalidStatusTransition(RecordStoreError):
    """A record was asked to move to a status it cannot reach."""


class RecordStore:
    """Create, update and query delivery records for users."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        email: OutgoingEmail,
        status: EmailStatus,
        sent_at: Optional[datetime] = None,
        scheduled_at: Optional[datetime] = None,
        error_message: Optional[str] = None,
    ) -> EmailRecord:
        """Append a new record and flush so its id is available."""
        record = EmailRecord(
            user_id=email.user_id,
            professor_name=email.professor_name,
            professor_email=email.professor_email,
            user_email=email.user_email,
            to=email.to,
            subject=email.subject,
            body=email.body,
            research_interest=email.research_interest,
            status=status,
            sent_at=sent_at,
            scheduled_at=scheduled_at,
            error_message=error_message,
        )
        try:
            with self.db.begin_nested():
                self.db.add(record)
                self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Could not save email to {email.recipient}: {e}")
            raise RecordStoreError("Could not save the email record") from e
        return record

    def _transition(self, record: EmailRecord, status: EmailStatus, **changes) -> EmailRecord:
        """
        Move ``record`` to ``status`` inside a savepoint.

        A failed write undoes only itself; the record stays in the session
        with its previous status.
        """
        if status not in _ALLOWED_TRANSITIONS.get(record.status, set()):
            raise InvalidStatusTransition(
                f"Cannot change email {record.id} from {record.status.value} to {status.value}"
            )
        try:
            with self.db.begin_nested():
                record.status = status
                for name, value in changes.items():
                    setattr(record, name, value)
                self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Could not mark email {record.id} {status.value}: {e}")
            raise RecordStoreError("Could not update the email record") from e
        return record

    def mark_sent(self, record: EmailRecord, sent_at: datetime) -> EmailRecord:
        return self._transition(record, EmailStatus.SENT, sent_at=sent_at)

    def mark_failed(self, record: EmailRecord, error_message: str, failed_at: datetime) -> EmailRecord:
        return self._transition(
            record, EmailStatus.FAILED, error_message=error_message, sent_at=failed_at
        )

    def get(self, user_id: str, record_id: str) -> Optional[EmailRecord]:
        """Fetch one of the user's records, or None."""
        return (
            self.db.query(EmailRecord)
            .filter(EmailRecord.user_id == user_id, EmailRecord.id == record_id)
            .first()
        )

    def list_for_user(self, user_id: str, skip: int = 0, limit: int = 100) -> list[EmailRecord]:
        """Newest first. Records never sent fall back to their creation time."""
        return (
            self.db.query(EmailRecord)
            .filter(EmailRecord.user_id == user_id)
            .order_by(func.coalesce(EmailRecord.sent_at, EmailRecord.created_at).desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def stats(self, user_id: str) -> dict:
        """Record counts per status for the user."""
        rows = (
            self.db.query(EmailRecord.status, func.count(EmailRecord.id))
            .filter(EmailRecord.user_id == user_id)
            .group_by(EmailRecord.status)
            .all()
        )
        counts = {status.value: 0 for status in EmailStatus}
        for status, count in rows:
            counts[status.value] = count
        counts["total"] = sum(counts[status.value] for status in EmailStatus)
        return counts
