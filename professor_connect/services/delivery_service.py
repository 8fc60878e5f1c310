"""
Email delivery and scheduling.

A send is recorded before the delivery call so there is always an audit
trail, then the same record is marked ``sent`` or ``failed``. Scheduling
only writes a record: nothing in this application delivers a scheduled
email when its time arrives.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ..exceptions import ValidationError
from ..models import EmailRecord, EmailStatus, OutgoingEmail
from .backend_client import BackendClient, BackendError
from .credential_service import CredentialError
from .record_store import RecordStore, RecordStoreError

logger = logging.getLogger(__name__)

SEND_ENDPOINT = "/api/send-email"
FALLBACK_MESSAGE = "Failed to send email"
REMINDER_PREFIX = "Follow-up: "


class DeliveryFailed(BackendError):
    """Delivery was attempted and failed. ``record_id`` is the failed record."""

    def __init__(self, message: str, record_id: str, status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code)
        self.record_id = record_id


def to_utc_naive(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def reminder_for(record: EmailRecord) -> tuple[str, str]:
    """Subject and body of a follow-up to a previously sent email."""
    subject = record.subject
    if not subject.startswith(REMINDER_PREFIX):
        subject = f"{REMINDER_PREFIX}{subject}"

    sent_on = record.sent_at.strftime("%B %d, %Y") if record.sent_at else "earlier"
    quoted = "\n".join(f"> {line}" for line in record.body.splitlines())
    body = (
        f"Hi {record.professor_name},\n\n"
        f"I wanted to follow up on my email from {sent_on} below. "
        f"I would still be glad to hear your thoughts when you have a moment.\n\n"
        f"{quoted}"
    )
    return subject, body


class DeliveryService:
    """Sends, schedules, resends and follows up on outreach emails."""

    def __init__(
        self,
        store: RecordStore,
        backend: Optional[BackendClient] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.backend = backend or BackendClient()
        self.clock = clock

    def send(self, email: OutgoingEmail, credential: Optional[str]) -> str:
        """
        Deliver ``email`` through the user's Gmail account.

        Returns:
            The id of the delivery record.

        Raises:
            CredentialError: If no credential was supplied. Nothing is written.
            ValidationError: If there is no recipient. Nothing is written.
            RecordStoreError: If the initial record cannot be written.
            DeliveryFailed: If delivery failed. The record is marked failed.
        """
        if not credential:
            raise CredentialError("Please connect your Gmail account first.", user_id=email.user_id)
        if not email.recipient:
            raise ValidationError("A recipient email address is required")

        record = self.store.create(email, EmailStatus.SCHEDULED)

        try:
            self.backend.post(
                SEND_ENDPOINT,
                {
                    "access_token": credential,
                    "to": email.recipient,
                    "subject": email.subject,
                    "body": email.body,
                },
                FALLBACK_MESSAGE,
            )
        except BackendError as e:
            logger.error(f"Delivery to {email.recipient} failed: {e.message}")
            try:
                self.store.mark_failed(record, e.message, self.clock())
            except RecordStoreError:
                logger.exception(f"Could not mark email {record.id} as failed")
            raise DeliveryFailed(e.message, record.id, status_code=e.status_code) from e

        try:
            self.store.mark_sent(record, self.clock())
        except RecordStoreError:
            logger.exception(f"Email {record.id} was delivered but could not be marked sent")
        logger.info(f"Sent email {record.id} to {email.recipient}")
        return record.id

    def schedule(self, email: OutgoingEmail, when: datetime) -> str:
        """
        Record ``email`` as scheduled for ``when``.

        Raises:
            ValidationError: If ``when`` is not in the future. Nothing is written.
        """
        when = to_utc_naive(when)
        if when <= self.clock():
            raise ValidationError("Please select a future date and time.")
        if not email.recipient:
            raise ValidationError("A recipient email address is required")

        record = self.store.create(email, EmailStatus.SCHEDULED, scheduled_at=when)
        logger.info(f"Scheduled email {record.id} for {when.isoformat()}")
        return record.id

    def resend(
        self,
        original: EmailRecord,
        credential: Optional[str],
        subject: Optional[str] = None,
        body: Optional[str] = None,
        to: Optional[str] = None,
    ) -> str:
        """Send a copy of ``original`` as a new record, optionally edited."""
        email = OutgoingEmail.from_record(original, subject=subject, body=body, to=to)
        return self.send(email, credential)

    def schedule_resend(self, original: EmailRecord, when: datetime) -> str:
        return self.schedule(OutgoingEmail.from_record(original), when)

    def send_reminder(self, original: EmailRecord, credential: Optional[str]) -> str:
        """Send a follow-up to an email that went out."""
        if original.status not in (EmailStatus.SENT, EmailStatus.DELIVERED):
            raise ValidationError("Reminders can only follow an email that was sent")

        subject, body = reminder_for(original)
        email = OutgoingEmail.from_record(original, subject=subject, body=body)
        return self.send(email, credential)
