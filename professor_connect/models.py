"""
Data models for Professor Connect.

Persistent tables (users, delegated credentials, delivery history) are
SQLAlchemy models. Candidates, drafts and the sender profile only live
for the duration of a wizard flow and are plain dataclasses.
"""

import enum
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional
from sqlalchemy import (
    Column, String, Text, DateTime, BigInteger, ForeignKey,
    Enum as SQLEnum, Index
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


class EmailStatus(enum.Enum):
    """Status of a delivery record."""
    SENT = "sent"
    SCHEDULED = "scheduled"
    DELIVERED = "delivered"
    FAILED = "failed"


def _generate_id() -> str:
    return uuid.uuid4().hex


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class User(Base):
    """A user as vouched for by the identity provider."""
    __tablename__ = "users"

    id = Column(String(128), primary_key=True)  # identity provider subject id
    display_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    avatar_url = Column(String(1000), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_login_at = Column(DateTime, nullable=True)

    # Relationships
    token = relationship("UserToken", back_populates="user", uselist=False, cascade="all, delete-orphan")
    emails = relationship("EmailRecord", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User {self.email}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "email": self.email,
            "photoURL": self.avatar_url,
        }


class UserToken(Base):
    """Delegated Gmail credential, one per user."""
    __tablename__ = "user_tokens"

    user_id = Column(String(128), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    access_token = Column(Text, nullable=False, default="")
    refresh_token = Column(Text, nullable=False, default="")
    expires_at = Column(BigInteger, nullable=False, default=0)  # epoch ms
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="token")

    def __repr__(self):
        return f"<UserToken user={self.user_id} expires_at={self.expires_at}>"


class EmailRecord(Base):
    """One send, schedule or delivery attempt."""
    __tablename__ = "emails"

    id = Column(String(32), primary_key=True, default=_generate_id)
    user_id = Column(String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    professor_name = Column(String(255), nullable=False, default="")
    professor_email = Column(String(255), nullable=False, default="")
    user_email = Column(String(255), nullable=False, default="")
    to = Column(String(255), nullable=True)

    subject = Column(String(500), nullable=False, default="")
    body = Column(Text, nullable=False, default="")
    research_interest = Column(Text, nullable=False, default="")

    status = Column(SQLEnum(EmailStatus), nullable=False)
    error_message = Column(Text, nullable=True)

    sent_at = Column(DateTime, nullable=True)
    scheduled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="emails")

    __table_args__ = (
        Index('ix_emails_user_sent_at', 'user_id', 'sent_at'),
    )

    def __repr__(self):
        return f"<EmailRecord {self.professor_email} - {self.status.value}>"

    @property
    def recipient(self) -> str:
        """Address the email goes to."""
        return self.to or self.professor_email

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "professorName": self.professor_name,
            "professorEmail": self.professor_email,
            "userEmail": self.user_email,
            "to": self.to,
            "subject": self.subject,
            "body": self.body,
            "researchInterest": self.research_interest,
            "status": self.status.value,
            "error": self.error_message,
            "sentAt": _isoformat(self.sent_at),
            "scheduledAt": _isoformat(self.scheduled_at),
            "createdAt": _isoformat(self.created_at),
        }


# ========================================
# Wizard-scoped types
# ========================================

@dataclass
class Candidate:
    """A professor returned by the matching service."""
    id: str
    name: str
    department: str
    research_areas: list[str] = field(default_factory=list)
    email: str = ""
    additional_data: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Draft:
    """An editable outreach email."""
    subject: str
    body: str
    to: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UserProfile:
    """Sender details passed to the drafting service."""
    name: str
    email: str


@dataclass
class OutgoingEmail:
    """Everything needed to write a delivery record and send it."""
    user_id: str
    professor_name: str
    professor_email: str
    user_email: str
    subject: str
    body: str
    research_interest: str
    to: Optional[str] = None

    @property
    def recipient(self) -> str:
        return self.to or self.professor_email

    @classmethod
    def from_record(cls, record: EmailRecord, **overrides) -> "OutgoingEmail":
        """Copy a stored record, optionally replacing subject/body/to."""
        values = {
            "user_id": record.user_id,
            "professor_name": record.professor_name,
            "professor_email": record.professor_email,
            "user_email": record.user_email,
            "subject": record.subject,
            "body": record.body,
            "research_interest": record.research_interest,
            "to": record.to,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
