"""
The outreach wizard: research interest -> professor selection ->
email review -> sent.

One wizard per signed-in user lives in process memory. Nothing here is
persisted, so a server restart puts every user back at the first step.
Services are passed in by the caller for each action.
"""

import enum
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from .models import Candidate, Draft, OutgoingEmail
from .services.credential_service import CredentialError
from .services.delivery_service import DeliveryFailed, DeliveryService
from .services.draft_service import DraftClient
from .services.matching_service import MatchingClient

logger = logging.getLogger(__name__)


class WizardStep(enum.Enum):
    INPUT = "input"
    SELECTION = "selection"
    EMAIL = "email"
    SENT = "sent"


class WizardError(Exception):
    """The requested action is not available at the current step."""


class ActionInProgress(WizardError):
    """The same action is already running for this user."""


class OutreachWizard:
    """State of one user's pass through the outreach flow."""

    def __init__(self):
        self.in_flight: set[str] = set()
        self.reset()

    def reset(self) -> None:
        self.step = WizardStep.INPUT
        self.research_interest = ""
        self.candidates: list[Candidate] = []
        self.selected: Optional[Candidate] = None
        self.draft: Optional[Draft] = None
        self.last_record_id: Optional[str] = None
        self.scheduled_at: Optional[datetime] = None

    def _require(self, *steps: WizardStep) -> None:
        if self.step not in steps:
            allowed = ", ".join(s.value for s in steps)
            raise WizardError(f"Not available at step '{self.step.value}' (needs {allowed})")

    @contextmanager
    def _action(self, name: str) -> Iterator[None]:
        if name in self.in_flight:
            raise ActionInProgress(f"{name.capitalize()} is already in progress")
        self.in_flight.add(name)
        try:
            yield
        finally:
            self.in_flight.discard(name)

    def submit_interest(self, query: str, matching: MatchingClient) -> list[Candidate]:
        """Search for professors. Moves to the selection step on success."""
        self._require(WizardStep.INPUT, WizardStep.SELECTION)
        with self._action("search"):
            candidates = matching.match(query)

        self.research_interest = query.strip()
        self.candidates = candidates
        self.selected = None
        self.draft = None
        self.step = WizardStep.SELECTION
        return candidates

    def find_candidate(self, candidate_id: str) -> Candidate:
        for candidate in self.candidates:
            if candidate.id == candidate_id:
                return candidate
        raise WizardError(f"Unknown professor '{candidate_id}'")

    def select_candidate(self, candidate_id: str, drafting: DraftClient, profile) -> Draft:
        """Draft an email to a professor. Moves to the email step on success."""
        self._require(WizardStep.SELECTION)
        candidate = self.find_candidate(candidate_id)

        with self._action("draft"):
            draft = drafting.draft(candidate, self.research_interest, profile)

        self.selected = candidate
        self.draft = draft
        self.step = WizardStep.EMAIL
        return draft

    def edit_draft(
        self,
        subject: Optional[str] = None,
        body: Optional[str] = None,
        to: Optional[str] = None,
    ) -> Draft:
        self._require(WizardStep.EMAIL)
        if subject is not None:
            self.draft.subject = subject
        if body is not None:
            self.draft.body = body
        if to is not None:
            self.draft.to = to.strip() or None
        return self.draft

    def back(self) -> None:
        self._require(WizardStep.EMAIL)
        self.step = WizardStep.SELECTION

    def outgoing_email(self, session) -> OutgoingEmail:
        profile = session.profile()
        return OutgoingEmail(
            user_id=session.user_id,
            professor_name=self.selected.name,
            professor_email=self.selected.email,
            user_email=profile.email,
            subject=self.draft.subject,
            body=self.draft.body,
            research_interest=self.research_interest,
            to=self.draft.to,
        )

    def send(self, session, delivery: DeliveryService) -> str:
        """
        Send the reviewed draft now.

        A Gmail credential is obtained before anything is sent. Without one
        the wizard stays on the email step and CredentialError is raised.
        """
        self._require(WizardStep.EMAIL)
        with self._action("send"):
            credential = session.get_valid_credential()
            if not credential:
                raise CredentialError("Please connect your Gmail account first.", user_id=session.user_id)

            try:
                record_id = delivery.send(self.outgoing_email(session), credential)
            except DeliveryFailed as e:
                self.last_record_id = e.record_id
                raise

        self.last_record_id = record_id
        self.scheduled_at = None
        self.step = WizardStep.SENT
        return record_id

    def schedule(self, session, delivery: DeliveryService, when: datetime) -> str:
        self._require(WizardStep.EMAIL)
        with self._action("send"):
            record_id = delivery.schedule(self.outgoing_email(session), when)

        self.last_record_id = record_id
        self.scheduled_at = when
        self.step = WizardStep.SENT
        return record_id

    def snapshot(self) -> dict:
        return {
            "step": self.step.value,
            "researchInterest": self.research_interest,
            "professors": [c.to_dict() for c in self.candidates],
            "selectedProfessor": self.selected.to_dict() if self.selected else None,
            "draft": self.draft.to_dict() if self.draft else None,
            "lastRecordId": self.last_record_id,
            "scheduledAt": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "inFlight": sorted(self.in_flight),
        }


class WizardRegistry:
    """In-memory wizards keyed by user id."""

    def __init__(self):
        self._wizards: dict[str, OutreachWizard] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> OutreachWizard:
        with self._lock:
            wizard = self._wizards.get(user_id)
            if wizard is None:
                wizard = self._wizards[user_id] = OutreachWizard()
            return wizard

    def discard(self, user_id: str) -> None:
        with self._lock:
            self._wizards.pop(user_id, None)

    def clear(self) -> None:
        with self._lock:
            self._wizards.clear()
