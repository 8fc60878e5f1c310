"""
Outreach email drafting via the backend's AI drafting endpoint.
"""

import logging
from typing import Optional

from ..models import Candidate, Draft, UserProfile
from .backend_client import BackendClient, BackendError

logger = logging.getLogger(__name__)

DRAFT_ENDPOINT = "/api/email"
FALLBACK_MESSAGE = "Failed to generate email draft. Please try again."


def default_subject(query: str) -> str:
    return f"Research Collaboration Opportunity - {query}"


class DraftClient:
    """Client for the email drafting endpoint."""

    def __init__(self, backend: Optional[BackendClient] = None):
        self.backend = backend or BackendClient()

    def draft(self, candidate: Candidate, query: str, profile: UserProfile) -> Draft:
        """Ask the backend for a personalised email to ``candidate``."""
        payload = {
            "name": candidate.name,
            "email": candidate.email,
            "user_prompt": query,
            "user_data": f"name:{profile.name}",
            "data": [str(item) for item in candidate.additional_data],
        }
        data = self.backend.post(DRAFT_ENDPOINT, payload, FALLBACK_MESSAGE)
        if not isinstance(data, dict):
            raise BackendError(FALLBACK_MESSAGE)

        draft = Draft(
            subject=data.get("subject") or default_subject(query),
            body=data.get("body") or data.get("message") or "",
            to=data.get("to") or candidate.email,
        )
        logger.info(f"Drafted email for {candidate.name}")
        return draft
