"""
Professor matching.

Maps a free-text research interest to candidate professors using the
backend's matching endpoint.
"""

import logging
from typing import Any, Optional

from ..exceptions import ValidationError
from ..models import Candidate
from .backend_client import BackendClient, BackendError

logger = logging.getLogger(__name__)

MATCH_ENDPOINT = "/api/scraping"
FALLBACK_MESSAGE = "Failed to find matching professors. Please try again."


def _string_list(value: Any, default: list[str]) -> list[str]:
    if value is None or value == "":
        return list(default)
    if isinstance(value, dict):
        value = list(value.values())
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return [str(value)]


def normalize_candidate(raw: Any, index: int) -> Candidate:
    """Coerce one loosely typed match into a Candidate."""
    data = raw if isinstance(raw, dict) else {}
    return Candidate(
        id=str(data.get("id") or f"prof_{index}"),
        name=data.get("name") or "Unknown Professor",
        department=data.get("department") or "Unknown Department",
        research_areas=_string_list(data.get("research_areas"), ["General Research"]),
        email=data.get("email") or "",
        additional_data=_string_list(data.get("additional_data"), [""]),
    )


class MatchingClient:
    """Client for the professor matching endpoint."""

    def __init__(self, backend: Optional[BackendClient] = None):
        self.backend = backend or BackendClient()

    def match(self, query: str) -> list[Candidate]:
        """
        Find professors matching a research interest.

        Args:
            query: Free-text research interest.

        Returns:
            Candidates in the order the service ranked them.

        Raises:
            ValidationError: If ``query`` is empty or whitespace.
            BackendError: If the service fails or returns something other
                than a list.
        """
        prompt = (query or "").strip()
        if not prompt:
            raise ValidationError("Please describe your research interest")

        data = self.backend.post(MATCH_ENDPOINT, {"prompt": prompt}, FALLBACK_MESSAGE)
        if not isinstance(data, list):
            logger.error(f"Matching service returned {type(data).__name__}, expected a list")
            raise BackendError(FALLBACK_MESSAGE)

        candidates = [normalize_candidate(item, i) for i, item in enumerate(data)]
        logger.info(f"Found {len(candidates)} professors for '{prompt}'")
        return candidates
