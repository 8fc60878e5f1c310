"""
HTTP client for the Professor Connect backend.

The backend hosts the matching (/api/scraping), drafting (/api/email),
delivery (/api/send-email) and token refresh (/auth/refresh) endpoints.
Every call is a single JSON POST; nothing is retried.
"""

import logging
from typing import Any, Optional

import httpx

from ..config import config

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """An upstream call failed. ``message`` is safe to show to the user."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _server_message(response: httpx.Response) -> Optional[str]:
    """Pull the human readable message out of an error response, if any."""
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        message = data.get("message") or data.get("error")
        if isinstance(message, str) and message.strip():
            return message
    return None


class BackendClient:
    """Thin JSON client over ``httpx``."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or config.API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.BACKEND_TIMEOUT_SECONDS
        self._client = client

    def _get_client(self) -> httpx.Client:
        if not self._client:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def post(self, endpoint: str, payload: dict, fallback_message: str) -> Any:
        """
        POST ``payload`` to ``endpoint`` and return the decoded JSON body.

        Args:
            endpoint: Path relative to the backend base URL.
            payload: JSON body.
            fallback_message: Message used when the server gives none.

        Raises:
            BackendError: On transport errors, non-2xx responses or a body
                that is not JSON.
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        try:
            response = self._get_client().post(url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Request to {endpoint} failed: {e}")
            raise BackendError(fallback_message) from e

        if response.is_error:
            message = _server_message(response) or fallback_message
            logger.error(f"{endpoint} returned {response.status_code}: {message}")
            raise BackendError(message, status_code=response.status_code)

        if not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{endpoint} returned a non-JSON body")
            raise BackendError(fallback_message, status_code=response.status_code) from e

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None
