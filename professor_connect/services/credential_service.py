"""
Delegated Gmail credential lifecycle.

Stores the access/refresh token pair obtained from the Gmail grant,
hands out a usable access token, and refreshes it through the backend
once it has expired. Expiry is always ``stored time + CREDENTIAL_TTL_SECONDS``;
the lifetime reported by Google is not consulted.
"""

import logging
import time
from typing import Callable, Optional
from sqlalchemy.orm import Session

from ..config import config
from ..models import UserToken
from .backend_client import BackendClient, BackendError

logger = logging.getLogger(__name__)

REFRESH_ENDPOINT = "/auth/refresh"


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


class CredentialError(Exception):
    """No usable Gmail credential. The user has to reconnect Gmail."""

    def __init__(self, message: str, user_id: Optional[str] = None, reconnect: bool = True):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.reconnect = reconnect


class CredentialManager:
    """Reads, stores, refreshes and revokes a user's delegated credential."""

    def __init__(
        self,
        db: Session,
        backend: Optional[BackendClient] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.db = db
        self.backend = backend or BackendClient()
        self.clock = clock
        self.ttl_ms = config.CREDENTIAL_TTL_SECONDS * 1000

    def _get_row(self, user_id: str) -> Optional[UserToken]:
        return self.db.query(UserToken).filter(UserToken.user_id == user_id).first()

    def get_valid_credential(self, user_id: str) -> Optional[str]:
        """
        Return an access token that is safe to send to the delivery service.

        Returns None when the user never connected Gmail, has revoked it,
        or holds an expired token with no refresh token.

        Raises:
            CredentialError: If the token had expired and refreshing failed.
        """
        row = self._get_row(user_id)
        if not row or not row.access_token:
            return None

        if self.clock() < row.expires_at:
            return row.access_token

        if not row.refresh_token:
            logger.info(f"Credential for {user_id} expired with no refresh token")
            return None

        return self.refresh(user_id, row.refresh_token)

    def refresh(self, user_id: str, refresh_token: str) -> str:
        """
        Exchange ``refresh_token`` for a new access token and store it.

        The stored credential is left untouched if the exchange fails.
        """
        logger.info(f"Refreshing Gmail credential for {user_id}")
        try:
            data = self.backend.post(
                REFRESH_ENDPOINT,
                {"refresh_token": refresh_token},
                fallback_message="Failed to refresh Gmail access",
            )
        except BackendError as e:
            raise CredentialError(e.message, user_id=user_id) from e

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise CredentialError("Refresh response did not include an access token", user_id=user_id)

        self.store(user_id, access_token, refresh_token)
        return access_token

    def store(self, user_id: str, access_token: str, refresh_token: Optional[str] = None) -> UserToken:
        """
        Upsert the credential with a freshly computed expiry.

        A missing ``refresh_token`` keeps whatever refresh token was stored.
        """
        row = self._get_row(user_id)
        if not row:
            row = UserToken(user_id=user_id, refresh_token="")
            self.db.add(row)

        row.access_token = access_token
        if refresh_token is not None:
            row.refresh_token = refresh_token
        row.expires_at = self.clock() + self.ttl_ms

        self.db.flush()
        return row

    def revoke(self, user_id: str) -> None:
        """Blank out the stored credential."""
        row = self._get_row(user_id)
        if not row:
            row = UserToken(user_id=user_id)
            self.db.add(row)

        row.access_token = ""
        row.refresh_token = ""
        row.expires_at = 0
        self.db.flush()
        logger.info(f"Revoked Gmail credential for {user_id}")

    def status(self, user_id: str) -> dict:
        """Connection summary for the UI. Never triggers a refresh."""
        row = self._get_row(user_id)
        connected = bool(row and row.access_token)
        return {
            "connected": connected,
            "expired": connected and self.clock() >= row.expires_at,
            "canRefresh": bool(row and row.refresh_token),
            "expiresAt": row.expires_at if connected else None,
        }
