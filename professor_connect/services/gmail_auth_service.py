"""
Gmail delegated authorization.

Phase one of sending: the browser is redirected to Google's consent
screen for the gmail.send scope and comes back to the callback with a
code, which is exchanged here for an access/refresh token pair. Sending
only happens afterwards, as a separate request.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from google_auth_oauthlib.flow import Flow

from ..config import config

logger = logging.getLogger(__name__)

_STATE_PURPOSE = "gmail_oauth"


class GmailAuthError(Exception):
    """The Gmail grant could not be completed."""


@dataclass
class GrantedTokens:
    """Tokens returned by a completed Gmail grant."""
    user_id: str
    access_token: str
    refresh_token: Optional[str]


def _client_config() -> dict:
    return {
        "web": {
            "client_id": config.GOOGLE_CLIENT_ID,
            "client_secret": config.GOOGLE_CLIENT_SECRET,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": [config.GOOGLE_REDIRECT_URI],
        }
    }


def create_state(user_id: str) -> str:
    """Signed, short-lived OAuth state tying the callback to a user."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "purpose": _STATE_PURPOSE,
        "iat": now,
        "exp": now + timedelta(minutes=config.OAUTH_STATE_MINUTES),
    }
    return jwt.encode(payload, config.SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def read_state(state: str) -> str:
    """Return the user id carried by ``state``."""
    try:
        payload = jwt.decode(state, config.SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except jwt.InvalidTokenError as e:
        raise GmailAuthError("Authorization request expired or was tampered with") from e

    if payload.get("purpose") != _STATE_PURPOSE or not payload.get("sub"):
        raise GmailAuthError("Invalid authorization state")
    return payload["sub"]


class GmailAuthService:
    """Builds the consent URL and exchanges the returned code."""

    def __init__(self, redirect_uri: Optional[str] = None):
        self.redirect_uri = redirect_uri or config.GOOGLE_REDIRECT_URI

    def _flow(self, state: Optional[str] = None) -> Flow:
        return Flow.from_client_config(
            _client_config(),
            scopes=config.GMAIL_SCOPES,
            redirect_uri=self.redirect_uri,
            state=state,
            autogenerate_code_verifier=False,
        )

    def authorization_url(self, user_id: str) -> str:
        """URL of Google's consent screen for this user."""
        flow = self._flow()
        url, _ = flow.authorization_url(
            access_type="offline",
            prompt="consent",
            include_granted_scopes="true",
            state=create_state(user_id),
        )
        return url

    def complete(self, code: str, state: str) -> GrantedTokens:
        """
        Exchange an authorization code for tokens.

        Raises:
            GmailAuthError: If the state is invalid or Google rejects the code.
        """
        user_id = read_state(state)
        if not code:
            raise GmailAuthError("Missing authorization code")

        flow = self._flow(state=state)
        try:
            flow.fetch_token(code=code)
        except Exception as e:
            logger.error(f"Gmail code exchange failed for {user_id}: {e}")
            raise GmailAuthError("Failed to connect to Gmail. Please try again.") from e

        credentials = flow.credentials
        if not credentials.token:
            raise GmailAuthError("Google did not return an access token")

        logger.info(f"Gmail connected for {user_id}")
        return GrantedTokens(
            user_id=user_id,
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
        )
