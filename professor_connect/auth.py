"""
Authentication and session handling for Professor Connect.

Users sign in with Google: the browser hands us a Google ID token, we
verify it and issue our own JWT. Authenticated handlers get the user and
a ``UserSession`` through Flask's ``g``.
"""

import logging
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Optional, Callable, Any

import jwt
from flask import request, jsonify, g
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token
from sqlalchemy.orm import Session

from .config import config
from .models import User, UserProfile
from .api_helpers import get_credential_manager
from .services.credential_service import CredentialManager

logger = logging.getLogger(__name__)

SESSION_TOKEN_TYPE = "session"


class AuthError(Exception):
    """Sign-in could not be completed."""


def verify_identity_token(token: str) -> dict:
    """
    Verify a Google ID token and return its claims.

    Raises:
        AuthError: If the token is invalid, expired or for another client.
    """
    if not token:
        raise AuthError("Missing ID token")
    try:
        return google_id_token.verify_oauth2_token(
            token, google_requests.Request(), config.GOOGLE_CLIENT_ID
        )
    except ValueError as e:
        logger.warning(f"Rejected Google ID token: {e}")
        raise AuthError("Invalid Google sign-in") from e


def sign_in(db: Session, claims: dict) -> User:
    """Create or update the user described by verified identity claims."""
    user_id = claims.get("sub")
    if not user_id:
        raise AuthError("Identity token has no subject")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        user = User(id=user_id)
        db.add(user)

    user.display_name = claims.get("name") or user.display_name
    user.email = claims.get("email") or user.email
    user.avatar_url = claims.get("picture") or user.avatar_url
    user.last_login_at = datetime.utcnow()
    db.flush()
    return user


def create_access_token(user_id: str, email: Optional[str]) -> str:
    """
    Create a JWT access token for a user.

    Args:
        user_id: Identity provider subject id
        email: The user's email address

    Returns:
        JWT token string
    """
    expiration = datetime.now(timezone.utc) + timedelta(hours=config.JWT_EXPIRATION_HOURS)

    payload = {
        "sub": user_id,
        "email": email,
        "exp": expiration,
        "iat": datetime.now(timezone.utc),
        "type": SESSION_TOKEN_TYPE,
    }

    return jwt.encode(payload, config.SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """
    Decode and validate a JWT access token.

    Other tokens signed with the same key, such as the Gmail OAuth
    state, are rejected.

    Returns:
        Token payload dict if valid, None if invalid/expired
    """
    try:
        payload = jwt.decode(
            token,
            config.SECRET_KEY,
            algorithms=[config.JWT_ALGORITHM]
        )
    except jwt.InvalidTokenError:
        return None

    if payload.get("type") != SESSION_TOKEN_TYPE:
        return None
    return payload


def get_current_user_from_token(db: Session, token: str) -> Optional[User]:
    """Get the user a JWT belongs to, or None."""
    payload = decode_access_token(token)
    if not payload:
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None

    return db.query(User).filter(User.id == user_id).first()


class UserSession:
    """
    The signed-in user plus access to their Gmail credential.

    Passed explicitly to anything that needs to act on the user's behalf.
    A valid credential is looked up at most once per session object.
    """

    def __init__(self, user: User, credentials: CredentialManager):
        self.user = user
        self.credentials = credentials
        self._credential: Optional[str] = None

    @property
    def user_id(self) -> str:
        return self.user.id

    def profile(self) -> UserProfile:
        return UserProfile(
            name=self.user.display_name or "",
            email=self.user.email or "",
        )

    def get_valid_credential(self) -> Optional[str]:
        if self._credential is None:
            self._credential = self.credentials.get_valid_credential(self.user.id)
        return self._credential


def require_auth(f: Callable) -> Callable:
    """
    Decorator that requires JWT authentication.

    Sets g.current_user and g.session for the request.

    Usage:
        @app.route('/api/protected')
        @require_auth
        def protected_route():
            session = g.session
            ...
    """
    @wraps(f)
    def decorated_function(*args: Any, **kwargs: Any) -> Any:
        # Check for Authorization header
        auth_header = request.headers.get('Authorization')

        if not auth_header:
            return jsonify({"error": "Missing Authorization header"}), 401

        # Extract token from "Bearer <token>" format
        parts = auth_header.split()
        if len(parts) != 2 or parts[0].lower() != 'bearer':
            return jsonify({"error": "Invalid Authorization header format"}), 401

        user = get_current_user_from_token(g.db, parts[1])
        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        g.session = UserSession(user, get_credential_manager())

        return f(*args, **kwargs)

    return decorated_function
