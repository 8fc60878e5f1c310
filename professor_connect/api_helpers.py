"""
API helpers for creating service instances bound to the current request.
"""

from typing import Optional
from flask import g

from .services.backend_client import BackendClient
from .services.credential_service import CredentialManager
from .services.delivery_service import DeliveryService
from .services.draft_service import DraftClient
from .services.gmail_auth_service import GmailAuthService
from .services.matching_service import MatchingClient
from .services.record_store import RecordStore
from .wizard import OutreachWizard, WizardRegistry

_backend: Optional[BackendClient] = None

wizards = WizardRegistry()


def get_backend() -> BackendClient:
    """Process-wide backend client (one pooled httpx connection set)."""
    global _backend
    if _backend is None:
        _backend = BackendClient()
    return _backend


def set_backend(backend: Optional[BackendClient]) -> None:
    """Replace the shared backend client, e.g. with a fake in tests."""
    global _backend
    _backend = backend


def get_credential_manager() -> CredentialManager:
    return CredentialManager(g.db, get_backend())


def get_record_store() -> RecordStore:
    return RecordStore(g.db)


def get_delivery_service() -> DeliveryService:
    return DeliveryService(get_record_store(), get_backend())


def get_matching_client() -> MatchingClient:
    return MatchingClient(get_backend())


def get_draft_client() -> DraftClient:
    return DraftClient(get_backend())


def get_gmail_auth_service() -> GmailAuthService:
    return GmailAuthService()


def get_wizard() -> OutreachWizard:
    """The current user's wizard."""
    return wizards.get(g.current_user.id)
