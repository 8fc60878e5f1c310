"""
Services layer for Professor Connect.
"""

from .backend_client import BackendClient, BackendError
from .credential_service import CredentialManager, CredentialError
from .delivery_service import DeliveryService, DeliveryFailed
from .draft_service import DraftClient
from .gmail_auth_service import GmailAuthService, GmailAuthError
from .matching_service import MatchingClient
from .record_store import RecordStore, RecordStoreError, InvalidStatusTransition

__all__ = [
    "BackendClient", "BackendError",
    "CredentialManager", "CredentialError",
    "DeliveryService", "DeliveryFailed",
    "DraftClient",
    "GmailAuthService", "GmailAuthError",
    "MatchingClient",
    "RecordStore", "RecordStoreError", "InvalidStatusTransition",
]
