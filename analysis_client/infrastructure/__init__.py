"""Infrastructure layer exports."""

from .api import AnalysisApiClient
from .identity import IdentityProvider, LocalIdentityProvider, Session, SupabaseIdentityProvider
from .session_context import SessionContext
from .storage import KeyValueStorage, StorageArea, StorageConnection, StorageEvent

__all__ = [
    "AnalysisApiClient",
    "IdentityProvider",
    "KeyValueStorage",
    "LocalIdentityProvider",
    "Session",
    "SessionContext",
    "StorageArea",
    "StorageConnection",
    "StorageEvent",
    "SupabaseIdentityProvider",
]
