"""
Document Store Package

Provides the transport interface, the Firestore REST implementation, the
wire codec and the resilient query client built on top of them.
"""

from finwatch.services.store.interface import (
    AuthenticationError,
    ConfigurationError,
    DecodeError,
    DocumentStoreTransport,
    FetchError,
    RateLimitedError,
    StoreError,
    StoreResponse,
    StoreUnavailableError,
    WriteError,
)
from finwatch.services.store.wire import (
    Document,
    FieldFilter,
    Fields,
    StructuredQuery,
)
from finwatch.services.store.firestore import FirestoreTransport
from finwatch.services.store.client import QueryClient

__all__ = [
    # Interfaces
    "DocumentStoreTransport",
    "StoreResponse",
    # Exceptions
    "AuthenticationError",
    "ConfigurationError",
    "DecodeError",
    "FetchError",
    "RateLimitedError",
    "StoreError",
    "StoreUnavailableError",
    "WriteError",
    # Wire
    "Document",
    "FieldFilter",
    "Fields",
    "StructuredQuery",
    # Implementations
    "FirestoreTransport",
    "QueryClient",
]
