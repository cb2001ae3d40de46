"""
Abstract Document Store Interface

DESIGN DECISION: The query client talks to the remote store through a
small transport interface. This allows us to:
1. Run the degradation cascade against a scripted fake in tests
2. Swap API-key access for service-account credentials
3. Keep every HTTP concern out of the cascade logic

The transport does not interpret statuses. It returns the raw response and
only raises when no response was obtained at all.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from finwatch.services.store.wire import StructuredQuery


INDEX_REQUIRED_MARKER = "requires an index"


class StoreResponse(BaseModel):
    """Status and body of one HTTP exchange with the store."""

    status_code: int
    text: str = ""

    @property
    def is_success(self) -> bool:
        return self.status_code in (200, 201)

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in (401, 403)

    @property
    def requires_index(self) -> bool:
        """HTTP 400 telling us the composite query needs an index that doesn't exist."""
        return self.status_code == 400 and INDEX_REQUIRED_MARKER in self.text.lower()

    def payload(self) -> Any:
        """
        Parse the body as JSON.

        Raises:
            DecodeError: If the body is not JSON
        """
        try:
            return json.loads(self.text)
        except ValueError as e:
            raise DecodeError(f"Response body is not JSON: {e}") from e


class DocumentStoreTransport(ABC):
    """
    Abstract interface for HTTP access to the document store.

    Any transport (Firestore REST, a scripted fake) must implement these
    methods. All of them raise StoreUnavailableError when the store could
    not be reached.
    """

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True when enough configuration exists to issue requests."""
        pass

    @abstractmethod
    async def run_query(self, query: "StructuredQuery") -> StoreResponse:
        """
        Execute a structured query.

        Args:
            query: The query to run

        Returns:
            The raw response (any status)
        """
        pass

    @abstractmethod
    async def create_document(self, collection: str, fields: dict) -> StoreResponse:
        """
        Create a document with a store-assigned id.

        Args:
            collection: Collection id
            fields: Encoded wire fields

        Returns:
            The raw response; on success its body holds the new resource name
        """
        pass

    @abstractmethod
    async def patch_document(self, collection: str, document_id: str, fields: dict) -> StoreResponse:
        """
        Overwrite the fields of an existing document.

        Args:
            collection: Collection id
            document_id: Document id
            fields: Encoded wire fields
        """
        pass

    @abstractmethod
    async def delete_document(self, collection: str, document_id: str) -> StoreResponse:
        """
        Delete a document.

        Args:
            collection: Collection id
            document_id: Document id
        """
        pass


class StoreError(Exception):
    """Base exception for document store operations."""
    pass


class ConfigurationError(StoreError):
    """Project id or credentials are missing."""
    pass


class AuthenticationError(StoreError):
    """No user identity, or the store rejected our credentials."""
    pass


class FetchError(StoreError):
    """A read failed and there was no cached result to fall back to."""
    pass


class WriteError(StoreError):
    """A create, update or delete did not succeed."""
    pass


class DecodeError(StoreError):
    """A response or document could not be decoded."""
    pass


class StoreUnavailableError(StoreError):
    """The transport could not reach the store."""
    pass


class RateLimitedError(StoreError):
    """The store answered HTTP 429."""

    def __init__(self, message: str, response: StoreResponse):
        super().__init__(message)
        self.response = response
