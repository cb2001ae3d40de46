"""
Firestore REST Transport

DESIGN DECISION: We talk to Firestore over its REST API rather than the
gRPC client library because:
1. The app only needs runQuery, create, patch and delete
2. Web API key access must keep working for projects without a service account
3. Status codes (429, 400 "requires an index") drive the query client's
   degradation cascade and REST exposes them directly

With a service account configured, requests go through google-auth's
AuthorizedSession, which attaches and refreshes the bearer token. Otherwise
a plain requests.Session sends the API key as the `key` query parameter.

Blocking HTTP calls run in a worker thread so the event loop stays free.
"""

import asyncio
from typing import Any, Optional

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2.service_account import Credentials

from finwatch.config import DocumentStoreSettings, get_settings
from finwatch.log import get_logger
from finwatch.services.store.interface import (
    DocumentStoreTransport,
    StoreResponse,
    StoreUnavailableError,
)
from finwatch.services.store.wire import StructuredQuery


logger = get_logger(__name__)

SCOPES = ["https://www.googleapis.com/auth/datastore"]


class FirestoreTransport(DocumentStoreTransport):
    """
    Firestore REST implementation of the transport interface.

    The HTTP session is created lazily on first use.
    """

    def __init__(
        self,
        settings: Optional[DocumentStoreSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        self._settings = settings or get_settings().store
        self._session = session

    @property
    def is_configured(self) -> bool:
        return self._settings.is_configured

    @property
    def uses_service_account(self) -> bool:
        return bool(self._settings.credentials_path)

    def _get_session(self) -> requests.Session:
        if self._session is None:
            if self.uses_service_account:
                try:
                    credentials = Credentials.from_service_account_file(
                        self._settings.credentials_path,
                        scopes=SCOPES,
                    )
                except FileNotFoundError:
                    raise StoreUnavailableError(
                        f"Firestore credentials file not found: {self._settings.credentials_path}"
                    )
                except (GoogleAuthError, ValueError) as e:
                    raise StoreUnavailableError(f"Invalid Firestore credentials: {e}")
                self._session = AuthorizedSession(credentials)
            else:
                self._session = requests.Session()
        return self._session

    def _params(self) -> dict[str, str]:
        if self.uses_service_account or not self._settings.api_key:
            return {}
        return {"key": self._settings.api_key}

    def _request(self, method: str, url: str, body: Optional[dict[str, Any]] = None) -> StoreResponse:
        session = self._get_session()
        try:
            response = session.request(
                method,
                url,
                params=self._params(),
                json=body,
                timeout=self._settings.timeout_seconds,
            )
        except (requests.RequestException, GoogleAuthError) as e:
            logger.warning("firestore_unreachable", method=method, error=str(e))
            raise StoreUnavailableError(f"Could not reach Firestore: {e}") from e

        logger.debug("firestore_response", method=method, status_code=response.status_code)
        return StoreResponse(status_code=response.status_code, text=response.text)

    async def _call(self, method: str, url: str, body: Optional[dict[str, Any]] = None) -> StoreResponse:
        return await asyncio.to_thread(self._request, method, url, body)

    def _document_url(self, collection: str, document_id: Optional[str] = None) -> str:
        url = f"{self._settings.documents_url}/{collection}"
        if document_id:
            url = f"{url}/{document_id}"
        return url

    async def run_query(self, query: StructuredQuery) -> StoreResponse:
        return await self._call(
            "POST",
            f"{self._settings.documents_url}:runQuery",
            query.to_body(),
        )

    async def create_document(self, collection: str, fields: dict) -> StoreResponse:
        return await self._call("POST", self._document_url(collection), {"fields": fields})

    async def patch_document(self, collection: str, document_id: str, fields: dict) -> StoreResponse:
        return await self._call(
            "PATCH",
            self._document_url(collection, document_id),
            {"fields": fields},
        )

    async def delete_document(self, collection: str, document_id: str) -> StoreResponse:
        return await self._call("DELETE", self._document_url(collection, document_id))

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None
