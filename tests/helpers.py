"""Fakes and builders shared by the tests."""

import json
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from finwatch.services.store.interface import DocumentStoreTransport, StoreResponse
from finwatch.services.store.wire import StructuredQuery, encode_value


DOCUMENTS_PATH = "projects/test/databases/(default)/documents"


def wire_document(collection: str, doc_id: str, **fields) -> dict:
    """A stored document as the REST API returns it."""
    return {
        "name": f"{DOCUMENTS_PATH}/{collection}/{doc_id}",
        "fields": {name: encode_value(value) for name, value in fields.items()},
    }


def query_ok(documents: list[dict]) -> StoreResponse:
    """A successful runQuery response."""
    if not documents:
        body = [{"readTime": "2024-01-01T00:00:00Z"}]
    else:
        body = [{"document": d, "readTime": "2024-01-01T00:00:00Z"} for d in documents]
    return StoreResponse(status_code=200, text=json.dumps(body))


def index_required() -> StoreResponse:
    return StoreResponse(
        status_code=400,
        text=json.dumps({"error": {"code": 400, "message": "The query requires an index. You can create it here: ..."}}),
    )


def rate_limited() -> StoreResponse:
    return StoreResponse(status_code=429, text="Quota exceeded")


def filters_of(query: StructuredQuery) -> dict[str, tuple[str, object]]:
    return {f.field: (f.op.value, f.value) for f in query.filters}


Handler = Callable[[StructuredQuery], Union[StoreResponse, Exception]]


class ScriptedTransport(DocumentStoreTransport):
    """
    Transport fake answering queries through a handler function.

    Every query and write is recorded. A handler may return an exception
    instance to have it raised.
    """

    def __init__(self, handler: Optional[Handler] = None, configured: bool = True):
        self.handler = handler or (lambda query: query_ok([]))
        self.configured = configured
        self.queries: list[StructuredQuery] = []
        self.writes: list[tuple] = []
        self.write_response = StoreResponse(
            status_code=200,
            text=json.dumps({"name": f"{DOCUMENTS_PATH}/transactions/new-id"}),
        )

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def run_query(self, query: StructuredQuery) -> StoreResponse:
        self.queries.append(query)
        result = self.handler(query)
        if isinstance(result, Exception):
            raise result
        return result

    async def _write(self, *call) -> StoreResponse:
        self.writes.append(call)
        if isinstance(self.write_response, Exception):
            raise self.write_response
        return self.write_response

    async def create_document(self, collection: str, fields: dict) -> StoreResponse:
        return await self._write("create", collection, fields)

    async def patch_document(self, collection: str, document_id: str, fields: dict) -> StoreResponse:
        return await self._write("patch", collection, document_id, fields)

    async def delete_document(self, collection: str, document_id: str) -> StoreResponse:
        return await self._write("delete", collection, document_id)


class ManualClock:
    """A clock tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


