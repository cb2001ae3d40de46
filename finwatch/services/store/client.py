"""
Query Client

Cache-first reads and write-through invalidation for transactions, goals
and categories.

DESIGN DECISION: Reads degrade instead of failing. The store may be missing
a composite index, may rate limit us, and legacy records may be owned by
the user's email rather than their internal id. Each read walks a cascade
of progressively broader queries and filters locally, stopping at the
first step that yields something.

Transaction cascade (stop at the first non-empty result):
1. Fresh cache entry
2. userId == owner AND date in [start, end], ordered by date
   - HTTP 429: wait the backoff and retry once, then give up on the step
   - HTTP 400 "requires an index": owner-only query, filter dates locally
3. The same for the secondary identity (email)
4. Owner-only, then identity-only, with local date filtering
5. Date-only query, filtered locally to the caller's identities
6. Whole collection, filtered locally
The final result is cached even when empty.

Reads only raise when every remote step failed hard and no cached result
exists, or when the client is not configured and nothing is cached.
"""

from datetime import date
from typing import Awaitable, Callable, Iterable, Optional, TypeVar, Union

from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from finwatch.config import CacheSettings, get_settings
from finwatch.log import get_logger
from finwatch.models.finance import Category, Goal, Transaction, TransactionKind, parse_day
from finwatch.services.cache import LocalCache
from finwatch.services.categories import merge_categories
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
    StructuredQuery,
    decode_category,
    decode_goal,
    decode_transaction,
    encode_category,
    encode_goal,
    encode_transaction,
    parse_run_query,
)


logger = get_logger(__name__)

TRANSACTIONS = "transactions"
GOALS = "goals"
CATEGORIES = "categories"
USERS = "users"

M = TypeVar("M", bound=BaseModel)


class _StepResult:
    """Outcome of one remote step of a cascade."""

    def __init__(
        self,
        documents: Optional[list[Document]] = None,
        index_required: bool = False,
    ):
        self.documents = documents or []
        self.index_required = index_required


class _Cascade:
    """Per-read bookkeeping: which queries went out and whether any answered."""

    def __init__(self, entity: str):
        self.entity = entity
        self.issued: set[str] = set()
        self.attempts = 0
        self.answered = False


def _day_string(value: Union[date, str]) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return value


def _decode_all(documents: Iterable[Document], decoder: Callable[[Document], M]) -> list[M]:
    """Decode documents, skipping (and logging) the ones that don't fit."""
    decoded = []
    for document in documents:
        try:
            decoded.append(decoder(document))
        except DecodeError as e:
            logger.warning("document_skipped", document=document.name, error=str(e))
    return decoded


def _within(transactions: Iterable[Transaction], start: date, end: date) -> list[Transaction]:
    """Transactions dated in [start, end]; unparseable dates are excluded."""
    kept = []
    for transaction in transactions:
        day = transaction.day
        if day is not None and start <= day <= end:
            kept.append(transaction)
    return kept


def _by_date(transactions: Iterable[Transaction]) -> list[Transaction]:
    return sorted(transactions, key=lambda t: t.date)


def _identities(user_id: str, alt_identity: Optional[str]) -> list[str]:
    identities = [user_id]
    if alt_identity and alt_identity.strip() and alt_identity.strip() != user_id:
        identities.append(alt_identity.strip())
    return identities


class QueryClient:
    """
    Resilient data-access client for the remote document store.

    Args:
        transport: How requests reach the store
        cache: Local result cache
        cache_settings: Freshness windows (defaults to environment settings)
        rate_limit_backoff: Seconds to wait before the single retry after
            HTTP 429 (defaults to environment settings)
    """

    def __init__(
        self,
        transport: DocumentStoreTransport,
        cache: LocalCache,
        cache_settings: Optional[CacheSettings] = None,
        rate_limit_backoff: Optional[float] = None,
    ):
        self._transport = transport
        self._cache = cache
        self._cache_settings = cache_settings or get_settings().cache
        if rate_limit_backoff is None:
            rate_limit_backoff = get_settings().store.rate_limit_backoff_seconds
        self._backoff = rate_limit_backoff

    @property
    def cache(self) -> LocalCache:
        return self._cache

    # =========================================================================
    # CACHE HELPERS
    # =========================================================================

    def _load_cached(self, key: str, model: type[M], max_age: Optional[float] = None) -> Optional[list[M]]:
        payload = self._cache.load(key, max_age=max_age)
        if payload is None:
            return None
        if not isinstance(payload, list):
            logger.warning("cache_payload_unexpected", key=key)
            return None
        try:
            return [model.model_validate(item) for item in payload]
        except ValidationError as e:
            logger.warning("cache_payload_invalid", key=key, error=str(e))
            return None

    def _store_cached(self, key: str, items: list[BaseModel]) -> None:
        self._cache.save(key, [item.model_dump(mode="json") for item in items])

    def _stale_or_raise(self, key: str, model: type[M], error: StoreError) -> list[M]:
        stale = self._load_cached(key, model)
        if stale is not None:
            logger.info("serving_stale_cache", key=key, reason=str(error))
            return stale
        raise error

    # =========================================================================
    # REMOTE STEPS
    # =========================================================================

    async def _send(self, query: StructuredQuery) -> StoreResponse:
        """Run a query, retrying exactly once after a fixed wait on HTTP 429."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(2),
            wait=wait_fixed(self._backoff),
            retry=retry_if_exception_type(RateLimitedError),
            reraise=True,
        ):
            with attempt:
                response = await self._transport.run_query(query)
                if response.is_rate_limited:
                    logger.warning(
                        "rate_limited",
                        query=query.describe(),
                        attempt=attempt.retry_state.attempt_number,
                    )
                    raise RateLimitedError("Firestore rate limit hit", response)
        return response

    async def _step(self, query: StructuredQuery, cascade: _Cascade) -> _StepResult:
        """
        Issue one remote query of a cascade.

        A query already issued in this cascade is not sent again. A
        transport failure on the very first attempt propagates; later
        failures are treated as empty results.
        """
        fingerprint = query.fingerprint
        if fingerprint in cascade.issued:
            return _StepResult()
        cascade.issued.add(fingerprint)

        first_attempt = cascade.attempts == 0
        cascade.attempts += 1

        try:
            response = await self._send(query)
        except StoreUnavailableError:
            if first_attempt:
                raise
            logger.warning("cascade_step_unreachable", entity=cascade.entity, query=query.describe())
            return _StepResult()
        except RateLimitedError:
            logger.warning("cascade_step_rate_limited", entity=cascade.entity, query=query.describe())
            return _StepResult()

        if response.requires_index:
            logger.info("cascade_index_required", entity=cascade.entity, query=query.describe())
            return _StepResult(index_required=True)

        if not response.is_success:
            logger.warning(
                "cascade_step_failed",
                entity=cascade.entity,
                query=query.describe(),
                status_code=response.status_code,
            )
            return _StepResult()

        # An unexpected body is "no data", not a failure
        cascade.answered = True
        try:
            documents = parse_run_query(response.payload())
        except DecodeError as e:
            logger.warning("cascade_step_undecodable", entity=cascade.entity, error=str(e))
            return _StepResult()

        logger.debug(
            "cascade_step_answered",
            entity=cascade.entity,
            query=query.describe(),
            documents=len(documents),
        )
        return _StepResult(documents)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def get_transactions(
        self,
        user_id: str,
        start: Union[date, str],
        end: Union[date, str],
        alt_identity: Optional[str] = None,
    ) -> list[Transaction]:
        """
        Transactions of a user dated within [start, end], oldest first.

        Args:
            user_id: Internal owner id
            start: First day of the window
            end: Last day of the window
            alt_identity: Secondary identifier (email) legacy records may use

        Raises:
            ConfigurationError: Not configured and nothing cached
            FetchError: Store unreachable or failing and nothing cached
        """
        start_s, end_s = _day_string(start), _day_string(end)
        key = f"transactions-{user_id}-{start_s}-{end_s}"

        fresh = self._load_cached(key, Transaction, self._cache_settings.transactions_max_age)
        if fresh is not None:
            logger.debug("cache_hit", key=key, count=len(fresh))
            return fresh

        if not self._transport.is_configured:
            return self._stale_or_raise(
                key, Transaction, ConfigurationError("Document store is not configured")
            )

        start_day, end_day = parse_day(start_s), parse_day(end_s)
        if start_day is None or end_day is None:
            raise ValueError(f"Invalid date window: {start_s} .. {end_s}")

        cascade = _Cascade(TRANSACTIONS)
        try:
            transactions = await self._transaction_cascade(
                _identities(user_id, alt_identity), start_s, end_s, start_day, end_day, cascade
            )
        except StoreUnavailableError as e:
            return self._stale_or_raise(
                key, Transaction, FetchError(f"Could not fetch transactions: {e}")
            )

        if not cascade.answered:
            return self._stale_or_raise(
                key, Transaction, FetchError("Every transaction query failed")
            )

        self._store_cached(key, transactions)
        logger.info("transactions_fetched", user_id=user_id, count=len(transactions))
        return transactions

    def _range_query(self, identity: str, start: str, end: str) -> StructuredQuery:
        return StructuredQuery(
            collection=TRANSACTIONS,
            filters=(
                FieldFilter.equal("userId", identity),
                FieldFilter.at_least("date", start),
                FieldFilter.at_most("date", end),
            ),
            order_by="date",
        )

    def _owner_query(self, collection: str, identity: str) -> StructuredQuery:
        return StructuredQuery(
            collection=collection,
            filters=(FieldFilter.equal("userId", identity),),
        )

    async def _transaction_cascade(
        self,
        identities: list[str],
        start: str,
        end: str,
        start_day: date,
        end_day: date,
        cascade: _Cascade,
    ) -> list[Transaction]:
        # Owner, then secondary identity, with the composite query
        for identity in identities:
            step = await self._step(self._range_query(identity, start, end), cascade)
            if step.index_required:
                step = await self._step(self._owner_query(TRANSACTIONS, identity), cascade)
                found = _within(_decode_all(step.documents, decode_transaction), start_day, end_day)
            else:
                found = _decode_all(step.documents, decode_transaction)
            if found:
                return _by_date(found)

        # Owner-only without a date filter
        for identity in identities:
            step = await self._step(self._owner_query(TRANSACTIONS, identity), cascade)
            found = _within(_decode_all(step.documents, decode_transaction), start_day, end_day)
            if found:
                logger.info("transactions_from_owner_only_query", identity=identity)
                return _by_date(found)

        # Date-only, then everything
        allowed = set(identities)
        date_only = StructuredQuery(
            collection=TRANSACTIONS,
            filters=(FieldFilter.at_least("date", start), FieldFilter.at_most("date", end)),
        )
        step = await self._step(date_only, cascade)
        found = [
            t for t in _within(_decode_all(step.documents, decode_transaction), start_day, end_day)
            if t.user_id in allowed
        ]
        if found:
            logger.info("transactions_from_date_only_query", count=len(found))
            return _by_date(found)

        step = await self._step(StructuredQuery(collection=TRANSACTIONS), cascade)
        found = [
            t for t in _within(_decode_all(step.documents, decode_transaction), start_day, end_day)
            if t.user_id in allowed
        ]
        if found:
            logger.info("transactions_from_full_collection", count=len(found))
        return _by_date(found)

    # =========================================================================
    # GOALS
    # =========================================================================

    async def get_goals(self, user_id: str, alt_identity: Optional[str] = None) -> list[Goal]:
        """
        Active goals of a user, newest first.

        Raises:
            ConfigurationError: Not configured and nothing cached
            FetchError: Store unreachable or failing and nothing cached
        """
        key = f"goals-{user_id}"

        fresh = self._load_cached(key, Goal, self._cache_settings.goals_max_age)
        if fresh is not None:
            return fresh

        if not self._transport.is_configured:
            return self._stale_or_raise(key, Goal, ConfigurationError("Document store is not configured"))

        cascade = _Cascade(GOALS)
        identities = _identities(user_id, alt_identity)
        try:
            goals = await self._goal_cascade(identities, cascade)
        except StoreUnavailableError as e:
            return self._stale_or_raise(key, Goal, FetchError(f"Could not fetch goals: {e}"))

        if not cascade.answered:
            return self._stale_or_raise(key, Goal, FetchError("Every goal query failed"))

        goals.sort(key=lambda g: g.created_at, reverse=True)
        self._store_cached(key, goals)
        logger.info("goals_fetched", user_id=user_id, count=len(goals))
        return goals

    async def _goal_cascade(self, identities: list[str], cascade: _Cascade) -> list[Goal]:
        for identity in identities:
            active = StructuredQuery(
                collection=GOALS,
                filters=(
                    FieldFilter.equal("userId", identity),
                    FieldFilter.equal("isActive", True),
                ),
            )
            step = await self._step(active, cascade)
            if step.index_required:
                step = await self._step(self._owner_query(GOALS, identity), cascade)
            found = [g for g in _decode_all(step.documents, decode_goal) if g.is_active]
            if found:
                return found

        allowed = set(identities)
        step = await self._step(StructuredQuery(collection=GOALS), cascade)
        found = [
            g for g in _decode_all(step.documents, decode_goal)
            if g.is_active and g.user_id in allowed
        ]
        if found:
            logger.info("goals_from_full_collection", count=len(found))
        return found

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    async def get_categories(self, user_id: str) -> list[Category]:
        """
        Categories the user created, ordered by name.

        Raises:
            ConfigurationError: Not configured and nothing cached
            FetchError: The query failed and nothing cached
        """
        key = f"categories-{user_id}"

        fresh = self._load_cached(key, Category, self._cache_settings.categories_max_age)
        if fresh is not None:
            return fresh

        if not self._transport.is_configured:
            return self._stale_or_raise(key, Category, ConfigurationError("Document store is not configured"))

        cascade = _Cascade(CATEGORIES)
        ordered = StructuredQuery(
            collection=CATEGORIES,
            filters=(FieldFilter.equal("userId", user_id),),
            order_by="name",
        )
        try:
            step = await self._step(ordered, cascade)
            sort_locally = step.index_required
            if step.index_required:
                step = await self._step(self._owner_query(CATEGORIES, user_id), cascade)
        except StoreUnavailableError as e:
            return self._stale_or_raise(key, Category, FetchError(f"Could not fetch categories: {e}"))

        if not cascade.answered:
            return self._stale_or_raise(key, Category, FetchError("Category query failed"))

        categories = [
            c for c in _decode_all(step.documents, decode_category)
            if c.user_id == user_id
        ]
        if sort_locally:
            categories.sort(key=lambda c: c.name.casefold())

        self._store_cached(key, categories)
        return categories

    async def merged_categories(
        self,
        user_id: Optional[str],
        kind: Union[TransactionKind, str],
    ) -> list[Category]:
        """
        Built-in categories for a kind followed by the user's own.

        A failing remote read yields the built-ins only.
        """
        remote: list[Category] = []
        if user_id:
            try:
                remote = await self.get_categories(user_id)
            except StoreError as e:
                logger.warning("remote_categories_unavailable", user_id=user_id, error=str(e))
        return merge_categories(kind, remote)

    # =========================================================================
    # USERS
    # =========================================================================

    async def lookup_internal_user_id(self, email: str) -> Optional[str]:
        """Internal id of the user registered with this email, or None."""
        if not email or not self._transport.is_configured:
            return None

        query = StructuredQuery(
            collection=USERS,
            filters=(FieldFilter.equal("email", email),),
            limit=1,
        )
        try:
            response = await self._send(query)
            if not response.is_success:
                logger.warning("user_lookup_failed", status_code=response.status_code)
                return None
            documents = parse_run_query(response.payload())
        except StoreError as e:
            logger.warning("user_lookup_failed", error=str(e))
            return None

        if not documents:
            return None
        document = documents[0]
        return document.fields.string("id") or document.id

    # =========================================================================
    # WRITES
    # =========================================================================

    async def _write(
        self,
        family: str,
        user_id: str,
        call: Callable[[], Awaitable[StoreResponse]],
    ) -> StoreResponse:
        """
        Run a single write and invalidate the family's cache entries on success.

        Raises:
            ConfigurationError: Not configured
            AuthenticationError: Blank user id, or HTTP 401/403
            WriteError: Any other failure
        """
        if not self._transport.is_configured:
            raise ConfigurationError("Document store is not configured")
        if not user_id or not user_id.strip():
            raise AuthenticationError("A user id is required for writes")

        try:
            response = await call()
        except StoreUnavailableError as e:
            raise WriteError(f"Could not write {family}: {e}") from e

        if response.is_auth_failure:
            raise AuthenticationError(f"Store rejected {family} write ({response.status_code})")
        if not response.is_success:
            raise WriteError(f"{family} write failed with status {response.status_code}")

        owner_key = f"{family}-{user_id.strip()}"
        self._cache.remove(owner_key)
        removed = self._cache.remove_all(f"{owner_key}-")
        logger.info("write_succeeded", family=family, user_id=user_id, invalidated=removed)
        return response

    @staticmethod
    def _created_id(response: StoreResponse) -> Optional[str]:
        try:
            name = response.payload().get("name")
        except (DecodeError, AttributeError):
            name = None
        if not isinstance(name, str) or not name:
            logger.warning("created_document_name_missing")
            return None
        return name.rsplit("/", 1)[-1]

    async def create_transaction(self, transaction: Transaction, user_id: str) -> Optional[str]:
        """Create a transaction and return its new id."""
        response = await self._write(
            TRANSACTIONS,
            user_id,
            lambda: self._transport.create_document(TRANSACTIONS, encode_transaction(transaction, user_id)),
        )
        return self._created_id(response)

    async def update_transaction(self, transaction: Transaction, user_id: str) -> None:
        if not transaction.id:
            raise WriteError("Cannot update a transaction without an id")
        await self._write(
            TRANSACTIONS,
            user_id,
            lambda: self._transport.patch_document(
                TRANSACTIONS, transaction.id, encode_transaction(transaction, user_id)
            ),
        )

    async def delete_transaction(self, transaction_id: str, user_id: str) -> None:
        await self._write(
            TRANSACTIONS,
            user_id,
            lambda: self._transport.delete_document(TRANSACTIONS, transaction_id),
        )

    async def create_goal(self, goal: Goal, user_id: str) -> Optional[str]:
        """Create a goal and return its new id."""
        response = await self._write(
            GOALS,
            user_id,
            lambda: self._transport.create_document(GOALS, encode_goal(goal, user_id)),
        )
        return self._created_id(response)

    async def update_goal(self, goal: Goal, user_id: str) -> None:
        if not goal.id:
            raise WriteError("Cannot update a goal without an id")
        await self._write(
            GOALS,
            user_id,
            lambda: self._transport.patch_document(GOALS, goal.id, encode_goal(goal, user_id)),
        )

    async def delete_goal(self, goal_id: str, user_id: str) -> None:
        await self._write(
            GOALS,
            user_id,
            lambda: self._transport.delete_document(GOALS, goal_id),
        )

    async def create_category(self, category: Category, user_id: str) -> Optional[str]:
        """Create a user category and return its new id."""
        response = await self._write(
            CATEGORIES,
            user_id,
            lambda: self._transport.create_document(
                CATEGORIES, encode_category(category, user_id.strip())
            ),
        )
        return self._created_id(response)

    async def update_category(self, category: Category, user_id: str) -> None:
        if not category.id:
            raise WriteError("Cannot update a category without an id")
        await self._write(
            CATEGORIES,
            user_id,
            lambda: self._transport.patch_document(
                CATEGORIES,
                category.id,
                encode_category(category, user_id.strip(), stamp_field="updatedAt"),
            ),
        )

    async def delete_category(self, category_id: str, user_id: str) -> None:
        await self._write(
            CATEGORIES,
            user_id,
            lambda: self._transport.delete_document(CATEGORIES, category_id),
        )
