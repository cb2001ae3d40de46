"""
Firestore Wire Codec

Firestore's REST API wraps every field in a single-key object naming its
type ({"stringValue": "x"}, {"doubleValue": 1.5}, ...). This module turns
those into a closed set of value types, applies the fallback defaults the
app relies on when fields are missing, and renders `runQuery` bodies.

DESIGN DECISION: Decoding never guesses. An unknown or malformed tag is
treated as a missing field and the entity decoder supplies the default.

TRADEOFFS:
- Only the query shapes the app issues are supported (equality and
  inclusive range filters joined with AND, one ordering, a limit)
- Arrays and maps are ignored; none of the stored entities use them
"""

import json
import re
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from finwatch.models.finance import (
    OPEN_STATUS_BY_KIND,
    STATUSES_BY_KIND,
    Category,
    Goal,
    RecurrenceFrequency,
    Transaction,
    TransactionKind,
    TransactionStatus,
    parse_day,
    utcnow,
)
from finwatch.services.store.interface import DecodeError


# =============================================================================
# FIELD VALUES
# =============================================================================

class StringValue(BaseModel):
    model_config = ConfigDict(frozen=True)
    value: str


class DoubleValue(BaseModel):
    model_config = ConfigDict(frozen=True)
    value: float


class IntegerValue(BaseModel):
    model_config = ConfigDict(frozen=True)
    value: int


class BooleanValue(BaseModel):
    model_config = ConfigDict(frozen=True)
    value: bool


class TimestampValue(BaseModel):
    model_config = ConfigDict(frozen=True)
    value: datetime


class NullValue(BaseModel):
    model_config = ConfigDict(frozen=True)


FieldValue = Union[StringValue, DoubleValue, IntegerValue, BooleanValue, TimestampValue, NullValue]


_FRACTION = re.compile(r"\.(\d+)")


def parse_timestamp(value: str) -> Optional[datetime]:
    """
    Parse an RFC 3339 timestamp as Firestore emits it.

    Firestore sends up to nanosecond precision and a trailing 'Z'; both are
    normalized before handing the string to datetime.fromisoformat().
    Naive results are assumed to be UTC.
    """
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Render a datetime as a UTC RFC 3339 string with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def decode_value(raw: Any) -> Optional[FieldValue]:
    """Decode one wire value. Returns None for unknown or malformed tags."""
    if not isinstance(raw, dict) or len(raw) != 1:
        return None

    tag, payload = next(iter(raw.items()))

    if tag == "stringValue":
        return StringValue(value=payload) if isinstance(payload, str) else None

    if tag == "doubleValue":
        if isinstance(payload, bool):
            return None
        try:
            return DoubleValue(value=float(payload))
        except (TypeError, ValueError):
            return None

    if tag == "integerValue":
        # int64 values arrive as JSON strings
        if isinstance(payload, bool):
            return None
        try:
            return IntegerValue(value=int(payload))
        except (TypeError, ValueError):
            return None

    if tag == "booleanValue":
        return BooleanValue(value=payload) if isinstance(payload, bool) else None

    if tag == "timestampValue":
        parsed = parse_timestamp(payload)
        return TimestampValue(value=parsed) if parsed else None

    if tag == "nullValue":
        return NullValue()

    return None


def encode_value(value: Any) -> dict:
    """Encode a Python value into its tagged wire form."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, Enum):
        value = value.value
    # bool is an int subclass, check it first
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, (float, Decimal)):
        return {"doubleValue": float(value)}
    if isinstance(value, datetime):
        return {"timestampValue": format_timestamp(value)}
    if isinstance(value, date):
        return {"stringValue": value.isoformat()}
    if isinstance(value, str):
        return {"stringValue": value}
    raise TypeError(f"Cannot encode {type(value).__name__} as a Firestore value")


# =============================================================================
# DOCUMENTS
# =============================================================================

class Fields:
    """
    Typed, default-aware access to a document's decoded fields.

    Every accessor returns the supplied default when the field is missing,
    null, or of an unexpected type.
    """

    def __init__(self, values: dict[str, FieldValue]):
        self._values = values

    @classmethod
    def from_wire(cls, raw: Any) -> "Fields":
        values: dict[str, FieldValue] = {}
        if isinstance(raw, dict):
            for name, wire_value in raw.items():
                decoded = decode_value(wire_value)
                if decoded is not None:
                    values[name] = decoded
        return cls(values)

    def get(self, name: str) -> Optional[FieldValue]:
        return self._values.get(name)

    def __contains__(self, name: str) -> bool:
        value = self._values.get(name)
        return value is not None and not isinstance(value, NullValue)

    def string(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self._values.get(name)
        if isinstance(value, StringValue):
            return value.value
        return default

    def boolean(self, name: str, default: bool = False) -> bool:
        value = self._values.get(name)
        if isinstance(value, BooleanValue):
            return value.value
        return default

    def number(self, name: str, default: Optional[Decimal] = None) -> Optional[Decimal]:
        """
        Numeric field as a Decimal.

        Accepts doubles, integers and numeric strings using either ',' or
        '.' as the decimal separator.
        """
        value = self._values.get(name)
        if isinstance(value, DoubleValue):
            return Decimal(str(value.value))
        if isinstance(value, IntegerValue):
            return Decimal(value.value)
        if isinstance(value, StringValue):
            try:
                return Decimal(value.value.strip().replace(",", "."))
            except InvalidOperation:
                return default
        return default

    def timestamp(self, name: str, default: Optional[datetime] = None) -> Optional[datetime]:
        """Timestamp field, also accepting an ISO string."""
        value = self._values.get(name)
        if isinstance(value, TimestampValue):
            return value.value
        if isinstance(value, StringValue):
            return parse_timestamp(value.value) or default
        return default


class Document:
    """A decoded Firestore document: its resource name and fields."""

    def __init__(self, name: str, fields: Fields):
        self.name = name
        self.fields = fields

    @property
    def id(self) -> str:
        """Last segment of the resource name."""
        return self.name.rstrip("/").rsplit("/", 1)[-1]

    @classmethod
    def from_wire(cls, raw: dict) -> "Document":
        if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
            raise DecodeError("Document has no resource name")
        return cls(raw["name"], Fields.from_wire(raw.get("fields")))

    def __repr__(self) -> str:
        return f"Document({self.name!r})"


def parse_run_query(payload: Any) -> list[Document]:
    """
    Extract documents from a `runQuery` response.

    The response is a JSON array; entries without a `document` key (for
    example the lone readTime entry of an empty result) are skipped.

    Raises:
        DecodeError: If the payload is not a runQuery response
    """
    if not isinstance(payload, list):
        raise DecodeError("runQuery response is not a list")

    documents = []
    for entry in payload:
        if not isinstance(entry, dict):
            raise DecodeError("runQuery entry is not an object")
        if "document" in entry:
            documents.append(Document.from_wire(entry["document"]))
    return documents


# =============================================================================
# ENTITY DECODERS
# =============================================================================

def _kind(raw: Optional[str]) -> TransactionKind:
    try:
        return TransactionKind((raw or "").strip().lower())
    except ValueError:
        return TransactionKind.EXPENSE


def normalize_status(raw: Optional[str], kind: TransactionKind) -> TransactionStatus:
    """Map a stored status onto the vocabulary allowed for the kind."""
    try:
        status = TransactionStatus((raw or "").strip().lower())
    except ValueError:
        return OPEN_STATUS_BY_KIND[kind]
    if status not in STATUSES_BY_KIND[kind]:
        return OPEN_STATUS_BY_KIND[kind]
    return status


def _frequency(raw: Optional[str]) -> Optional[RecurrenceFrequency]:
    try:
        return RecurrenceFrequency((raw or "").strip().lower())
    except ValueError:
        return None


def _transaction_date(fields: Fields) -> str:
    stored = fields.string("date")
    if stored:
        return stored.strip()
    stamped = fields.timestamp("date")
    if stamped:
        return stamped.date().isoformat()
    return ""


def decode_transaction(document: Document) -> Transaction:
    """
    Build a Transaction from a stored document.

    Raises:
        DecodeError: If the document cannot form a valid transaction
    """
    fields = document.fields
    day = _transaction_date(fields)
    kind = _kind(fields.string("type"))

    created_at = fields.timestamp("createdAt")
    if created_at is None:
        parsed_day = parse_day(day)
        created_at = (
            datetime.combine(parsed_day, time.min, tzinfo=timezone.utc)
            if parsed_day else utcnow()
        )

    try:
        return Transaction(
            id=document.id,
            user_id=fields.string("userId", ""),
            title=fields.string("title"),
            description=fields.string("description"),
            amount=fields.number("amount", Decimal("0")),
            category=(fields.string("category") or "").strip() or "general",
            date=day,
            kind=kind,
            status=normalize_status(fields.string("status", "pending"), kind),
            is_income=fields.boolean("isIncome"),
            created_at=created_at,
            is_recurring=fields.boolean("isRecurring"),
            recurring_frequency=_frequency(fields.string("recurringFrequency")),
            recurring_end_date=fields.string("recurringEndDate"),
            source_transaction_id=fields.string("sourceTransactionId"),
        )
    except ValidationError as e:
        raise DecodeError(f"Invalid transaction {document.id}: {e}") from e


def decode_goal(document: Document) -> Goal:
    """
    Build a Goal from a stored document.

    Raises:
        DecodeError: If the document cannot form a valid goal
    """
    fields = document.fields
    now = utcnow()
    created_at = fields.timestamp("createdAt", now)
    try:
        return Goal(
            id=document.id,
            user_id=fields.string("userId", ""),
            title=fields.string("title", ""),
            description=fields.string("description", ""),
            target_amount=fields.number("targetAmount", Decimal("0")),
            current_amount=fields.number("currentAmount", Decimal("0")),
            deadline=fields.timestamp("deadline", now),
            category=fields.string("category") or "general",
            is_predefined=fields.boolean("isPredefined"),
            predefined_type=fields.string("predefinedType"),
            created_at=created_at,
            updated_at=fields.timestamp("updatedAt", created_at),
            is_active=fields.boolean("isActive", True),
        )
    except ValidationError as e:
        raise DecodeError(f"Invalid goal {document.id}: {e}") from e


def decode_category(document: Document) -> Category:
    """
    Build a Category from a stored document.

    Raises:
        DecodeError: If the document has no usable name
    """
    fields = document.fields
    try:
        return Category(
            id=document.id,
            name=fields.string("name", ""),
            icon=fields.string("icon") or "folder",
            color=fields.string("color") or "blue",
            type=fields.string("type") or "expense",
            is_system=fields.boolean("isSystem"),
            user_id=fields.string("userId"),
            is_default=fields.boolean("isDefault"),
        )
    except ValidationError as e:
        raise DecodeError(f"Invalid category {document.id}: {e}") from e


# =============================================================================
# ENTITY ENCODERS
# =============================================================================

def encode_fields(values: dict[str, Any]) -> dict[str, dict]:
    return {name: encode_value(value) for name, value in values.items()}


def encode_transaction(transaction: Transaction, user_id: str) -> dict[str, dict]:
    """Wire fields for a transaction owned by user_id."""
    return encode_fields({
        "userId": user_id,
        "title": transaction.title or "",
        "description": transaction.description or "",
        "amount": transaction.amount,
        "category": transaction.category,
        "date": transaction.date,
        "isIncome": transaction.is_income,
        "type": transaction.kind,
        "status": transaction.status,
        "createdAt": transaction.created_at,
        "isRecurring": transaction.is_recurring,
        "recurringFrequency": transaction.recurring_frequency.value if transaction.recurring_frequency else "",
        "recurringEndDate": transaction.recurring_end_date or "",
        "sourceTransactionId": transaction.source_transaction_id,
    })


def encode_goal(goal: Goal, user_id: str) -> dict[str, dict]:
    values: dict[str, Any] = {
        "userId": user_id,
        "title": goal.title,
        "description": goal.description,
        "targetAmount": goal.target_amount,
        "currentAmount": goal.current_amount,
        "deadline": goal.deadline,
        "category": goal.category,
        "isPredefined": goal.is_predefined,
        "createdAt": goal.created_at,
        "updatedAt": goal.updated_at,
        "isActive": goal.is_active,
    }
    if goal.predefined_type:
        values["predefinedType"] = goal.predefined_type
    return encode_fields(values)


def encode_category(category: Category, user_id: str, stamp_field: str = "createdAt") -> dict[str, dict]:
    owner = (category.user_id or "").strip() or user_id
    return encode_fields({
        "name": category.name,
        "icon": category.icon,
        "color": category.color,
        "type": category.type,
        "isSystem": category.is_system,
        "isDefault": category.is_default,
        "userId": owner,
        stamp_field: utcnow(),
    })


# =============================================================================
# STRUCTURED QUERIES
# =============================================================================

class Operator(str, Enum):
    EQUAL = "EQUAL"
    GREATER_THAN_OR_EQUAL = "GREATER_THAN_OR_EQUAL"
    LESS_THAN_OR_EQUAL = "LESS_THAN_OR_EQUAL"


class FieldFilter(BaseModel):
    """One `field <op> value` condition."""
    model_config = ConfigDict(frozen=True)

    field: str
    op: Operator
    value: Any

    @classmethod
    def equal(cls, field: str, value: Any) -> "FieldFilter":
        return cls(field=field, op=Operator.EQUAL, value=value)

    @classmethod
    def at_least(cls, field: str, value: Any) -> "FieldFilter":
        return cls(field=field, op=Operator.GREATER_THAN_OR_EQUAL, value=value)

    @classmethod
    def at_most(cls, field: str, value: Any) -> "FieldFilter":
        return cls(field=field, op=Operator.LESS_THAN_OR_EQUAL, value=value)

    def to_wire(self) -> dict:
        return {
            "fieldFilter": {
                "field": {"fieldPath": self.field},
                "op": self.op.value,
                "value": encode_value(self.value),
            }
        }


class StructuredQuery(BaseModel):
    """A `runQuery` request against one collection."""
    model_config = ConfigDict(frozen=True)

    collection: str
    filters: tuple[FieldFilter, ...] = ()
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None

    def to_body(self) -> dict:
        query: dict[str, Any] = {"from": [{"collectionId": self.collection}]}

        if len(self.filters) == 1:
            query["where"] = self.filters[0].to_wire()
        elif self.filters:
            query["where"] = {
                "compositeFilter": {
                    "op": "AND",
                    "filters": [f.to_wire() for f in self.filters],
                }
            }

        if self.order_by:
            query["orderBy"] = [{
                "field": {"fieldPath": self.order_by},
                "direction": "DESCENDING" if self.descending else "ASCENDING",
            }]

        if self.limit is not None:
            query["limit"] = self.limit

        return {"structuredQuery": query}

    @property
    def fingerprint(self) -> str:
        """Stable identity of the request body, used to avoid reissuing a query."""
        return json.dumps(self.to_body(), sort_keys=True)

    def describe(self) -> str:
        parts = [f"{f.field} {f.op.value} {f.value!r}" for f in self.filters]
        return f"{self.collection}[{' AND '.join(parts) or '*'}]"
