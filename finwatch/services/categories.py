"""
Category Catalog

Built-in categories every user has, and the rules for combining them with
the categories a user created.

Three system categories are hidden from pickers: `uncategorized`, `goals`
and `investment`. They exist so that transfers and unclassified records
have a home, and are only offered when picking an investment category.
`general` is the legacy id of `uncategorized` and is hidden too.
"""

from typing import Iterable, Union

from finwatch.models.finance import Category, TransactionKind


HIDDEN_CATEGORY_IDS = frozenset({"uncategorized", "general", "goals", "investment"})

INVESTMENT_CATEGORY_ID = "investment"
UNCATEGORIZED_CATEGORY_ID = "uncategorized"

LEGACY_DISPLAY_NAMES = {
    "services": "Services",
    "entertainment": "Entertainment",
    "investment": "Investments",
    "general": "Uncategorized",
}


def _builtin(category_id: str, name: str, icon: str, color: str, type_: str) -> Category:
    return Category(
        id=category_id,
        name=name,
        icon=icon,
        color=color,
        type=type_,
        is_system=True,
        user_id=None,
        is_default=True,
    )


INCOME_CATEGORIES = (
    _builtin("salary", "Salary", "dollarsign.circle.fill", "green", "income"),
    _builtin("services_income", "Services", "briefcase.fill", "orange", "income"),
    _builtin("extra_income", "Extra Income", "gift.fill", "blue", "income"),
)

EXPENSE_CATEGORIES = (
    _builtin("home", "Home", "house.fill", "brown", "expense"),
    _builtin("subscriptions", "Subscriptions", "tv.fill", "purple", "expense"),
    _builtin("transportation", "Transportation", "car.fill", "blue", "expense"),
    _builtin("food", "Food", "fork.knife", "green", "expense"),
    _builtin("shopping", "Shopping", "bag.fill", "pink", "expense"),
    _builtin("health", "Health", "heart.fill", "red", "expense"),
    _builtin("education", "Education", "book.fill", "indigo", "expense"),
    _builtin("credit_card", "Credit Card", "creditcard.fill", "teal", "expense"),
    _builtin("leisure", "Leisure", "sparkles", "orange", "expense"),
    _builtin("loans", "Loans", "banknote", "red", "expense"),
)

SYSTEM_CATEGORIES = (
    _builtin(UNCATEGORIZED_CATEGORY_ID, "Uncategorized", "questionmark.folder", "gray", "system"),
    _builtin("goals", "Goals", "target", "purple", "goal"),
    _builtin(INVESTMENT_CATEGORY_ID, "Investments", "chart.line.uptrend.xyaxis", "blue", "investment"),
)


def _kind_value(kind: Union[TransactionKind, str]) -> str:
    if isinstance(kind, TransactionKind):
        return kind.value
    return kind.strip().lower()


def is_hidden(category: Category) -> bool:
    return category.identified_id in HIDDEN_CATEGORY_IDS


def default_categories() -> list[Category]:
    """Every built-in category, hidden ones included."""
    return [*INCOME_CATEGORIES, *EXPENSE_CATEGORIES, *SYSTEM_CATEGORIES]


def visible_default_categories() -> list[Category]:
    return [c for c in default_categories() if not is_hidden(c)]


def categories_for(kind: Union[TransactionKind, str], include_hidden: bool = False) -> list[Category]:
    """Built-in categories matching a transaction kind."""
    kind_value = _kind_value(kind)
    return [
        c for c in default_categories()
        if c.type.lower() == kind_value and (include_hidden or not is_hidden(c))
    ]


def _dedupe(categories: Iterable[Category]) -> list[Category]:
    seen: set[str] = set()
    ordered = []
    for category in categories:
        key = category.identified_id.lower()
        if key not in seen:
            seen.add(key)
            ordered.append(category)
    return ordered


def merge_categories(kind: Union[TransactionKind, str], remote: Iterable[Category]) -> list[Category]:
    """
    Built-ins for the kind followed by matching remote categories.

    Deduplicated by case-insensitive identified id, first occurrence wins,
    so built-ins take precedence. Hidden system categories (built-in or
    remote) only appear for investments.
    """
    kind_value = _kind_value(kind)
    include_hidden = kind_value == TransactionKind.INVESTMENT.value

    builtins = categories_for(kind_value, include_hidden=include_hidden)
    matching_remote = [
        c for c in remote
        if c.type.lower() == kind_value and (include_hidden or not is_hidden(c))
    ]
    return _dedupe([*builtins, *matching_remote])


def display_name(category_id: str) -> str:
    """Human readable name for a stored category id."""
    normalized = category_id.strip().lower()
    if not normalized:
        return LEGACY_DISPLAY_NAMES["general"]
    if normalized in LEGACY_DISPLAY_NAMES:
        return LEGACY_DISPLAY_NAMES[normalized]
    for category in default_categories():
        if category.identified_id.lower() == normalized:
            return category.name
    return category_id


def fallback_category_id(kind: Union[TransactionKind, str]) -> str:
    """Category assigned to records saved without one."""
    if _kind_value(kind) == TransactionKind.INVESTMENT.value:
        return INVESTMENT_CATEGORY_ID
    return UNCATEGORIZED_CATEGORY_ID
