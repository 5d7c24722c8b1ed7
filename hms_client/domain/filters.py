"""
Client-side filtering by predicate composition.

Every predicate is a pure ``item -> bool`` function, so the order in which a
set of predicates is applied never changes the result.
"""

from typing import Any, Callable, Iterable, List, Optional, TypeVar
from datetime import date, datetime
import enum

T = TypeVar("T")
Predicate = Callable[[Any], bool]


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _normalize(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    return value


def field_equals(name: str, expected: Any) -> Predicate:
    """Match when ``item.name == expected``; an empty expectation matches everything."""
    if expected is None or expected == "":
        return lambda item: True
    wanted = _normalize(expected)
    return lambda item: _normalize(_field(item, name)) == wanted


def field_in(name: str, choices: Iterable[Any]) -> Predicate:
    allowed = {_normalize(c) for c in choices}
    if not allowed:
        return lambda item: True
    return lambda item: _normalize(_field(item, name)) in allowed


def text_search(query: Optional[str], *names: str) -> Predicate:
    """Case-insensitive substring search over the given fields."""
    needle = (query or "").strip().lower()
    if not needle:
        return lambda item: True

    def predicate(item: Any) -> bool:
        for name in names:
            value = _field(item, name)
            if value is not None and needle in str(_normalize(value)).lower():
                return True
        return False

    return predicate


def _as_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return None


def date_between(name: str, start: Optional[Any] = None, end: Optional[Any] = None) -> Predicate:
    """Inclusive date-range check; records without the field are excluded once a bound is set."""
    lower, upper = _as_date(start), _as_date(end)
    if lower is None and upper is None:
        return lambda item: True

    def predicate(item: Any) -> bool:
        value = _as_date(_field(item, name))
        if value is None:
            return False
        if lower is not None and value < lower:
            return False
        if upper is not None and value > upper:
            return False
        return True

    return predicate


def all_of(*predicates: Predicate) -> Predicate:
    return lambda item: all(p(item) for p in predicates)


def any_of(*predicates: Predicate) -> Predicate:
    return lambda item: any(p(item) for p in predicates)


def criteria(**expected: Any) -> List[Predicate]:
    """Equality predicates from keyword criteria, ignoring empty values."""
    return [field_equals(name, value) for name, value in expected.items()]


def apply(items: Iterable[T], *predicates: Predicate) -> List[T]:
    combined = all_of(*predicates)
    return [item for item in items if combined(item)]
