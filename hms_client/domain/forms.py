"""
Form drafts and dialogs.

A draft holds the transient field values of one entity while it is being
created or edited. Numeric fields are coerced on every change, derived fields
are recomputed synchronously, and only required fields are checked before
submission.
"""

from typing import Any, Callable, ClassVar, Dict, FrozenSet, Generic, Optional, Tuple, TypeVar
import copy
import math

from pydantic import BaseModel
from pydantic.alias_generators import to_camel, to_snake

from hms_client.core.exceptions import FormValidationError


def parse_float(raw: Any) -> float:
    """Numeric input coercion: anything unparsable becomes 0."""
    if isinstance(raw, bool):
        return float(raw)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(value) else value


def parse_int(raw: Any) -> int:
    """Count input coercion: unparsable or zero becomes 1."""
    try:
        value = int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return 1
    return value or 1


def parse_bool(raw: Any) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    return bool(raw)


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


class FormDraft:
    defaults: ClassVar[Dict[str, Any]] = {}
    required: ClassVar[Tuple[str, ...]] = ()
    float_fields: ClassVar[FrozenSet[str]] = frozenset()
    int_fields: ClassVar[FrozenSet[str]] = frozenset()
    bool_fields: ClassVar[FrozenSet[str]] = frozenset()

    def __init__(self, entity: Optional[Any] = None, **overrides: Any):
        self.values: Dict[str, Any] = copy.deepcopy(self.defaults)
        self.id: Optional[str] = None
        if entity is not None:
            data = entity.model_dump(mode="json") if isinstance(entity, BaseModel) else dict(entity)
            for key, value in data.items():
                self.values[to_snake(key)] = value
            self.id = self.values.pop("id", None)
        for key, value in overrides.items():
            self.values[key] = value
        self.recompute()

    @property
    def is_edit(self) -> bool:
        return self.id is not None

    def __getitem__(self, name: str) -> Any:
        return self.values.get(name)

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)

    def coerce(self, name: str, raw: Any) -> Any:
        if name in self.float_fields:
            return parse_float(raw)
        if name in self.int_fields:
            return parse_int(raw)
        if name in self.bool_fields:
            return parse_bool(raw)
        return raw

    def set(self, name: str, raw: Any) -> "FormDraft":
        self.values[name] = self.coerce(name, raw)
        self.recompute()
        return self

    def update(self, **fields: Any) -> "FormDraft":
        for name, raw in fields.items():
            self.values[name] = self.coerce(name, raw)
        self.recompute()
        return self

    def recompute(self) -> None:
        """Refresh derived fields. Subclasses override."""

    def missing_fields(self) -> Tuple[str, ...]:
        return tuple(name for name in self.required if _blank(self.values.get(name)))

    def validate(self) -> None:
        missing = self.missing_fields()
        if missing:
            raise FormValidationError(
                message="Please fill in all required fields",
                details={"missing": list(missing)},
            )

    def payload(self) -> Dict[str, Any]:
        body = {to_camel(k): v for k, v in self.values.items()}
        if self.id is not None:
            body["id"] = self.id
        return body


D = TypeVar("D", bound=FormDraft)


class FormDialog(Generic[D]):
    """Modal holding one draft at a time."""

    def __init__(self, factory: Callable[..., D]):
        self._factory = factory
        self.is_open = False
        self.draft: D = factory()

    def open(self, entity: Optional[Any] = None, **overrides: Any) -> D:
        self.draft = self._factory(entity, **overrides) if entity is not None else self._factory(**overrides)
        self.is_open = True
        return self.draft

    def close(self) -> None:
        self.is_open = False

    def reset(self) -> None:
        self.draft = self._factory()
