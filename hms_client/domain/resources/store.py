"""
Immutable collection snapshots and the reducers that produce them.

A screen never edits its list in place: every server round-trip produces a
new ``Snapshot`` through one of the pure reducers below, and the
``ResourceStore`` swaps it in and notifies its listeners.
"""

from typing import Any, Callable, Generic, Iterable, List, Optional, Tuple, TypeVar
from dataclasses import dataclass, field, replace as dc_replace
import enum
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")
KeyFunc = Callable[[Any], Any]


def item_id(item: Any) -> Any:
    if isinstance(item, dict):
        return item.get("id")
    return getattr(item, "id", None)


class LoadState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


@dataclass(frozen=True)
class Snapshot(Generic[T]):
    items: Tuple[T, ...] = ()
    state: LoadState = LoadState.IDLE
    error: Optional[str] = None
    meta: dict = field(default_factory=dict)

    @property
    def loading(self) -> bool:
        return self.state == LoadState.LOADING

    def ids(self) -> List[Any]:
        return [item_id(i) for i in self.items]

    def get(self, id: Any, key: KeyFunc = item_id) -> Optional[T]:
        for item in self.items:
            if key(item) == id:
                return item
        return None

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


# Reducers. All of them return a new tuple and leave untouched items as the
# very same objects.

def replace_all(items: Iterable[T]) -> Tuple[T, ...]:
    return tuple(items)


def replace(items: Tuple[T, ...], new: T, key: KeyFunc = item_id) -> Tuple[T, ...]:
    target = key(new)
    return tuple(new if key(i) == target else i for i in items)


def remove(items: Tuple[T, ...], id: Any, key: KeyFunc = item_id) -> Tuple[T, ...]:
    return tuple(i for i in items if key(i) != id)


def upsert(items: Tuple[T, ...], new: T, key: KeyFunc = item_id, prepend: bool = False) -> Tuple[T, ...]:
    target = key(new)
    if any(key(i) == target for i in items):
        return replace(items, new, key)
    return (new,) + items if prepend else items + (new,)


def append(items: Tuple[T, ...], new: T, key: KeyFunc = item_id) -> Tuple[T, ...]:
    """Append a freshly created record; an id already present is overwritten."""
    return upsert(items, new, key, prepend=False)


Listener = Callable[[Snapshot], None]


class ResourceStore(Generic[T]):
    def __init__(self, name: str = "resource", key: KeyFunc = item_id):
        self.name = name
        self.key = key
        self._snapshot: Snapshot[T] = Snapshot()
        self._listeners: List[Listener] = []

    @property
    def snapshot(self) -> Snapshot[T]:
        return self._snapshot

    @property
    def items(self) -> Tuple[T, ...]:
        return self._snapshot.items

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, snapshot: Snapshot[T]) -> Snapshot[T]:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            listener(snapshot)
        return snapshot

    def begin_loading(self) -> Snapshot[T]:
        return self._commit(dc_replace(self._snapshot, state=LoadState.LOADING, error=None))

    def loaded(self, items: Iterable[T], **meta: Any) -> Snapshot[T]:
        return self._commit(Snapshot(replace_all(items), LoadState.LOADED, None, dict(meta)))

    def failed(self, message: str) -> Snapshot[T]:
        logger.debug(f"{self.name} load failed: {message}")
        return self._commit(dc_replace(self._snapshot, state=LoadState.ERROR, error=message))

    def append(self, item: T) -> Snapshot[T]:
        return self._commit(dc_replace(self._snapshot, items=append(self.items, item, self.key)))

    def replace(self, item: T) -> Snapshot[T]:
        return self._commit(dc_replace(self._snapshot, items=replace(self.items, item, self.key)))

    def upsert(self, item: T, prepend: bool = False) -> Snapshot[T]:
        return self._commit(dc_replace(self._snapshot, items=upsert(self.items, item, self.key, prepend)))

    def remove(self, id: Any) -> Snapshot[T]:
        return self._commit(dc_replace(self._snapshot, items=remove(self.items, id, self.key)))

    def reset(self, items: Iterable[T]) -> Snapshot[T]:
        return self._commit(dc_replace(self._snapshot, items=replace_all(items)))
