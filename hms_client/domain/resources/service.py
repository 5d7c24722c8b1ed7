"""
Resource Screen Service Layer

One screen owns one collection: it loads it, exposes create/update/delete
and transition actions against the matching endpoint, and merges each
server response into its local snapshot. Failures never touch the snapshot;
they become error notices.
"""

from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Type, TypeVar, Union
import inspect

from loguru import logger

from hms_client.core.exceptions import ApiError, BaseClientException, FormValidationError
from hms_client.core.notices import NoticeCenter
from hms_client.domain import filters
from hms_client.domain.forms import FormDialog, FormDraft
from hms_client.domain.resources.repository import Endpoint, ResourceRepository
from hms_client.domain.resources.store import ResourceStore, Snapshot
from hms_client.infrastructure.http import ApiClient
from hms_client.schemas.base import ApiModel, Pagination

T = TypeVar("T", bound=ApiModel)

Confirm = Callable[[], Union[bool, Awaitable[bool]]]
Payload = Union[Dict[str, Any], FormDraft, ApiModel]


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def failure_message(error: BaseClientException, fallback: str) -> str:
    """Server-supplied message when there is one, the generic text otherwise."""
    if isinstance(error, (ApiError, FormValidationError)):
        return error.message
    return fallback


class ResourceScreen(Generic[T]):
    endpoint: Endpoint
    draft_class: Optional[Type[FormDraft]] = None
    default_params: Dict[str, Any] = {}

    def __init__(
        self,
        api: ApiClient,
        notices: Optional[NoticeCenter] = None,
        endpoint: Optional[Endpoint] = None,
    ):
        if endpoint is not None:
            self.endpoint = endpoint
        self.api = api
        self.notices = notices or NoticeCenter()
        self.repo: ResourceRepository[T] = ResourceRepository(api, self.endpoint)
        self.store: ResourceStore[T] = ResourceStore(name=self.endpoint.label)
        self.pagination: Optional[Pagination] = None
        self.params: Dict[str, Any] = dict(self.default_params)
        self.dialog: Optional[FormDialog] = FormDialog(self.draft_class) if self.draft_class else None

    @property
    def label(self) -> str:
        return self.endpoint.label

    @property
    def snapshot(self) -> Snapshot[T]:
        return self.store.snapshot

    @property
    def items(self):
        return self.store.items

    @property
    def loading(self) -> bool:
        return self.store.snapshot.loading

    def _fail(self, error: BaseClientException, fallback: str) -> None:
        message = failure_message(error, fallback)
        logger.error(f"{self.label}: {fallback}: {error.message}")
        self.notices.error(message)

    @staticmethod
    def _payload(data: Payload) -> Dict[str, Any]:
        if isinstance(data, FormDraft):
            data.validate()
            return data.payload()
        if isinstance(data, ApiModel):
            return data.to_payload()
        return dict(data)

    async def load(self, **params: Any) -> Snapshot[T]:
        """Fetch the collection; failure keeps the previous items and flags the error."""
        self.params.update(params)
        self.store.begin_loading()
        fallback = f"Failed to load {self.label.lower()} records"
        try:
            items, pagination = await self.repo.list(self.params)
        except BaseClientException as e:
            self._fail(e, fallback)
            return self.store.failed(failure_message(e, fallback))

        self.pagination = pagination
        meta = {"pagination": pagination} if pagination else {}
        return self.store.loaded(items, **meta)

    async def create(self, data: Payload) -> Optional[T]:
        fallback = f"Failed to add {self.label.lower()}"
        try:
            payload = self._payload(data)
            created = await self.repo.create(payload)
        except BaseClientException as e:
            self._fail(e, fallback)
            return None

        self.store.append(created)
        self.notices.success(f"{self.label} added successfully")
        logger.info(f"{self.label} {created.id} created")
        return created

    async def update(self, id: str, data: Payload) -> Optional[T]:
        fallback = f"Failed to update {self.label.lower()}"
        try:
            payload = self._payload(data)
            payload.pop("id", None)
            updated = await self.repo.update(id, payload)
        except BaseClientException as e:
            self._fail(e, fallback)
            return None

        self.store.replace(updated)
        self.notices.success(f"{self.label} updated successfully")
        return updated

    async def save(self, dialog: Optional[FormDialog] = None) -> Optional[T]:
        """Submit the dialog's draft; the dialog closes and resets only on success."""
        dialog = dialog or self.dialog
        if dialog is None:
            raise RuntimeError(f"{type(self).__name__} has no form dialog")
        draft = dialog.draft
        if draft.is_edit:
            result = await self.update(draft.id, draft)
        else:
            result = await self.create(draft)
        if result is not None:
            dialog.close()
            dialog.reset()
        return result

    async def delete(self, id: str, confirm: Optional[Confirm] = None) -> bool:
        if confirm is not None and not await _resolve(confirm()):
            return False
        fallback = f"Failed to delete {self.label.lower()}"
        try:
            await self.repo.delete(id)
        except BaseClientException as e:
            self._fail(e, fallback)
            return False

        self.store.remove(id)
        self.notices.success(f"{self.label} deleted successfully")
        return True

    async def run_action(
        self,
        id: str,
        name: str,
        payload: Optional[Payload] = None,
        method: str = "POST",
        success: Optional[str] = None,
        failure: Optional[str] = None,
    ) -> Optional[T]:
        """Call a transition endpoint (``{path}/{id}/{name}``) and take the server's record."""
        fallback = failure or f"Failed to {name.replace('-', ' ')} {self.label.lower()}"
        try:
            body = self._payload(payload) if payload is not None else None
            updated = await self.repo.action(id, name, body, method=method, fallback_message=fallback)
        except BaseClientException as e:
            self._fail(e, fallback)
            return None

        self.store.replace(updated)
        self.notices.success(success or f"{self.label} updated successfully")
        return updated

    def get(self, id: str) -> Optional[T]:
        return self.snapshot.get(id)

    def filtered(self, *predicates: filters.Predicate) -> List[T]:
        return filters.apply(self.items, *predicates)

    def filtered_by(self, **criteria: Any) -> List[T]:
        return filters.apply(self.items, *filters.criteria(**criteria))
