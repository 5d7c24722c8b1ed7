from typing import Any, Dict, Generic, List, Optional, Tuple, Type, TypeVar
import enum

from pydantic import ValidationError

from hms_client.core.exceptions import InvalidResponseError
from hms_client.infrastructure.http import ApiClient
from hms_client.schemas.base import ApiModel, Pagination

T = TypeVar("T", bound=ApiModel)


class Addressing(str, enum.Enum):
    PATH = "path"     # /api/beds/{id}
    QUERY = "query"   # /api/lab/catalog?id={id}
    BODY = "body"     # /api/radiology/requests with {"id": ...} in the body


class Endpoint(Generic[T]):
    """How one backend collection is addressed and wrapped."""

    def __init__(
        self,
        path: str,
        model: Type[T],
        label: str = "Record",
        list_key: Optional[str] = None,
        item_key: Optional[str] = None,
        update_addressing: Addressing = Addressing.PATH,
        delete_addressing: Addressing = Addressing.PATH,
        update_method: str = "PUT",
        id_param: str = "id",
    ):
        self.path = path.rstrip("/")
        self.model = model
        self.label = label
        self.list_key = list_key
        self.item_key = item_key
        self.update_addressing = update_addressing
        self.delete_addressing = delete_addressing
        self.update_method = update_method
        self.id_param = id_param

    def item_path(self, id: str) -> str:
        return f"{self.path}/{id}"


def unwrap(body: Any) -> Any:
    """Strip the ``{"success": true, "data": ...}`` envelope some routes use."""
    if isinstance(body, dict) and "success" in body and "data" in body:
        return body["data"]
    return body


class ResourceRepository(Generic[T]):
    def __init__(self, api: ApiClient, endpoint: Endpoint[T]):
        self.api = api
        self.endpoint = endpoint

    def _parse(self, data: Any) -> T:
        try:
            return self.endpoint.model.model_validate(data)
        except ValidationError as e:
            raise InvalidResponseError(
                message=f"Unexpected {self.endpoint.label.lower()} data from server",
                details={"path": self.endpoint.path, "errors": e.errors(include_url=False)},
            ) from e

    def parse_item(self, body: Any) -> T:
        data = unwrap(body)
        if self.endpoint.item_key and isinstance(data, dict) and self.endpoint.item_key in data:
            data = data[self.endpoint.item_key]
        return self._parse(data)

    async def list(self, params: Optional[Dict[str, Any]] = None) -> Tuple[List[T], Optional[Pagination]]:
        body = await self.api.get(
            self.endpoint.path,
            params=params,
            fallback_message=f"Failed to fetch {self.endpoint.label.lower()} records",
        )
        data = unwrap(body)
        pagination = None
        if isinstance(data, dict):
            if data.get("pagination") is not None:
                pagination = Pagination.model_validate(data["pagination"])
            key = self.endpoint.list_key
            if key is None or key not in data:
                raise InvalidResponseError(
                    details={"path": self.endpoint.path, "expected_key": key},
                )
            data = data[key]
        if not isinstance(data, list):
            raise InvalidResponseError(details={"path": self.endpoint.path})
        return [self._parse(row) for row in data], pagination

    async def create(self, payload: Dict[str, Any]) -> T:
        body = await self.api.post(
            self.endpoint.path,
            json=payload,
            fallback_message=f"Failed to add {self.endpoint.label.lower()}",
        )
        return self.parse_item(body)

    async def update(self, id: str, payload: Dict[str, Any]) -> T:
        path, params, body = self._address(self.endpoint.update_addressing, id, payload)
        response = await self.api.request(
            self.endpoint.update_method,
            path,
            params=params,
            json=body,
            fallback_message=f"Failed to update {self.endpoint.label.lower()}",
        )
        return self.parse_item(response)

    async def delete(self, id: str) -> None:
        path, params, body = self._address(self.endpoint.delete_addressing, id, None)
        await self.api.request(
            "DELETE",
            path,
            params=params,
            json=body,
            fallback_message=f"Failed to delete {self.endpoint.label.lower()}",
        )

    async def action(
        self,
        id: str,
        name: str,
        payload: Optional[Dict[str, Any]] = None,
        method: str = "POST",
        fallback_message: str = "Operation failed",
    ) -> T:
        response = await self.api.request(
            method,
            f"{self.endpoint.item_path(id)}/{name}",
            json=payload,
            fallback_message=fallback_message,
        )
        return self.parse_item(response)

    def _address(
        self, addressing: Addressing, id: str, payload: Optional[Dict[str, Any]]
    ) -> Tuple[str, Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
        if addressing == Addressing.PATH:
            return self.endpoint.item_path(id), None, payload
        if addressing == Addressing.QUERY:
            return self.endpoint.path, {self.endpoint.id_param: id}, payload
        return self.endpoint.path, None, {**(payload or {}), self.endpoint.id_param: id}
