from typing import Any, Dict
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Frozen mirror of a backend JSON record.

    Field names are snake_case in Python and camelCase on the wire. Fields the
    backend sends but the model does not declare are kept as extras.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
        coerce_numbers_to_str=True,
    )

    def to_payload(self, exclude_none: bool = True) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=exclude_none)


class Pagination(ApiModel):
    """Page metadata; routes name the counters either ``total``/``pages`` or ``totalCount``/``totalPages``."""

    total: int = Field(0, validation_alias=AliasChoices("total", "totalCount"))
    page: int = 1
    limit: int = 0
    pages: int = Field(0, validation_alias=AliasChoices("pages", "totalPages"))
