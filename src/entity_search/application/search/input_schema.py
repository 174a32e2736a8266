"""
Input validation: raw caller input → validated models → SearchRequest.

One pydantic model per operation. Field names are snake_case in Python and
camelCase on the wire (``fuzzySearch``); unknown keys are rejected.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from entity_search.domain.entities import SearchRequest, SortRequest
from entity_search.shared.exceptions import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_COUNT = 10
SUGGESTION_COUNT = 5

ModelT = TypeVar("ModelT", bound=BaseModel)


class _InputModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, alias_generator=to_camel)


class SortInput(_InputModel):
    field: str
    order: Literal["asc", "desc"] | None = None

    @field_validator("order", mode="before")
    @classmethod
    def _lower_order(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class LangInput(_InputModel):
    primary: str | None = None
    secondary: str | list[str] | None = None


class SearchInput(_InputModel):
    """search / formSearch / browseAll."""

    text: str | None = None
    filter: dict[str, Any] | None = None
    sort: SortInput | None = None
    page: int = Field(default=0, ge=0)
    count: int = Field(default=DEFAULT_COUNT, ge=1, le=1000)
    type: str | list[str] | None = None
    lang: LangInput | None = None
    fuzzy_search: bool = True
    format: str | None = None
    term_languages: list[str] | None = None

    def to_request(self) -> SearchRequest:
        return SearchRequest(
            text=self.text,
            filter=dict(self.filter or {}),
            sort=SortRequest(field=self.sort.field, order=self.sort.order) if self.sort else None,
            page=self.page,
            count=self.count,
            type=tuple(self.type) if isinstance(self.type, list) else self.type,
            lang=self.lang.model_dump(exclude_none=True) if self.lang else None,
            fuzzy_search=self.fuzzy_search,
            format=self.format,
            id=getattr(self, "id", None),
            term_languages=tuple(self.term_languages or ()),
        )


class FormSearchInput(SearchInput):
    pass


class BrowseAllInput(SearchInput):
    pass


class AutocompleteInput(SearchInput):
    """autocomplete / suggestedQueries."""

    count: int = Field(default=SUGGESTION_COUNT, ge=1, le=1000)


class ExplainInput(SearchInput):
    id: str
    type: str


class TermVectorsInput(_InputModel):
    type: str
    id: str


class GetInput(_InputModel):
    type: str | None = None
    id: str | None = None


class ViewInput(_InputModel):
    type: str
    filter: dict[str, Any] | None = None
    sort: SortInput | None = None
    lang: LangInput | None = None

    def to_request(self) -> SearchRequest:
        return SearchRequest(
            filter=dict(self.filter or {}),
            sort=SortRequest(field=self.sort.field, order=self.sort.order) if self.sort else None,
            type=self.type,
            lang=self.lang.model_dump(exclude_none=True) if self.lang else None,
        )


def _error_field(error: dict[str, Any]) -> str:
    return ".".join(str(part) for part in error.get("loc", ())) or "input"


def validate_input(model: type[ModelT], raw: Any) -> ModelT:
    """
    Validate raw input against an operation model.

    Raises:
        ValidationError: NO_INPUT for missing input, NON_CONFORMING_FORMAT
            (with the offending field) for schema violations
    """
    if raw is None:
        raise ValidationError("No input provided", code="NO_INPUT")

    try:
        return model.model_validate(raw)
    except PydanticValidationError as e:
        errors = [
            {"field": _error_field(err), "message": err.get("msg"), "type": err.get("type")} for err in e.errors()
        ]
        logger.debug(f"{model.__name__} rejected input: {errors}")
        raise ValidationError(
            "Non conforming format",
            code="NON_CONFORMING_FORMAT",
            field=errors[0]["field"] if errors else None,
            details={"errors": errors},
        ) from None
