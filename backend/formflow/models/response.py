"""Pydantic models for form responses and their task links."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, computed_field, field_validator, model_validator
from pydantic import Field as PydanticField


class Response(BaseModel):
    """A submitted response to a form.

    For relation fields, ``data`` holds the id of the selected response of the
    target form.
    """

    id: str
    form_id: str
    data: Any = PydanticField(default_factory=dict)
    created_by: str | None = None
    created_at: str
    updated_at: str | None = None


class ResponseCreate(BaseModel):
    """Request model for submitting a response."""

    data: dict[str, Any] = PydanticField(default_factory=dict)
    created_by: str | None = None
    task_id: str | None = None


class ResponseUpdate(BaseModel):
    """Request model for editing a response's data."""

    data: dict[str, Any] = PydanticField(default_factory=dict)


class ResponseFilterOperator(str, Enum):
    """Comparison applied to one field of a response's data."""

    CONTAINS = "contains"
    EQUALS = "equals"
    IS_TRUE = "isTrue"
    IS_FALSE = "isFalse"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"


NUMERIC_OPERATORS = frozenset(
    {ResponseFilterOperator.GREATER_THAN, ResponseFilterOperator.LESS_THAN}
)
FLAG_OPERATORS = frozenset({ResponseFilterOperator.IS_TRUE, ResponseFilterOperator.IS_FALSE})


class ResponseFilter(BaseModel):
    """A filter on one data field. Text comparisons ignore case, ``equals`` does not."""

    operator: ResponseFilterOperator = ResponseFilterOperator.EQUALS
    value: Any = None

    @property
    def is_active(self) -> bool:
        """Flag filters always apply; others are skipped when the value is blank."""
        if self.operator in FLAG_OPERATORS:
            return True
        return self.value is not None and self.value is not False and self.value != ""

    @model_validator(mode="after")
    def check_numeric_value(self) -> "ResponseFilter":
        if self.operator in NUMERIC_OPERATORS and self.is_active:
            if isinstance(self.value, bool):
                raise ValueError(f"'{self.operator.value}' needs a number")
            try:
                self.value = float(self.value)
            except (TypeError, ValueError):
                raise ValueError(f"'{self.operator.value}' needs a number") from None
        return self


class ResponseSearch(BaseModel):
    """Request model for a filtered, paginated response listing."""

    filters: dict[str, ResponseFilter] = PydanticField(default_factory=dict)
    page: int = PydanticField(default=1, ge=1)
    page_size: int = PydanticField(default=10, ge=1, le=100, alias="pageSize")

    model_config = {"populate_by_name": True}

    @field_validator("filters")
    @classmethod
    def check_field_ids(cls, value: dict[str, ResponseFilter]) -> dict[str, ResponseFilter]:
        for field_id in value:
            if not field_id or '"' in field_id:
                raise ValueError(f"Invalid field id '{field_id}'")
        return value

    def active_filters(self) -> dict[str, ResponseFilter]:
        return {k: f for k, f in self.filters.items() if f.is_active}


class TaskResponse(BaseModel):
    """Join row linking a task to a response submitted against it."""

    task_id: str
    response_id: str
    created_at: str


class RelationCandidate(BaseModel):
    """A selectable target response for a relation field."""

    value: str
    label: str
    created_at: str | None = PydanticField(default=None, alias="createdAt")

    model_config = {"populate_by_name": True}


class RelationCandidates(BaseModel):
    """Candidates for one relation target, with a warning when loading failed."""

    form_id: str = PydanticField(alias="formId")
    candidates: list[RelationCandidate] = PydanticField(default_factory=list)
    warning: str | None = None

    model_config = {"populate_by_name": True}


class RelationFieldState(BaseModel):
    """Render state of one relation field while a form is being filled in.

    ``form_id`` is ``None`` when the field has no target form; such a field is
    shown as not configured and never loaded.
    """

    field_id: str = PydanticField(alias="fieldId")
    form_id: str | None = PydanticField(default=None, alias="formId")
    display_field: str | None = PydanticField(default=None, alias="displayField")
    options: list[RelationCandidate] = PydanticField(default_factory=list)
    loading: bool = False
    warning: str | None = None

    model_config = {"populate_by_name": True}

    @property
    def key(self) -> tuple[str, str | None] | None:
        """The configuration a load is keyed by."""
        if not self.form_id:
            return None
        return (self.form_id, self.display_field)

    @computed_field(alias="notConfigured")  # type: ignore[prop-decorator]
    @property
    def not_configured(self) -> bool:
        return self.key is None
