"""Pydantic models for forms and their fields.

A form's schema is a list of typed fields. The field ``type`` is a closed set
(``FieldKind``); the discriminated union below is the single place that maps a
``type`` string onto a concrete field model.
"""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Discriminator, Tag, field_validator, model_validator
from pydantic import Field as PydanticField


class FieldKind(str, Enum):
    """Supported form field types."""

    TEXT = "text"
    EMAIL = "email"
    NUMBER = "number"
    TEXTAREA = "textarea"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    DATE = "date"
    RELATION = "relation"


CHOICE_KINDS = frozenset({FieldKind.SELECT, FieldKind.RADIO})


class RelationConfig(BaseModel):
    """Target of a relation field.

    ``value_field`` always mirrors ``form_id``: the persisted value of the
    relation configuration is the target form's identifier.
    """

    form_id: str | None = PydanticField(default=None, alias="formId")
    form_title: str | None = PydanticField(default=None, alias="formTitle")
    display_field: str | None = PydanticField(default=None, alias="displayField")
    value_field: str | None = PydanticField(default=None, alias="valueField")

    model_config = {"populate_by_name": True, "coerce_numbers_to_str": True}

    @model_validator(mode="after")
    def pin_value_field(self) -> "RelationConfig":
        """Force ``value_field`` to the target form id."""
        self.value_field = self.form_id
        return self

    @property
    def is_configured(self) -> bool:
        return bool(self.form_id)


class BaseFormField(BaseModel):
    """Attributes shared by every field type."""

    id: str
    label: str = ""
    required: bool = False
    placeholder: str | None = None

    model_config = {"populate_by_name": True, "coerce_numbers_to_str": True}

    @property
    def kind(self) -> FieldKind:
        return FieldKind(self.type)  # type: ignore[attr-defined]


class InputField(BaseFormField):
    """A free-input field (text, email, number, textarea, checkbox, date)."""

    type: Literal["text", "email", "number", "textarea", "checkbox", "date"] = "text"


class ChoiceField(BaseFormField):
    """A select or radio field with a fixed list of options."""

    type: Literal["select", "radio"]
    options: list[str] = PydanticField(default_factory=list)


class RelationField(BaseFormField):
    """A field whose value points at a response of another form."""

    type: Literal["relation"] = "relation"
    relation_config: RelationConfig | None = PydanticField(
        default=None, alias="relationConfig"
    )

    @property
    def is_configured(self) -> bool:
        return self.relation_config is not None and self.relation_config.is_configured


_FIELD_TAGS = {
    FieldKind.SELECT.value: "choice",
    FieldKind.RADIO.value: "choice",
    FieldKind.RELATION.value: "relation",
}


def _get_field_discriminator(v: Any) -> str:
    """Discriminator function for the FormField union."""
    if isinstance(v, dict):
        field_type = v.get("type", "text")
    else:
        field_type = getattr(v, "type", "text")
    return _FIELD_TAGS.get(field_type, "input")


FormField = Annotated[
    Annotated[InputField, Tag("input")]
    | Annotated[ChoiceField, Tag("choice")]
    | Annotated[RelationField, Tag("relation")],
    Discriminator(_get_field_discriminator),
]


class FormSchema(BaseModel):
    """The JSON document stored in a form's ``schema`` column."""

    title: str = ""
    description: str = ""
    fields: list[FormField] = PydanticField(default_factory=list)

    @field_validator("description", mode="before")
    @classmethod
    def null_description_as_empty(cls, value: Any) -> Any:
        # Older schemas store "description": null
        return "" if value is None else value

    @model_validator(mode="after")
    def check_unique_field_ids(self) -> "FormSchema":
        """Field ids must be unique within a form."""
        seen: set[str] = set()
        for field in self.fields:
            if field.id in seen:
                raise ValueError(f"Duplicate field id '{field.id}'")
            seen.add(field.id)
        return self

    def get_field(self, field_id: str) -> InputField | ChoiceField | RelationField | None:
        """Get a field by ID."""
        for field in self.fields:
            if field.id == field_id:
                return field
        return None

    def relation_fields(self) -> list[RelationField]:
        return [f for f in self.fields if isinstance(f, RelationField)]

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the persisted JSON shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class FormRef(BaseModel):
    """Lightweight reference to a form (id and title)."""

    id: str
    title: str = ""

    model_config = {"coerce_numbers_to_str": True}


class Form(BaseModel):
    """A stored form."""

    id: str
    title: str
    description: str | None = None
    form_schema: FormSchema = PydanticField(default_factory=FormSchema, alias="schema")
    created_at: str
    updated_at: str

    model_config = {"populate_by_name": True}


class FormCreate(BaseModel):
    """Request model for creating a form."""

    title: str
    description: str | None = None
    form_schema: FormSchema = PydanticField(default_factory=FormSchema, alias="schema")

    model_config = {"populate_by_name": True}


class FormUpdate(BaseModel):
    """Request model for updating a form."""

    title: str | None = None
    description: str | None = None
    form_schema: FormSchema | None = PydanticField(default=None, alias="schema")

    model_config = {"populate_by_name": True}


class FormSchemaCheck(BaseModel):
    """Result of checking a form schema in the builder."""

    ok: bool
    errors: list[str] = PydanticField(default_factory=list)
    warnings: list[str] = PydanticField(default_factory=list)
