"""FormBuilder - Field editing operations on a form schema.

Every operation returns a new FormSchema; the input schema is left as-is.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

from pydantic import TypeAdapter

from formflow.errors import NotFoundError
from formflow.models import (
    ChoiceField,
    FieldKind,
    FormField,
    FormRef,
    FormSchema,
    FormSchemaCheck,
    RelationConfig,
    RelationField,
)
from formflow.models.form import CHOICE_KINDS

logger = logging.getLogger(__name__)

DEFAULT_FIELD_LABEL = "New field"
UNTITLED_FORM = "untitled form"

_FIELD_ADAPTER: TypeAdapter[Any] = TypeAdapter(FormField)

# Attribute names accepted in updates, mapped to their wire keys
_UPDATE_KEYS = {"relation_config": "relationConfig"}


def _millis() -> int:
    return int(time.time() * 1000)


class FormBuilder:
    """Edits the field list of a form schema."""

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        self._clock = clock or _millis

    def _new_field_id(self, schema: FormSchema) -> str:
        taken = {f.id for f in schema.fields}
        field_id = f"field_{self._clock()}"
        candidate = field_id
        suffix = 2
        while candidate in taken:
            candidate = f"{field_id}_{suffix}"
            suffix += 1
        return candidate

    def _with_fields(self, schema: FormSchema, fields: list[Any]) -> FormSchema:
        return FormSchema(title=schema.title, description=schema.description, fields=fields)

    def _require_field(self, schema: FormSchema, field_id: str) -> Any:
        field = schema.get_field(field_id)
        if field is None:
            raise NotFoundError("Field", field_id)
        return field

    def add_field(
        self,
        schema: FormSchema,
        kind: FieldKind = FieldKind.TEXT,
        label: str = DEFAULT_FIELD_LABEL,
    ) -> FormSchema:
        """Append a new, empty field of the given type."""
        field = _FIELD_ADAPTER.validate_python(
            {"id": self._new_field_id(schema), "type": kind.value, "label": label}
        )
        return self._with_fields(schema, [*schema.fields, field])

    def update_field(
        self, schema: FormSchema, field_id: str, updates: dict[str, Any]
    ) -> FormSchema:
        """Apply attribute updates to one field.

        Changing the type drops attributes the new type does not carry:
        ``relationConfig`` outside relation fields, ``options`` outside
        select and radio fields.
        """
        current = self._require_field(schema, field_id)
        data = current.model_dump(by_alias=True, exclude_none=True)
        for key, value in updates.items():
            data[_UPDATE_KEYS.get(key, key)] = value

        new_type = data.get("type", FieldKind.TEXT.value)
        if new_type != FieldKind.RELATION.value:
            data.pop("relationConfig", None)
        if new_type not in {kind.value for kind in CHOICE_KINDS}:
            data.pop("options", None)

        updated = _FIELD_ADAPTER.validate_python(data)
        fields = [updated if f.id == field_id else f for f in schema.fields]
        return self._with_fields(schema, fields)

    def remove_field(self, schema: FormSchema, field_id: str) -> FormSchema:
        self._require_field(schema, field_id)
        return self._with_fields(schema, [f for f in schema.fields if f.id != field_id])

    def set_relation_target(
        self, schema: FormSchema, field_id: str, form: FormRef
    ) -> FormSchema:
        """Point a relation field at another form.

        The display field is reset since it belonged to the previous target.
        """
        field = self._require_field(schema, field_id)
        if not isinstance(field, RelationField):
            raise ValueError(f"Field '{field_id}' is not a relation field")

        config = RelationConfig(
            form_id=form.id,
            form_title=form.title or UNTITLED_FORM,
            display_field=None,
        )
        updated = field.model_copy(update={"relation_config": config})
        fields = [updated if f.id == field_id else f for f in schema.fields]
        return self._with_fields(schema, fields)

    def set_display_field(
        self, schema: FormSchema, field_id: str, display_field: str | None
    ) -> FormSchema:
        field = self._require_field(schema, field_id)
        if not isinstance(field, RelationField) or field.relation_config is None:
            raise ValueError(f"Field '{field_id}' has no relation target")

        config = field.relation_config.model_copy(update={"display_field": display_field})
        updated = field.model_copy(update={"relation_config": config})
        fields = [updated if f.id == field_id else f for f in schema.fields]
        return self._with_fields(schema, fields)

    def check_schema(self, schema: FormSchema, for_save: bool = False) -> FormSchemaCheck:
        """Check a schema while editing, or before saving.

        Select and radio fields without options are a warning while editing
        and an error on save. An unconfigured relation field is a warning.
        """
        errors: list[str] = []
        warnings: list[str] = []

        if for_save:
            if not schema.title.strip():
                errors.append("form title is required")
            if not schema.fields:
                errors.append("form needs at least one field")

        for field in schema.fields:
            if isinstance(field, ChoiceField) and not field.options:
                message = f"field '{field.label or field.id}' has no options"
                (errors if for_save else warnings).append(message)
            if isinstance(field, RelationField) and not field.is_configured:
                warnings.append(f"field '{field.label or field.id}' is not configured")

        return FormSchemaCheck(ok=not errors, errors=errors, warnings=warnings)
