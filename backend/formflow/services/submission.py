"""ResponseSubmissionService - Validates, stores and edits form responses.

This is the only place a response gets linked to a task.
"""

from __future__ import annotations

import logging
import math
import re
from typing import TYPE_CHECKING, Any

from formflow.errors import NotFoundError, ResponseValidationError
from formflow.models import (
    ChoiceField,
    FieldKind,
    Form,
    FormSchema,
    Page,
    RelationField,
    Response,
    ResponseSearch,
)
from formflow.services.relation_resolver import RelationResolver

if TYPE_CHECKING:
    from formflow.db.store import DataStore

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

REQUIRED_MESSAGE = "This field is required"
EMAIL_MESSAGE = "Enter a valid email address"
NUMBER_MESSAGE = "Enter a valid number"
OPTION_MESSAGE = "Select one of the available options"
RELATION_MESSAGE = "Select one of the available responses"


def _is_empty(kind: FieldKind, value: Any) -> bool:
    if value is None:
        return True
    if kind == FieldKind.CHECKBOX:
        return value is False
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(str(value))
    except ValueError:
        return False
    return True


class ResponseSubmissionService:
    """Checks a response against its form and stores it.

    Edits go through the same validation as submissions.
    """

    def __init__(
        self, data_store: DataStore, resolver: RelationResolver | None = None
    ) -> None:
        self._store = data_store
        self._resolver = resolver or RelationResolver(data_store)

    async def validate(self, schema: FormSchema, data: dict[str, Any]) -> dict[str, str]:
        """Validate submitted data.

        Relation values are checked against the target form's responses, which
        are fetched one field at a time.

        Returns:
            Error message per field id; empty when the data is valid
        """
        errors: dict[str, str] = {}
        candidate_cache: dict[tuple[str, str | None], set[str]] = {}

        for field in schema.fields:
            kind = field.kind
            value = data.get(field.id)

            if _is_empty(kind, value):
                if field.required:
                    errors[field.id] = REQUIRED_MESSAGE
                continue

            if kind == FieldKind.EMAIL:
                if not isinstance(value, str) or not EMAIL_PATTERN.match(value):
                    errors[field.id] = EMAIL_MESSAGE
            elif kind == FieldKind.NUMBER:
                if not _is_number(value):
                    errors[field.id] = NUMBER_MESSAGE
            elif isinstance(field, ChoiceField):
                if field.options and value not in field.options:
                    errors[field.id] = OPTION_MESSAGE
            elif isinstance(field, RelationField) and field.is_configured:
                config = field.relation_config
                key = (config.form_id, config.display_field)
                if key not in candidate_cache:
                    result = await self._resolver.list_candidates(*key)
                    candidate_cache[key] = {c.value for c in result.candidates}
                if str(value) not in candidate_cache[key]:
                    errors[field.id] = RELATION_MESSAGE

        return errors

    async def submit(
        self,
        form_id: str,
        data: dict[str, Any],
        created_by: str | None = None,
        task_id: str | None = None,
    ) -> Response:
        """Validate and store a response, linking it to ``task_id`` if given.

        Raises:
            NotFoundError: The form or the task does not exist
            ResponseValidationError: The data does not satisfy the form
        """
        form = await self._store.get_form(form_id)
        if form is None:
            raise NotFoundError("Form", form_id)

        if task_id is not None and await self._store.get_task(task_id) is None:
            raise NotFoundError("Task", task_id)

        errors = await self.validate(form.form_schema, data)
        if errors:
            raise ResponseValidationError(errors)

        response = await self._store.create_response(form_id, data, created_by)
        if task_id is not None:
            await self._store.link_task_response(task_id, response.id)
            logger.info(f"Response {response.id} submitted against task {task_id}")
        return response

    async def _get_form_response(self, form_id: str, response_id: str) -> Form:
        """The form, after checking ``response_id`` belongs to it."""
        form = await self._store.get_form(form_id)
        if form is None:
            raise NotFoundError("Form", form_id)
        response = await self._store.get_response(response_id)
        if response is None or response.form_id != form_id:
            raise NotFoundError("Response", response_id)
        return form

    async def update(self, form_id: str, response_id: str, data: dict[str, Any]) -> Response:
        """Replace a response's data, validated as on submit.

        Raises:
            NotFoundError: The form or the response does not exist
            ResponseValidationError: The data does not satisfy the form
        """
        form = await self._get_form_response(form_id, response_id)

        errors = await self.validate(form.form_schema, data)
        if errors:
            raise ResponseValidationError(errors)

        response = await self._store.update_response(response_id, data)
        if response is None:
            raise NotFoundError("Response", response_id)
        logger.info(f"Response {response_id} updated")
        return response

    async def delete(self, form_id: str, response_id: str) -> None:
        """Delete a response. Links to the tasks it was submitted against go with it."""
        await self._get_form_response(form_id, response_id)
        if not await self._store.delete_response(response_id):
            raise NotFoundError("Response", response_id)
        logger.info(f"Response {response_id} deleted")

    async def search(self, form_id: str, search: ResponseSearch) -> Page[Response]:
        """One page of a form's responses matching the active filters, newest first."""
        if await self._store.get_form(form_id) is None:
            raise NotFoundError("Form", form_id)

        responses, total = await self._store.query_responses(
            form_id,
            search.active_filters(),
            limit=search.page_size,
            offset=(search.page - 1) * search.page_size,
        )
        return Page[Response](
            data=responses,
            total=total,
            page=search.page,
            page_size=search.page_size,
            total_pages=math.ceil(total / search.page_size) if total else 0,
        )
