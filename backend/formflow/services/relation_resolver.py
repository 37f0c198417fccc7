"""RelationResolver - Turns relation field configuration into selectable options.

A relation field points at a response of another form. Responses have no
fixed schema, so each candidate's label is derived from its data: the
configured display field when it has a value, otherwise the first non-empty
value, otherwise a synthetic label built from the response id.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from formflow.db.store import parse_if_string
from formflow.errors import NotFoundError, TransientFetchError
from formflow.models import (
    FormSchema,
    RelationCandidate,
    RelationCandidates,
    RelationField,
    RelationFieldState,
    Response,
)

if TYPE_CHECKING:
    from formflow.db.store import DataStore

logger = logging.getLogger(__name__)

MAX_LABEL_LENGTH = 50
FALLBACK_LABEL_PREFIX = "response "
LOAD_FAILED_WARNING = "Could not load responses for the related form"
FORM_NOT_FOUND_WARNING = "Related form not found"


def display_string(value: Any) -> str:
    """Coerce a stored response value to its display text."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def truncate_label(text: str) -> str:
    if len(text) > MAX_LABEL_LENGTH:
        return text[:MAX_LABEL_LENGTH] + "..."
    return text


def fallback_label(response_id: str) -> str:
    return f"{FALLBACK_LABEL_PREFIX}{response_id[:8]}..."


def display_label(
    response_id: str, data: dict[str, Any], display_field: str | None = None
) -> str:
    """Compute the label shown for a response in a relation field.

    Args:
        response_id: ID of the response, used for the synthetic fallback
        data: The response data, in stored key order
        display_field: Optional field id whose value is preferred

    Returns:
        A non-empty label of at most 53 characters
    """
    chosen: str | None = None

    if display_field and data.get(display_field) is not None:
        text = display_string(data[display_field])
        if text:
            chosen = text

    if chosen is None:
        for value in data.values():
            if value is None:
                continue
            text = display_string(value)
            if text.strip():
                chosen = text
                break

    if chosen is None:
        return fallback_label(response_id)
    return truncate_label(chosen)


def _response_data(response: Response) -> dict[str, Any] | None:
    """The response data as a dict, or None when it is malformed."""
    data = response.data
    if data is None:
        return {}
    data = parse_if_string(data)
    if not isinstance(data, dict):
        return None
    return data


class RelationResolver:
    """Fetches candidate responses of a form and labels them.

    Fetch failures never propagate: they yield an empty candidate list and a
    warning, so a broken relation never blocks the form that contains it.
    """

    def __init__(self, data_store: DataStore) -> None:
        self._store = data_store

    async def list_candidates(
        self, form_id: str, display_field: str | None = None
    ) -> RelationCandidates:
        """List the selectable responses of ``form_id`` in fetch order."""
        try:
            if await self._store.get_form(form_id) is None:
                raise NotFoundError("Form", form_id)
            responses = await self._store.list_responses(form_id)
        except NotFoundError as e:
            logger.warning(f"Relation target missing: {e}")
            return RelationCandidates(
                form_id=form_id, candidates=[], warning=FORM_NOT_FOUND_WARNING
            )
        except TransientFetchError as e:
            logger.warning(f"Failed to load relation candidates for form {form_id}: {e}")
            return RelationCandidates(
                form_id=form_id, candidates=[], warning=LOAD_FAILED_WARNING
            )

        candidates = []
        for response in responses:
            if not response.id:
                continue
            data = _response_data(response)
            if data is None:
                logger.debug(f"Skipping response {response.id} with malformed data")
                continue
            candidates.append(
                RelationCandidate(
                    value=response.id,
                    label=display_label(response.id, data, display_field),
                    created_at=response.created_at,
                )
            )

        return RelationCandidates(form_id=form_id, candidates=candidates)


class RelationOptionsLoader:
    """Keeps the options of every relation field of one form.

    Fields are loaded one after another. Each load is keyed by the
    ``(form_id, display_field)`` it was started for; if the field has been
    reconfigured by the time the result arrives, the result is dropped.
    """

    def __init__(self, resolver: RelationResolver) -> None:
        self._resolver = resolver
        self._fields: dict[str, RelationFieldState] = {}

    @property
    def fields(self) -> dict[str, RelationFieldState]:
        return self._fields

    @property
    def loading(self) -> dict[str, bool]:
        return {field_id: state.loading for field_id, state in self._fields.items()}

    @property
    def warnings(self) -> dict[str, str]:
        return {
            field_id: state.warning
            for field_id, state in self._fields.items()
            if state.warning
        }

    @property
    def not_configured(self) -> list[str]:
        return [field_id for field_id, state in self._fields.items() if state.not_configured]

    def configure(self, schema: FormSchema) -> None:
        """Sync field states with the relation fields of ``schema``.

        A field whose target changed loses its cached options.
        """
        current_ids = set()
        for field in schema.relation_fields():
            current_ids.add(field.id)
            self.configure_field(field)

        for field_id in list(self._fields):
            if field_id not in current_ids:
                del self._fields[field_id]

    def configure_field(self, field: RelationField) -> RelationFieldState:
        config = field.relation_config
        form_id = config.form_id if config and config.form_id else None
        display_field = config.display_field if config else None

        state = self._fields.get(field.id)
        if state is None:
            state = RelationFieldState(
                field_id=field.id, form_id=form_id, display_field=display_field
            )
            self._fields[field.id] = state
        elif state.form_id != form_id or state.display_field != display_field:
            state.form_id = form_id
            state.display_field = display_field
            state.options = []
            state.loading = False
            state.warning = None
        return state

    async def load(self) -> dict[str, RelationFieldState]:
        """Load every configured field, serially."""
        for field_id in list(self._fields):
            if self._fields[field_id].not_configured:
                continue
            await self.load_field(field_id)
        return self._fields

    async def load_field(self, field_id: str) -> bool:
        """Load one field's options.

        Returns:
            True if the result was applied, False if the field is unknown, not
            configured, or was reconfigured while the load was in flight
        """
        state = self._fields.get(field_id)
        if state is None or state.key is None:
            return False

        key = state.key
        state.loading = True
        try:
            result = await self._resolver.list_candidates(*key)
        finally:
            current = self._fields.get(field_id)
            if current is not None and current.key == key:
                current.loading = False

        current = self._fields.get(field_id)
        if current is None or current.key != key:
            logger.debug(f"Discarding stale relation options for field {field_id}")
            return False

        current.options = list(result.candidates)
        current.warning = result.warning
        return True
