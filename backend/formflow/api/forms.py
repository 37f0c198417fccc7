"""Form, response and relation candidate API routes."""

import logging

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel
from pydantic import Field as PydanticField

from formflow.api.errors import to_http_exception
from formflow.db import data_store
from formflow.errors import FormflowError
from formflow.models import (
    Form,
    FormCreate,
    FormSchema,
    FormSchemaCheck,
    FormUpdate,
    Page,
    RelationCandidates,
    RelationField,
    RelationFieldState,
    Response,
    ResponseCreate,
    ResponseSearch,
    ResponseUpdate,
    WorkflowStatus,
)
from formflow.services.form_builder import FormBuilder
from formflow.services.relation_resolver import RelationOptionsLoader, RelationResolver
from formflow.services.submission import ResponseSubmissionService

logger = logging.getLogger(__name__)

router = APIRouter()

_builder = FormBuilder()
_resolver = RelationResolver(data_store)
_submissions = ResponseSubmissionService(data_store, _resolver)


# =============================================================================
# Request/Response Models
# =============================================================================


class FormsResponse(BaseModel):
    """Response for listing forms."""

    forms: list[Form]
    total: int


class ResponsesResponse(BaseModel):
    """Response for listing a form's responses."""

    responses: list[Response]
    total: int


class SchemaCheckRequest(BaseModel):
    """Request to check a form schema."""

    form_schema: FormSchema = PydanticField(alias="schema")
    for_save: bool = False

    model_config = {"populate_by_name": True}


# =============================================================================
# Forms
# =============================================================================


def _check_for_save(schema: FormSchema) -> None:
    check = _builder.check_schema(schema, for_save=True)
    if not check.ok:
        raise HTTPException(
            status_code=422,
            detail={"message": "Form cannot be saved", "errors": check.errors},
        )


@router.get("/forms")
async def list_forms(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> FormsResponse:
    """List forms, newest first."""
    try:
        forms, total = await data_store.list_forms(limit=limit, offset=offset)
    except FormflowError as e:
        raise to_http_exception(e) from e
    return FormsResponse(forms=forms, total=total)


@router.post("/forms")
async def create_form(form: FormCreate) -> Form:
    """Create a form. The schema must pass the save-time checks."""
    _check_for_save(form.form_schema)
    try:
        return await data_store.create_form(form)
    except FormflowError as e:
        raise to_http_exception(e) from e


@router.post("/forms/check")
async def check_form_schema(request: SchemaCheckRequest) -> FormSchemaCheck:
    """Check a schema as the form builder does while editing or saving."""
    return _builder.check_schema(request.form_schema, for_save=request.for_save)


@router.get("/forms/triggers")
async def list_trigger_forms(
    active_only: bool = Query(False, description="Only forms starting an active workflow"),
) -> FormsResponse:
    """Forms that start a workflow, newest first."""
    status = WorkflowStatus.ACTIVE if active_only else None
    try:
        forms = await data_store.list_trigger_forms(status=status)
    except FormflowError as e:
        raise to_http_exception(e) from e
    return FormsResponse(forms=forms, total=len(forms))


@router.get("/forms/{form_id}")
async def get_form(form_id: str) -> Form:
    """Get a form."""
    try:
        form = await data_store.get_form(form_id)
    except FormflowError as e:
        raise to_http_exception(e) from e
    if form is None:
        raise HTTPException(status_code=404, detail="Form not found")
    return form


@router.patch("/forms/{form_id}")
async def update_form(form_id: str, update: FormUpdate) -> Form:
    """Update a form's title, description or schema."""
    if update.form_schema is not None:
        _check_for_save(update.form_schema)
    try:
        form = await data_store.update_form(form_id, update)
    except FormflowError as e:
        raise to_http_exception(e) from e
    if form is None:
        raise HTTPException(status_code=404, detail="Form not found")
    return form


@router.delete("/forms/{form_id}")
async def delete_form(form_id: str) -> dict[str, bool]:
    """Delete a form and its responses."""
    try:
        deleted = await data_store.delete_form(form_id)
    except FormflowError as e:
        raise to_http_exception(e) from e
    if not deleted:
        raise HTTPException(status_code=404, detail="Form not found")
    return {"deleted": True}


# =============================================================================
# Responses
# =============================================================================


@router.get("/forms/{form_id}/responses")
async def list_responses(form_id: str) -> ResponsesResponse:
    """List a form's responses, newest first."""
    try:
        if await data_store.get_form(form_id) is None:
            raise HTTPException(status_code=404, detail="Form not found")
        responses = await data_store.list_responses(form_id)
    except FormflowError as e:
        raise to_http_exception(e) from e
    return ResponsesResponse(responses=responses, total=len(responses))


@router.post("/forms/{form_id}/responses")
async def submit_response(form_id: str, request: ResponseCreate) -> Response:
    """Submit a response, optionally against a task."""
    try:
        return await _submissions.submit(
            form_id,
            request.data,
            created_by=request.created_by,
            task_id=request.task_id,
        )
    except FormflowError as e:
        raise to_http_exception(e) from e


@router.post("/forms/{form_id}/responses/search")
async def search_responses(form_id: str, search: ResponseSearch) -> Page[Response]:
    """One page of a form's responses, filtered on their data fields."""
    try:
        return await _submissions.search(form_id, search)
    except FormflowError as e:
        raise to_http_exception(e) from e


@router.patch("/forms/{form_id}/responses/{response_id}")
async def update_response(form_id: str, response_id: str, update: ResponseUpdate) -> Response:
    """Replace a response's data, validated as on submit."""
    try:
        return await _submissions.update(form_id, response_id, update.data)
    except FormflowError as e:
        raise to_http_exception(e) from e


@router.delete("/forms/{form_id}/responses/{response_id}")
async def delete_response(form_id: str, response_id: str) -> dict[str, bool]:
    """Delete a response and its task links."""
    try:
        await _submissions.delete(form_id, response_id)
    except FormflowError as e:
        raise to_http_exception(e) from e
    return {"deleted": True}


# =============================================================================
# Relation candidates
# =============================================================================


@router.get("/forms/{form_id}/candidates")
async def list_candidates(
    form_id: str,
    display_field: str | None = Query(None, description="Field id preferred for labels"),
) -> RelationCandidates:
    """Selectable responses of a form, as shown in a relation field.

    Load failures come back as an empty list with a warning.
    """
    return await _resolver.list_candidates(form_id, display_field)


@router.get("/forms/{form_id}/fields/{field_id}/candidates")
async def get_field_candidates(form_id: str, field_id: str) -> RelationFieldState:
    """Options of one relation field of a form, using the field's own target."""
    try:
        form = await data_store.get_form(form_id)
    except FormflowError as e:
        raise to_http_exception(e) from e
    if form is None:
        raise HTTPException(status_code=404, detail="Form not found")

    field = form.form_schema.get_field(field_id)
    if field is None:
        raise HTTPException(status_code=404, detail="Field not found")
    if not isinstance(field, RelationField):
        raise HTTPException(status_code=422, detail="Field is not a relation field")

    loader = RelationOptionsLoader(_resolver)
    state = loader.configure_field(field)
    await loader.load_field(field_id)
    return state
