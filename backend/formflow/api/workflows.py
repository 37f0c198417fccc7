"""Workflow definition API routes."""

import logging

from fastapi import APIRouter, Query
from pydantic import BaseModel

from formflow.api.errors import to_http_exception
from formflow.db import data_store
from formflow.errors import FormflowError
from formflow.models import (
    GraphValidationResult,
    NodeStats,
    Page,
    Workflow,
    WorkflowCreate,
    WorkflowGraph,
    WorkflowStatus,
    WorkflowSummaryStats,
    WorkflowUpdate,
)
from formflow.services.workflow_lifecycle import WorkflowLifecycleService
from formflow.services.workflow_validator import WorkflowGraphValidator

logger = logging.getLogger(__name__)

router = APIRouter()

_validator = WorkflowGraphValidator()
_workflows = WorkflowLifecycleService(data_store, _validator)


class GraphCheckResponse(BaseModel):
    """Validation outcome and statistics for a graph being edited."""

    validation: GraphValidationResult
    stats: NodeStats


# ==================== Workflows ====================


@router.get("/workflows")
async def list_workflows(
    status: WorkflowStatus | None = Query(None, description="Filter by status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> Page[Workflow]:
    """List workflows, newest first."""
    try:
        return await _workflows.list(status=status, page=page, page_size=page_size)
    except FormflowError as e:
        raise to_http_exception(e) from e


@router.get("/workflows/stats")
async def get_workflow_summary_stats() -> WorkflowSummaryStats:
    """Counts per status and instance totals across all workflows."""
    try:
        return await _workflows.summary_stats()
    except FormflowError as e:
        raise to_http_exception(e) from e


@router.post("/workflows/validate")
async def validate_graph(graph: WorkflowGraph) -> GraphCheckResponse:
    """Check a graph without saving it."""
    return GraphCheckResponse(
        validation=_validator.validate_for_save(graph),
        stats=_validator.stats(graph),
    )


@router.post("/workflows")
async def create_workflow(
    payload: WorkflowCreate,
    confirm_warnings: bool = Query(False, description="Save despite graph warnings"),
) -> Workflow:
    """Create a draft workflow.

    A graph without a start step is rejected (422). A graph with warnings is
    rejected (409) unless ``confirm_warnings`` is set.
    """
    try:
        return await _workflows.create(payload, confirm_warnings=confirm_warnings)
    except FormflowError as e:
        raise to_http_exception(e) from e


@router.get("/workflows/{workflow_id}")
async def get_workflow(workflow_id: str) -> Workflow:
    """Get a workflow."""
    try:
        return await _workflows.get(workflow_id)
    except FormflowError as e:
        raise to_http_exception(e) from e


@router.patch("/workflows/{workflow_id}")
async def update_workflow(
    workflow_id: str,
    payload: WorkflowUpdate,
    confirm_warnings: bool = Query(False, description="Save despite graph warnings"),
) -> Workflow:
    """Update a workflow."""
    try:
        return await _workflows.update(
            workflow_id, payload, confirm_warnings=confirm_warnings
        )
    except FormflowError as e:
        raise to_http_exception(e) from e


@router.delete("/workflows/{workflow_id}")
async def delete_workflow(workflow_id: str) -> dict[str, bool]:
    """Delete a workflow and its tasks."""
    try:
        await _workflows.delete(workflow_id)
    except FormflowError as e:
        raise to_http_exception(e) from e
    return {"deleted": True}


@router.get("/workflows/{workflow_id}/stats")
async def get_workflow_stats(workflow_id: str) -> NodeStats:
    """Step counts per type and edge count of a workflow's graph."""
    try:
        return await _workflows.stats(workflow_id)
    except FormflowError as e:
        raise to_http_exception(e) from e


# ==================== Status ====================


@router.post("/workflows/{workflow_id}/toggle-status")
async def toggle_workflow_status(workflow_id: str) -> Workflow:
    """Switch between active and inactive (a draft becomes active)."""
    try:
        return await _workflows.toggle_status(workflow_id)
    except FormflowError as e:
        raise to_http_exception(e) from e


@router.post("/workflows/{workflow_id}/archive")
async def archive_workflow(workflow_id: str) -> Workflow:
    """Archive a workflow. Archived workflows cannot be reactivated."""
    try:
        return await _workflows.archive(workflow_id)
    except FormflowError as e:
        raise to_http_exception(e) from e
