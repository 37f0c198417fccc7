"""Task API routes.

Task lists are per user: tasks assigned to them, tasks they submitted
responses against, or both.
"""

import logging
import os

from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError

from formflow.api.errors import to_http_exception
from formflow.db import data_store
from formflow.errors import FormflowError
from formflow.models import (
    Page,
    Task,
    TaskCreate,
    TaskFilters,
    TaskNotesUpdate,
    TaskRole,
    TaskStats,
    TaskStatusUpdate,
)
from formflow.services.task_aggregation import TaskAggregationService
from formflow.services.task_status import TaskStatusService

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))

router = APIRouter()

_aggregation = TaskAggregationService(data_store, default_page_size=DEFAULT_PAGE_SIZE)
_status = TaskStatusService(data_store)


# =============================================================================
# Listings
# =============================================================================


@router.get("/tasks")
async def list_tasks(
    user_id: str = Query(..., description="User whose tasks are listed"),
    role: TaskRole = Query(TaskRole.ASSIGNED, description="assigned, submitted or all"),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    status: str | None = Query(None, description="Status key; 'all' disables the filter"),
    search: str | None = Query(None, description="Matches step name and notes"),
    date_from: str | None = Query(None, description="Inclusive lower bound on created_at"),
    date_to: str | None = Query(None, description="Inclusive upper bound on created_at"),
) -> Page[Task]:
    """List a user's tasks, newest first, each with its responses."""
    try:
        filters = TaskFilters(
            status=status, search=search, date_from=date_from, date_to=date_to
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False)) from e

    try:
        if role == TaskRole.SUBMITTED:
            return await _aggregation.by_submitter(user_id, page, page_size, filters)
        if role == TaskRole.ALL:
            return await _aggregation.for_user(user_id, page, page_size, filters)
        return await _aggregation.by_assignee(user_id, page, page_size, filters)
    except FormflowError as e:
        raise to_http_exception(e) from e


@router.get("/tasks/stats")
async def get_task_stats(
    user_id: str = Query(..., description="User whose tasks are counted"),
) -> TaskStats:
    """Status counts of a user's tasks, per role."""
    try:
        return await _aggregation.stats_for_user(user_id)
    except FormflowError as e:
        raise to_http_exception(e) from e


# =============================================================================
# Single tasks
# =============================================================================


@router.post("/tasks")
async def create_task(task: TaskCreate) -> Task:
    """Create a task. Without a status it starts as pending."""
    try:
        if task.workflow_id and await data_store.get_workflow(task.workflow_id) is None:
            raise HTTPException(status_code=404, detail="Workflow not found")
        return await data_store.create_task(task)
    except FormflowError as e:
        raise to_http_exception(e) from e


@router.get("/tasks/{task_id}")
async def get_task(task_id: str) -> Task:
    """Get a task with its responses, oldest first."""
    try:
        return await _aggregation.get_task(task_id)
    except FormflowError as e:
        raise to_http_exception(e) from e


@router.patch("/tasks/{task_id}/status")
async def update_task_status(task_id: str, request: TaskStatusUpdate) -> Task:
    """Move a task to a new status, keeping its presentation metadata."""
    try:
        return await _status.update_status(task_id, request.status, request.overrides)
    except FormflowError as e:
        raise to_http_exception(e) from e


@router.patch("/tasks/{task_id}/notes")
async def update_task_notes(task_id: str, request: TaskNotesUpdate) -> Task:
    """Replace a task's notes."""
    try:
        return await _status.update_notes(task_id, request.notes)
    except FormflowError as e:
        raise to_http_exception(e) from e
