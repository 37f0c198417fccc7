"""Pydantic models for tasks and task listings.

A task's ``status`` is an open object: a required ``status`` key plus whatever
presentation metadata the step that produced it copied in. Older rows store a
bare string instead; both shapes are accepted.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from pydantic import Field as PydanticField

from formflow.models.response import Response

T = TypeVar("T")

DEFAULT_BADGE_LABEL = "unknown"
DEFAULT_BADGE_COLOR = "#6b7280"
DEFAULT_TASK_STATUS = {"status": "pending", "label": "Pending"}

# =============================================================================
# Enums
# =============================================================================


class TaskStatusKey(str, Enum):
    """Well-known status keys. Other keys are allowed."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"


class TaskRole(str, Enum):
    """Which side of a task the user is on."""

    ASSIGNED = "assigned"
    SUBMITTED = "submitted"
    ALL = "all"


# =============================================================================
# Status and step
# =============================================================================


class TaskStatusObject(BaseModel):
    """Open status record keyed at minimum by ``status``."""

    status: str
    label: str | None = None
    color: str | None = None
    status_label: str | None = PydanticField(default=None, alias="statusLabel")
    status_color: str | None = PydanticField(default=None, alias="statusColor")

    model_config = {"populate_by_name": True, "extra": "allow"}

    def to_wire(self) -> dict[str, Any]:
        """Only the keys that were actually present."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class StatusBadge(BaseModel):
    label: str = DEFAULT_BADGE_LABEL
    color: str = DEFAULT_BADGE_COLOR


class TaskStep(BaseModel):
    """The workflow step a task was created for."""

    step_id: str | None = None
    step_name: str | None = None
    form_id: str | None = None

    model_config = {"extra": "allow", "coerce_numbers_to_str": True}

    @property
    def display_name(self) -> str | None:
        # Legacy rows carry the name under "label"
        return self.step_name or (self.model_extra or {}).get("label")


# =============================================================================
# Task
# =============================================================================


class Task(BaseModel):
    """A task produced by a workflow run."""

    id: str
    workflow_id: str | None = None
    step: TaskStep | str | None = None
    assigned_to: str | None = None
    created_by: str | None = None
    status: TaskStatusObject | str
    task_data: Any = None
    due_date: str | None = None
    completed_at: str | None = None
    notes: str | None = None
    created_at: str
    updated_at: str
    responses: list[Response] | None = None

    @property
    def status_key(self) -> str:
        if isinstance(self.status, TaskStatusObject):
            return self.status.status
        return self.status


class TaskCreate(BaseModel):
    """Request model for creating a task."""

    workflow_id: str | None = None
    step: TaskStep = PydanticField(default_factory=TaskStep)
    assigned_to: str | None = None
    created_by: str | None = None
    status: TaskStatusObject | None = None
    task_data: dict[str, Any] = PydanticField(default_factory=dict)
    due_date: str | None = None
    notes: str | None = None


class TaskStatusUpdate(BaseModel):
    """Request model for a status transition.

    ``overrides`` replaces presentation keys on the status object.
    """

    status: str
    overrides: dict[str, Any] | None = None


class TaskNotesUpdate(BaseModel):
    notes: str | None = None


# =============================================================================
# Listings
# =============================================================================


class TaskFilters(BaseModel):
    """Optional, AND-combined filters for task listings."""

    status: str | None = None
    search: str | None = None
    date_from: date | datetime | None = None
    date_to: date | datetime | None = None


class Page(BaseModel, Generic[T]):
    """One page of a paginated listing. ``page`` is 1-indexed."""

    data: list[T] = PydanticField(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = PydanticField(default=20, alias="pageSize")
    total_pages: int = PydanticField(default=0, alias="totalPages")

    model_config = {"populate_by_name": True}


class RoleTaskStats(BaseModel):
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    on_hold: int = 0


class TaskStats(BaseModel):
    """Status counts for a user's tasks, per role."""

    assigned: RoleTaskStats = PydanticField(default_factory=RoleTaskStats)
    submitted: RoleTaskStats = PydanticField(default_factory=RoleTaskStats)
