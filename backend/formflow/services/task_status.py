"""TaskStatusEngine - How a task's status object changes over time.

A status object is merged, never replaced: a transition overwrites the
``status`` key and keeps every presentation key the transition did not
supply. ``completed_at`` is stamped the first time a task completes and is
never changed afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from formflow.errors import NotFoundError
from formflow.models import StatusBadge, Task, TaskStatusKey, TaskStatusObject
from formflow.models.task import DEFAULT_BADGE_COLOR, DEFAULT_BADGE_LABEL

if TYPE_CHECKING:
    from formflow.db.store import DataStore

logger = logging.getLogger(__name__)

# Overrides may use attribute names; the stored object uses wire keys
_OVERRIDE_KEYS = {"status_label": "statusLabel", "status_color": "statusColor"}


def _utc_now() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat()


@dataclass
class StatusChange:
    """Result of applying a transition to a task."""

    status: TaskStatusObject
    completed_at: str | None


class TaskStatusEngine:
    """Pure status transition rules."""

    def __init__(self, clock: Callable[[], str] | None = None) -> None:
        self._clock = clock or _utc_now

    def apply_status_change(
        self,
        task: Task,
        new_status_key: str,
        overrides: dict[str, Any] | None = None,
    ) -> TaskStatusObject:
        """Compute the status object after moving ``task`` to ``new_status_key``.

        Args:
            task: The task being transitioned; it is not modified
            new_status_key: The new value of the ``status`` key
            overrides: Presentation keys to replace (label, color, ...)

        Returns:
            A new status object. For an object status, every key other than
            ``status`` is kept unless overridden; a legacy string status
            becomes ``{status: new_status_key}``.
        """
        if isinstance(task.status, TaskStatusObject):
            merged = task.status.to_wire()
        else:
            merged = {}

        for key, value in (overrides or {}).items():
            merged[_OVERRIDE_KEYS.get(key, key)] = value

        merged["status"] = new_status_key
        return TaskStatusObject.model_validate(merged)

    def completed_at_after(self, task: Task, new_status_key: str) -> str | None:
        """The task's completed_at once the transition is applied."""
        if task.completed_at:
            return task.completed_at
        if new_status_key == TaskStatusKey.COMPLETED.value:
            return self._clock()
        return None

    def transition(
        self,
        task: Task,
        new_status_key: str,
        overrides: dict[str, Any] | None = None,
    ) -> StatusChange:
        return StatusChange(
            status=self.apply_status_change(task, new_status_key, overrides),
            completed_at=self.completed_at_after(task, new_status_key),
        )

    @staticmethod
    def status_badge(status: TaskStatusObject | str | None) -> StatusBadge:
        """Label and color used to render a status."""
        if status is None:
            return StatusBadge()
        if isinstance(status, str):
            return StatusBadge(label=status)

        label = status.label
        if label is None:
            label = status.status_label
        if label is None:
            label = status.status
        color = status.color
        if color is None:
            color = status.status_color
        return StatusBadge(
            label=label if label is not None else DEFAULT_BADGE_LABEL,
            color=color if color is not None else DEFAULT_BADGE_COLOR,
        )


class TaskStatusService:
    """Applies status transitions to stored tasks.

    The new state is only returned once the store has written it; a failed
    write propagates and the stored task keeps its previous status.
    """

    def __init__(
        self, data_store: DataStore, engine: TaskStatusEngine | None = None
    ) -> None:
        self._store = data_store
        self._engine = engine or TaskStatusEngine()

    async def update_status(
        self,
        task_id: str,
        new_status_key: str,
        overrides: dict[str, Any] | None = None,
    ) -> Task:
        """Move a task to a new status and return the persisted task."""
        task = await self._store.get_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)

        change = self._engine.transition(task, new_status_key, overrides)
        updated = await self._store.update_task_status(
            task_id, change.status, completed_at=change.completed_at
        )
        if updated is None:
            raise NotFoundError("Task", task_id)

        logger.info(f"Task {task_id}: {task.status_key} -> {new_status_key}")
        return updated

    async def update_notes(self, task_id: str, notes: str | None) -> Task:
        updated = await self._store.update_task_notes(task_id, notes)
        if updated is None:
            raise NotFoundError("Task", task_id)
        return updated
