"""TaskAggregationService - A user's tasks as assignee or submitter.

Each listed task carries its linked responses, oldest first; the first one is
the submission that started the task. Store failures propagate to the caller.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from formflow.errors import NotFoundError
from formflow.models import Page, RoleTaskStats, Task, TaskFilters, TaskStats

if TYPE_CHECKING:
    from formflow.db.store import DataStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


def _build_page(tasks: list[Task], total: int, page: int, page_size: int) -> Page[Task]:
    return Page[Task](
        data=tasks,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0,
    )


def _count_statuses(tasks: list[Task]) -> RoleTaskStats:
    stats = RoleTaskStats(total=len(tasks))
    for task in tasks:
        key = task.status_key or "pending"
        if key == "pending":
            stats.pending += 1
        elif key == "in_progress":
            stats.in_progress += 1
        elif key == "completed":
            stats.completed += 1
        elif key == "on_hold":
            stats.on_hold += 1
    return stats


class TaskAggregationService:
    """Paginated, filtered task listings for one user."""

    def __init__(self, data_store: DataStore, default_page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self._store = data_store
        self._default_page_size = default_page_size

    def _normalize(self, page: int, page_size: int | None) -> tuple[int, int]:
        if page_size is None or page_size < 1:
            page_size = self._default_page_size
        return max(page, 1), page_size

    async def by_assignee(
        self,
        user_id: str,
        page: int = 1,
        page_size: int | None = None,
        filters: TaskFilters | None = None,
    ) -> Page[Task]:
        """Tasks assigned to ``user_id``, newest first."""
        page, page_size = self._normalize(page, page_size)
        tasks, total = await self._store.query_tasks(
            assigned_to=user_id,
            filters=filters,
            limit=page_size,
            offset=(page - 1) * page_size,
        )
        await self._attach_responses(tasks)
        return _build_page(tasks, total, page, page_size)

    async def by_submitter(
        self,
        user_id: str,
        page: int = 1,
        page_size: int | None = None,
        filters: TaskFilters | None = None,
    ) -> Page[Task]:
        """Tasks that ``user_id`` submitted at least one response against.

        When the user never submitted against a task, no task query is made.
        """
        page, page_size = self._normalize(page, page_size)
        task_ids = await self._store.list_submitted_task_ids(user_id)
        if not task_ids:
            return _build_page([], 0, page, page_size)

        tasks, total = await self._store.query_tasks(
            task_ids=task_ids,
            filters=filters,
            limit=page_size,
            offset=(page - 1) * page_size,
        )
        await self._attach_responses(tasks)
        return _build_page(tasks, total, page, page_size)

    async def for_user(
        self,
        user_id: str,
        page: int = 1,
        page_size: int | None = None,
        filters: TaskFilters | None = None,
    ) -> Page[Task]:
        """Tasks in either role, each listed once, newest first."""
        page, page_size = self._normalize(page, page_size)
        tasks = await self._all_tasks_for_user(user_id, filters)

        offset = (page - 1) * page_size
        page_tasks = tasks[offset : offset + page_size]
        await self._attach_responses(page_tasks)
        return _build_page(page_tasks, len(tasks), page, page_size)

    async def stats_for_user(self, user_id: str) -> TaskStats:
        """Status counts of the user's tasks, per role."""
        assigned, _ = await self._store.query_tasks(assigned_to=user_id)
        submitted: list[Task] = []
        task_ids = await self._store.list_submitted_task_ids(user_id)
        if task_ids:
            submitted, _ = await self._store.query_tasks(task_ids=task_ids)

        return TaskStats(
            assigned=_count_statuses(assigned),
            submitted=_count_statuses(submitted),
        )

    async def get_task(self, task_id: str) -> Task:
        """A single task with its responses."""
        task = await self._store.get_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        await self._attach_responses([task])
        return task

    async def _all_tasks_for_user(
        self, user_id: str, filters: TaskFilters | None
    ) -> list[Task]:
        assigned, _ = await self._store.query_tasks(assigned_to=user_id, filters=filters)

        submitted: list[Task] = []
        task_ids = await self._store.list_submitted_task_ids(user_id)
        if task_ids:
            submitted, _ = await self._store.query_tasks(task_ids=task_ids, filters=filters)

        merged: dict[str, Task] = {}
        for task in assigned + submitted:
            merged.setdefault(task.id, task)

        return sorted(merged.values(), key=lambda t: t.created_at, reverse=True)

    async def _attach_responses(self, tasks: list[Task]) -> None:
        if not tasks:
            return
        responses = await self._store.get_responses_for_tasks([t.id for t in tasks])
        for task in tasks:
            task.responses = responses.get(task.id, [])
