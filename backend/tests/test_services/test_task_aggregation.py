"""Tests for task listings by assignee and submitter."""

import json
from datetime import date, datetime, timezone

import pytest

from formflow.db.database import get_db
from formflow.errors import NotFoundError
from formflow.models import Task, TaskFilters
from formflow.services.task_aggregation import TaskAggregationService


async def _insert_task(
    task_id: str,
    created_at: str,
    assigned_to: str | None = "u1",
    status=None,
    step=None,
    notes: str | None = None,
    raw_status: str | None = None,
    raw_step: str | None = None,
) -> None:
    """Write a task row directly so created_at and legacy shapes are controlled."""
    if raw_status is None:
        raw_status = json.dumps(status if status is not None else {"status": "pending"})
    db = await get_db()
    await db.execute(
        """
        INSERT INTO tasks (id, step_json, assigned_to, status_json, task_data_json,
                           notes, created_at, updated_at)
        VALUES (?, ?, ?, ?, '{}', ?, ?, ?)
        """,
        (task_id, raw_step or json.dumps(step or {}), assigned_to, raw_status, notes,
         created_at, created_at),
    )
    await db.commit()


async def _submit(store, form_id: str, task_id: str, user_id: str, created_at: str) -> str:
    """Store a response by ``user_id`` linked to the task, with a fixed timestamp."""
    response = await store.create_response(form_id, {"name": user_id}, created_by=user_id)
    db = await get_db()
    await db.execute(
        "UPDATE responses SET created_at = ? WHERE id = ?", (created_at, response.id)
    )
    await db.commit()
    await store.link_task_response(task_id, response.id)
    return response.id


class RecordingStore:
    """Store double that records which queries were made."""

    def __init__(self, submitted_ids=None):
        self.submitted_ids = submitted_ids or []
        self.queries: list[dict] = []

    async def list_submitted_task_ids(self, user_id: str) -> list[str]:
        return self.submitted_ids

    async def query_tasks(self, **kwargs) -> tuple[list[Task], int]:
        self.queries.append(kwargs)
        return [], 0

    async def get_responses_for_tasks(self, task_ids):
        return {}


class TestBySubmitter:
    """Tests for TaskAggregationService.by_submitter."""

    @pytest.mark.asyncio
    async def test_no_submissions_makes_no_task_query(self):
        store = RecordingStore()

        page = await TaskAggregationService(store).by_submitter("u1", page=2, page_size=5)

        assert store.queries == []
        assert page.data == []
        assert page.total == 0
        assert page.page == 2
        assert page.page_size == 5
        assert page.total_pages == 0

    @pytest.mark.asyncio
    async def test_only_linked_tasks_are_listed(self, store, customer_form):
        await _insert_task("t1", "2024-01-01T10:00:00", assigned_to="someone")
        await _insert_task("t2", "2024-01-02T10:00:00", assigned_to="someone")
        await _insert_task("t3", "2024-01-03T10:00:00", assigned_to="someone")
        await _submit(store, customer_form.id, "t1", "alice", "2024-01-01T11:00:00")
        await _submit(store, customer_form.id, "t3", "alice", "2024-01-03T11:00:00")
        await _submit(store, customer_form.id, "t2", "bob", "2024-01-02T11:00:00")

        page = await TaskAggregationService(store).by_submitter("alice")

        assert [t.id for t in page.data] == ["t3", "t1"]
        assert page.total == 2


class TestByAssignee:
    """Tests for TaskAggregationService.by_assignee."""

    @pytest.mark.asyncio
    async def test_pagination_reports_filtered_total(self, store):
        for i in range(5):
            await _insert_task(f"t{i}", f"2024-01-0{i + 1}T09:00:00")
        await _insert_task("other", "2024-01-09T09:00:00", assigned_to="u2")
        service = TaskAggregationService(store)

        first = await service.by_assignee("u1", page=1, page_size=2)
        last = await service.by_assignee("u1", page=3, page_size=2)

        assert [t.id for t in first.data] == ["t4", "t3"]
        assert first.total == 5
        assert first.total_pages == 3
        assert [t.id for t in last.data] == ["t0"]

    @pytest.mark.asyncio
    async def test_page_past_the_end_is_empty(self, store):
        await _insert_task("t1", "2024-01-01T09:00:00")

        page = await TaskAggregationService(store).by_assignee("u1", page=4, page_size=10)

        assert page.data == []
        assert page.total == 1

    @pytest.mark.asyncio
    async def test_default_page_size(self, store):
        page = await TaskAggregationService(store, default_page_size=7).by_assignee("u1")

        assert page.page_size == 7
        assert page.page == 1

    @pytest.mark.asyncio
    async def test_responses_attached_oldest_first(self, store, customer_form):
        await _insert_task("t1", "2024-01-01T09:00:00")
        later = await _submit(store, customer_form.id, "t1", "bob", "2024-01-01T12:00:00")
        first = await _submit(store, customer_form.id, "t1", "alice", "2024-01-01T10:00:00")

        page = await TaskAggregationService(store).by_assignee("u1")

        assert [r.id for r in page.data[0].responses] == [first, later]

    @pytest.mark.asyncio
    async def test_task_without_responses_gets_empty_list(self, store):
        await _insert_task("t1", "2024-01-01T09:00:00")

        page = await TaskAggregationService(store).by_assignee("u1")

        assert page.data[0].responses == []


class TestFilters:
    """Tests for status, search and date filters."""

    @pytest.mark.asyncio
    async def test_status_filter(self, store):
        await _insert_task("p", "2024-01-01T09:00:00", status={"status": "pending"})
        await _insert_task("c", "2024-01-02T09:00:00", status={"status": "completed"})
        await _insert_task("n", "2024-01-03T09:00:00", status={"label": "No key"})
        service = TaskAggregationService(store)

        pending = await service.by_assignee("u1", filters=TaskFilters(status="pending"))
        everything = await service.by_assignee("u1", filters=TaskFilters(status="all"))

        assert {t.id for t in pending.data} == {"p", "n"}
        assert pending.total == 2
        assert everything.total == 3

    @pytest.mark.asyncio
    async def test_legacy_string_status_never_matches(self, store):
        """Rows whose status is a bare string are excluded by a status filter."""
        await _insert_task("legacy", "2024-01-01T09:00:00", raw_status="pending")
        await _insert_task("encoded", "2024-01-02T09:00:00", raw_status='"pending"')
        service = TaskAggregationService(store)

        filtered = await service.by_assignee("u1", filters=TaskFilters(status="pending"))
        unfiltered = await service.by_assignee("u1")

        assert filtered.total == 0
        assert unfiltered.total == 2
        assert {t.status_key for t in unfiltered.data} == {"pending"}

    @pytest.mark.asyncio
    async def test_search_matches_step_name_label_and_notes(self, store):
        await _insert_task("a", "2024-01-01T09:00:00", step={"step_name": "Review ORDER"})
        await _insert_task("b", "2024-01-02T09:00:00", step={"label": "Order approval"})
        await _insert_task("c", "2024-01-03T09:00:00", notes="call about the order")
        await _insert_task("d", "2024-01-04T09:00:00", step={"step_name": "Invoice"})

        page = await TaskAggregationService(store).by_assignee(
            "u1", filters=TaskFilters(search="order")
        )

        assert {t.id for t in page.data} == {"a", "b", "c"}

    @pytest.mark.asyncio
    async def test_status_filter_reads_double_encoded_objects(self, store):
        """A status object stored as an encoded JSON string is filtered like a plain one."""
        await _insert_task(
            "wrapped", "2024-01-01T09:00:00",
            raw_status=json.dumps(json.dumps({"status": "pending"})),
        )
        await _insert_task(
            "wrapped-done", "2024-01-02T09:00:00",
            raw_status=json.dumps(json.dumps({"status": "completed"})),
        )
        await _insert_task("broken", "2024-01-03T09:00:00", raw_status="{not json")
        service = TaskAggregationService(store)

        pending = await service.by_assignee("u1", filters=TaskFilters(status="pending"))
        completed = await service.by_assignee("u1", filters=TaskFilters(status="completed"))

        assert [t.id for t in pending.data] == ["wrapped"]
        assert pending.data[0].status_key == "pending"
        assert [t.id for t in completed.data] == ["wrapped-done"]

    @pytest.mark.asyncio
    async def test_search_reads_double_encoded_steps(self, store):
        await _insert_task(
            "wrapped", "2024-01-01T09:00:00",
            raw_step=json.dumps(json.dumps({"step_name": "Review order"})),
        )
        await _insert_task(
            "wrapped-label", "2024-01-02T09:00:00",
            raw_step=json.dumps(json.dumps({"label": "Order approval"})),
        )
        await _insert_task("other", "2024-01-03T09:00:00", step={"step_name": "Invoice"})

        page = await TaskAggregationService(store).by_assignee(
            "u1", filters=TaskFilters(search="order")
        )

        assert {t.id for t in page.data} == {"wrapped", "wrapped-label"}
        assert page.total == 2

    @pytest.mark.asyncio
    async def test_search_treats_wildcards_literally(self, store):
        await _insert_task("a", "2024-01-01T09:00:00", notes="100% done")
        await _insert_task("b", "2024-01-02T09:00:00", notes="100 done")

        page = await TaskAggregationService(store).by_assignee(
            "u1", filters=TaskFilters(search="0%")
        )

        assert [t.id for t in page.data] == ["a"]

    @pytest.mark.asyncio
    async def test_date_range_includes_whole_end_day(self, store):
        await _insert_task("before", "2024-02-29T23:59:59")
        await _insert_task("start", "2024-03-01T00:00:00")
        await _insert_task("late", "2024-03-02T23:30:00")
        await _insert_task("after", "2024-03-03T00:00:01")

        page = await TaskAggregationService(store).by_assignee(
            "u1",
            filters=TaskFilters(date_from=date(2024, 3, 1), date_to=date(2024, 3, 2)),
        )

        assert {t.id for t in page.data} == {"start", "late"}

    @pytest.mark.asyncio
    async def test_aware_datetime_bounds_are_compared_in_utc(self, store):
        await _insert_task("t1", "2024-03-01T10:00:00")

        page = await TaskAggregationService(store).by_assignee(
            "u1",
            filters=TaskFilters(date_from=datetime(2024, 3, 1, 11, 0, tzinfo=timezone.utc)),
        )

        assert page.total == 0

    @pytest.mark.asyncio
    async def test_filters_combine(self, store):
        await _insert_task("a", "2024-01-01T09:00:00", status={"status": "completed"},
                           notes="order")
        await _insert_task("b", "2024-01-02T09:00:00", status={"status": "pending"},
                           notes="order")

        page = await TaskAggregationService(store).by_assignee(
            "u1", filters=TaskFilters(status="completed", search="order")
        )

        assert [t.id for t in page.data] == ["a"]


class TestForUser:
    """Tests for the merged listing across both roles."""

    @pytest.mark.asyncio
    async def test_tasks_in_both_roles_listed_once(self, store, customer_form):
        await _insert_task("mine", "2024-01-01T09:00:00", assigned_to="alice")
        await _insert_task("both", "2024-01-02T09:00:00", assigned_to="alice")
        await _insert_task("theirs", "2024-01-03T09:00:00", assigned_to="bob")
        await _submit(store, customer_form.id, "both", "alice", "2024-01-02T10:00:00")
        await _submit(store, customer_form.id, "theirs", "alice", "2024-01-03T10:00:00")

        page = await TaskAggregationService(store).for_user("alice", page_size=2)

        assert [t.id for t in page.data] == ["theirs", "both"]
        assert page.total == 3
        assert page.total_pages == 2


class TestStats:
    """Tests for per-role status counts."""

    @pytest.mark.asyncio
    async def test_counts_each_role(self, store, customer_form):
        await _insert_task("a", "2024-01-01T09:00:00", assigned_to="alice",
                           status={"status": "pending"})
        await _insert_task("b", "2024-01-02T09:00:00", assigned_to="alice",
                           status={"status": "completed"})
        await _insert_task("c", "2024-01-03T09:00:00", assigned_to="alice",
                           status={"status": "on_hold"})
        await _insert_task("d", "2024-01-04T09:00:00", assigned_to="bob",
                           status={"status": "in_progress"})
        await _submit(store, customer_form.id, "d", "alice", "2024-01-04T10:00:00")

        stats = await TaskAggregationService(store).stats_for_user("alice")

        assert stats.assigned.total == 3
        assert stats.assigned.pending == 1
        assert stats.assigned.completed == 1
        assert stats.assigned.on_hold == 1
        assert stats.submitted.total == 1
        assert stats.submitted.in_progress == 1


class TestGetTask:
    """Tests for fetching a single task."""

    @pytest.mark.asyncio
    async def test_missing_task(self, store):
        with pytest.raises(NotFoundError):
            await TaskAggregationService(store).get_task("nope")

    @pytest.mark.asyncio
    async def test_task_with_responses(self, store, customer_form):
        await _insert_task("t1", "2024-01-01T09:00:00")
        response_id = await _submit(store, customer_form.id, "t1", "alice",
                                    "2024-01-01T10:00:00")

        task = await TaskAggregationService(store).get_task("t1")

        assert [r.id for r in task.responses] == [response_id]
