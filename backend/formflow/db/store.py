"""DataStore - CRUD collaborator over forms, responses, workflows and tasks."""

import json
import logging
import uuid
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime, time, timezone
from typing import Any

import aiosqlite

from formflow.db.database import get_db
from formflow.errors import NotFoundError, TransientFetchError
from formflow.models import (
    Form,
    FormCreate,
    FormRef,
    FormSchema,
    FormUpdate,
    Response,
    ResponseFilter,
    ResponseFilterOperator,
    Task,
    TaskCreate,
    TaskFilters,
    TaskResponse,
    TaskStatusObject,
    Workflow,
    WorkflowGraph,
    WorkflowStatus,
)
from formflow.models.task import DEFAULT_TASK_STATUS

logger = logging.getLogger(__name__)


def _generate_id() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


def _now() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat()


def parse_if_string(value: Any) -> Any:
    """Decode a JSON text column, keeping the original value if it does not parse.

    Some rows were written with their JSON encoded twice; a decoded string that
    still looks like an object or array is decoded once more.
    """
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return value
    if isinstance(value, str) and value.strip()[:1] in ("{", "["):
        try:
            value = json.loads(value)
        except ValueError:
            pass
    return value


# Presentation keys of a status object, and the identifying keys of a step
_STATUS_TEXT_KEYS = ("label", "color", "statusLabel", "statusColor", "status_label", "status_color")
_STEP_TEXT_KEYS = ("step_id", "step_name", "form_id")


def _text_or_none(value: Any) -> str | None:
    """Scalar values as text; nested values are dropped."""
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return value if isinstance(value, str) else str(value)


def _with_text_keys(value: dict[str, Any], keys: Sequence[str]) -> dict[str, Any]:
    coerced = dict(value)
    for key in keys:
        if key in coerced and not isinstance(coerced[key], str):
            text = _text_or_none(coerced[key])
            if text is None:
                del coerced[key]
            else:
                coerced[key] = text
    return coerced


def _coerce_status(value: Any) -> dict[str, Any] | str:
    """Shape a decoded status column into something Task accepts."""
    if isinstance(value, dict):
        coerced = _with_text_keys(value, _STATUS_TEXT_KEYS)
        status = coerced.get("status")
        if status is None:
            coerced["status"] = "pending"
        elif not isinstance(status, str):
            coerced["status"] = str(status)
        return coerced
    if value is None:
        return "pending"
    return value if isinstance(value, str) else str(value)


def _coerce_step(value: Any) -> dict[str, Any] | str | None:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, dict):
        return _with_text_keys(value, _STEP_TEXT_KEYS)
    return str(value)


def _timestamp_bound(value: date | datetime, end_of_day: bool = False) -> str:
    """Turn a filter bound into a string comparable with stored timestamps."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.isoformat()
    if end_of_day:
        return datetime.combine(value, time.max).isoformat()
    return datetime.combine(value, time.min).isoformat()


def _escape_like(term: str) -> str:
    return term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _like_pattern(term: str) -> str:
    return f"%{_escape_like(term)}%"


def _json_object_sql(column: str) -> str:
    """SQL for the JSON object held in ``column``, or NULL.

    Mirrors ``parse_if_string``: an object encoded a second time, stored as a
    JSON string, is unwrapped once.
    """
    return f"""
    CASE WHEN json_valid({column}) THEN
        CASE json_type({column})
            WHEN 'object' THEN {column}
            WHEN 'text' THEN
                CASE WHEN json_valid(json_extract({column}, '$')) THEN
                    CASE WHEN json_type(json_extract({column}, '$')) = 'object' THEN
                        json_extract({column}, '$')
                    END
                END
        END
    END
    """


_STATUS_OBJECT_SQL = _json_object_sql("t.status_json")
_STEP_OBJECT_SQL = _json_object_sql("t.step_json")

# Status key of object-shaped status columns; NULL for legacy strings
_STATUS_KEY_SQL = f"""
    CASE WHEN ({_STATUS_OBJECT_SQL}) IS NOT NULL THEN
        CAST(COALESCE(json_extract(({_STATUS_OBJECT_SQL}), '$.status'), 'pending') AS TEXT)
    END
"""

# Step name of object-shaped step columns, or the legacy step string
_STEP_NAME_SQL = f"""
    CASE WHEN NOT json_valid(t.step_json) THEN t.step_json
    ELSE
        CASE WHEN ({_STEP_OBJECT_SQL}) IS NOT NULL THEN
            COALESCE(json_extract(({_STEP_OBJECT_SQL}), '$.step_name'),
                     json_extract(({_STEP_OBJECT_SQL}), '$.label'))
        WHEN json_type(t.step_json) = 'text' THEN json_extract(t.step_json, '$')
        END
    END
"""


# Text of one response data value; JSON booleans read as 'true'/'false'
_RESPONSE_VALUE_SQL = """
    CASE json_type(r.data_obj, ?)
        WHEN 'true' THEN 'true'
        WHEN 'false' THEN 'false'
        WHEN 'null' THEN NULL
        ELSE CAST(json_extract(r.data_obj, ?) AS TEXT)
    END
"""

# Numbers, and strings that hold a number
_RESPONSE_NUMBER_SQL = """
    CASE
        WHEN json_type(r.data_obj, ?) IN ('integer', 'real') THEN json_extract(r.data_obj, ?)
        WHEN json_type(r.data_obj, ?) = 'text'
             AND TRIM(json_extract(r.data_obj, ?)) GLOB '*[0-9]*'
             AND TRIM(json_extract(r.data_obj, ?)) NOT GLOB '*[^0-9.eE+-]*'
        THEN CAST(TRIM(json_extract(r.data_obj, ?)) AS REAL)
    END
"""


_LIKE_OPERATORS = frozenset(
    {
        ResponseFilterOperator.CONTAINS,
        ResponseFilterOperator.STARTS_WITH,
        ResponseFilterOperator.ENDS_WITH,
    }
)


def _response_filter_sql(field_id: str, flt: ResponseFilter) -> tuple[str, list[Any]]:
    """WHERE fragment and parameters for one active response filter."""
    path = f'$."{field_id}"'
    value_sql = f"({_RESPONSE_VALUE_SQL})"
    value_params: list[Any] = [path, path]
    op = flt.operator

    if op in _LIKE_OPERATORS:
        term = _escape_like(str(flt.value))
        if op == ResponseFilterOperator.CONTAINS:
            pattern = f"%{term}%"
        elif op == ResponseFilterOperator.STARTS_WITH:
            pattern = f"{term}%"
        else:
            pattern = f"%{term}"
        return f"LOWER({value_sql}) LIKE ? ESCAPE '\\'", value_params + [pattern]
    if op == ResponseFilterOperator.IS_TRUE:
        return f"{value_sql} = 'true'", value_params
    if op == ResponseFilterOperator.IS_FALSE:
        return f"{value_sql} = 'false'", value_params
    if op in (ResponseFilterOperator.GREATER_THAN, ResponseFilterOperator.LESS_THAN):
        comparison = ">" if op == ResponseFilterOperator.GREATER_THAN else "<"
        return f"({_RESPONSE_NUMBER_SQL}) {comparison} ?", [path] * 6 + [flt.value]

    value = flt.value
    if isinstance(value, bool):
        value = "true" if value else "false"
    return f"{value_sql} = ?", value_params + [str(value)]


_TASK_COLUMNS = """
    t.id, t.workflow_id, t.step_json, t.assigned_to, t.created_by, t.status_json,
    t.task_data_json, t.due_date, t.completed_at, t.notes, t.created_at, t.updated_at
"""

_WORKFLOW_SELECT = """
    SELECT w.id, w.name, w.description, w.schema_json, w.trigger_form_id, w.status,
           w.active_instances, w.completed_instances, w.created_by,
           w.created_at, w.updated_at, f.title AS trigger_form_title
    FROM workflows w
    LEFT JOIN forms f ON f.id = w.trigger_form_id
"""


class DataStore:
    """Storage collaborator for forms, responses, workflows and tasks.

    Database failures surface as ``TransientFetchError``; missing rows are
    reported as ``None`` (or ``False`` for deletes) and left to callers.
    """

    # ==================== Helpers ====================

    async def _fetchall(
        self, sql: str, params: Sequence[Any] = (), operation: str = "query"
    ) -> list[aiosqlite.Row]:
        db = await get_db()
        try:
            cursor = await db.execute(sql, params)
            return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            logger.error(f"Store {operation} failed: {e}")
            raise TransientFetchError(f"{operation} failed: {e}", operation=operation) from e

    async def _fetchone(
        self, sql: str, params: Sequence[Any] = (), operation: str = "query"
    ) -> aiosqlite.Row | None:
        rows = await self._fetchall(sql, params, operation)
        return rows[0] if rows else None

    async def _execute_write(
        self, sql: str, params: Sequence[Any] = (), operation: str = "write"
    ) -> int:
        """Run a write and commit. Returns the affected row count."""
        db = await get_db()
        try:
            cursor = await db.execute(sql, params)
            await db.commit()
            return cursor.rowcount
        except aiosqlite.Error as e:
            await db.rollback()
            logger.error(f"Store {operation} failed: {e}")
            raise TransientFetchError(f"{operation} failed: {e}", operation=operation) from e

    # ==================== Forms ====================

    async def create_form(self, form: FormCreate) -> Form:
        """Create a new form."""
        form_id = _generate_id()
        now = _now()
        await self._execute_write(
            """
            INSERT INTO forms (id, title, description, schema_json, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                form_id,
                form.title,
                form.description,
                json.dumps(form.form_schema.to_wire()),
                now,
                now,
            ),
            operation="create_form",
        )
        return Form(
            id=form_id,
            title=form.title,
            description=form.description,
            form_schema=form.form_schema,
            created_at=now,
            updated_at=now,
        )

    async def get_form(self, form_id: str) -> Form | None:
        """Get a form by ID."""
        row = await self._fetchone(
            "SELECT * FROM forms WHERE id = ?", (form_id,), operation="get_form"
        )
        if row is None:
            return None
        return self._row_to_form(row)

    async def list_forms(self, limit: int = 100, offset: int = 0) -> tuple[list[Form], int]:
        """List forms, newest first. Returns (forms, total_count)."""
        row = await self._fetchone(
            "SELECT COUNT(*) as count FROM forms", operation="list_forms"
        )
        total = row["count"] if row else 0
        rows = await self._fetchall(
            """
            SELECT * FROM forms
            ORDER BY created_at DESC, rowid DESC
            LIMIT ? OFFSET ?
            """,
            (limit, offset),
            operation="list_forms",
        )
        return [self._row_to_form(r) for r in rows], total

    async def list_trigger_forms(self, status: WorkflowStatus | None = None) -> list[Form]:
        """Forms that start at least one workflow, newest first.

        With ``status``, only workflows in that status count.
        """
        status_sql = "AND status = ?" if status else ""
        params = [status.value] if status else []
        rows = await self._fetchall(
            f"""
            SELECT * FROM forms
            WHERE id IN (
                SELECT trigger_form_id FROM workflows
                WHERE trigger_form_id IS NOT NULL {status_sql}
            )
            ORDER BY created_at DESC, rowid DESC
            """,
            params,
            operation="list_trigger_forms",
        )
        return [self._row_to_form(r) for r in rows]

    async def update_form(self, form_id: str, update: FormUpdate) -> Form | None:
        """Update a form."""
        current = await self.get_form(form_id)
        if current is None:
            return None

        now = _now()
        new_title = update.title if update.title is not None else current.title
        new_description = (
            update.description if update.description is not None else current.description
        )
        new_schema = (
            update.form_schema if update.form_schema is not None else current.form_schema
        )

        await self._execute_write(
            """
            UPDATE forms SET title = ?, description = ?, schema_json = ?, updated_at = ?
            WHERE id = ?
            """,
            (new_title, new_description, json.dumps(new_schema.to_wire()), now, form_id),
            operation="update_form",
        )
        return Form(
            id=form_id,
            title=new_title,
            description=new_description,
            form_schema=new_schema,
            created_at=current.created_at,
            updated_at=now,
        )

    async def delete_form(self, form_id: str) -> bool:
        """Delete a form and, by cascade, its responses."""
        count = await self._execute_write(
            "DELETE FROM forms WHERE id = ?", (form_id,), operation="delete_form"
        )
        return count > 0

    def _row_to_form(self, row: aiosqlite.Row) -> Form:
        schema = parse_if_string(row["schema_json"])
        return Form(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            form_schema=FormSchema.model_validate(schema if isinstance(schema, dict) else {}),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # ==================== Responses ====================

    async def create_response(
        self, form_id: str, data: dict[str, Any], created_by: str | None = None
    ) -> Response:
        """Store a response to a form."""
        response_id = _generate_id()
        now = _now()
        await self._execute_write(
            """
            INSERT INTO responses (id, form_id, data_json, created_by, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (response_id, form_id, json.dumps(data), created_by, now, now),
            operation="create_response",
        )
        return Response(
            id=response_id,
            form_id=form_id,
            data=data,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )

    async def get_response(self, response_id: str) -> Response | None:
        row = await self._fetchone(
            "SELECT * FROM responses WHERE id = ?",
            (response_id,),
            operation="get_response",
        )
        if row is None:
            return None
        return self._row_to_response(row)

    async def list_responses(self, form_id: str) -> list[Response]:
        """All responses of a form, newest first."""
        rows = await self._fetchall(
            """
            SELECT * FROM responses WHERE form_id = ?
            ORDER BY created_at DESC, rowid DESC
            """,
            (form_id,),
            operation="list_responses",
        )
        return [self._row_to_response(r) for r in rows]

    async def query_responses(
        self,
        form_id: str,
        filters: Mapping[str, ResponseFilter] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[Response], int]:
        """Responses of a form matching every filter, newest first.

        Each filter key is a field id of the response data. Returns
        (responses, filtered_total); ``limit=None`` returns every match.
        """
        where_clauses: list[str] = []
        params: list[Any] = []
        for field_id, flt in (filters or {}).items():
            if not flt.is_active:
                continue
            clause, clause_params = _response_filter_sql(field_id, flt)
            where_clauses.append(f"({clause})")
            params.extend(clause_params)

        source_sql = f"""
            FROM (
                SELECT responses.*, responses.rowid AS seq,
                       {_json_object_sql("responses.data_json")} AS data_obj
                FROM responses WHERE responses.form_id = ?
            ) AS r
        """
        where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""
        params = [form_id] + params

        row = await self._fetchone(
            f"SELECT COUNT(*) as count {source_sql} {where_sql}",
            params,
            operation="query_responses",
        )
        total = row["count"] if row else 0

        page_sql = ""
        page_params: list[Any] = []
        if limit is not None:
            page_sql = "LIMIT ? OFFSET ?"
            page_params = [limit, offset]

        rows = await self._fetchall(
            f"""
            SELECT r.id, r.form_id, r.data_json, r.created_by, r.created_at, r.updated_at
            {source_sql} {where_sql}
            ORDER BY r.created_at DESC, r.seq DESC
            {page_sql}
            """,
            params + page_params,
            operation="query_responses",
        )
        return [self._row_to_response(r) for r in rows], total

    async def update_response(self, response_id: str, data: dict[str, Any]) -> Response | None:
        """Replace a response's data."""
        count = await self._execute_write(
            "UPDATE responses SET data_json = ?, updated_at = ? WHERE id = ?",
            (json.dumps(data), _now(), response_id),
            operation="update_response",
        )
        if count == 0:
            return None
        return await self.get_response(response_id)

    async def delete_response(self, response_id: str) -> bool:
        """Delete a response and, by cascade, its task links."""
        count = await self._execute_write(
            "DELETE FROM responses WHERE id = ?", (response_id,), operation="delete_response"
        )
        return count > 0

    def _row_to_response(self, row: aiosqlite.Row) -> Response:
        return Response(
            id=row["id"],
            form_id=row["form_id"],
            data=parse_if_string(row["data_json"]),
            created_by=row["created_by"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # ==================== Workflows ====================

    async def create_workflow(
        self,
        name: str,
        graph: WorkflowGraph,
        description: str | None = None,
        trigger_form_id: str | None = None,
        created_by: str | None = None,
        status: WorkflowStatus = WorkflowStatus.DRAFT,
    ) -> Workflow:
        """Create a new workflow."""
        workflow_id = _generate_id()
        now = _now()
        await self._execute_write(
            """
            INSERT INTO workflows (id, name, description, schema_json, trigger_form_id,
                                   status, created_by, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                workflow_id,
                name,
                description,
                json.dumps(graph.to_wire()),
                trigger_form_id,
                status.value,
                created_by,
                now,
                now,
            ),
            operation="create_workflow",
        )
        workflow = await self.get_workflow(workflow_id)
        if workflow is None:
            raise NotFoundError("Workflow", workflow_id)
        return workflow

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        """Get a workflow by ID, with its trigger form reference."""
        row = await self._fetchone(
            f"{_WORKFLOW_SELECT} WHERE w.id = ?",
            (workflow_id,),
            operation="get_workflow",
        )
        if row is None:
            return None
        return self._row_to_workflow(row)

    async def list_workflows(
        self,
        status: WorkflowStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Workflow], int]:
        """List workflows, newest first. Returns (workflows, total_count)."""
        where_clauses: list[str] = []
        params: list[Any] = []

        if status:
            where_clauses.append("w.status = ?")
            params.append(status.value)

        where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""

        row = await self._fetchone(
            f"SELECT COUNT(*) as count FROM workflows w {where_sql}",
            params,
            operation="list_workflows",
        )
        total = row["count"] if row else 0

        rows = await self._fetchall(
            f"""
            {_WORKFLOW_SELECT} {where_sql}
            ORDER BY w.created_at DESC, w.rowid DESC
            LIMIT ? OFFSET ?
            """,
            params + [limit, offset],
            operation="list_workflows",
        )
        return [self._row_to_workflow(r) for r in rows], total

    async def update_workflow(
        self,
        workflow_id: str,
        name: str | None = None,
        description: str | None = None,
        graph: WorkflowGraph | None = None,
        trigger_form_id: str | None = None,
        status: WorkflowStatus | None = None,
    ) -> Workflow | None:
        """Update the given workflow columns. ``None`` leaves a column unchanged."""
        updates = ["updated_at = ?"]
        params: list[Any] = [_now()]

        if name is not None:
            updates.append("name = ?")
            params.append(name)
        if description is not None:
            updates.append("description = ?")
            params.append(description)
        if graph is not None:
            updates.append("schema_json = ?")
            params.append(json.dumps(graph.to_wire()))
        if trigger_form_id is not None:
            updates.append("trigger_form_id = ?")
            params.append(trigger_form_id)
        if status is not None:
            updates.append("status = ?")
            params.append(status.value)

        params.append(workflow_id)
        count = await self._execute_write(
            f"UPDATE workflows SET {', '.join(updates)} WHERE id = ?",
            params,
            operation="update_workflow",
        )
        if count == 0:
            return None
        return await self.get_workflow(workflow_id)

    async def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow and its tasks."""
        count = await self._execute_write(
            "DELETE FROM workflows WHERE id = ?",
            (workflow_id,),
            operation="delete_workflow",
        )
        return count > 0

    async def count_workflows_by_status(self) -> dict[str, dict[str, int]]:
        """Per status: workflow count and summed instance counters."""
        rows = await self._fetchall(
            """
            SELECT status, COUNT(*) AS count,
                   COALESCE(SUM(active_instances), 0) AS active_instances,
                   COALESCE(SUM(completed_instances), 0) AS completed_instances
            FROM workflows GROUP BY status
            """,
            operation="count_workflows_by_status",
        )
        return {
            row["status"]: {
                "count": row["count"],
                "active_instances": row["active_instances"],
                "completed_instances": row["completed_instances"],
            }
            for row in rows
        }

    def _row_to_workflow(self, row: aiosqlite.Row) -> Workflow:
        graph = parse_if_string(row["schema_json"])
        trigger_form = None
        if row["trigger_form_id"] and row["trigger_form_title"] is not None:
            trigger_form = FormRef(id=row["trigger_form_id"], title=row["trigger_form_title"])
        return Workflow(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            graph=WorkflowGraph.model_validate(graph if isinstance(graph, dict) else {}),
            trigger_form_id=row["trigger_form_id"],
            trigger_form=trigger_form,
            status=row["status"],
            active_instances=row["active_instances"],
            completed_instances=row["completed_instances"],
            created_by=row["created_by"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # ==================== Tasks ====================

    async def create_task(self, task: TaskCreate) -> Task:
        """Create a new task. Status defaults to pending."""
        task_id = _generate_id()
        now = _now()
        status = task.status.to_wire() if task.status is not None else dict(DEFAULT_TASK_STATUS)
        step = task.step.model_dump(mode="json", exclude_none=True)

        await self._execute_write(
            """
            INSERT INTO tasks (id, workflow_id, step_json, assigned_to, created_by,
                               status_json, task_data_json, due_date, notes,
                               created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task_id,
                task.workflow_id,
                json.dumps(step),
                task.assigned_to,
                task.created_by,
                json.dumps(status),
                json.dumps(task.task_data),
                task.due_date,
                task.notes,
                now,
                now,
            ),
            operation="create_task",
        )
        return Task(
            id=task_id,
            workflow_id=task.workflow_id,
            step=step,
            assigned_to=task.assigned_to,
            created_by=task.created_by,
            status=status,
            task_data=task.task_data,
            due_date=task.due_date,
            notes=task.notes,
            created_at=now,
            updated_at=now,
        )

    async def get_task(self, task_id: str) -> Task | None:
        """Get a task by ID (without its responses)."""
        row = await self._fetchone(
            f"SELECT {_TASK_COLUMNS} FROM tasks t WHERE t.id = ?",
            (task_id,),
            operation="get_task",
        )
        if row is None:
            return None
        return self._row_to_task(row)

    async def query_tasks(
        self,
        assigned_to: str | None = None,
        task_ids: Iterable[str] | None = None,
        filters: TaskFilters | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[Task], int]:
        """Query tasks, newest first. Returns (tasks, filtered_total).

        ``limit=None`` returns every matching row.
        """
        where_clauses: list[str] = []
        params: list[Any] = []

        if assigned_to is not None:
            where_clauses.append("t.assigned_to = ?")
            params.append(assigned_to)

        if task_ids is not None:
            ids = list(task_ids)
            if not ids:
                return [], 0
            where_clauses.append(f"t.id IN ({', '.join('?' for _ in ids)})")
            params.extend(ids)

        if filters is not None:
            if filters.status and filters.status != "all":
                where_clauses.append(f"({_STATUS_KEY_SQL}) = ?")
                params.append(filters.status)

            if filters.search:
                pattern = _like_pattern(filters.search)
                where_clauses.append(
                    f"""(
                        LOWER(COALESCE({_STEP_NAME_SQL}, '')) LIKE ? ESCAPE '\\'
                        OR LOWER(COALESCE(t.notes, '')) LIKE ? ESCAPE '\\'
                    )"""
                )
                params.extend([pattern, pattern])

            if filters.date_from is not None:
                where_clauses.append("t.created_at >= ?")
                params.append(_timestamp_bound(filters.date_from))

            if filters.date_to is not None:
                where_clauses.append("t.created_at <= ?")
                params.append(_timestamp_bound(filters.date_to, end_of_day=True))

        where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""

        row = await self._fetchone(
            f"SELECT COUNT(*) as count FROM tasks t {where_sql}",
            params,
            operation="query_tasks",
        )
        total = row["count"] if row else 0

        page_sql = ""
        page_params: list[Any] = []
        if limit is not None:
            page_sql = "LIMIT ? OFFSET ?"
            page_params = [limit, offset]

        rows = await self._fetchall(
            f"""
            SELECT {_TASK_COLUMNS} FROM tasks t {where_sql}
            ORDER BY t.created_at DESC, t.rowid DESC
            {page_sql}
            """,
            params + page_params,
            operation="query_tasks",
        )
        return [self._row_to_task(r) for r in rows], total

    async def list_submitted_task_ids(self, user_id: str) -> list[str]:
        """Task ids linked to at least one response created by the user."""
        rows = await self._fetchall(
            """
            SELECT DISTINCT tr.task_id
            FROM task_responses tr
            JOIN responses r ON r.id = tr.response_id
            WHERE r.created_by = ?
            """,
            (user_id,),
            operation="list_submitted_task_ids",
        )
        return [row["task_id"] for row in rows]

    async def update_task_status(
        self,
        task_id: str,
        status: TaskStatusObject,
        completed_at: str | None = None,
    ) -> Task | None:
        """Write a new status object. An existing completed_at is never replaced."""
        count = await self._execute_write(
            """
            UPDATE tasks
            SET status_json = ?, completed_at = COALESCE(completed_at, ?), updated_at = ?
            WHERE id = ?
            """,
            (json.dumps(status.to_wire()), completed_at, _now(), task_id),
            operation="update_task_status",
        )
        if count == 0:
            return None
        return await self.get_task(task_id)

    async def update_task_notes(self, task_id: str, notes: str | None) -> Task | None:
        count = await self._execute_write(
            "UPDATE tasks SET notes = ?, updated_at = ? WHERE id = ?",
            (notes, _now(), task_id),
            operation="update_task_notes",
        )
        if count == 0:
            return None
        return await self.get_task(task_id)

    def _row_to_task(self, row: aiosqlite.Row) -> Task:
        return Task(
            id=row["id"],
            workflow_id=row["workflow_id"],
            step=_coerce_step(parse_if_string(row["step_json"])),
            assigned_to=row["assigned_to"],
            created_by=row["created_by"],
            status=_coerce_status(parse_if_string(row["status_json"])),
            task_data=parse_if_string(row["task_data_json"]),
            due_date=row["due_date"],
            completed_at=row["completed_at"],
            notes=row["notes"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # ==================== Task Responses ====================

    async def link_task_response(self, task_id: str, response_id: str) -> TaskResponse:
        """Link a response to the task it was submitted against."""
        now = _now()
        await self._execute_write(
            """
            INSERT OR IGNORE INTO task_responses (task_id, response_id, created_at)
            VALUES (?, ?, ?)
            """,
            (task_id, response_id, now),
            operation="link_task_response",
        )
        return TaskResponse(task_id=task_id, response_id=response_id, created_at=now)

    async def get_responses_for_tasks(
        self, task_ids: Iterable[str]
    ) -> dict[str, list[Response]]:
        """Linked responses per task id, oldest first."""
        ids = list(task_ids)
        if not ids:
            return {}
        rows = await self._fetchall(
            f"""
            SELECT tr.task_id, r.*
            FROM task_responses tr
            JOIN responses r ON r.id = tr.response_id
            WHERE tr.task_id IN ({', '.join('?' for _ in ids)})
            ORDER BY r.created_at ASC, r.rowid ASC
            """,
            ids,
            operation="get_responses_for_tasks",
        )
        responses: dict[str, list[Response]] = {task_id: [] for task_id in ids}
        for row in rows:
            responses[row["task_id"]].append(self._row_to_response(row))
        return responses


# Global store instance
data_store = DataStore()
