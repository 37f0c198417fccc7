"""WorkflowLifecycleService - Creating, editing and switching workflows.

Saves are gated by the graph validator: blocking errors reject the save, and
warnings reject it until the caller confirms them. ``archived`` is terminal.
"""

from __future__ import annotations

import logging
import math
import uuid
from typing import TYPE_CHECKING

from formflow.errors import (
    GraphConfirmationRequired,
    GraphValidationError,
    NotFoundError,
    WorkflowStatusError,
)
from formflow.models import (
    Form,
    GraphValidationResult,
    NodeStats,
    Page,
    Workflow,
    WorkflowCreate,
    WorkflowEdge,
    WorkflowGraph,
    WorkflowStatus,
    WorkflowSummaryStats,
    WorkflowUpdate,
)
from formflow.models.workflow import (
    FillFormNode,
    FillFormNodeData,
    NodeFormRef,
    NodePosition,
    StartNode,
    StartNodeData,
)
from formflow.services.workflow_validator import WorkflowGraphValidator

if TYPE_CHECKING:
    from formflow.db.store import DataStore

logger = logging.getLogger(__name__)

# Status reached by toggling from each status
_TOGGLE_TARGETS = {
    WorkflowStatus.DRAFT: WorkflowStatus.ACTIVE,
    WorkflowStatus.ACTIVE: WorkflowStatus.INACTIVE,
    WorkflowStatus.INACTIVE: WorkflowStatus.ACTIVE,
}


def _short_id() -> str:
    return uuid.uuid4().hex[:8]


def initial_graph(trigger_form: Form | None = None) -> WorkflowGraph:
    """The graph a new workflow starts with.

    A start step, followed by a step that fills in the trigger form when
    there is one.
    """
    start = StartNode(
        id=f"start-{_short_id()}",
        position=NodePosition(x=250, y=50),
        data=StartNodeData(label="Start", description="Workflow starts here"),
    )
    if trigger_form is None:
        return WorkflowGraph(nodes=[start], edges=[])

    fill = FillFormNode(
        id=f"fill-form-{_short_id()}",
        position=NodePosition(x=250, y=200),
        data=FillFormNodeData(
            label=f"Fill {trigger_form.title}",
            description=trigger_form.description or "",
            form=NodeFormRef(
                id=trigger_form.id,
                title=trigger_form.title,
                description=trigger_form.description,
                fields=[
                    f.model_dump(mode="json", by_alias=True, exclude_none=True)
                    for f in trigger_form.form_schema.fields
                ],
            ),
        ),
    )
    edge = WorkflowEdge(id=f"{start.id}-{fill.id}", source=start.id, target=fill.id)
    return WorkflowGraph(nodes=[start, fill], edges=[edge])


class WorkflowLifecycleService:
    """Manages workflow definitions and their status."""

    def __init__(
        self,
        data_store: DataStore,
        validator: WorkflowGraphValidator | None = None,
    ) -> None:
        self._store = data_store
        self._validator = validator or WorkflowGraphValidator()

    def validate(self, graph: WorkflowGraph) -> GraphValidationResult:
        return self._validator.validate_for_save(graph)

    def _gate(self, graph: WorkflowGraph, confirm_warnings: bool) -> GraphValidationResult:
        result = self._validator.validate_for_save(graph)
        if not result.ok:
            raise GraphValidationError(result)
        if result.warnings and not confirm_warnings:
            raise GraphConfirmationRequired(result)
        return result

    async def _require_form(self, form_id: str) -> Form:
        form = await self._store.get_form(form_id)
        if form is None:
            raise NotFoundError("Form", form_id)
        return form

    async def get(self, workflow_id: str) -> Workflow:
        workflow = await self._store.get_workflow(workflow_id)
        if workflow is None:
            raise NotFoundError("Workflow", workflow_id)
        return workflow

    async def list(
        self,
        status: WorkflowStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page[Workflow]:
        workflows, total = await self._store.list_workflows(
            status=status, limit=page_size, offset=(page - 1) * page_size
        )
        return Page[Workflow](
            data=workflows,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if total else 0,
        )

    async def create(self, payload: WorkflowCreate, confirm_warnings: bool = False) -> Workflow:
        """Create a draft workflow.

        Without a graph, the workflow gets ``initial_graph`` for its trigger
        form.

        Raises:
            NotFoundError: The trigger form does not exist
            GraphValidationError: The graph has blocking errors
            GraphConfirmationRequired: The graph has unconfirmed warnings
        """
        trigger_form = None
        if payload.trigger_form_id:
            trigger_form = await self._require_form(payload.trigger_form_id)

        graph = payload.graph if payload.graph is not None else initial_graph(trigger_form)
        self._gate(graph, confirm_warnings)

        workflow = await self._store.create_workflow(
            name=payload.name,
            graph=graph,
            description=payload.description,
            trigger_form_id=payload.trigger_form_id,
            created_by=payload.created_by,
            status=WorkflowStatus.DRAFT,
        )
        logger.info(f"Created workflow {workflow.id} ({workflow.name})")
        return workflow

    async def update(
        self,
        workflow_id: str,
        payload: WorkflowUpdate,
        confirm_warnings: bool = False,
    ) -> Workflow:
        """Update a workflow. A new graph goes through the same gate as create."""
        current = await self.get(workflow_id)

        if (
            payload.status is not None
            and current.status == WorkflowStatus.ARCHIVED
            and payload.status != WorkflowStatus.ARCHIVED
        ):
            raise WorkflowStatusError("Archived workflows cannot be reactivated")

        if payload.trigger_form_id:
            await self._require_form(payload.trigger_form_id)

        if payload.graph is not None:
            self._gate(payload.graph, confirm_warnings)

        updated = await self._store.update_workflow(
            workflow_id,
            name=payload.name,
            description=payload.description,
            graph=payload.graph,
            trigger_form_id=payload.trigger_form_id,
            status=payload.status,
        )
        if updated is None:
            raise NotFoundError("Workflow", workflow_id)
        return updated

    async def delete(self, workflow_id: str) -> None:
        if not await self._store.delete_workflow(workflow_id):
            raise NotFoundError("Workflow", workflow_id)

    async def toggle_status(self, workflow_id: str) -> Workflow:
        """draft -> active, active -> inactive, inactive -> active."""
        current = await self.get(workflow_id)
        target = _TOGGLE_TARGETS.get(current.status)
        if target is None:
            raise WorkflowStatusError(
                f"Workflow '{workflow_id}' is {current.status.value} and cannot be toggled"
            )

        updated = await self._store.update_workflow(workflow_id, status=target)
        if updated is None:
            raise NotFoundError("Workflow", workflow_id)
        logger.info(f"Workflow {workflow_id}: {current.status.value} -> {target.value}")
        return updated

    async def archive(self, workflow_id: str) -> Workflow:
        current = await self.get(workflow_id)
        if current.status == WorkflowStatus.ARCHIVED:
            return current

        updated = await self._store.update_workflow(
            workflow_id, status=WorkflowStatus.ARCHIVED
        )
        if updated is None:
            raise NotFoundError("Workflow", workflow_id)
        logger.info(f"Archived workflow {workflow_id}")
        return updated

    async def stats(self, workflow_id: str) -> NodeStats:
        workflow = await self.get(workflow_id)
        return self._validator.stats(workflow.graph)

    async def summary_stats(self) -> WorkflowSummaryStats:
        """Counts per status and instance totals across all workflows."""
        by_status = await self._store.count_workflows_by_status()

        stats = WorkflowSummaryStats()
        for status, row in by_status.items():
            stats.total += row["count"]
            stats.active_instances += row["active_instances"]
            stats.total_instances += row["active_instances"] + row["completed_instances"]
            if status in {s.value for s in WorkflowStatus}:
                setattr(stats, status, getattr(stats, status) + row["count"])
        return stats
