"""Services for formflow."""

from formflow.services.form_builder import FormBuilder
from formflow.services.relation_resolver import (
    RelationOptionsLoader,
    RelationResolver,
    display_label,
)
from formflow.services.submission import ResponseSubmissionService
from formflow.services.task_aggregation import TaskAggregationService
from formflow.services.task_status import StatusChange, TaskStatusEngine, TaskStatusService
from formflow.services.workflow_lifecycle import WorkflowLifecycleService, initial_graph
from formflow.services.workflow_validator import (
    WorkflowGraphValidator,
    expected_handles,
    handle_offsets,
)

__all__ = [
    "FormBuilder",
    "RelationResolver",
    "RelationOptionsLoader",
    "display_label",
    "ResponseSubmissionService",
    "TaskAggregationService",
    "TaskStatusEngine",
    "TaskStatusService",
    "StatusChange",
    "WorkflowLifecycleService",
    "initial_graph",
    "WorkflowGraphValidator",
    "expected_handles",
    "handle_offsets",
]
