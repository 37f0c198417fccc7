"""Pydantic models for formflow."""

from formflow.models.form import (
    BaseFormField,
    ChoiceField,
    FieldKind,
    Form,
    FormCreate,
    FormField,
    FormRef,
    FormSchema,
    FormSchemaCheck,
    FormUpdate,
    InputField,
    RelationConfig,
    RelationField,
)
from formflow.models.response import (
    RelationCandidate,
    RelationCandidates,
    RelationFieldState,
    Response,
    ResponseCreate,
    ResponseFilter,
    ResponseFilterOperator,
    ResponseSearch,
    ResponseUpdate,
    TaskResponse,
)
from formflow.models.task import (
    Page,
    RoleTaskStats,
    StatusBadge,
    Task,
    TaskCreate,
    TaskFilters,
    TaskNotesUpdate,
    TaskRole,
    TaskStats,
    TaskStatusKey,
    TaskStatusObject,
    TaskStatusUpdate,
    TaskStep,
)
from formflow.models.workflow import (
    ConditionOperator,
    ConditionRule,
    GraphValidationResult,
    NodeKind,
    NodeStats,
    Workflow,
    WorkflowCreate,
    WorkflowEdge,
    WorkflowGraph,
    WorkflowNode,
    WorkflowStatus,
    WorkflowSummaryStats,
    WorkflowUpdate,
)

__all__ = [
    # Forms
    "FieldKind",
    "BaseFormField",
    "InputField",
    "ChoiceField",
    "RelationField",
    "RelationConfig",
    "FormField",
    "FormSchema",
    "FormSchemaCheck",
    "FormRef",
    "Form",
    "FormCreate",
    "FormUpdate",
    # Responses
    "Response",
    "ResponseCreate",
    "ResponseUpdate",
    "ResponseFilterOperator",
    "ResponseFilter",
    "ResponseSearch",
    "TaskResponse",
    "RelationCandidate",
    "RelationCandidates",
    "RelationFieldState",
    # Workflows
    "NodeKind",
    "WorkflowStatus",
    "ConditionOperator",
    "ConditionRule",
    "WorkflowNode",
    "WorkflowEdge",
    "WorkflowGraph",
    "GraphValidationResult",
    "NodeStats",
    "WorkflowSummaryStats",
    "Workflow",
    "WorkflowCreate",
    "WorkflowUpdate",
    # Tasks
    "TaskStatusKey",
    "TaskRole",
    "TaskStatusObject",
    "StatusBadge",
    "TaskStep",
    "Task",
    "TaskCreate",
    "TaskStatusUpdate",
    "TaskNotesUpdate",
    "TaskFilters",
    "Page",
    "RoleTaskStats",
    "TaskStats",
]
