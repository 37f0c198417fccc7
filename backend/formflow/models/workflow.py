"""Pydantic models for workflows (the step graph)."""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Discriminator, Tag
from pydantic import Field as PydanticField

from formflow.models.form import FormRef

# =============================================================================
# Enums
# =============================================================================


class NodeKind(str, Enum):
    """Types of steps a workflow graph can contain."""

    START = "start"
    END = "end"
    FILL_FORM = "fill-form"
    CONDITION = "condition"
    CHANGE_STATUS = "change-status"
    ASSIGN_TASK = "assign-task"


class WorkflowStatus(str, Enum):
    """Lifecycle status of a workflow definition."""

    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"  # Terminal


class ConditionOperator(str, Enum):
    """Comparison operators available to condition rules."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


# =============================================================================
# Node data
# =============================================================================


class ConditionRule(BaseModel):
    """A single branch rule of a condition step."""

    field_id: str = PydanticField(alias="fieldId")
    field_label: str = PydanticField(default="", alias="fieldLabel")
    field_type: str = PydanticField(default="text", alias="fieldType")
    operator: ConditionOperator = ConditionOperator.EQUALS
    value: Any = ""

    model_config = {"populate_by_name": True, "coerce_numbers_to_str": True}


class NodeFormRef(BaseModel):
    """A form referenced from a step, with an optional snapshot of its fields."""

    id: str
    title: str = ""
    description: str | None = None
    fields: list[dict[str, Any]] | None = None

    model_config = {"coerce_numbers_to_str": True}


class RoleRef(BaseModel):
    """A role referenced from an assignment step."""

    id: str
    name: str = ""

    model_config = {"coerce_numbers_to_str": True}


class BaseNodeData(BaseModel):
    """Data every step carries. Unknown keys are kept as-is."""

    label: str = ""
    description: str = ""

    model_config = {
        "populate_by_name": True,
        "extra": "allow",
        "coerce_numbers_to_str": True,
    }


class StartNodeData(BaseNodeData):
    pass


class EndNodeData(BaseNodeData):
    pass


class FillFormNodeData(BaseNodeData):
    form: NodeFormRef | None = None


class ConditionNodeData(BaseNodeData):
    condition_rules: list[ConditionRule] = PydanticField(
        default_factory=list, alias="conditionRules"
    )
    selected_form_id: str | None = PydanticField(default=None, alias="selectedFormId")


class ChangeStatusNodeData(BaseNodeData):
    status: str = ""
    status_label: str = PydanticField(default="", alias="statusLabel")
    status_color: str = PydanticField(default="#3b82f6", alias="statusColor")
    assign_to_role: Any = PydanticField(default=None, alias="assignToRole")
    should_reassign: bool = PydanticField(default=False, alias="shouldReassign")


class AssignTaskNodeData(BaseNodeData):
    role: RoleRef | None = None
    form: NodeFormRef | None = None


# =============================================================================
# Nodes and edges
# =============================================================================


class NodePosition(BaseModel):
    x: float = 0
    y: float = 0


class BaseNode(BaseModel):
    """Attributes shared by every step."""

    id: str
    position: NodePosition | None = None

    model_config = {"populate_by_name": True, "extra": "allow"}

    @property
    def kind(self) -> NodeKind:
        return NodeKind(self.type)  # type: ignore[attr-defined]


class StartNode(BaseNode):
    type: Literal["start"] = "start"
    data: StartNodeData = PydanticField(default_factory=StartNodeData)


class EndNode(BaseNode):
    type: Literal["end"] = "end"
    data: EndNodeData = PydanticField(default_factory=EndNodeData)


class FillFormNode(BaseNode):
    type: Literal["fill-form"] = "fill-form"
    data: FillFormNodeData = PydanticField(default_factory=FillFormNodeData)


class ConditionNode(BaseNode):
    type: Literal["condition"] = "condition"
    data: ConditionNodeData = PydanticField(default_factory=ConditionNodeData)


class ChangeStatusNode(BaseNode):
    type: Literal["change-status"] = "change-status"
    data: ChangeStatusNodeData = PydanticField(default_factory=ChangeStatusNodeData)


class AssignTaskNode(BaseNode):
    type: Literal["assign-task"] = "assign-task"
    data: AssignTaskNodeData = PydanticField(default_factory=AssignTaskNodeData)


def _get_node_discriminator(v: Any) -> str:
    """Discriminator function for WorkflowNode union."""
    if isinstance(v, dict):
        return v.get("type", "")
    return getattr(v, "type", "")


WorkflowNode = Annotated[
    Annotated[StartNode, Tag("start")]
    | Annotated[EndNode, Tag("end")]
    | Annotated[FillFormNode, Tag("fill-form")]
    | Annotated[ConditionNode, Tag("condition")]
    | Annotated[ChangeStatusNode, Tag("change-status")]
    | Annotated[AssignTaskNode, Tag("assign-task")],
    Discriminator(_get_node_discriminator),
]


class WorkflowEdge(BaseModel):
    """A directed connection between two steps.

    Presentation keys (``type``, ``animated``, ``style``) are kept as extras.
    """

    id: str
    source: str
    target: str
    source_handle: str | None = PydanticField(default=None, alias="sourceHandle")
    target_handle: str | None = PydanticField(default=None, alias="targetHandle")

    model_config = {"populate_by_name": True, "extra": "allow"}


class WorkflowGraph(BaseModel):
    """The JSON document stored in a workflow's ``schema`` column."""

    nodes: list[WorkflowNode] = PydanticField(default_factory=list)
    edges: list[WorkflowEdge] = PydanticField(default_factory=list)

    def get_node(self, node_id: str) -> BaseNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def nodes_of(self, kind: NodeKind) -> list[BaseNode]:
        return [n for n in self.nodes if n.type == kind.value]

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the persisted JSON shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Validation and statistics
# =============================================================================


class GraphValidationResult(BaseModel):
    """Outcome of checking a graph before save."""

    ok: bool
    blocking_errors: list[str] = PydanticField(
        default_factory=list, alias="blockingErrors"
    )
    warnings: list[str] = PydanticField(default_factory=list)

    model_config = {"populate_by_name": True}


class NodeStats(BaseModel):
    """Per-type step counts plus the edge count."""

    total: int = 0
    start: int = 0
    end: int = 0
    fill_form: int = PydanticField(default=0, alias="fillForm")
    condition: int = 0
    change_status: int = PydanticField(default=0, alias="changeStatus")
    assign_task: int = PydanticField(default=0, alias="assignTask")
    connections: int = 0

    model_config = {"populate_by_name": True}


class WorkflowSummaryStats(BaseModel):
    """Counts across all workflows."""

    total: int = 0
    active: int = 0
    draft: int = 0
    inactive: int = 0
    archived: int = 0
    total_instances: int = 0
    active_instances: int = 0


# =============================================================================
# Workflow
# =============================================================================


class Workflow(BaseModel):
    """A stored workflow definition."""

    id: str
    name: str
    description: str | None = None
    graph: WorkflowGraph = PydanticField(default_factory=WorkflowGraph, alias="schema")
    trigger_form_id: str | None = None
    trigger_form: FormRef | None = None
    status: WorkflowStatus = WorkflowStatus.DRAFT
    active_instances: int = 0
    completed_instances: int = 0
    created_by: str | None = None
    created_at: str
    updated_at: str

    model_config = {"populate_by_name": True}


class WorkflowCreate(BaseModel):
    """Request model for creating a workflow."""

    name: str
    description: str | None = None
    trigger_form_id: str | None = None
    graph: WorkflowGraph | None = PydanticField(default=None, alias="schema")
    created_by: str | None = None

    model_config = {"populate_by_name": True}


class WorkflowUpdate(BaseModel):
    """Request model for updating a workflow."""

    name: str | None = None
    description: str | None = None
    trigger_form_id: str | None = None
    graph: WorkflowGraph | None = PydanticField(default=None, alias="schema")
    status: WorkflowStatus | None = None

    model_config = {"populate_by_name": True}
