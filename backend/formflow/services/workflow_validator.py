"""WorkflowGraphValidator - Structural checks and statistics for workflow graphs.

Only a missing start step blocks a save. Everything else is reported as a
warning the caller has to confirm. Nothing here mutates the graph.
"""

import logging

from formflow.models import GraphValidationResult, NodeKind, NodeStats, WorkflowGraph
from formflow.models.workflow import BaseNode, ConditionNode

logger = logging.getLogger(__name__)

MISSING_START_ERROR = "missing start node"
MISSING_END_WARNING = "missing end node"

# The single unnamed branch of a condition step with no rules
DEFAULT_HANDLE: str | None = None


def condition_handle(index: int) -> str:
    return f"condition-{index}"


def expected_handles(node: BaseNode) -> list[str | None]:
    """Outgoing handles a step is expected to expose.

    A condition step exposes one handle per rule, numbered in rule order. A
    condition step without rules, like every other step, has a single
    default handle.
    """
    if isinstance(node, ConditionNode) and node.data.condition_rules:
        return [condition_handle(i) for i in range(len(node.data.condition_rules))]
    return [DEFAULT_HANDLE]


def handle_offsets(node: BaseNode) -> list[float]:
    """Vertical position of each expected handle, in percent of the step height."""
    count = len(expected_handles(node))
    return [(i + 1) * 100 / (count + 1) for i in range(count)]


class WorkflowGraphValidator:
    """Validates workflow graphs before save and computes their statistics."""

    def validate_for_save(self, graph: WorkflowGraph) -> GraphValidationResult:
        """Check whether a graph can be saved.

        Args:
            graph: The graph to check

        Returns:
            A result with ``ok`` set iff the graph has a start step. Warnings
            (no end step, dangling edges, unknown condition branches) never
            affect ``ok``.
        """
        blocking_errors: list[str] = []
        warnings: list[str] = []

        kinds = {node.type for node in graph.nodes}
        if NodeKind.START.value not in kinds:
            blocking_errors.append(MISSING_START_ERROR)
        if NodeKind.END.value not in kinds:
            warnings.append(MISSING_END_WARNING)

        nodes_by_id = {node.id: node for node in graph.nodes}
        for edge in graph.edges:
            for end_name, node_id in (("source", edge.source), ("target", edge.target)):
                if node_id not in nodes_by_id:
                    warnings.append(
                        f"edge {edge.id} references unknown {end_name} node {node_id}"
                    )

            source = nodes_by_id.get(edge.source)
            if isinstance(source, ConditionNode):
                handles = expected_handles(source)
                if edge.source_handle is not None and edge.source_handle not in handles:
                    warnings.append(
                        f"edge {edge.id} leaves condition node {source.id} "
                        f"through unknown handle {edge.source_handle}"
                    )

        result = GraphValidationResult(
            ok=not blocking_errors,
            blocking_errors=blocking_errors,
            warnings=warnings,
        )
        if not result.ok:
            logger.info(f"Graph rejected: {blocking_errors}")
        return result

    def stats(self, graph: WorkflowGraph) -> NodeStats:
        """Count steps per type and edges."""
        counts = {kind: 0 for kind in NodeKind}
        for node in graph.nodes:
            counts[NodeKind(node.type)] += 1

        return NodeStats(
            total=len(graph.nodes),
            start=counts[NodeKind.START],
            end=counts[NodeKind.END],
            fill_form=counts[NodeKind.FILL_FORM],
            condition=counts[NodeKind.CONDITION],
            change_status=counts[NodeKind.CHANGE_STATUS],
            assign_task=counts[NodeKind.ASSIGN_TASK],
            connections=len(graph.edges),
        )
