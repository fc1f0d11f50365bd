from collections import defaultdict, deque
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from graph_models import WorkflowEdge, WorkflowNode
from repair_rules import RepairRules
from type_resolver import is_conditional, is_switch, is_trigger, node_type


class ValidationIssue(BaseModel):
    node_id: Optional[str] = None
    message: str
    severity: Literal["error", "warning"]


class TopologyError(BaseModel):
    code: str
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None


class ValidationResult(BaseModel):
    valid: bool
    errors: List[TopologyError] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class NormalizedGraph(BaseModel):
    nodes: List[WorkflowNode]
    edges: List[WorkflowEdge]
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


def _name(node: WorkflowNode) -> str:
    return node.label or node.id or "Unknown"


def validate_workflow(nodes: List[WorkflowNode], edges: List[WorkflowEdge], rules: RepairRules) -> List[ValidationIssue]:
    """Editor-facing checks: disconnected steps and incomplete If/Else branches"""
    issues = []
    targets = {e.target for e in edges}

    # 1. Disconnected nodes (triggers start the flow, they have no input)
    for node in nodes:
        if is_trigger(node, rules):
            continue
        if node.id not in targets:
            issues.append(ValidationIssue(
                node_id=node.id,
                message=f'Node "{_name(node)}" is disconnected (no input).',
                severity="warning",
            ))

    # 2. If/Else outputs
    for node in nodes:
        if not is_conditional(node, rules):
            continue
        handles = {e.sourceHandle for e in edges if e.source == node.id}
        if "true" not in handles:
            issues.append(ValidationIssue(
                node_id=node.id, message=f'If/Else node "{_name(node)}" missing TRUE path.', severity="error"))
        if "false" not in handles:
            issues.append(ValidationIssue(
                node_id=node.id, message=f'If/Else node "{_name(node)}" missing FALSE path.', severity="warning"))

    return issues


_EXHAUSTED = object()


def detect_cycles(nodes: List[WorkflowNode], edges: List[WorkflowEdge]) -> bool:
    """Detect circular dependencies in workflow"""
    graph = defaultdict(list)
    for edge in edges:
        graph[edge.source].append(edge.target)

    visited = set()
    rec_stack = set()

    # Iterative depth-first search, each frame is (node, remaining neighbours)
    for node in nodes:
        if node.id in visited:
            continue
        visited.add(node.id)
        rec_stack.add(node.id)
        stack = [(node.id, iter(graph[node.id]))]
        while stack:
            node_id, neighbors = stack[-1]
            neighbor = next(neighbors, _EXHAUSTED)
            if neighbor is _EXHAUSTED:
                rec_stack.discard(node_id)
                stack.pop()
            elif neighbor in rec_stack:
                return True
            elif neighbor not in visited:
                visited.add(neighbor)
                rec_stack.add(neighbor)
                stack.append((neighbor, iter(graph[neighbor])))
    return False


def validate_workflow_graph(nodes: List[WorkflowNode], edges: List[WorkflowEdge], rules: RepairRules) -> ValidationResult:
    """Topology checks run before save or execution"""
    errors: List[TopologyError] = []
    warnings: List[str] = []

    if not nodes:
        errors.append(TopologyError(code="NO_NODES", message="Workflow must have at least one node"))
        return ValidationResult(valid=False, errors=errors, warnings=warnings)

    # 1. Exactly one trigger
    triggers = [n for n in nodes if is_trigger(n, rules)]
    if not triggers:
        errors.append(TopologyError(code="NO_TRIGGER", message="Workflow must have exactly one trigger node"))
        return ValidationResult(valid=False, errors=errors, warnings=warnings)
    if len(triggers) > 1:
        errors.append(TopologyError(
            code="MULTIPLE_TRIGGERS",
            message=f"Workflow has {len(triggers)} trigger nodes, but should have exactly one",
            node_id=triggers[1].id,
        ))
    trigger = triggers[0]

    # 2. Build adjacency maps
    incoming = defaultdict(list)
    outgoing = defaultdict(list)
    for edge in edges:
        incoming[edge.target].append(edge)
        outgoing[edge.source].append(edge)

    # 3. Reachability from the trigger
    reachable = {trigger.id}
    queue = deque([trigger.id])
    while queue:
        for edge in outgoing[queue.popleft()]:
            if edge.target not in reachable:
                reachable.add(edge.target)
                queue.append(edge.target)

    unreachable = [n for n in nodes if n.id not in reachable]
    if unreachable:
        warnings.append(f"{len(unreachable)} node(s) are not reachable from trigger")
        for node in unreachable:
            errors.append(TopologyError(
                code="UNREACHABLE_NODE",
                message=f'Node "{_name(node)}" is not reachable from trigger',
                node_id=node.id,
            ))

    # 4. One input per node, merge nodes combine several
    for node in nodes:
        if node.id == trigger.id:
            continue
        count = len(incoming[node.id])
        if count == 0:
            errors.append(TopologyError(
                code="NO_INCOMING", message=f'Node "{_name(node)}" has no incoming edges', node_id=node.id))
        elif count > 1 and node_type(node) not in rules.merge_types:
            errors.append(TopologyError(
                code="MULTIPLE_INCOMING",
                message=f'Node "{_name(node)}" has {count} incoming edges, but should have exactly one',
                node_id=node.id,
            ))

    # 5. Outgoing edges by node type
    for node in nodes:
        count = len(outgoing[node.id])
        if is_switch(node, rules):
            if count == 0:
                warnings.append(f'Switch node "{_name(node)}" should have at least one outgoing edge (one per case)')
        elif is_conditional(node, rules):
            if count != 2:
                warnings.append(f'If/Else node "{_name(node)}" should have exactly 2 outgoing edges (true/false branches)')
        elif count > 1:
            errors.append(TopologyError(
                code="TOO_MANY_OUTGOING",
                message=f'Node "{_name(node)}" has {count} outgoing edges, but maximum is 1 (for this node type)',
                node_id=node.id,
            ))

    # 6. Cycles
    if detect_cycles(nodes, edges):
        errors.append(TopologyError(code="CYCLE_DETECTED", message="Workflow contains a cycle (circular dependency)"))

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def normalize_condition_config(node: WorkflowNode, rules: RepairRules) -> WorkflowNode:
    """Convert a legacy 'condition' string into the 'conditions' list"""
    if not is_conditional(node, rules):
        return node

    config = dict(node.data.config)
    condition = config.get("condition")
    if condition and "conditions" not in config:
        expression = condition if isinstance(condition, str) else str(condition)
        if expression.strip():
            config["conditions"] = [{"expression": expression}]

    conditions = config.get("conditions")
    if conditions is not None and not isinstance(conditions, list):
        if isinstance(conditions, str):
            config["conditions"] = [{"expression": conditions}]
        elif isinstance(conditions, dict) and conditions.get("expression"):
            config["conditions"] = [conditions]
        else:
            config["conditions"] = []

    if config == node.data.config:
        return node
    return node.model_copy(update={"data": node.data.model_copy(update={"config": config})})


def normalize_workflow_graph(nodes: List[WorkflowNode], edges: List[WorkflowEdge], rules: RepairRules) -> NormalizedGraph:
    """Consistent graph shape before saving: condition configs, dangling and duplicate edges"""
    warnings = []
    normalized_nodes = [normalize_condition_config(n, rules) for n in nodes]

    node_ids = {n.id for n in normalized_nodes}
    valid_edges = [e for e in edges if e.source in node_ids and e.target in node_ids]
    removed = len(edges) - len(valid_edges)
    if removed:
        warnings.append(f"Removed {removed} invalid edge(s) referencing non-existent nodes")

    seen = set()
    unique_edges = []
    for edge in valid_edges:
        key = f"{edge.source}::{edge.target}::{edge.sourceHandle or 'default'}::{edge.targetHandle or 'default'}"
        if key not in seen:
            seen.add(key)
            unique_edges.append(edge)
    duplicates = len(valid_edges) - len(unique_edges)
    if duplicates:
        warnings.append(f"Removed {duplicates} duplicate edge(s)")

    return NormalizedGraph(nodes=normalized_nodes, edges=unique_edges, warnings=warnings)
