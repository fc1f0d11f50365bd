import logging
from typing import List, Optional, Set

from graph_models import RepairNote, WorkflowEdge, WorkflowNode
from repair_rules import RepairRules
from type_resolver import is_conditional, is_switch, node_type

logger = logging.getLogger(__name__)

BRANCH_HANDLES = ("true", "false")


def branch_polarity(handle: Optional[str], rules: RepairRules) -> Optional[str]:
    """'true'/'false' for a handle that names a branch, after synonyms, else None"""
    if not handle:
        return None
    lowered = handle.lower()
    mapped = rules.source_handle_synonyms.get(lowered, lowered)
    return mapped if mapped in BRANCH_HANDLES else None


def ambiguous_branch_edges(nodes: List[WorkflowNode], edges: List[WorkflowEdge], rules: RepairRules) -> Set[str]:
    """Ids of edges leaving a conditional node without a usable true/false handle"""
    by_id = {n.id: n for n in nodes}
    return {
        e.id for e in edges
        if is_conditional(by_id.get(e.source), rules) and branch_polarity(e.sourceHandle, rules) is None
    }


def _note(notes, message, edge, severity="warning"):
    if notes is not None:
        notes.append(RepairNote(stage="normalize_handles", severity=severity, message=message, edge_id=edge.id))


def normalize_source_handle(edge: WorkflowEdge, source: Optional[WorkflowNode], rules: RepairRules, notes=None) -> str:
    handle = edge.sourceHandle

    if not handle:
        if is_conditional(source, rules):
            logger.warning("If/Else edge missing sourceHandle - should be 'true' or 'false': %s -> %s",
                           edge.source, edge.target)
            _note(notes, "Conditional edge had no branch handle, defaulted to 'true'", edge)
            return "true"
        if is_switch(source, rules):
            return rules.switch_default_handle
        return rules.default_source_handle

    # Map semantic field names to port names
    normalized = rules.source_handle_synonyms.get(handle.lower(), handle)

    if is_conditional(source, rules):
        polarity = branch_polarity(normalized, rules)
        if polarity is None:
            logger.warning("If/Else edge has invalid sourceHandle '%s' - defaulting to 'true'", handle)
            _note(notes, f"Conditional edge handle '{handle}' is not a branch, defaulted to 'true'", edge)
            return "true"
        return polarity
    if is_switch(source, rules):
        # Case ports are dynamic
        return normalized
    return rules.default_source_handle


def normalize_target_handle(edge: WorkflowEdge, target: Optional[WorkflowNode], rules: RepairRules) -> str:
    ports = rules.agent_ports.get(node_type(target)) if target is not None else None
    handle = edge.targetHandle

    if not handle:
        return ports[0] if ports else rules.default_target_handle

    normalized = rules.target_handle_synonyms.get(handle.lower(), handle)
    if ports:
        return normalized if normalized in ports else ports[0]
    return rules.default_target_handle


def normalize_handles(
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
    rules: RepairRules,
    notes: Optional[List[RepairNote]] = None,
) -> List[WorkflowEdge]:
    """Give every edge canonical port names for its source and target node types"""
    by_id = {n.id: n for n in nodes}
    normalized_edges = []
    for edge in edges:
        source_handle = normalize_source_handle(edge, by_id.get(edge.source), rules, notes)
        target_handle = normalize_target_handle(edge, by_id.get(edge.target), rules)
        normalized_edges.append(edge.model_copy(update={
            "sourceHandle": source_handle,
            "targetHandle": target_handle,
            "type": edge.type or "default",
        }))
    return normalized_edges
