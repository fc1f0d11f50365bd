import logging
from typing import List, Optional, Set, Tuple

from graph_models import RepairNote, WorkflowEdge, WorkflowNode
from id_allocator import TokenFactory, allocate_id
from repair_errors import DuplicateIdentifierError

logger = logging.getLogger(__name__)


def dedupe_nodes(nodes: List[WorkflowNode], notes: Optional[List[RepairNote]] = None) -> List[WorkflowNode]:
    """Remove duplicate nodes (keep first occurrence)"""
    seen: Set[str] = set()
    unique = []
    for node in nodes:
        if node.id in seen:
            logger.info("AUTO-FIX: Removed duplicate node %s", node.id)
            if notes is not None:
                notes.append(RepairNote(stage="finalize", severity="warning",
                                        message="Removed duplicate node", node_id=node.id))
            continue
        seen.add(node.id)
        unique.append(node)
    return unique


def dedupe_edges(
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
    token_factory: Optional[TokenFactory] = None,
    notes: Optional[List[RepairNote]] = None,
) -> List[WorkflowEdge]:
    """Drop dangling and duplicate edges, give id-less survivors a fresh id"""
    node_ids = {n.id for n in nodes}
    seen_keys: Set[str] = set()
    seen_ports: Set[str] = set()
    unique = []
    dropped = 0

    for edge in edges:
        if not edge.source or not edge.target or edge.source not in node_ids or edge.target not in node_ids:
            dropped += 1
            continue
        identity = edge.id or f"{edge.source}|{edge.target}|{edge.sourceHandle or ''}"
        port_key = edge.key()
        if identity in seen_keys or port_key in seen_ports:
            dropped += 1
            continue
        seen_keys.add(identity)
        seen_ports.add(port_key)
        unique.append(edge)

    # Fresh ids must avoid every explicit id that survived
    assigned_ids = {e.id for e in unique if e.id}
    unique = [
        e if e.id else e.model_copy(update={
            "id": allocate_id(f"edge_{e.source}_{e.target}", assigned_ids, token_factory),
        })
        for e in unique
    ]

    if dropped:
        logger.info("AUTO-FIX: Removed %d dangling or duplicate edge(s)", dropped)
        if notes is not None:
            notes.append(RepairNote(stage="finalize", severity="warning",
                                    message=f"Removed {dropped} dangling or duplicate edge(s)"))
    return unique


def find_duplicate_ids(items) -> List[str]:
    seen: Set[str] = set()
    duplicates = []
    for item in items:
        if item.id in seen:
            duplicates.append(item.id)
        else:
            seen.add(item.id)
    return duplicates


def check_integrity(nodes: List[WorkflowNode], edges: List[WorkflowEdge]) -> None:
    """Raise DuplicateIdentifierError if any node or edge id repeats"""
    duplicate_node_ids = find_duplicate_ids(nodes)
    duplicate_edge_ids = find_duplicate_ids(edges)
    if duplicate_node_ids or duplicate_edge_ids:
        logger.error("Duplicate IDs detected: nodes=%s edges=%s", duplicate_node_ids, duplicate_edge_ids)
        raise DuplicateIdentifierError(duplicate_node_ids, duplicate_edge_ids)


def finalize(
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
    token_factory: Optional[TokenFactory] = None,
    notes: Optional[List[RepairNote]] = None,
) -> Tuple[List[WorkflowNode], List[WorkflowEdge]]:
    nodes = dedupe_nodes(nodes, notes)
    edges = dedupe_edges(nodes, edges, token_factory, notes)
    check_integrity(nodes, edges)
    return nodes, edges
