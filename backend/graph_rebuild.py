import logging
from typing import Dict, List, Optional, Set, Tuple

from graph_models import RepairNote, WorkflowEdge, WorkflowNode
from id_allocator import TokenFactory, allocate_id

logger = logging.getLogger(__name__)


def rebuild_ids(
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
    token_factory: Optional[TokenFactory] = None,
    notes: Optional[List[RepairNote]] = None,
) -> Tuple[List[WorkflowNode], List[WorkflowEdge]]:
    """Regenerate all node and edge ids so graphs from different sources never collide"""
    node_id_map: Dict[str, str] = {}
    existing_ids: Set[str] = set()

    # First pass: new ids for all nodes
    rebuilt_nodes = []
    for node in nodes:
        old_id = node.id
        if old_id and old_id in node_id_map:
            # Same identity as an earlier node, keep them true duplicates
            new_id = node_id_map[old_id]
        else:
            new_id = allocate_id("node", existing_ids, token_factory)
            if old_id:
                node_id_map[old_id] = new_id
        rebuilt_nodes.append(node.model_copy(update={"id": new_id}))

    # Second pass: remap edges, only keep edges whose endpoints existed
    rebuilt_edges = []
    dropped = 0
    for edge in edges:
        if edge.source not in node_id_map or edge.target not in node_id_map:
            dropped += 1
            continue
        rebuilt_edges.append(edge.model_copy(update={
            "id": allocate_id("edge", existing_ids, token_factory),
            "source": node_id_map[edge.source],
            "target": node_id_map[edge.target],
        }))

    if dropped:
        logger.info("AUTO-FIX: Dropped %d edge(s) referencing unknown nodes", dropped)
        if notes is not None:
            notes.append(RepairNote(
                stage="rebuild_ids",
                severity="warning",
                message=f"Dropped {dropped} edge(s) referencing unknown nodes",
            ))

    return rebuilt_nodes, rebuilt_edges
