import logging
from collections import defaultdict, deque
from typing import Dict, List, Optional

from graph_models import Position, RepairNote, WorkflowEdge, WorkflowNode
from repair_rules import LayoutSettings

logger = logging.getLogger(__name__)


def compute_levels(nodes: List[WorkflowNode], edges: List[WorkflowEdge]) -> Dict[str, int]:
    """Longest-path level from the roots, relaxed breadth-first and capped so cycles terminate"""
    node_ids = [n.id for n in nodes]
    known = set(node_ids)
    children = defaultdict(list)
    has_incoming = set()
    for edge in edges:
        if edge.source in known and edge.target in known:
            children[edge.source].append(edge.target)
            has_incoming.add(edge.target)

    # No DAG path is longer than the node count
    max_level = max(len(node_ids) - 1, 0)
    levels: Dict[str, int] = {}

    def relax(seeds):
        queue = deque(seeds)
        while queue:
            current = queue.popleft()
            next_level = levels[current] + 1
            if next_level > max_level:
                continue
            for child in children[current]:
                if levels.get(child, -1) < next_level:
                    levels[child] = next_level
                    queue.append(child)

    roots = [nid for nid in node_ids if nid not in has_incoming]
    for nid in roots:
        levels[nid] = 0
    relax(roots)

    # Nodes only reachable through a cycle get seeded as roots
    for nid in node_ids:
        if nid not in levels:
            levels[nid] = 0
            relax([nid])

    return levels


def overlaps(a: Position, b: Position, settings: LayoutSettings) -> bool:
    return abs(a.x - b.x) < settings.node_width and abs(a.y - b.y) < settings.node_height


def place_without_overlap(candidate: Position, placed: List[Position], settings: LayoutSettings) -> Position:
    """Shift candidate right of whatever it collides with until it is clear"""
    x, y = candidate.x, candidate.y
    # Each shift clears at least one placed node, so this is bounded by len(placed)
    for _ in range(len(placed) + 1):
        blocker = next((p for p in placed if overlaps(Position(x=x, y=y), p, settings)), None)
        if blocker is None:
            break
        x = blocker.x + settings.node_width + settings.collision_padding
    return Position(x=x, y=y)


def layout(
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
    settings: Optional[LayoutSettings] = None,
    notes: Optional[List[RepairNote]] = None,
) -> List[WorkflowNode]:
    """Assign positions to nodes that lack one; positioned nodes are never moved"""
    settings = settings or LayoutSettings()
    missing = [n for n in nodes if n.position is None]
    if not missing:
        return list(nodes)

    levels = compute_levels(nodes, edges)

    # Group nodes by level
    by_level: Dict[int, List[str]] = defaultdict(list)
    for node in nodes:
        by_level[levels[node.id]].append(node.id)

    widest = max(len(ids) for ids in by_level.values())
    start_x = -(widest * settings.horizontal_spacing) / 2

    computed: Dict[str, Position] = {}
    for level, ids in by_level.items():
        y = level * settings.vertical_spacing + settings.top_offset
        level_start = start_x + (widest - len(ids)) * settings.horizontal_spacing / 2
        for index, nid in enumerate(ids):
            computed[nid] = Position(x=level_start + index * settings.horizontal_spacing, y=y)

    # User-arranged nodes are fixed obstacles for the new ones
    placed = [n.position for n in nodes if n.position is not None]
    assigned: Dict[str, Position] = {}
    for node in missing:
        position = place_without_overlap(computed[node.id], placed, settings)
        if position != computed[node.id]:
            logger.info("AUTO-FIX: Shifted node %s to avoid overlap", node.id)
        assigned[node.id] = position
        placed.append(position)

    if notes is not None:
        notes.append(RepairNote(stage="layout", message=f"Positioned {len(missing)} node(s)"))

    return [
        node.model_copy(update={"position": assigned[node.id]}) if node.id in assigned else node
        for node in nodes
    ]
