import logging
from collections import defaultdict
from typing import List, Optional, Set, Tuple

from graph_models import RepairNote, WorkflowEdge, WorkflowNode
from id_allocator import TokenFactory, allocate_id
from repair_rules import RepairRules
from type_resolver import is_branching, is_form_trigger, is_trigger

logger = logging.getLogger(__name__)


def pick_primary_trigger(triggers: List[WorkflowNode], rules: RepairRules) -> WorkflowNode:
    """Form triggers win, otherwise the first trigger found"""
    for node in triggers:
        if is_form_trigger(node, rules):
            return node
    return triggers[0]


def walk_order(primary: WorkflowNode, kept: List[WorkflowNode], edges: List[WorkflowEdge]) -> List[WorkflowNode]:
    """Greedy walk from the trigger along first unvisited successors, then everything else"""
    kept_by_id = {n.id: n for n in kept}
    outgoing = defaultdict(list)
    for edge in edges:
        if edge.source and edge.target:
            outgoing[edge.source].append(edge.target)

    ordered = [primary]
    visited = {primary.id}
    current = primary.id
    while True:
        next_id = next((t for t in outgoing[current] if t not in visited), None)
        if next_id is None or next_id not in kept_by_id:
            break
        ordered.append(kept_by_id[next_id])
        visited.add(next_id)
        current = next_id

    # Append any kept node the walk did not reach
    for node in kept:
        if node.id not in visited:
            ordered.append(node)
            visited.add(node.id)
    return ordered


def linearize(
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
    rules: RepairRules,
    token_factory: Optional[TokenFactory] = None,
    notes: Optional[List[RepairNote]] = None,
) -> Tuple[List[WorkflowNode], List[WorkflowEdge]]:
    """Collapse a simple workflow into trigger -> step -> step, keeping branch structure intact.

    Nodes come back in input order minus the dropped triggers.
    """
    triggers = [n for n in nodes if is_trigger(n, rules)]
    if not triggers:
        return list(nodes), list(edges)

    primary = pick_primary_trigger(triggers, rules)
    kept = [n for n in nodes if not is_trigger(n, rules) or n.id == primary.id]

    dropped_triggers = [n for n in triggers if n.id != primary.id]
    for node in dropped_triggers:
        logger.info("AUTO-FIX: Dropped extra trigger %s (%s), keeping %s", node.id, node.label, primary.id)
        if notes is not None:
            notes.append(RepairNote(
                stage="linearize",
                severity="warning",
                message=f"Removed extra trigger '{node.label or node.declared_type}', a workflow has one entry point",
                node_id=node.id,
            ))

    valid_ids = {n.id for n in kept}
    existing_edges = [e for e in edges if e.source in valid_ids and e.target in valid_ids]

    # Branching workflows keep every edge
    if any(is_branching(n, rules) for n in kept):
        logger.info("Preserving branching structure - keeping %d edge(s) (skipping linearization)", len(existing_edges))
        return kept, existing_edges

    edge_ids: Set[str] = {e.id for e in edges if e.id}
    chain_edges = []
    # The walk only orders the chain, nodes keep their input order
    ordered = walk_order(primary, kept, edges)
    for source, target in zip(ordered, ordered[1:]):
        matching = [e for e in existing_edges if e.source == source.id and e.target == target.id]
        if matching:
            chain_edges.extend(matching)
            continue
        chain_edges.append(WorkflowEdge(
            id=allocate_id(f"edge_linear_{source.id}_{target.id}", edge_ids, token_factory),
            source=source.id,
            target=target.id,
        ))
        logger.info("AUTO-FIX: Chained %s -> %s", source.id, target.id)

    # Keep edges that do not fit the chain rather than discarding them
    chain_keys = {e.key() for e in chain_edges}
    additional = [e for e in existing_edges if e.key() not in chain_keys]
    if additional:
        logger.info("Preserving %d additional edge(s) that don't fit linear chain", len(additional))
        chain_edges.extend(additional)

    return kept, chain_edges
