import logging
from typing import Dict, List, Optional, Set

from graph_models import RepairNote, WorkflowEdge, WorkflowNode
from handle_normalizer import BRANCH_HANDLES, ambiguous_branch_edges, branch_polarity
from repair_rules import RepairRules, matches_keyword
from type_resolver import is_conditional

logger = logging.getLogger(__name__)


def infer_polarity(target: Optional[WorkflowNode], rules: RepairRules) -> Optional[str]:
    """Guess a branch from the target node's label, negative keywords first"""
    label = target.label if target is not None else ""
    if matches_keyword(label, rules.false_keywords):
        return "false"
    if matches_keyword(label, rules.true_keywords):
        return "true"
    return None


def repair_branches(
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
    rules: RepairRules,
    ambiguous: Optional[Set[str]] = None,
    notes: Optional[List[RepairNote]] = None,
) -> List[WorkflowEdge]:
    """Give each conditional node at most one true edge and one false edge"""
    if ambiguous is None:
        ambiguous = ambiguous_branch_edges(nodes, edges, rules)
    by_id = {n.id: n for n in nodes}

    decided: Dict[int, str] = {}
    removed: Set[int] = set()

    def note(message, node, edge=None, severity="info"):
        logger.info("AUTO-FIX: %s", message)
        if notes is not None:
            notes.append(RepairNote(
                stage="repair_branches",
                severity=severity,
                message=message,
                node_id=node.id,
                edge_id=edge.id if edge is not None else None,
            ))

    for node in nodes:
        if not is_conditional(node, rules):
            continue
        outputs = [(i, e) for i, e in enumerate(edges) if e.source == node.id]

        if not outputs:
            # A missing branch needs the user's intent, never a guess
            logger.warning("If/Else node '%s' has no outgoing edges - skipping auto-creation", node.label or node.id)
            if notes is not None:
                notes.append(RepairNote(
                    stage="repair_branches",
                    severity="warning",
                    message=f"If/Else node '{node.label or node.id}' has no outgoing edges",
                    node_id=node.id,
                ))
            continue

        unresolved = [
            (i, e) for i, e in outputs
            if e.id in ambiguous or branch_polarity(e.sourceHandle, rules) is None
        ]
        unresolved_idx = {i for i, _ in unresolved}

        filled = set()
        repeated = []
        for i, edge in outputs:
            if i in unresolved_idx:
                continue
            polarity = branch_polarity(edge.sourceHandle, rules)
            if polarity in filled:
                # A second edge on a taken branch gets relabelled like an unlabelled one
                repeated.append((i, edge))
                continue
            filled.add(polarity)
            decided[i] = polarity

        # Two edges, neither labelled: keep their order as true then false
        if len(outputs) == 2 and len(unresolved) == 2:
            for (i, edge), polarity, ordinal in zip(unresolved, BRANCH_HANDLES, ("first", "second")):
                decided[i] = polarity
                note(f"Fixed edge {edge.id}: assigned sourceHandle='{polarity}' ({ordinal} of two)", node, edge)
            continue

        unresolved = sorted(unresolved + repeated, key=lambda item: item[0])
        for i, edge in unresolved:
            wanted = infer_polarity(by_id.get(edge.target), rules)
            reason = "inferred from target label"
            if wanted is None or wanted in filled:
                wanted = next((p for p in BRANCH_HANDLES if p not in filled), None)
                reason = "default, path missing"
            if wanted is None:
                removed.add(i)
                note(f"Removed edge {edge.id}: If/Else node {node.id} already has both branches", node, edge, "warning")
                continue
            filled.add(wanted)
            decided[i] = wanted
            note(f"Fixed edge {edge.id}: assigned sourceHandle='{wanted}' ({reason})", node, edge)

    repaired = []
    for i, edge in enumerate(edges):
        if i in removed:
            continue
        if i in decided and decided[i] != edge.sourceHandle:
            edge = edge.model_copy(update={"sourceHandle": decided[i]})
        repaired.append(edge)
    return repaired
