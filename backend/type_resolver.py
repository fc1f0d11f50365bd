import logging
from typing import Collection, List, Optional, Tuple

from graph_models import RepairNote, WorkflowNode
from node_catalog import NodeCatalog
from repair_rules import RepairRules, matches_keyword

logger = logging.getLogger(__name__)

EXACT = "exact"
ALIAS = "alias"
PATTERN_FALLBACK = "pattern_fallback"
GENERIC_FALLBACK = "generic_fallback"
INFERRED_FROM_LABEL = "inferred_from_label"


def _family_match(text, known_types, rules: RepairRules) -> Optional[str]:
    for family in rules.type_families:
        if not matches_keyword(text, family.keywords):
            continue
        for candidate in family.candidates:
            if candidate in known_types:
                return candidate
    return None


def resolve_type(
    declared_type: Optional[str],
    known_types: Collection[str],
    rules: RepairRules,
    label: Optional[str] = None,
) -> Tuple[str, str]:
    """Map any declared type to a known type; returns (resolved_type, method)"""
    # Step 1: exact match
    if declared_type and declared_type in known_types:
        return declared_type, EXACT

    if declared_type and declared_type.strip():
        # Step 2: alias table
        canonical = rules.aliases.get(declared_type.strip().lower())
        if canonical and canonical in known_types:
            return canonical, ALIAS

        # Step 3: family patterns on the type name
        fallback = _family_match(declared_type, known_types, rules)
        if fallback:
            return fallback, PATTERN_FALLBACK
    else:
        # Step 4: nothing declared, guess from the label
        inferred = _family_match(label, known_types, rules)
        if inferred:
            return inferred, INFERRED_FROM_LABEL

    # Step 5: never drop the node
    return rules.generic_fallback_type, GENERIC_FALLBACK


def resolve_node_types(
    nodes: List[WorkflowNode],
    catalog: NodeCatalog,
    rules: RepairRules,
    notes: Optional[List[RepairNote]] = None,
) -> List[WorkflowNode]:
    """Resolve every node's type and backfill label/icon/category from the catalog"""
    known_types = set(catalog.types)
    resolved_nodes = []

    for node in nodes:
        declared = node.declared_type
        resolved, method = resolve_type(declared, known_types, rules, label=node.data.label)
        definition = catalog.get(resolved)

        data_update = {"type": resolved}
        if definition:
            if method == EXACT:
                data_update["icon"] = node.data.icon or definition.icon
                data_update["category"] = node.data.category or definition.category
            else:
                data_update["icon"] = definition.icon
                data_update["category"] = definition.category
            # Preserve a label the author or generator already chose
            data_update["label"] = node.data.label or definition.label

        node_update = {"data": node.data.model_copy(update=data_update)}
        if node.type is None or node.type == declared:
            node_update["type"] = "custom"

        if method != EXACT:
            message = f"Resolved node type '{declared or 'missing'}' -> '{resolved}' ({method})"
            logger.info("AUTO-FIX: %s for node %s", message, node.id)
            if notes is not None:
                notes.append(RepairNote(
                    stage="resolve_types",
                    severity="warning" if method == GENERIC_FALLBACK else "info",
                    message=message,
                    node_id=node.id,
                ))

        resolved_nodes.append(node.model_copy(update=node_update))

    return resolved_nodes


# --- Node role classification ---

def node_type(node: WorkflowNode) -> str:
    return (node.declared_type or "").lower()


def is_trigger(node: WorkflowNode, rules: RepairRules) -> bool:
    category = (node.data.category or "").lower()
    ntype = node_type(node)
    return (
        category in rules.trigger_categories
        or "trigger" in ntype
        or ntype in rules.trigger_types
    )


def is_form_trigger(node: WorkflowNode, rules: RepairRules) -> bool:
    return node_type(node) in rules.form_trigger_types


def is_conditional(node: Optional[WorkflowNode], rules: RepairRules) -> bool:
    return node is not None and node_type(node) in rules.conditional_types


def is_switch(node: Optional[WorkflowNode], rules: RepairRules) -> bool:
    return node is not None and node_type(node) in rules.switch_types


def is_branching(node: WorkflowNode, rules: RepairRules) -> bool:
    return is_conditional(node, rules) or is_switch(node, rules)


def is_log_sink(node: WorkflowNode, rules: RepairRules) -> bool:
    return node_type(node) == rules.log_sink_type


def is_failure_terminal(node: WorkflowNode, rules: RepairRules) -> bool:
    return node_type(node) == rules.failure_terminal_type
