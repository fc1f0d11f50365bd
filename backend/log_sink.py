import logging
from typing import List, Optional, Set, Tuple

from graph_models import Position, RepairNote, WorkflowEdge, WorkflowNode
from id_allocator import TokenFactory, allocate_id
from layout_engine import place_without_overlap
from repair_rules import RepairRules
from type_resolver import is_conditional, is_failure_terminal, is_log_sink, is_switch, is_trigger

logger = logging.getLogger(__name__)


def _sink_variant(sink: WorkflowNode, node_id: str, label: str, message: str, position: Position) -> WorkflowNode:
    config = {**sink.data.config, "level": "info", "message": message}
    data = sink.data.model_copy(update={"label": label, "config": config})
    return sink.model_copy(update={"id": node_id, "data": data, "position": position})


def _terminal_handle(node: WorkflowNode, rules: RepairRules) -> str:
    if is_conditional(node, rules):
        return "true"
    if is_switch(node, rules):
        return rules.switch_default_handle
    return rules.default_source_handle


def wire_log_sink(
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
    rules: RepairRules,
    token_factory: Optional[TokenFactory] = None,
    notes: Optional[List[RepairNote]] = None,
) -> Tuple[List[WorkflowNode], List[WorkflowEdge]]:
    """Feed the log sink only from terminal nodes, splitting it when a failure path exists"""
    sinks = [n for n in nodes if is_log_sink(n, rules)]
    if len(sinks) != 1:
        return list(nodes), list(edges)
    sink = sinks[0]
    by_id = {n.id: n for n in nodes}

    def note(message, severity="info", node_id=None):
        logger.info("AUTO-FIX: %s", message)
        if notes is not None:
            notes.append(RepairNote(stage="wire_log_sink", severity=severity, message=message, node_id=node_id))

    # The sink is never fed by a trigger and never feeds anything
    kept_edges = []
    for edge in edges:
        if edge.source == sink.id:
            note(f"Removed outgoing edge {edge.id} from log sink", node_id=sink.id)
            continue
        source = by_id.get(edge.source)
        if edge.target == sink.id and source is not None and is_trigger(source, rules):
            note(f"Removed trigger -> log edge {edge.id}", "warning", sink.id)
            continue
        kept_edges.append(edge)
    edges = kept_edges

    # Terminal nodes: no outgoing edge, not a trigger, not the sink
    sources = {e.source for e in edges}
    terminals = [
        n for n in nodes
        if n.id not in sources and not is_trigger(n, rules) and n.id != sink.id
    ]
    if not terminals:
        return list(nodes), edges

    has_failure = any(is_failure_terminal(n, rules) for n in terminals)
    has_success = any(not is_failure_terminal(n, rules) for n in terminals)

    success_sink = failure_sink = sink
    if has_failure and has_success:
        node_ids: Set[str] = {n.id for n in nodes}
        base = sink.position or Position(x=0, y=0)
        offset = rules.layout.split_sink_offset
        others = [n.position for n in nodes if n.id != sink.id and n.position is not None]

        success_position = place_without_overlap(Position(x=base.x, y=base.y - offset), others, rules.layout)
        success_sink = _sink_variant(
            sink,
            allocate_id("node_log_success", node_ids, token_factory),
            rules.success_sink_label,
            rules.success_sink_message,
            success_position,
        )
        failure_position = place_without_overlap(
            Position(x=base.x, y=base.y + offset), others + [success_position], rules.layout
        )
        failure_sink = _sink_variant(
            sink,
            allocate_id("node_log_failure", node_ids, token_factory),
            rules.failure_sink_label,
            rules.failure_sink_message,
            failure_position,
        )

        nodes = [n for n in nodes if n.id != sink.id] + [success_sink, failure_sink]
        edges = [e for e in edges if e.target != sink.id]
        note(f"Split log sink {sink.id} into success and failure sinks", node_id=sink.id)
    else:
        nodes = list(nodes)

    edge_ids: Set[str] = {e.id for e in edges if e.id}
    pairs = {(e.source, e.target) for e in edges}
    for terminal in terminals:
        target = failure_sink if is_failure_terminal(terminal, rules) else success_sink
        if (terminal.id, target.id) in pairs:
            continue
        edges.append(WorkflowEdge(
            id=allocate_id(f"edge_{terminal.id}_{target.id}", edge_ids, token_factory),
            source=terminal.id,
            target=target.id,
            sourceHandle=_terminal_handle(terminal, rules),
            targetHandle=rules.default_target_handle,
        ))
        pairs.add((terminal.id, target.id))
        note(f"Connected terminal {terminal.id} -> log sink {target.id}", node_id=terminal.id)

    return nodes, edges
