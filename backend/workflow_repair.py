import logging
import operator
from typing import Annotated, Any, Dict, List, Optional, Set, TypedDict

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph

from branch_repair import repair_branches
from dedup import dedupe_nodes, finalize
from graph_models import RepairNote, WorkflowEdge, WorkflowGraph, WorkflowNode
from graph_rebuild import rebuild_ids
from handle_normalizer import ambiguous_branch_edges, normalize_handles
from id_allocator import TokenFactory
from layout_engine import layout
from log_sink import wire_log_sink
from node_catalog import DEFAULT_CATALOG, NodeCatalog
from repair_errors import InvalidWorkflowInput
from repair_rules import DEFAULT_RULES, RepairRules
from trigger_linearizer import linearize
from type_resolver import resolve_node_types

logger = logging.getLogger(__name__)


# --- State ---
class RepairState(TypedDict):
    nodes: List[WorkflowNode]
    edges: List[WorkflowEdge]
    explanation: Optional[str]
    notes: Annotated[List[RepairNote], operator.add]
    ambiguous_branch_edges: Set[str]


def _settings(config: RunnableConfig):
    configurable = (config or {}).get("configurable", {})
    catalog = configurable.get("catalog")
    rules = configurable.get("rules")
    return (
        DEFAULT_CATALOG if catalog is None else catalog,
        DEFAULT_RULES if rules is None else rules,
        configurable.get("token_factory"),
    )


# --- Stages ---

def resolve_types_stage(state: RepairState, config: RunnableConfig):
    catalog, rules, _ = _settings(config)
    notes = []
    nodes = resolve_node_types(state["nodes"], catalog, rules, notes)
    return {"nodes": nodes, "notes": notes}


def rebuild_ids_stage(state: RepairState, config: RunnableConfig):
    _, _, token_factory = _settings(config)
    notes = []
    nodes, edges = rebuild_ids(state["nodes"], state["edges"], token_factory, notes)
    # Nodes that shared an input id now share a fresh one, keep the first
    nodes = dedupe_nodes(nodes, notes)
    return {"nodes": nodes, "edges": edges, "notes": notes}


def linearize_stage(state: RepairState, config: RunnableConfig):
    _, rules, token_factory = _settings(config)
    notes = []
    nodes, edges = linearize(state["nodes"], state["edges"], rules, token_factory, notes)
    return {"nodes": nodes, "edges": edges, "notes": notes}


def layout_stage(state: RepairState, config: RunnableConfig):
    _, rules, _ = _settings(config)
    notes = []
    nodes = layout(state["nodes"], state["edges"], rules.layout, notes)
    return {"nodes": nodes, "notes": notes}


def normalize_handles_stage(state: RepairState, config: RunnableConfig):
    _, rules, _ = _settings(config)
    notes = []
    # Remember which branch edges had no real polarity before defaults are applied
    ambiguous = ambiguous_branch_edges(state["nodes"], state["edges"], rules)
    edges = normalize_handles(state["nodes"], state["edges"], rules, notes)
    return {"edges": edges, "ambiguous_branch_edges": ambiguous, "notes": notes}


def repair_branches_stage(state: RepairState, config: RunnableConfig):
    _, rules, _ = _settings(config)
    notes = []
    edges = repair_branches(state["nodes"], state["edges"], rules, state.get("ambiguous_branch_edges"), notes)
    return {"edges": edges, "notes": notes}


def wire_log_sink_stage(state: RepairState, config: RunnableConfig):
    _, rules, token_factory = _settings(config)
    notes = []
    nodes, edges = wire_log_sink(state["nodes"], state["edges"], rules, token_factory, notes)
    return {"nodes": nodes, "edges": edges, "notes": notes}


def finalize_stage(state: RepairState, config: RunnableConfig):
    _, _, token_factory = _settings(config)
    notes = []
    nodes, edges = finalize(state["nodes"], state["edges"], token_factory, notes)
    return {"nodes": nodes, "edges": edges, "notes": notes}


STAGES = [
    ("resolve_types", resolve_types_stage),
    ("rebuild_ids", rebuild_ids_stage),
    ("linearize", linearize_stage),
    ("layout", layout_stage),
    ("normalize_handles", normalize_handles_stage),
    ("repair_branches", repair_branches_stage),
    ("wire_log_sink", wire_log_sink_stage),
    ("finalize", finalize_stage),
]


# --- Graph Construction ---
def build_repair_graph():
    pipeline = StateGraph(RepairState)
    for name, stage in STAGES:
        pipeline.add_node(name, stage)

    pipeline.set_entry_point(STAGES[0][0])
    for (current, _), (following, _) in zip(STAGES, STAGES[1:]):
        pipeline.add_edge(current, following)
    pipeline.add_edge(STAGES[-1][0], END)
    return pipeline.compile()


repair_graph = build_repair_graph()


def repair_graph_model(
    graph: WorkflowGraph,
    catalog: Optional[NodeCatalog] = None,
    rules: Optional[RepairRules] = None,
    token_factory: Optional[TokenFactory] = None,
) -> RepairState:
    """Run every repair stage over a parsed graph and return the final state"""
    initial_state = {
        "nodes": list(graph.nodes),
        "edges": list(graph.edges),
        "explanation": graph.explanation,
        "notes": [],
        "ambiguous_branch_edges": set(),
    }
    config = {"configurable": {"catalog": catalog, "rules": rules, "token_factory": token_factory}}
    return repair_graph.invoke(initial_state, config=config)


def repair_workflow(
    raw_graph: Dict[str, Any],
    catalog: Optional[NodeCatalog] = None,
    rules: Optional[RepairRules] = None,
    token_factory: Optional[TokenFactory] = None,
    with_notes: bool = False,
) -> Dict[str, Any]:
    """Turn any {nodes, edges, explanation?} payload into a consistent workflow graph.

    Returns plain dicts ready for the editor. Only AllocationExhausted and
    DuplicateIdentifierError escape; both mean the result must not be used.
    The caller's payload is never modified.
    """
    if not isinstance(raw_graph, dict):
        raise InvalidWorkflowInput("Invalid workflow data")

    graph = WorkflowGraph.from_raw(raw_graph)
    final_state = repair_graph_model(graph, catalog, rules, token_factory)

    logger.info(
        "Repaired workflow: %d -> %d nodes, %d -> %d edges, %d note(s)",
        len(graph.nodes), len(final_state["nodes"]),
        len(graph.edges), len(final_state["edges"]),
        len(final_state["notes"]),
    )

    result = {
        "nodes": [n.model_dump(mode="json") for n in final_state["nodes"]],
        "edges": [e.model_dump(mode="json") for e in final_state["edges"]],
    }
    if final_state.get("explanation") is not None:
        result["explanation"] = final_state["explanation"]
    if with_notes:
        result["notes"] = [n.model_dump(mode="json") for n in final_state["notes"]]
    return result
