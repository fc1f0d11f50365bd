import pytest

from graph_models import WorkflowEdge, WorkflowNode
from node_catalog import DEFAULT_CATALOG
from repair_rules import RepairRules


def make_node(node_id, node_type, label=None, position=None, category=None):
    data = {"type": node_type}
    if label is not None:
        data["label"] = label
    if category is not None:
        data["category"] = category
    return WorkflowNode.model_validate({"id": node_id, "data": data, "position": position})


def make_edge(source, target, edge_id=None, source_handle=None, target_handle=None):
    return WorkflowEdge(
        id=edge_id or f"e-{source}-{target}",
        source=source,
        target=target,
        sourceHandle=source_handle,
        targetHandle=target_handle,
    )


def boxes_overlap(a, b, settings):
    return abs(a["x"] - b["x"]) < settings.node_width and abs(a["y"] - b["y"]) < settings.node_height


@pytest.fixture
def rules():
    return RepairRules()


@pytest.fixture
def catalog():
    return DEFAULT_CATALOG
