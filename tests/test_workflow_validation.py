from conftest import make_edge, make_node
from graph_models import WorkflowNode
from workflow_validation import (
    detect_cycles,
    normalize_condition_config,
    normalize_workflow_graph,
    validate_workflow,
    validate_workflow_graph,
)


def codes(result):
    return [e.code for e in result.errors]


class TestValidateWorkflow:
    def test_disconnected_and_missing_branches(self, rules):
        nodes = [make_node("t", "webhook"), make_node("c", "if_else", label="Check"), make_node("x", "email")]
        edges = [make_edge("t", "c"), make_edge("c", "x", source_handle="false")]

        issues = validate_workflow(nodes, edges, rules)

        assert [(i.node_id, i.severity) for i in issues] == [("c", "error")]
        assert "TRUE" in issues[0].message

    def test_orphan_warning(self, rules):
        issues = validate_workflow([make_node("t", "webhook"), make_node("x", "email", label="Mail")], [], rules)
        assert [i.message for i in issues] == ['Node "Mail" is disconnected (no input).']


class TestValidateWorkflowGraph:
    def test_empty(self, rules):
        assert codes(validate_workflow_graph([], [], rules)) == ["NO_NODES"]

    def test_no_trigger(self, rules):
        assert codes(validate_workflow_graph([make_node("a", "email")], [], rules)) == ["NO_TRIGGER"]

    def test_valid_chain(self, rules):
        nodes = [make_node("t", "webhook"), make_node("a", "email"), make_node("b", "slack_message")]
        result = validate_workflow_graph(nodes, [make_edge("t", "a"), make_edge("a", "b")], rules)

        assert result.valid
        assert result.errors == []

    def test_topology_problems(self, rules):
        nodes = [make_node("t", "webhook"), make_node("t2", "schedule"), make_node("a", "email"),
                 make_node("b", "email"), make_node("m", "merge")]
        edges = [make_edge("t", "a"), make_edge("t", "b"), make_edge("a", "m"), make_edge("b", "m"),
                 make_edge("t2", "a")]

        result = validate_workflow_graph(nodes, edges, rules)

        assert not result.valid
        assert "MULTIPLE_TRIGGERS" in codes(result)
        assert "TOO_MANY_OUTGOING" in codes(result)
        assert "MULTIPLE_INCOMING" in codes(result)
        assert "UNREACHABLE_NODE" in codes(result)
        # merge nodes accept several inputs
        assert all(e.node_id != "m" for e in result.errors)

    def test_cycle(self, rules):
        nodes = [make_node("t", "webhook"), make_node("a", "email"), make_node("b", "email")]
        edges = [make_edge("t", "a"), make_edge("a", "b"), make_edge("b", "a")]

        assert "CYCLE_DETECTED" in codes(validate_workflow_graph(nodes, edges, rules))
        assert detect_cycles(nodes, edges)
        assert not detect_cycles(nodes, edges[:2])

    def test_long_chain(self, rules):
        nodes = [make_node("t", "webhook")] + [make_node(f"n{i}", "email") for i in range(5000)]
        ids = [n.id for n in nodes]
        edges = [make_edge(s, t) for s, t in zip(ids, ids[1:])]

        assert validate_workflow_graph(nodes, edges, rules).valid
        assert detect_cycles(nodes, edges + [make_edge("n4999", "n10")])

    def test_branch_warnings(self, rules):
        nodes = [make_node("t", "webhook"), make_node("c", "if_else", label="Check")]
        result = validate_workflow_graph(nodes, [make_edge("t", "c")], rules)

        assert result.valid
        assert any("Check" in w for w in result.warnings)


class TestNormalizeWorkflowGraph:
    def test_legacy_condition_string(self, rules):
        node = WorkflowNode.model_validate({"id": "c", "data": {"type": "if_else", "config": {"condition": "x > 1"}}})
        assert normalize_condition_config(node, rules).data.config["conditions"] == [{"expression": "x > 1"}]

    def test_conditions_coerced_to_list(self, rules):
        node = WorkflowNode.model_validate({"id": "c", "data": {"type": "if_else", "config": {"conditions": "a"}}})
        assert normalize_condition_config(node, rules).data.config["conditions"] == [{"expression": "a"}]

    def test_non_conditional_untouched(self, rules):
        node = make_node("a", "email")
        assert normalize_condition_config(node, rules) is node

    def test_dangling_and_duplicate_edges(self, rules):
        nodes = [make_node("a", "webhook"), make_node("b", "email")]
        edges = [make_edge("a", "b", edge_id="1"), make_edge("a", "b", edge_id="2"), make_edge("a", "ghost")]

        result = normalize_workflow_graph(nodes, edges, rules)

        assert [e.id for e in result.edges] == ["1"]
        assert result.warnings == [
            "Removed 1 invalid edge(s) referencing non-existent nodes",
            "Removed 1 duplicate edge(s)",
        ]
