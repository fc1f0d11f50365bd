import pytest

from conftest import make_edge, make_node
from dedup import check_integrity, dedupe_edges, dedupe_nodes, finalize, find_duplicate_ids
from repair_errors import DuplicateIdentifierError


class TestDedupeNodes:
    def test_first_occurrence_wins(self):
        notes = []
        nodes = [make_node("n1", "webhook", label="first"), make_node("n1", "email", label="second")]

        [node] = dedupe_nodes(nodes, notes)

        assert node.label == "first"
        assert notes[0].node_id == "n1"


class TestDedupeEdges:
    def test_dangling_edges_dropped(self):
        nodes = [make_node("a", "webhook"), make_node("b", "email")]
        edges = [make_edge("a", "b"), make_edge("a", "ghost"), make_edge(None, "b")]

        assert [e.target for e in dedupe_edges(nodes, edges)] == ["b"]

    def test_same_ports_collapse(self):
        nodes = [make_node("a", "webhook"), make_node("b", "email")]
        edges = [make_edge("a", "b", edge_id="e1", source_handle="output"),
                 make_edge("a", "b", edge_id="e2", source_handle="output")]

        assert [e.id for e in dedupe_edges(nodes, edges)] == ["e1"]

    def test_different_handles_both_kept(self):
        nodes = [make_node("c", "if_else"), make_node("b", "email")]
        edges = [make_edge("c", "b", edge_id="e1", source_handle="true"),
                 make_edge("c", "b", edge_id="e2", source_handle="false")]

        assert len(dedupe_edges(nodes, edges)) == 2

    def test_repeated_id_counts_as_duplicate(self):
        nodes = [make_node("a", "webhook"), make_node("b", "email"), make_node("c", "email")]
        edges = [make_edge("a", "b", edge_id="e1"), make_edge("b", "c", edge_id="e1")]

        out = dedupe_edges(nodes, edges)

        assert [(e.id, e.target) for e in out] == [("e1", "b")]

    def test_missing_id_is_allocated(self):
        nodes = [make_node("a", "webhook"), make_node("b", "email")]
        edge = make_edge("a", "b").model_copy(update={"id": None})

        [out] = dedupe_edges(nodes, [edge])

        assert out.id.startswith("edge_a_b_")

    def test_kept_ids_are_stable(self):
        nodes = [make_node("a", "webhook"), make_node("b", "email")]
        edges = [make_edge("a", "b", edge_id="keep")]
        assert dedupe_edges(nodes, edges)[0].id == "keep"


class TestIntegrity:
    def test_find_duplicate_ids(self):
        assert find_duplicate_ids([make_node("a", "x"), make_node("b", "x"), make_node("a", "x")]) == ["a"]

    def test_check_integrity_raises_with_offending_ids(self):
        nodes = [make_node("a", "webhook"), make_node("a", "email")]
        edges = [make_edge("a", "a", edge_id="e"), make_edge("a", "a", edge_id="e")]

        with pytest.raises(DuplicateIdentifierError) as excinfo:
            check_integrity(nodes, edges)

        assert excinfo.value.node_ids == ["a"]
        assert excinfo.value.edge_ids == ["e"]

    def test_finalize_cleans_up(self):
        nodes = [make_node("a", "webhook"), make_node("a", "email"), make_node("b", "email")]
        edges = [make_edge("a", "b", edge_id="e"), make_edge("a", "b", edge_id="e")]

        out_nodes, out_edges = finalize(nodes, edges)

        assert [n.id for n in out_nodes] == ["a", "b"]
        assert [e.id for e in out_edges] == ["e"]
