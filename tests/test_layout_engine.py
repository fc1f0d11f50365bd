from itertools import combinations

from conftest import boxes_overlap, make_edge, make_node
from graph_models import Position
from layout_engine import compute_levels, layout, place_without_overlap
from repair_rules import LayoutSettings


def positions(nodes):
    return {n.id: n.position for n in nodes}


class TestComputeLevels:
    def test_longest_path(self):
        nodes = [make_node(i, "email") for i in "abcd"]
        edges = [make_edge("a", "b"), make_edge("b", "c"), make_edge("a", "c"), make_edge("c", "d")]

        assert compute_levels(nodes, edges) == {"a": 0, "b": 1, "c": 2, "d": 3}

    def test_cycle_terminates(self):
        nodes = [make_node(i, "email") for i in "abc"]
        edges = [make_edge("a", "b"), make_edge("b", "c"), make_edge("c", "b")]

        levels = compute_levels(nodes, edges)

        assert set(levels) == {"a", "b", "c"}
        assert max(levels.values()) <= 2

    def test_pure_cycle_gets_seeded(self):
        nodes = [make_node(i, "email") for i in "ab"]
        levels = compute_levels(nodes, [make_edge("a", "b"), make_edge("b", "a")])
        assert set(levels) == {"a", "b"}


class TestPlaceWithoutOverlap:
    def test_free_spot_unchanged(self):
        settings = LayoutSettings()
        spot = Position(x=0, y=0)
        assert place_without_overlap(spot, [Position(x=1000, y=0)], settings) == spot

    def test_shifts_right_of_blockers(self):
        settings = LayoutSettings()
        placed = [Position(x=0, y=0), Position(x=330, y=0)]

        moved = place_without_overlap(Position(x=10, y=0), placed, settings)

        assert all(not boxes_overlap(moved.model_dump(), p.model_dump(), settings) for p in placed)


class TestLayout:
    def test_positions_missing_nodes(self):
        notes = []
        nodes = [make_node("t", "webhook"), make_node("a", "email"), make_node("b", "email")]
        edges = [make_edge("t", "a"), make_edge("t", "b")]

        out = positions(layout(nodes, edges, notes=notes))

        assert out["t"].y == 100
        assert out["a"].y == out["b"].y == 320
        assert out["a"].x != out["b"].x
        assert notes[0].stage == "layout"

    def test_existing_positions_untouched(self):
        nodes = [make_node("t", "webhook", position={"x": 5, "y": 7}), make_node("a", "email")]

        out = positions(layout(nodes, [make_edge("t", "a")]))

        assert out["t"] == Position(x=5, y=7)
        assert out["a"] is not None

    def test_all_positioned_is_noop(self):
        nodes = [make_node("t", "webhook", position={"x": 0, "y": 0})]
        assert layout(nodes, []) == nodes

    def test_new_nodes_avoid_user_positions(self):
        settings = LayoutSettings()
        # Sits exactly where the computed slot for "a" would land
        nodes = [
            make_node("t", "webhook", position={"x": 500, "y": 500}),
            make_node("x", "email", position={"x": 0, "y": 100}),
            make_node("a", "email"),
            make_node("b", "email"),
        ]

        out = layout(nodes, [], settings)

        for first, second in combinations(out, 2):
            assert not boxes_overlap(first.position.model_dump(), second.position.model_dump(), settings)

    def test_no_overlap_on_wide_graph(self):
        settings = LayoutSettings()
        nodes = [make_node("t", "webhook")] + [make_node(f"n{i}", "email") for i in range(8)]
        edges = [make_edge("t", f"n{i}") for i in range(8)]

        out = layout(nodes, edges, settings)

        for first, second in combinations(out, 2):
            assert not boxes_overlap(first.position.model_dump(), second.position.model_dump(), settings)
