"""Tests for the title co-occurrence graph and shared-title table."""

import random
import warnings

import networkx as nx
import pytest

from coview.errors import CapacityExceededWarning
from coview.interest import (
    InterestGraph,
    SharedTitleStat,
    TitlePair,
    build_interest_graph,
    build_title_pairs,
    cap_and_sample,
    layout,
    shared_title_table,
    simplify,
)

EXAMPLE = {"X": {"a", "b"}, "Y": {"b", "c"}}


class TestBuildTitlePairs:
    """Tests for build_title_pairs."""

    def test_cross_join_per_actor(self):
        pairs = build_title_pairs(EXAMPLE)
        assert pairs == [
            TitlePair("a", "a", "X"),
            TitlePair("a", "b", "X"),
            TitlePair("b", "a", "X"),
            TitlePair("b", "b", "X"),
            TitlePair("b", "b", "Y"),
            TitlePair("b", "c", "Y"),
            TitlePair("c", "b", "Y"),
            TitlePair("c", "c", "Y"),
        ]

    def test_pair_count_is_square_of_titles(self):
        pairs = build_title_pairs({"X": {"a", "b", "c"}, "Y": {"d"}})
        assert len(pairs) == 9 + 1

    def test_empty(self):
        assert build_title_pairs({}) == []


class TestCapAndSample:
    """Tests for cap_and_sample."""

    def test_under_cap_passes_through(self):
        pairs = build_title_pairs(EXAMPLE)
        with warnings.catch_warnings():
            warnings.simplefilter("error", CapacityExceededWarning)
            assert cap_and_sample(pairs, max_pairs=8) == pairs

    def test_over_cap_samples_exactly(self):
        pairs = [TitlePair(f"t{i}", f"t{i + 1}", "X") for i in range(100)]
        with pytest.warns(CapacityExceededWarning):
            sampled = cap_and_sample(pairs, max_pairs=10, seed=7)

        assert len(sampled) == 10
        assert len(set(sampled)) == 10
        assert all(p in pairs for p in sampled)

    def test_sampling_keeps_input_order(self):
        pairs = [TitlePair(f"t{i}", f"t{i + 1}", "X") for i in range(100)]
        with pytest.warns(CapacityExceededWarning):
            sampled = cap_and_sample(pairs, max_pairs=25, seed=3)
        positions = [pairs.index(p) for p in sampled]
        assert positions == sorted(positions)

    def test_seeding_contract(self):
        """Selection follows random.Random(seed).sample over row indices."""
        pairs = [TitlePair(f"t{i}", f"t{i + 1}", "X") for i in range(50)]
        expected = [pairs[i] for i in sorted(random.Random(11).sample(range(50), 20))]
        with pytest.warns(CapacityExceededWarning):
            assert cap_and_sample(pairs, max_pairs=20, seed=11) == expected

    def test_reproducible(self):
        pairs = [TitlePair(f"t{i}", f"t{i + 1}", "X") for i in range(100)]
        with pytest.warns(CapacityExceededWarning):
            first = cap_and_sample(pairs, max_pairs=10, seed=42)
        with pytest.warns(CapacityExceededWarning):
            second = cap_and_sample(pairs, max_pairs=10, seed=42)
        assert first == second


class TestSimplify:
    """Tests for simplify."""

    def test_example_graph(self):
        graph = simplify(build_title_pairs(EXAMPLE))

        assert sorted(graph.nodes()) == ["a", "b", "c"]
        assert sorted(graph.edges()) == [("a", "b"), ("b", "c")]
        assert not graph.has_edge("a", "c")
        assert nx.number_of_selfloops(graph.graph) == 0

    def test_node_actor_tags(self):
        graph = simplify(build_title_pairs(EXAMPLE))
        assert graph.node_actor("a") == "X"
        assert graph.node_actor("c") == "Y"
        assert graph.graph.nodes["b"]["actors"] == ("X", "Y")

    def test_duplicates_collapse_by_max(self):
        pairs = [
            TitlePair("a", "b", "X", 2),
            TitlePair("b", "a", "Y", 5),
            TitlePair("a", "b", "Z", 1),
        ]
        graph = simplify(pairs)

        assert graph.number_of_edges() == 1
        data = graph.graph.edges["a", "b"]
        assert data["multiplicity"] == 5
        assert data["actors"] == ("X", "Y", "Z")

    def test_self_pair_only_title_is_node(self):
        graph = simplify(build_title_pairs({"X": {"solo"}}))
        assert graph.nodes() == ["solo"]
        assert graph.number_of_edges() == 0

    def test_idempotent(self):
        once = simplify(build_title_pairs({"X": {"a", "b", "c"}, "Y": {"c", "d"}, "Z": {"e"}}))
        twice = simplify(once)
        assert twice == once
        assert simplify(twice) == once

    def test_idempotent_on_sampled_pairs(self):
        pairs = build_title_pairs({"X": {f"t{i}" for i in range(10)}, "Y": {"t1", "u"}})
        with pytest.warns(CapacityExceededWarning):
            sampled = cap_and_sample(pairs, max_pairs=30, seed=1)
        once = simplify(sampled)
        assert simplify(once) == once

    def test_empty(self):
        graph = simplify([])
        assert graph.number_of_nodes() == 0
        assert graph == InterestGraph()


class TestLayout:
    """Tests for layout."""

    def test_positions_for_every_node(self):
        graph = simplify(build_title_pairs(EXAMPLE))
        positions = layout(graph, seed=42)

        assert set(positions) == {"a", "b", "c"}
        for x, y in positions.values():
            assert isinstance(x, float)
            assert isinstance(y, float)

    def test_stable_for_same_seed(self):
        graph = simplify(build_title_pairs({"X": {"a", "b", "c"}, "Y": {"c", "d"}}))
        assert layout(graph, seed=5) == layout(graph, seed=5)

    def test_empty_graph(self):
        assert layout(InterestGraph()) == {}


class TestBuildInterestGraph:
    """Tests for the pairs -> cap -> simplify pipeline."""

    def test_uncapped(self):
        graph = build_interest_graph(EXAMPLE)
        assert sorted(graph.edges()) == [("a", "b"), ("b", "c")]

    def test_capped_warns(self):
        with pytest.warns(CapacityExceededWarning):
            graph = build_interest_graph(EXAMPLE, max_pairs=3, seed=42)
        assert nx.number_of_selfloops(graph.graph) == 0


class TestSharedTitleTable:
    """Tests for shared_title_table."""

    def test_example(self):
        table = {(s.actor, s.other): s for s in shared_title_table(EXAMPLE)}

        assert table["X", "Y"] == SharedTitleStat(actor="X", other="Y", count=1, pct=0.5, exclusive=False)
        assert table["Y", "X"].count == 1
        assert len(table) == 4

    def test_diagonal_is_full(self):
        titles = {"X": {"a", "b", "c"}, "Y": {"c"}, "Z": {"q", "r"}}
        for stat in shared_title_table(titles):
            if stat.actor == stat.other:
                assert stat.exclusive
                assert stat.pct == 1.0
                assert stat.count == len(titles[stat.actor])

    def test_exact_regardless_of_cap(self):
        """The table reads title sets directly, never the sampled graph."""
        titles = {"X": {f"t{i}" for i in range(30)}, "Y": {f"t{i}" for i in range(15)}}
        table = {(s.actor, s.other): s for s in shared_title_table(titles)}
        assert table["X", "Y"].count == 15
        assert table["X", "Y"].pct == 0.5
        assert table["Y", "X"].pct == 1.0

    def test_empty(self):
        assert shared_title_table({}) == []
