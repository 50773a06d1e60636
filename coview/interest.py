"""Title co-occurrence graph built from shared viewing across actors.

Two titles are linked when the same actor watched both. The graph is meant for
network plots, so pair generation is capped and sampled; the shared-title
table is computed separately from the raw title sets and stays exact.
"""

from __future__ import annotations

import logging
import random
import warnings
from collections import defaultdict
from typing import Iterable, Mapping, NamedTuple, Sequence

import networkx as nx
from pydantic import BaseModel

from coview.config import DEFAULT_LAYOUT_ITERATIONS, DEFAULT_MAX_PAIRS, DEFAULT_SEED
from coview.errors import CapacityExceededWarning
from coview.reporting import safe_ratio

logger = logging.getLogger(__name__)


class TitlePair(NamedTuple):
    title_a: str
    title_b: str
    actor: str
    multiplicity: int = 1


class SharedTitleStat(BaseModel):
    """How many of actor's titles were also watched by other."""

    actor: str
    other: str
    count: int
    pct: float
    exclusive: bool


class InterestGraph:
    """Undirected simple graph of titles.

    Node attributes:
        actor: primary contributing actor, for colouring
        actors: every actor that contributed the title
    Edge attributes:
        multiplicity: max multiplicity over collapsed duplicates
        actors: every actor that watched both endpoints
    """

    def __init__(self, graph: nx.Graph | None = None) -> None:
        self.graph = graph if graph is not None else nx.Graph()

    def nodes(self) -> list[str]:
        return list(self.graph.nodes)

    def edges(self) -> list[tuple[str, str]]:
        return [_edge_key(a, b) for a, b in self.graph.edges]

    def has_edge(self, title_a: str, title_b: str) -> bool:
        return self.graph.has_edge(title_a, title_b)

    def number_of_nodes(self) -> int:
        return self.graph.number_of_nodes()

    def number_of_edges(self) -> int:
        return self.graph.number_of_edges()

    def node_actor(self, title: str) -> str:
        return self.graph.nodes[title]["actor"]

    def to_pairs(self) -> list[TitlePair]:
        """Expand the graph back into pair rows, one per contributing actor.

        Each node contributes a self-pair per actor so that titles without
        edges survive another round through simplify.
        """
        pairs: list[TitlePair] = []
        for title, data in self.graph.nodes(data=True):
            for actor in data["actors"]:
                pairs.append(TitlePair(title, title, actor))
        for a, b, data in self.graph.edges(data=True):
            title_a, title_b = _edge_key(a, b)
            for actor in data["actors"]:
                pairs.append(TitlePair(title_a, title_b, actor, data["multiplicity"]))
        return pairs

    def _snapshot(self) -> tuple[list, list]:
        nodes = sorted((title, tuple(data["actors"])) for title, data in self.graph.nodes(data=True))
        edges = sorted(
            (_edge_key(a, b), data["multiplicity"], tuple(data["actors"]))
            for a, b, data in self.graph.edges(data=True)
        )
        return nodes, edges

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InterestGraph):
            return NotImplemented
        return self._snapshot() == other._snapshot()

    def __repr__(self) -> str:
        return f"InterestGraph(nodes={self.number_of_nodes()}, edges={self.number_of_edges()})"


def _edge_key(a: str, b: str) -> tuple[str, str]:
    return (a, b) if a <= b else (b, a)


def build_title_pairs(titles_by_actor: Mapping[str, Iterable[str]]) -> list[TitlePair]:
    """Cross join each actor's titles with themselves.

    Self-pairs are kept here and dropped by simplify. Actors and titles are
    walked in sorted order so the output is reproducible.
    """
    pairs: list[TitlePair] = []
    for actor in sorted(titles_by_actor):
        titles = sorted(set(titles_by_actor[actor]))
        for title_a in titles:
            for title_b in titles:
                pairs.append(TitlePair(title_a, title_b, actor))
    logger.debug("Built %d title pairs for %d actors", len(pairs), len(titles_by_actor))
    return pairs


def cap_and_sample(
    pairs: Sequence[TitlePair],
    max_pairs: int = DEFAULT_MAX_PAIRS,
    seed: int = DEFAULT_SEED,
) -> list[TitlePair]:
    """Uniformly sample down to max_pairs rows when over the cap.

    This is lossy: with large exports the graph is drawn from a sample. The
    selection is `random.Random(seed).sample(range(len(pairs)), max_pairs)`,
    with indices re-sorted so kept rows stay in input order. Same input and
    seed give the same rows.

    Emits CapacityExceededWarning when sampling happens.
    """
    if len(pairs) <= max_pairs:
        return list(pairs)

    message = f"{len(pairs)} title pairs exceed the cap of {max_pairs}; sampling"
    logger.warning(message)
    warnings.warn(message, CapacityExceededWarning, stacklevel=2)

    indices = sorted(random.Random(seed).sample(range(len(pairs)), max_pairs))
    return [pairs[i] for i in indices]


def simplify(source: Iterable[TitlePair] | InterestGraph) -> InterestGraph:
    """Collapse pair rows into a simple graph.

    Self-loops are dropped (their titles are still nodes). Duplicate edges
    between the same two titles become one edge; multiplicity is combined by
    max and contributing actors by union.
    """
    pairs = source.to_pairs() if isinstance(source, InterestGraph) else source

    node_actors: defaultdict[str, set[str]] = defaultdict(set)
    edge_multiplicity: dict[tuple[str, str], int] = {}
    edge_actors: defaultdict[tuple[str, str], set[str]] = defaultdict(set)

    for title_a, title_b, actor, multiplicity in pairs:
        node_actors[title_a].add(actor)
        node_actors[title_b].add(actor)
        if title_a == title_b:
            continue
        key = _edge_key(title_a, title_b)
        edge_multiplicity[key] = max(edge_multiplicity.get(key, multiplicity), multiplicity)
        edge_actors[key].add(actor)

    graph = nx.Graph()
    for title in sorted(node_actors):
        actors = tuple(sorted(node_actors[title]))
        graph.add_node(title, actor=actors[0], actors=actors)
    for key in sorted(edge_multiplicity):
        graph.add_edge(
            *key,
            multiplicity=edge_multiplicity[key],
            actors=tuple(sorted(edge_actors[key])),
        )
    return InterestGraph(graph)


def layout(
    graph: InterestGraph,
    seed: int = DEFAULT_SEED,
    iterations: int = DEFAULT_LAYOUT_ITERATIONS,
) -> dict[str, tuple[float, float]]:
    """Fruchterman-Reingold positions for each title.

    Purely presentational. Stable for the same graph and seed.
    """
    if graph.number_of_nodes() == 0:
        return {}
    positions = nx.spring_layout(graph.graph, seed=seed, iterations=iterations)
    return {title: (float(xy[0]), float(xy[1])) for title, xy in positions.items()}


def build_interest_graph(
    titles_by_actor: Mapping[str, Iterable[str]],
    max_pairs: int = DEFAULT_MAX_PAIRS,
    seed: int = DEFAULT_SEED,
) -> InterestGraph:
    """Pairs, cap, simplify."""
    pairs = build_title_pairs(titles_by_actor)
    return simplify(cap_and_sample(pairs, max_pairs=max_pairs, seed=seed))


def shared_title_table(titles_by_actor: Mapping[str, Iterable[str]]) -> list[SharedTitleStat]:
    """Exact shared-title counts for every ordered pair of actors.

    For (X, Y): count of X's titles that Y also watched, and that count as a
    share of X's titles. The diagonal (X, X) is the exclusive baseline.
    """
    title_sets = {actor: set(titles) for actor, titles in titles_by_actor.items()}
    actors = sorted(title_sets)

    table: list[SharedTitleStat] = []
    for actor in actors:
        own = title_sets[actor]
        for other in actors:
            count = len(own & title_sets[other])
            table.append(
                SharedTitleStat(
                    actor=actor,
                    other=other,
                    count=count,
                    pct=safe_ratio(count, len(own)),
                    exclusive=actor == other,
                )
            )
    return table
