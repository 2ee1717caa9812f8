"""
In-memory river network and upstream traversal.

The network is a directed edge set where water flows from ``id`` toward
``toid``. Several edges may share a ``toid`` (a confluence) and an edge
whose ``toid`` is null drains out of the basin.

Traversal collects the connected upstream closure of an outlet and orders
it so that every node follows all of its upstream contributors (headwaters
first, outlet last). Equally eligible siblings are visited in ascending id
order; nothing depends on that choice beyond reproducibility.
"""

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

import pandas as pd

from hfsubset.core.schema import as_id_key, id_keys, key_set

logger = logging.getLogger(__name__)

# Nexus ids mark confluence points rather than mapped features
JUNCTION_PATTERN = re.compile(r"^nex-")


def is_junction(node: str) -> bool:
    """Whether ``node`` is a junction marker (a nexus) by naming convention."""
    return bool(JUNCTION_PATTERN.match(node))


class NetworkGraph:
    """
    Directed edge set restricted to one subnetwork.

    Edges are deduplicated on construction and never modified afterwards.
    Node ids are canonical string keys.
    """

    def __init__(self, edges: Iterable[tuple[str, str | None]]):
        self._edges: list[tuple[str, str | None]] = []
        self._outgoing: dict[str, list[str | None]] = {}
        self._upstream: dict[str, list[str]] = {}

        seen: set[tuple[str, str | None]] = set()
        for edge in edges:
            if edge in seen:
                continue
            seen.add(edge)
            self._edges.append(edge)

            node, toid = edge
            self._outgoing.setdefault(node, []).append(toid)
            if toid is not None:
                self._upstream.setdefault(toid, []).append(node)

        for contributors in self._upstream.values():
            contributors.sort()

    @classmethod
    def from_frame(cls, edges: pd.DataFrame) -> "NetworkGraph":
        """
        Build a graph from a table with ``id`` and ``toid`` columns.

        Rows with a null ``id`` are ignored; a null ``toid`` marks an outlet.
        """
        ids = id_keys(edges["id"])
        toids = id_keys(edges["toid"])
        pairs = [(node, toid) for node, toid in zip(ids, toids, strict=True) if node is not None]

        graph = cls(pairs)
        logger.debug(f"Built network graph with {len(graph)} edge(s) from {len(edges)} row(s)")
        return graph

    def __len__(self) -> int:
        return len(self._edges)

    def __contains__(self, node: object) -> bool:
        key = as_id_key(node)
        return key in self._outgoing or key in self._upstream

    def __iter__(self) -> Iterator[tuple[str, str | None]]:
        return iter(self._edges)

    def upstream_of(self, node: str) -> list[str]:
        """Direct upstream contributors of ``node``, ascending."""
        return list(self._upstream.get(node, []))

    def downstream_of(self, node: str) -> list[str]:
        """Nodes ``node`` drains into."""
        return [toid for toid in self._outgoing.get(node, []) if toid is not None]

    def to_frame(self, nodes: Iterable[str] | None = None) -> pd.DataFrame:
        """
        Return edges as an ``{id, toid}`` table.

        Args:
            nodes: If given, only edges leaving these nodes, in this order
        """
        if nodes is None:
            rows = list(self._edges)
        else:
            rows = []
            for node in nodes:
                rows.extend((node, toid) for toid in self._outgoing.get(node, []))

        return pd.DataFrame(rows, columns=["id", "toid"], dtype=object)


@dataclass(frozen=True)
class TraversalResult:
    """
    Ordered upstream closure of an outlet.

    Attributes:
        outlet: The node traversal started from
        order: Node ids, each after all of its upstream contributors
        edges: The ``{id, toid}`` rows leaving the nodes in ``order``
    """

    outlet: str
    order: tuple[str, ...]
    edges: pd.DataFrame = field(compare=False, repr=False)

    def __len__(self) -> int:
        return len(self.order)

    @property
    def ids(self) -> frozenset[str]:
        """Node ids of the closure."""
        return frozenset(self.order)

    def feature_ids(self) -> frozenset[str]:
        """
        Ids to filter feature layers with.

        Includes the ``toid`` of every retained edge, so the nexus a basin
        drains into is extracted alongside its flowpaths.
        """
        return self.ids | key_set(self.edges["toid"])


def traverse(edges: NetworkGraph | pd.DataFrame, outlet: object) -> TraversalResult:
    """
    Collect the topologically sorted upstream closure of ``outlet``.

    Args:
        edges: Subnetwork as a NetworkGraph or an ``{id, toid}`` table
        outlet: Most downstream node of the traversal

    Returns:
        TraversalResult ordered headwaters first, outlet last. An outlet with
        no edges in the subnetwork yields just ``(outlet,)``.

    Example:
        >>> edges = pd.DataFrame({"id": ["n3", "n2", "n4"], "toid": ["n2", "n1", "n2"]})
        >>> traverse(edges, "n1").order
        ('n3', 'n4', 'n2', 'n1')
    """
    graph = edges if isinstance(edges, NetworkGraph) else NetworkGraph.from_frame(edges)
    start = as_id_key(outlet)
    if start is None:
        raise ValueError("Traversal outlet cannot be empty")

    order: list[str] = []
    visited: set[str] = set()
    stack: list[tuple[str, bool]] = [(start, False)]

    # Iterative depth-first post-order over the reversed graph
    while stack:
        node, expanded = stack.pop()

        if expanded:
            order.append(node)
            continue

        if node in visited:
            continue
        visited.add(node)

        stack.append((node, True))
        for upstream in reversed(graph.upstream_of(node)):
            if upstream not in visited:
                stack.append((upstream, False))

    if start not in graph:
        logger.warning(f"Outlet '{start}' has no edges in the subnetwork; returning it alone")

    return TraversalResult(outlet=start, order=tuple(order), edges=graph.to_frame(order))


def trim_junction(result: TraversalResult) -> TraversalResult:
    """
    Drop a trailing junction marker and its edge from a traversal.

    Junction markers are not physical features, and the edge leaving one
    points outside the basin.
    """
    if not result.order or not is_junction(result.order[-1]):
        return result

    last = result.order[-1]
    logger.debug(f"Trimming junction marker '{last}' from traversal")

    return TraversalResult(
        outlet=result.outlet,
        order=result.order[:-1],
        edges=result.edges[result.edges["id"] != last].reset_index(drop=True),
    )


def most_downstream(nodes: Iterable[str], graph: NetworkGraph) -> str:
    """
    Pick the most downstream of several candidate nodes.

    A candidate that drains into none of the others wins; ties go to the
    smallest id.
    """
    candidates = sorted(set(nodes))
    if not candidates:
        raise ValueError("No candidate nodes given")

    members = set(candidates)
    outlets = [node for node in candidates if not any(down in members for down in graph.downstream_of(node))]

    return (outlets or candidates)[0]
