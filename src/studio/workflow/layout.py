"""Layered top-to-bottom layout for workflow graphs using NetworkX.

Phases:
  1. Cycle removal (greedy feedback-arc-set ordering)
  2. Rank assignment (longest path from the sources)
  3. Route nodes for edges spanning more than one rank
  4. Crossing minimisation (barycenter sweeps)
  5. Coordinate assignment and edge routing

Edges leaving a jump node never enter the layout graph; they are drawn as
references, so they get an empty point list and do not affect ranking.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

import networkx as nx
import structlog

from studio.workflow.config import WorkflowSettings, workflow_settings
from studio.workflow.height import estimate_height, node_width
from studio.workflow.models import (
    Layout,
    NodeVariant,
    Point,
    WorkflowEdge,
    WorkflowNode,
)

logger = structlog.get_logger(__name__)

ROUTE_PREFIX = "__route_"
ALIGN_ITERATIONS = 4

Size = tuple[float, float]


# ─── Cycle removal ────────────────────────────────────────────────────────────


def feedback_ordering(graph: nx.DiGraph) -> list[str]:
    """Order nodes so that few edges point backwards (Eades-Lin-Smyth).

    Sinks are peeled to the tail, sources to the head; when only cycles
    remain the node with the largest out-in surplus goes to the head.
    Ties resolve in insertion order, so the result is deterministic.
    """
    active: dict[str, None] = dict.fromkeys(graph.nodes)
    out_deg = dict(graph.out_degree())
    in_deg = dict(graph.in_degree())
    head: list[str] = []
    tail: list[str] = []

    def drop(node: str) -> None:
        del active[node]
        for succ in graph.successors(node):
            if succ in active:
                in_deg[succ] -= 1
        for pred in graph.predecessors(node):
            if pred in active:
                out_deg[pred] -= 1

    while active:
        progressed = True
        while progressed:
            progressed = False
            for node in [n for n in active if out_deg[n] == 0]:
                drop(node)
                tail.append(node)
                progressed = True
            for node in [n for n in active if in_deg[n] == 0]:
                drop(node)
                head.append(node)
                progressed = True

        if active:
            best = max(active, key=lambda n: out_deg[n] - in_deg[n])
            drop(best)
            head.append(best)

    tail.reverse()
    return head + tail


def remove_cycles(graph: nx.DiGraph) -> tuple[nx.DiGraph, set[tuple[str, str]]]:
    """Return an acyclic copy of ``graph`` and the edges that were flipped."""
    position = {node: index for index, node in enumerate(feedback_ordering(graph))}
    flipped = {(u, v) for u, v in graph.edges() if position[u] > position[v]}

    dag = nx.DiGraph()
    dag.add_nodes_from(graph.nodes)
    for u, v in graph.edges():
        if (u, v) in flipped:
            dag.add_edge(v, u)
        else:
            dag.add_edge(u, v)
    return dag, flipped


# ─── Ranking ──────────────────────────────────────────────────────────────────


def assign_ranks(dag: nx.DiGraph) -> dict[str, int]:
    """Place every node one rank below its deepest predecessor."""
    ranks: dict[str, int] = {}
    for node in nx.topological_sort(dag):
        ranks[node] = max((ranks[pred] + 1 for pred in dag.predecessors(node)), default=0)
    return ranks


def insert_route_nodes(
    dag: nx.DiGraph,
    ranks: dict[str, int],
) -> tuple[nx.DiGraph, dict[str, int], dict[tuple[str, str], list[str]]]:
    """Split long edges so every edge joins adjacent ranks.

    Returns the routed graph, ranks extended with the route nodes, and for
    each DAG edge the route nodes it passes through (top to bottom).
    """
    routed = nx.DiGraph()
    routed.add_nodes_from(dag.nodes)
    ranks = dict(ranks)
    chains: dict[tuple[str, str], list[str]] = {}

    for index, (u, v) in enumerate(list(dag.edges())):
        span = ranks[v] - ranks[u]
        chain: list[str] = []
        previous = u
        for step in range(1, span):
            route_id = f"{ROUTE_PREFIX}{index}_{step}"
            routed.add_node(route_id)
            ranks[route_id] = ranks[u] + step
            routed.add_edge(previous, route_id)
            chain.append(route_id)
            previous = route_id
        routed.add_edge(previous, v)
        chains[(u, v)] = chain

    return routed, ranks, chains


# ─── Crossing minimisation ────────────────────────────────────────────────────


def count_crossings(layers: list[list[str]], graph: nx.DiGraph) -> int:
    """Count crossings between consecutive ranks (pairwise inversions)."""
    total = 0
    for upper, lower in zip(layers, layers[1:]):
        lower_pos = {node: index for index, node in enumerate(lower)}
        segments = [
            (index, lower_pos[succ])
            for index, node in enumerate(upper)
            for succ in graph.successors(node)
            if succ in lower_pos
        ]
        for i, (a_top, a_bottom) in enumerate(segments):
            for b_top, b_bottom in segments[i + 1 :]:
                if (a_top - b_top) * (a_bottom - b_bottom) < 0:
                    total += 1
    return total


def order_ranks(graph: nx.DiGraph, ranks: dict[str, int], passes: int) -> list[list[str]]:
    """Order nodes within each rank to reduce edge crossings.

    Starts from insertion order and alternates top-down and bottom-up
    barycenter sweeps while the crossing count keeps improving.
    """
    layers: list[list[str]] = [[] for _ in range(max(ranks.values()) + 1)]
    for node in graph.nodes:
        layers[ranks[node]].append(node)

    best = [list(layer) for layer in layers]
    best_crossings = count_crossings(best, graph)

    for _ in range(passes):
        if best_crossings == 0:
            break
        for index in range(1, len(layers)):
            layers[index] = _reorder(layers[index], layers[index - 1], graph.predecessors)
        for index in range(len(layers) - 2, -1, -1):
            layers[index] = _reorder(layers[index], layers[index + 1], graph.successors)

        crossings = count_crossings(layers, graph)
        if crossings >= best_crossings:
            break
        best = [list(layer) for layer in layers]
        best_crossings = crossings

    return best


def _reorder(
    layer: list[str],
    adjacent: list[str],
    neighbours: Callable[[str], Iterable[str]],
) -> list[str]:
    # nodes without neighbours in the adjacent rank keep their slot
    position = {node: index for index, node in enumerate(adjacent)}
    barycenter: dict[str, float] = {}
    for node in layer:
        linked = [position[n] for n in neighbours(node) if n in position]
        if linked:
            barycenter[node] = sum(linked) / len(linked)

    movable = iter(
        sorted(
            (node for node in layer if node in barycenter),
            key=lambda node: (barycenter[node], layer.index(node)),
        )
    )
    return [next(movable) if node in barycenter else node for node in layer]


# ─── Engine ───────────────────────────────────────────────────────────────────


class LayoutEngine:
    """Compute positions and edge routes for a whole workflow graph."""

    def __init__(self, settings: WorkflowSettings | None = None) -> None:
        """Initialize the layout engine.

        Args:
            settings: Spacing configuration; defaults to the global settings
        """
        self.settings = settings or workflow_settings

    def compute(
        self,
        nodes: list[WorkflowNode],
        edges: list[WorkflowEdge],
    ) -> Layout:
        """Lay out ``nodes`` and ``edges`` from scratch.

        Args:
            nodes: Every node of the graph, in display order
            edges: Every edge of the graph

        Returns:
            Layout with positioned nodes, routed edges and bounding box
        """
        if not nodes:
            return Layout()

        sizes: dict[str, Size] = {
            node.id: (
                node_width(
                    node.variant,
                    self.settings.content_node_width,
                    self.settings.branch_node_width,
                ),
                estimate_height(node),
            )
            for node in nodes
        }
        jump_ids = {node.id for node in nodes if node.variant is NodeVariant.JUMP}

        graph = nx.DiGraph()
        graph.add_nodes_from(node.id for node in nodes)
        for edge in edges:
            if edge.source in jump_ids or edge.source == edge.target:
                continue
            if edge.source in graph and edge.target in graph:
                graph.add_edge(edge.source, edge.target)

        dag, flipped = remove_cycles(graph)
        routed, ranks, chains = insert_route_nodes(dag, assign_ranks(dag))
        layers = order_ranks(routed, ranks, self.settings.crossing_passes)
        for route_id in routed.nodes:
            sizes.setdefault(route_id, (0.0, 0.0))

        centres = self._place(layers, routed, sizes)

        laid_out_nodes = [
            node.model_copy(
                update={
                    "x": centres[node.id][0],
                    "y": centres[node.id][1],
                    "width": sizes[node.id][0],
                    "height": sizes[node.id][1],
                }
            )
            for node in nodes
        ]

        laid_out_edges: list[WorkflowEdge] = []
        for edge in edges:
            points: list[Point] = []
            if edge.source not in jump_ids and graph.has_edge(edge.source, edge.target):
                points = self._route(edge, flipped, chains, ranks, centres, sizes)
            laid_out_edges.append(edge.model_copy(update={"points": points}))

        width = max(x + sizes[n][0] / 2 for n, (x, _) in centres.items()) + self.settings.margin_x
        height = max(y + sizes[n][1] / 2 for n, (_, y) in centres.items()) + self.settings.margin_y

        logger.debug(
            "layout_computed",
            nodes=len(nodes),
            edges=len(edges),
            ranks=len(layers),
            flipped_edges=len(flipped),
        )

        return Layout(
            nodes=laid_out_nodes,
            edges=laid_out_edges,
            width=width,
            height=height,
        )

    def _place(
        self,
        layers: list[list[str]],
        graph: nx.DiGraph,
        sizes: dict[str, Size],
    ) -> dict[str, tuple[float, float]]:
        """Assign node centres rank by rank."""
        ys: dict[str, float] = {}
        top = self.settings.margin_y
        for layer in layers:
            rank_height = max((sizes[node][1] for node in layer), default=0.0)
            for node in layer:
                ys[node] = top + rank_height / 2
            top += rank_height + self.settings.rank_separation

        xs: dict[str, float] = {}
        for layer in layers:
            self._align(layer, lambda _node: (), xs, sizes)

        # pull each rank toward its neighbours, finishing top-down so
        # children centre under their parents
        for _ in range(ALIGN_ITERATIONS):
            for index in range(len(layers) - 2, -1, -1):
                self._align(layers[index], graph.successors, xs, sizes)
            for index in range(1, len(layers)):
                self._align(layers[index], graph.predecessors, xs, sizes)

        shift = self.settings.margin_x - min(xs[node] - sizes[node][0] / 2 for node in xs)
        return {node: (xs[node] + shift, ys[node]) for node in xs}

    def _align(
        self,
        layer: list[str],
        neighbours: Callable[[str], Iterable[str]],
        xs: dict[str, float],
        sizes: dict[str, Size],
    ) -> None:
        desired: list[float] = []
        anchored: list[int] = []
        for index, node in enumerate(layer):
            linked = [xs[n] for n in neighbours(node) if n in xs]
            if linked:
                desired.append(sum(linked) / len(linked))
                anchored.append(index)
            else:
                desired.append(xs.get(node, 0.0))

        placed: list[float] = []
        for index, node in enumerate(layer):
            x = desired[index]
            if index:
                previous = layer[index - 1]
                minimum = (
                    placed[-1]
                    + (sizes[previous][0] + sizes[node][0]) / 2
                    + self._gap(previous, node)
                )
                x = max(x, minimum)
            placed.append(x)

        if anchored:
            offset = sum(placed[i] - desired[i] for i in anchored) / len(anchored)
            placed = [x - offset for x in placed]

        xs.update(zip(layer, placed))

    def _gap(self, left: str, right: str) -> float:
        if left.startswith(ROUTE_PREFIX) or right.startswith(ROUTE_PREFIX):
            return self.settings.node_separation / 2
        return self.settings.node_separation

    def _route(
        self,
        edge: WorkflowEdge,
        flipped: set[tuple[str, str]],
        chains: dict[tuple[str, str], list[str]],
        ranks: dict[str, int],
        centres: dict[str, tuple[float, float]],
        sizes: dict[str, Size],
    ) -> list[Point]:
        """Route from the source boundary through route nodes to the target."""
        if edge.key in flipped:
            path = [edge.target, *chains[(edge.target, edge.source)], edge.source]
            path.reverse()
        else:
            path = [edge.source, *chains[edge.key], edge.target]

        first, last = path[0], path[-1]
        downward = ranks[first] < ranks[last]
        direction = 1 if downward else -1

        start_x, start_y = centres[first]
        end_x, end_y = centres[last]
        points = [Point(x=start_x, y=start_y + direction * sizes[first][1] / 2)]
        points.extend(Point(x=centres[n][0], y=centres[n][1]) for n in path[1:-1])
        points.append(Point(x=end_x, y=end_y - direction * sizes[last][1] / 2))
        return points
