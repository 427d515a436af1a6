"""Workflow graph store and structural mutation operations.

``WorkflowGraph`` owns the current ``Layout`` snapshot and the node-id
counter. Every structural operation builds a new node/edge list and passes
it to :meth:`WorkflowGraph.replace`, which recomputes the full layout and
swaps the snapshot in one step. Operations given unknown ids are rejected
with ``None`` and leave the graph untouched.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import networkx as nx
import structlog
from pydantic import ValidationError

from studio.workflow.height import estimate_height
from studio.workflow.instructions import to_plain_text
from studio.workflow.layout import LayoutEngine
from studio.workflow.models import (
    ItemKind,
    ItemRef,
    Layout,
    NodeVariant,
    WorkflowEdge,
    WorkflowNode,
    build_node_data,
    merge_node_data,
)

logger = structlog.get_logger(__name__)

NODE_ID_PATTERN = re.compile(r"node_(\d+)")


class ChangeKind(str, Enum):
    """How the snapshot changed."""

    LAYOUT = "layout"  # full recompute through replace()
    EDGES = "edges"  # edge-only edit that kept the previous positions


GraphListener = Callable[[ChangeKind, Layout], None]


@dataclass(frozen=True)
class BranchPair:
    """Branch arms created by ``create_branch``.

    When a branch is added next to an existing arm only one node is
    created, and ``left`` and ``right`` are that same node.
    """

    left: WorkflowNode
    right: WorkflowNode

    @property
    def is_single(self) -> bool:
        return self.left.id == self.right.id


@dataclass(frozen=True)
class BranchInsertion(BranchPair):
    """Branch arms spliced into an edge, plus the original edge target."""

    target_id: str = ""


def next_node_number(node_ids: Iterable[str]) -> int:
    """Return one past the largest ``node_<n>`` suffix (ids of other forms count as 0)."""
    highest = 0
    for node_id in node_ids:
        match = NODE_ID_PATTERN.search(node_id)
        highest = max(highest, int(match.group(1)) if match else 0)
    return highest + 1


class WorkflowGraph:
    """Canonical in-memory workflow graph."""

    def __init__(self, layout_engine: LayoutEngine | None = None) -> None:
        """Initialize an empty workflow graph.

        Args:
            layout_engine: Engine used to recompute positions on every change
        """
        self._engine = layout_engine or LayoutEngine()
        self._layout = Layout()
        self._counter = 1
        self._listeners: list[GraphListener] = []

    @property
    def layout(self) -> Layout:
        return self._layout

    @property
    def counter(self) -> int:
        return self._counter

    def subscribe(self, listener: GraphListener) -> None:
        """Register a callback invoked after every snapshot replacement."""
        self._listeners.append(listener)

    def seed(
        self,
        nodes: list[WorkflowNode],
        edges: list[WorkflowEdge],
        counter: int | None = None,
    ) -> Layout:
        """Replace the whole graph with loaded data.

        Args:
            nodes: Loaded nodes
            edges: Loaded edges
            counter: Next node number; derived from the node ids when omitted

        Returns:
            Layout of the seeded graph
        """
        self._counter = counter if counter is not None else next_node_number(n.id for n in nodes)
        return self.replace(nodes, edges)

    def replace(self, nodes: list[WorkflowNode], edges: list[WorkflowEdge]) -> Layout:
        """Recompute the layout for ``nodes``/``edges`` and swap it in."""
        layout = self._engine.compute(nodes, edges)
        self._publish(ChangeKind.LAYOUT, layout)
        return layout

    # ── Lookups ──

    def get_node(self, node_id: str) -> WorkflowNode | None:
        return self._layout.get_node(node_id)

    def owning_decision_node(self, node_id: str) -> str | None:
        """Return the decision node a branch arm hangs off.

        Args:
            node_id: ID of the node being touched

        Returns:
            Parent ID when ``node_id`` is a branch arm with a parent,
            None otherwise
        """
        node = self.get_node(node_id)
        if node is None or node.variant is not NodeVariant.BRANCH:
            return None
        inbound = self._layout.get_edges_to(node_id)
        return inbound[0].source if inbound else None

    def branch_arms(self, decision_id: str) -> list[str]:
        """IDs of the branch arms fanning out of ``decision_id``, in edge order."""
        arms = []
        for edge in self._layout.get_edges_from(decision_id):
            target = self.get_node(edge.target)
            if target is not None and target.variant is NodeVariant.BRANCH:
                arms.append(edge.target)
        return arms

    def downstream_of(self, node_id: str) -> set[str]:
        """The node plus everything reachable forward from it."""
        graph = nx.DiGraph()
        graph.add_node(node_id)
        graph.add_edges_from(edge.key for edge in self._layout.edges)
        return {node_id} | nx.descendants(graph, node_id)

    # ── Mutations ──

    def create_node(
        self,
        label: str | None = None,
        parent_id: str | None = None,
        variant: NodeVariant = NodeVariant.DEFAULT,
    ) -> WorkflowNode:
        """Append a node, optionally connected from ``parent_id``.

        The parent is not validated; callers pass an id from the current graph.
        """
        node = self._new_node(label or f"Node {self._counter}", variant)
        edges = list(self._layout.edges)
        if parent_id:
            edges.append(WorkflowEdge(source=parent_id, target=node.id))

        self.replace([*self._layout.nodes, node], edges)
        logger.debug("node_created", node_id=node.id, parent_id=parent_id, variant=variant.value)
        return self._laid_out(node)

    def delete_node(self, node_id: str) -> Layout | None:
        """Delete a node together with everything downstream of it."""
        if self.get_node(node_id) is None:
            logger.warning("delete_unknown_node", node_id=node_id)
            return None

        doomed = self.downstream_of(node_id)
        nodes = [n for n in self._layout.nodes if n.id not in doomed]
        edges = [
            e for e in self._layout.edges
            if e.source not in doomed and e.target not in doomed
        ]
        logger.debug("node_deleted", node_id=node_id, removed=len(doomed))
        return self.replace(nodes, edges)

    def update_node(
        self,
        node_id: str,
        label: str | None = None,
        **data_updates: Any,
    ) -> WorkflowNode | None:
        """Shallow-merge ``data_updates`` into a node's data.

        Args:
            node_id: ID of the node to update
            label: New label; also written to ``data.label``
            **data_updates: Data fields to replace

        Returns:
            The updated node, or None if the node does not exist or the
            update does not validate
        """
        node = self.get_node(node_id)
        if node is None:
            logger.warning("update_unknown_node", node_id=node_id)
            return None

        updates = dict(data_updates)
        if label is not None:
            updates["label"] = label

        requested = updates.pop("variant", None)
        if requested is not None and requested != node.variant:
            logger.warning(
                "variant_change_ignored",
                node_id=node_id,
                variant=node.variant.value,
                requested=str(requested),
            )

        if "instructions" in updates and not (
            "instructions_detailed" in updates or "instructionsDetailed" in updates
        ):
            updates["instructions_detailed"] = to_plain_text(updates["instructions"] or "")

        try:
            data = merge_node_data(node.data, updates)
        except ValidationError as e:
            logger.warning("update_rejected", node_id=node_id, errors=e.error_count())
            return None

        updated = node.model_copy(update={"data": data, "label": data.label})
        self._replace_node(updated)
        return self.get_node(node_id)

    def attach_items(
        self,
        node_id: str,
        kind: ItemKind,
        items: Iterable[ItemRef | dict[str, Any]],
    ) -> WorkflowNode | None:
        """Append reference items to one of a node's item lists."""
        node = self.get_node(node_id)
        if node is None:
            logger.warning("attach_to_unknown_node", node_id=node_id, kind=kind.value)
            return None

        current = node.data.items(kind)
        return self.update_node(node_id, **{kind.value: [*current, *items]})

    def detach_item(self, node_id: str, kind: ItemKind, item_id: str) -> WorkflowNode | None:
        """Remove every item with ``item_id`` from one of a node's item lists."""
        node = self.get_node(node_id)
        if node is None:
            logger.warning("detach_from_unknown_node", node_id=node_id, kind=kind.value)
            return None

        remaining = [item for item in node.data.items(kind) if item.id != item_id]
        return self.update_node(node_id, **{kind.value: remaining})

    def create_branch(
        self,
        parent_id: str,
        left_label: str = "Yes",
        right_label: str = "No",
    ) -> BranchPair:
        """Fan two branch arms out of ``parent_id``.

        If ``parent_id`` is itself a branch arm, one new arm is added to the
        arm's decision node instead.
        """
        decision_id = self.owning_decision_node(parent_id)
        if decision_id is not None:
            arm = self._new_node(left_label, NodeVariant.BRANCH)
            self.replace(
                [*self._layout.nodes, arm],
                [*self._layout.edges, WorkflowEdge(source=decision_id, target=arm.id)],
            )
            logger.warning("single_branch_created", decision_id=decision_id, node_id=arm.id)
            arm = self._laid_out(arm)
            return BranchPair(left=arm, right=arm)

        left = self._new_node(left_label, NodeVariant.BRANCH)
        right = self._new_node(right_label, NodeVariant.BRANCH)
        self.replace(
            [*self._layout.nodes, left, right],
            [
                *self._layout.edges,
                WorkflowEdge(source=parent_id, target=left.id),
                WorkflowEdge(source=parent_id, target=right.id),
            ],
        )
        logger.debug("branch_created", parent_id=parent_id, left=left.id, right=right.id)
        return BranchPair(left=self._laid_out(left), right=self._laid_out(right))

    def insert_node(
        self,
        source_id: str,
        target_id: str,
        label: str | None = None,
        variant: NodeVariant = NodeVariant.DEFAULT,
    ) -> WorkflowNode | None:
        """Splice a node into the ``source_id -> target_id`` edge.

        When the target is a branch arm the node goes in front of every arm
        of ``source_id`` at once, so the fan-out moves as a unit.
        """
        if not self._layout.has_edge(source_id, target_id):
            logger.warning("insert_on_missing_edge", source=source_id, target=target_id)
            return None

        node = self._new_node(label or f"Inserted {self._counter}", variant)

        if self.owning_decision_node(target_id) is not None:
            moved = set(self.branch_arms(source_id))
        else:
            moved = {target_id}

        edges = [
            e for e in self._layout.edges
            if not (e.source == source_id and e.target in moved)
        ]
        edges.append(WorkflowEdge(source=source_id, target=node.id))
        edges.extend(
            WorkflowEdge(source=node.id, target=e.target)
            for e in self._layout.edges
            if e.source == source_id and e.target in moved
        )

        self.replace([*self._layout.nodes, node], edges)
        logger.debug("node_inserted", node_id=node.id, source=source_id, target=target_id)
        return self._laid_out(node)

    def insert_branch(
        self,
        source_id: str,
        target_id: str,
        left_label: str = "Yes",
        right_label: str = "No",
    ) -> BranchInsertion | None:
        """Insert a decision point into the ``source_id -> target_id`` edge.

        The left arm inherits the edge target. If either end of the edge is
        already a branch arm, one arm is added to the existing decision node
        instead of nesting branches.
        """
        if not self._layout.has_edge(source_id, target_id):
            logger.warning("insert_on_missing_edge", source=source_id, target=target_id)
            return None

        decision_id = self.owning_decision_node(source_id)
        if decision_id is None and self.owning_decision_node(target_id) is not None:
            decision_id = source_id

        if decision_id is not None:
            arm = self._new_node(left_label, NodeVariant.BRANCH)
            self.replace(
                [*self._layout.nodes, arm],
                [*self._layout.edges, WorkflowEdge(source=decision_id, target=arm.id)],
            )
            logger.warning("single_branch_created", decision_id=decision_id, node_id=arm.id)
            arm = self._laid_out(arm)
            return BranchInsertion(left=arm, right=arm, target_id=target_id)

        left = self._new_node(left_label, NodeVariant.BRANCH)
        right = self._new_node(right_label, NodeVariant.BRANCH)
        edges = [
            e for e in self._layout.edges
            if not (e.source == source_id and e.target == target_id)
        ]
        edges.extend(
            [
                WorkflowEdge(source=source_id, target=left.id),
                WorkflowEdge(source=source_id, target=right.id),
                WorkflowEdge(source=left.id, target=target_id),
            ]
        )
        self.replace([*self._layout.nodes, left, right], edges)
        logger.debug("branch_inserted", source=source_id, target=target_id, left=left.id, right=right.id)
        return BranchInsertion(
            left=self._laid_out(left),
            right=self._laid_out(right),
            target_id=target_id,
        )

    def connect_to(self, source_id: str, target_id: str) -> bool:
        """Add a ``source_id -> target_id`` edge unless it already exists.

        Positions are kept; the new edge has no route until the next
        layout pass.

        Returns:
            True if an edge was added; False for an existing edge or an
            unknown node id
        """
        missing = [n for n in (source_id, target_id) if self.get_node(n) is None]
        if missing:
            logger.warning("connect_unknown_node", source=source_id, target=target_id, missing=missing)
            return False
        if self._layout.has_edge(source_id, target_id):
            return False

        edges = [*self._layout.edges, WorkflowEdge(source=source_id, target=target_id)]
        self._publish(ChangeKind.EDGES, self._layout.model_copy(update={"edges": edges}))
        logger.debug("nodes_connected", source=source_id, target=target_id)
        return True

    def set_jump_target(self, jump_node_id: str, target_node_id: str | None) -> None:
        """Point a jump node at ``target_node_id`` (or nowhere when empty).

        All previous outgoing edges of the jump node are dropped; positions
        are kept. The jump node's height is re-estimated for the new target.
        Unknown ids leave the graph unchanged.
        """
        jump = self.get_node(jump_node_id)
        if jump is None:
            logger.warning("jump_from_unknown_node", node_id=jump_node_id)
            return
        if target_node_id and self.get_node(target_node_id) is None:
            logger.warning("jump_to_unknown_node", node_id=jump_node_id, target=target_node_id)
            return

        edges = [e for e in self._layout.edges if e.source != jump_node_id]
        if target_node_id:
            edges.append(WorkflowEdge(source=jump_node_id, target=target_node_id))

        nodes = self._layout.nodes
        if jump.variant is NodeVariant.JUMP:
            data = merge_node_data(jump.data, {"target_node_id": target_node_id or None})
            updated = jump.model_copy(update={"data": data})
            updated = updated.model_copy(update={"height": estimate_height(updated)})
            nodes = [updated if n.id == jump_node_id else n for n in nodes]

        self._publish(
            ChangeKind.EDGES,
            self._layout.model_copy(update={"nodes": nodes, "edges": edges}),
        )
        logger.debug("jump_target_set", node_id=jump_node_id, target=target_node_id)

    # ── Internals ──

    def _laid_out(self, node: WorkflowNode) -> WorkflowNode:
        # the positioned copy from the current snapshot
        return self.get_node(node.id) or node

    def _new_node(self, label: str, variant: NodeVariant) -> WorkflowNode:
        node_id = f"node_{self._counter}"
        self._counter += 1
        return WorkflowNode(
            id=node_id,
            label=label,
            data=build_node_data(variant, label=label),
        )

    def _replace_node(self, updated: WorkflowNode) -> Layout:
        nodes = [updated if n.id == updated.id else n for n in self._layout.nodes]
        return self.replace(nodes, list(self._layout.edges))

    def _publish(self, kind: ChangeKind, layout: Layout) -> None:
        self._layout = layout
        for listener in self._listeners:
            listener(kind, layout)
