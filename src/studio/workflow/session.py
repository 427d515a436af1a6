"""Workflow editing session.

``WorkflowSession`` is the handle every editor component receives. It owns
the graph store, the autosave controller and the drawer state for one
agent's workflow, and exposes the complete operation set.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog
from pydantic import ValidationError

from studio.workflow import codec
from studio.workflow.autosave import AutosaveController, SaveState
from studio.workflow.config import WorkflowSettings, workflow_settings
from studio.workflow.exceptions import WorkflowPersistenceError
from studio.workflow.graph import (
    BranchInsertion,
    BranchPair,
    ChangeKind,
    WorkflowGraph,
)
from studio.workflow.layout import LayoutEngine
from studio.workflow.models import (
    ActionDefinition,
    ActionRef,
    FaqRef,
    ItemKind,
    Layout,
    NodeVariant,
    ObjectionRef,
    ProductRef,
    ServiceRef,
    WorkflowNode,
    WorkflowRecord,
)
from studio.workflow.notifications import Notifier
from studio.workflow.repository import WorkflowRepository
from studio.workflow.selection import DrawerState

logger = structlog.get_logger(__name__)


class WorkflowSession:
    """Editing session for the workflow of one agent."""

    def __init__(
        self,
        agent_id: str,
        repository: WorkflowRepository,
        *,
        can_manage: bool = False,
        notifier: Notifier | None = None,
        settings: WorkflowSettings | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            agent_id: Agent whose workflow is edited
            repository: Storage collaborator
            can_manage: Whether the caller may persist changes
            notifier: Receives save success/failure messages
            settings: Layout and autosave configuration
        """
        self.agent_id = agent_id
        self._repository = repository
        self._settings = settings or workflow_settings
        self._record: WorkflowRecord | None = None
        self._actions: list[ActionDefinition] = []
        self._drawer = DrawerState()

        self._graph = WorkflowGraph(LayoutEngine(self._settings))
        self._autosave = AutosaveController(
            self._persist,
            can_persist=can_manage,
            settings=self._settings,
            notifier=notifier,
            has_content=lambda: not self._graph.layout.is_empty,
            snapshot=lambda: self._graph.layout,
        )
        self._graph.subscribe(self._on_graph_change)

    # ── Read access ──

    @property
    def layout(self) -> Layout:
        return self._graph.layout

    @property
    def graph(self) -> WorkflowGraph:
        return self._graph

    @property
    def actions(self) -> list[ActionDefinition]:
        return list(self._actions)

    @property
    def workflow(self) -> WorkflowRecord | None:
        return self._record

    @property
    def drawer(self) -> DrawerState:
        return self._drawer

    @property
    def selected_node(self) -> WorkflowNode | None:
        """The node the drawer is open for, or None if it no longer exists."""
        if self._drawer.selected_node_id is None:
            return None
        return self._graph.get_node(self._drawer.selected_node_id)

    @property
    def has_unsaved_changes(self) -> bool:
        return self._autosave.has_unsaved_changes

    @property
    def is_saving(self) -> bool:
        return self._autosave.is_saving

    @property
    def save_state(self) -> SaveState:
        return self._autosave.state

    # ── Lifecycle ──

    async def load(self) -> Layout:
        """Load the agent's workflow and the project's active actions.

        An agent without a stored workflow, or with no nodes, starts from a
        single ``Start`` step. Loading never marks the session dirty.

        Raises:
            WorkflowPersistenceError: If storage fails or the record is malformed
        """
        record = await self._repository.get_by_agent_id(self.agent_id)
        self._record = record or WorkflowRecord()

        try:
            nodes = codec.nodes_from_record(self._record)
            edges = codec.edges_from_record(self._record)
        except ValidationError as e:
            raise WorkflowPersistenceError(
                f"Malformed workflow record for agent {self.agent_id}",
                agent_id=self.agent_id,
            ) from e

        if nodes:
            layout = self._graph.seed(nodes, edges)
        else:
            layout = self._graph.seed([codec.start_node()], [], counter=2)

        if record is not None and record.project_id:
            self._actions = await self._repository.list_active_actions(record.project_id)

        logger.info(
            "workflow_loaded",
            agent_id=self.agent_id,
            nodes=len(layout.nodes),
            edges=len(layout.edges),
            actions=len(self._actions),
        )
        return layout

    async def handle_save(self) -> bool:
        """Save now; a no-op without permission, changes, or while saving."""
        return await self._autosave.save()

    async def close(self) -> None:
        """Stop autosave; an in-flight save is allowed to finish."""
        await self._autosave.close()

    async def __aenter__(self) -> WorkflowSession:
        await self.load()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ── Structure ──

    def create_node(
        self,
        label: str | None = None,
        parent_id: str | None = None,
        variant: NodeVariant = NodeVariant.DEFAULT,
    ) -> WorkflowNode:
        return self._graph.create_node(label, parent_id, variant)

    def delete_node(self, node_id: str) -> Layout | None:
        return self._graph.delete_node(node_id)

    def update_node(
        self,
        node_id: str,
        label: str | None = None,
        **data_updates: Any,
    ) -> WorkflowNode | None:
        return self._graph.update_node(node_id, label, **data_updates)

    def create_branch(
        self,
        parent_id: str,
        left_label: str = "Yes",
        right_label: str = "No",
    ) -> BranchPair:
        return self._graph.create_branch(parent_id, left_label, right_label)

    def insert_node(
        self,
        source_id: str,
        target_id: str,
        label: str | None = None,
        variant: NodeVariant = NodeVariant.DEFAULT,
    ) -> WorkflowNode | None:
        return self._graph.insert_node(source_id, target_id, label, variant)

    def insert_branch(
        self,
        source_id: str,
        target_id: str,
        left_label: str = "Yes",
        right_label: str = "No",
    ) -> BranchInsertion | None:
        return self._graph.insert_branch(source_id, target_id, left_label, right_label)

    def connect_to(self, source_id: str, target_id: str) -> bool:
        return self._graph.connect_to(source_id, target_id)

    def set_jump_target(self, jump_node_id: str, target_node_id: str | None) -> None:
        self._graph.set_jump_target(jump_node_id, target_node_id)

    # ── Attached items ──

    def add_faq(self, node_id: str, faq: FaqRef | dict[str, Any]) -> WorkflowNode | None:
        return self._graph.attach_items(node_id, ItemKind.FAQS, [faq])

    def add_objection(
        self, node_id: str, objection: ObjectionRef | dict[str, Any]
    ) -> WorkflowNode | None:
        return self._graph.attach_items(node_id, ItemKind.OBJECTIONS, [objection])

    def add_actions(
        self, node_id: str, actions: Iterable[ActionRef | dict[str, Any]]
    ) -> WorkflowNode | None:
        return self._graph.attach_items(node_id, ItemKind.ACTIONS, actions)

    def add_products(
        self,
        node_id: str,
        products: ProductRef | dict[str, Any] | Iterable[ProductRef | dict[str, Any]],
    ) -> WorkflowNode | None:
        return self._graph.attach_items(node_id, ItemKind.PRODUCTS, _as_list(products))

    def add_services(
        self,
        node_id: str,
        services: ServiceRef | dict[str, Any] | Iterable[ServiceRef | dict[str, Any]],
    ) -> WorkflowNode | None:
        return self._graph.attach_items(node_id, ItemKind.SERVICES, _as_list(services))

    def remove_faq(self, node_id: str, faq_id: str) -> WorkflowNode | None:
        return self._graph.detach_item(node_id, ItemKind.FAQS, faq_id)

    def remove_objection(self, node_id: str, objection_id: str) -> WorkflowNode | None:
        return self._graph.detach_item(node_id, ItemKind.OBJECTIONS, objection_id)

    def remove_action(self, node_id: str, action_id: str) -> WorkflowNode | None:
        return self._graph.detach_item(node_id, ItemKind.ACTIONS, action_id)

    def remove_product(self, node_id: str, product_id: str) -> WorkflowNode | None:
        return self._graph.detach_item(node_id, ItemKind.PRODUCTS, product_id)

    def remove_service(self, node_id: str, service_id: str) -> WorkflowNode | None:
        return self._graph.detach_item(node_id, ItemKind.SERVICES, service_id)

    # ── Drawer ──

    def open_drawer(self, node_id: str, variant: NodeVariant | None = None) -> None:
        if variant is None:
            node = self._graph.get_node(node_id)
            variant = node.variant if node is not None else NodeVariant.DEFAULT
        self._drawer.open(node_id, variant)

    def close_drawer(self) -> None:
        self._drawer.close()

    # ── Internals ──

    def _on_graph_change(self, kind: ChangeKind, layout: Layout) -> None:
        if kind is ChangeKind.LAYOUT:
            self._autosave.layout_replaced()
        else:
            self._autosave.mark_dirty()

    async def _persist(self) -> None:
        record = codec.serialize_layout(self._graph.layout, self._record, self._settings)
        await self._repository.upsert(self.agent_id, record)
        self._record = record


def _as_list(items: Any) -> list[Any]:
    if isinstance(items, (dict, ProductRef, ServiceRef)):
        return [items]
    return list(items)
