"""Conversion between stored workflow records and the in-memory graph."""

from __future__ import annotations

from typing import Any

import structlog

from studio.workflow.config import WorkflowSettings, workflow_settings
from studio.workflow.models import (
    Layout,
    NodeVariant,
    Position,
    StoredEdge,
    StoredNode,
    WorkflowEdge,
    WorkflowNode,
    WorkflowRecord,
    build_node_data,
)

logger = structlog.get_logger(__name__)

START_NODE_ID = "node_1"
START_NODE_LABEL = "Start"
NODE_TYPE = "cardStep"
EDGE_TYPE = "step"


def start_node() -> WorkflowNode:
    """The single step every new workflow begins with."""
    return WorkflowNode(
        id=START_NODE_ID,
        label=START_NODE_LABEL,
        data=build_node_data(NodeVariant.DEFAULT, label=START_NODE_LABEL),
    )


def node_from_stored(stored: StoredNode) -> WorkflowNode:
    """Rebuild a node, defaulting anything the stored record lacks."""
    raw: dict[str, Any] = dict(stored.data)
    label = raw.get("label") or stored.label or ""
    raw["label"] = label

    variant = raw.pop("variant", None) or NodeVariant.DEFAULT.value
    if variant not in {v.value for v in NodeVariant}:
        logger.warning("unknown_node_variant", node_id=stored.id, variant=variant)
        variant = NodeVariant.DEFAULT.value

    position = stored.position or Position(x=stored.x or 0, y=stored.y or 0)
    return WorkflowNode(
        id=stored.id,
        label=label,
        x=position.x,
        y=position.y,
        data=build_node_data(variant, **raw),
    )


def nodes_from_record(record: WorkflowRecord) -> list[WorkflowNode]:
    return [node_from_stored(stored) for stored in record.nodes]


def edges_from_record(record: WorkflowRecord) -> list[WorkflowEdge]:
    return [WorkflowEdge(source=e.source, target=e.target) for e in record.edges]


def serialize_layout(
    layout: Layout,
    record: WorkflowRecord | None = None,
    settings: WorkflowSettings | None = None,
) -> WorkflowRecord:
    """Build the record to store for ``layout``.

    Metadata (name, description, global lists ...) is carried over from
    ``record`` unchanged; nodes and edges come from the layout.

    Args:
        layout: Current graph snapshot
        record: Record the graph was loaded from, if any
        settings: Supplies the default canvas origin

    Returns:
        WorkflowRecord ready for upsert
    """
    settings = settings or workflow_settings
    record = record or WorkflowRecord()

    nodes = [
        StoredNode(
            id=node.id,
            type=NODE_TYPE,
            position=Position(x=node.x, y=node.y),
            data=node.data.model_dump(by_alias=True, exclude_none=True, mode="json"),
        )
        for node in layout.nodes
    ]
    edges = [
        StoredEdge(id=edge.edge_id, source=edge.source, target=edge.target, type=EDGE_TYPE)
        for edge in layout.edges
    ]

    return record.model_copy(
        update={
            "nodes": nodes,
            "edges": edges,
            "position_x": record.position_x or settings.default_position_x,
            "position_y": record.position_y or settings.default_position_y,
        }
    )
