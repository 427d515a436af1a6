"""Tests for node height estimation."""

from __future__ import annotations

from typing import Any

import pytest

from studio.workflow.height import estimate_height, node_width
from studio.workflow.models import NodeVariant, WorkflowNode, build_node_data


def node(variant: NodeVariant, **fields: Any) -> WorkflowNode:
    return WorkflowNode(id="n", data=build_node_data(variant, **fields))


def actions(count: int) -> list[dict[str, str]]:
    return [{"id": f"a{i}"} for i in range(count)]


@pytest.mark.parametrize(
    ("fields", "expected"),
    [
        ({}, 100),
        ({"instructions": "Greet the caller"}, 100),
        ({"actions": actions(1)}, 123),
        ({"actions": actions(4)}, 151),
        ({"faqs": [{"id": "f1"}]}, 115),
        ({"objections": [{"id": "o1"}], "actions": actions(3)}, 143),
        ({"instructions": "x", "actions": actions(9), "faqs": [{"id": "f1"}]}, 170),
    ],
)
def test_default_height(fields: dict[str, Any], expected: float) -> None:
    """Test default steps grow with content up to their maximum."""
    assert estimate_height(node(NodeVariant.DEFAULT, **fields)) == expected


@pytest.mark.parametrize(
    ("fields", "expected"),
    [
        ({}, 100),
        ({"target_node_id": "node_1"}, 100),
        ({"instructions": "x"}, 100),
        ({"instructions": "x", "target_node_id": "node_1"}, 120),
    ],
)
def test_jump_height(fields: dict[str, Any], expected: float) -> None:
    """Test jump steps account for instructions and the target reference."""
    assert estimate_height(node(NodeVariant.JUMP, **fields)) == expected


def test_end_height_clamped_to_base() -> None:
    """Test end steps never drop below their base height."""
    assert estimate_height(node(NodeVariant.END)) == 80
    assert estimate_height(node(NodeVariant.END, instructions="Goodbye")) == 80


def test_branch_height_ignores_content() -> None:
    """Test branch arms have a fixed height."""
    assert estimate_height(node(NodeVariant.BRANCH, instructions="x", actions=actions(5))) == 40


def test_height_never_shrinks_with_more_content() -> None:
    """Test adding attached items is monotonic."""
    heights = [estimate_height(node(NodeVariant.DEFAULT, actions=actions(n))) for n in range(12)]

    assert heights == sorted(heights)


@pytest.mark.parametrize("action_count", [0, 1, 5, 12])
def test_adding_faq_never_lowers_height(action_count: int) -> None:
    """Test one more FAQ keeps or raises the height, and estimates are stable."""
    before = node(NodeVariant.DEFAULT, actions=actions(action_count))
    after = node(NodeVariant.DEFAULT, actions=actions(action_count), faqs=[{"id": "f1"}])

    assert estimate_height(before) == estimate_height(before)
    assert estimate_height(after) >= estimate_height(before)


def test_node_width() -> None:
    """Test branch arms use the narrow width."""
    assert node_width(NodeVariant.BRANCH, 280, 80) == 80
    assert node_width(NodeVariant.END, 280, 80) == 280
