"""Estimated render height of workflow steps.

The layout engine needs a height for every node before positions exist.
Heights grow with content (instructions, attached actions, FAQs and
objections) and are clamped per variant so a crowded step never pushes
the next rank arbitrarily far down.
"""

from __future__ import annotations

import math

from studio.workflow.models import NodeVariant, WorkflowNode

CONTENT_NODE_WIDTH = 280
BRANCH_NODE_WIDTH = 80

BRANCH_HEIGHT = 40

END_BASE_HEIGHT = 80
END_MAX_HEIGHT = 120
END_CONTENT_HEIGHT = 50

JUMP_BASE_HEIGHT = 100
JUMP_MAX_HEIGHT = 140
JUMP_CONTENT_HEIGHT = 60

DEFAULT_BASE_HEIGHT = 100
DEFAULT_MAX_HEIGHT = 170
DEFAULT_CONTENT_HEIGHT = 60

ACTION_CHIP_WIDTH = 80
ACTIONS_PER_ROW = CONTENT_NODE_WIDTH // ACTION_CHIP_WIDTH
ACTION_ROW_HEIGHT = 28
CONTENT_SECTION_HEIGHT = 15
KNOWLEDGE_ROW_HEIGHT = 20


def estimate_height(node: WorkflowNode) -> float:
    """Return the estimated render height of ``node``.

    Pure function of the node's variant and content.
    """
    data = node.data
    variant = node.variant

    if variant is NodeVariant.BRANCH:
        return BRANCH_HEIGHT

    if variant is NodeVariant.END:
        height = END_CONTENT_HEIGHT + (30 if data.shows_instructions else 15)
        return _clamp(height, END_BASE_HEIGHT, END_MAX_HEIGHT)

    if variant is NodeVariant.JUMP:
        height = JUMP_CONTENT_HEIGHT + (40 if data.shows_instructions else 20)
        if getattr(data, "target_node_id", None):
            height += 20
        return _clamp(height, JUMP_BASE_HEIGHT, JUMP_MAX_HEIGHT)

    height = DEFAULT_CONTENT_HEIGHT + (40 if data.shows_instructions else 20)
    has_knowledge = bool(data.faqs or data.objections)
    if data.actions or has_knowledge:
        height += CONTENT_SECTION_HEIGHT
        if data.actions:
            height += math.ceil(len(data.actions) / ACTIONS_PER_ROW) * ACTION_ROW_HEIGHT
        if has_knowledge:
            height += KNOWLEDGE_ROW_HEIGHT
    return _clamp(height, DEFAULT_BASE_HEIGHT, DEFAULT_MAX_HEIGHT)


def node_width(variant: NodeVariant, content_width: float, branch_width: float) -> float:
    """Fixed width for a variant; branch arms are narrower than content steps."""
    return branch_width if variant is NodeVariant.BRANCH else content_width


def _clamp(value: float, lower: float, upper: float) -> float:
    return min(max(value, lower), upper)
