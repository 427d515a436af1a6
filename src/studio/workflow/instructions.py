"""Plain-text projection of step instructions.

Instructions are authored in a rich-text editor and stored as the editor's
JSON document (TipTap format). Agents read a flat text form in which
mentions are rewritten as references:

* action mention    -> ``#<actionId>``
* variable mention  -> ``#<actionId>:variable:<name>``
* result mention    -> ``#<actionId>:result:<name>`` (``#:result:<name>``
  when the result is not bound to an action)

Anything that is not valid editor JSON projects to an empty string.
"""

from __future__ import annotations

import json
from typing import Any

MENTION_NODE = "reactMention"


def to_plain_text(instructions: str) -> str:
    """Project a serialized editor document into plain text."""
    if not instructions:
        return ""
    try:
        document = json.loads(instructions)
    except (TypeError, ValueError):
        return ""
    return document_to_text(document)


def document_to_text(document: Any) -> str:
    if not isinstance(document, dict):
        return ""
    content = document.get("content")
    if not isinstance(content, list):
        return ""
    return _render_nodes(content)


def _render_nodes(nodes: list[Any]) -> str:
    return "".join(_render_node(node) for node in nodes if isinstance(node, dict))


def _render_node(node: dict[str, Any]) -> str:
    node_type = node.get("type")
    if node_type == "text":
        return node.get("text") or ""
    if node_type == MENTION_NODE:
        return _render_mention(node.get("attrs"))

    # paragraphs, hard breaks and unknown containers contribute their children
    content = node.get("content")
    if isinstance(content, list):
        return _render_nodes(content)
    return ""


def _render_mention(attrs: Any) -> str:
    if not isinstance(attrs, dict):
        return ""

    label = attrs.get("label")
    action_id = attrs.get("actionId")
    css_class = attrs.get("class") or ""

    if "mention--action" in css_class:
        return f"#{action_id}" if action_id else ""

    if "mention--variable" in css_class:
        if action_id and label:
            return f"#{action_id}:variable:{label}"
        return ""

    if "mention--result" in css_class:
        if action_id and label:
            return f"#{action_id}:result:{label}"
        if label:
            return f"#:result:{label}"
        return ""

    return label or ""
