"""Selection and editor-drawer state."""

from __future__ import annotations

from pydantic import BaseModel

from studio.workflow.models import NodeVariant


class DrawerState(BaseModel):
    """Which node is selected and which editor panel is open."""

    is_open: bool = False
    selected_node_id: str | None = None
    variant: NodeVariant | None = None

    def open(self, node_id: str, variant: NodeVariant) -> None:
        self.is_open = True
        self.selected_node_id = node_id
        self.variant = variant

    def close(self) -> None:
        self.is_open = False
        self.selected_node_id = None
        self.variant = None
