"""Workflow graph data models.

Nodes, edges and the layout snapshot used by the engine, plus the wire
shapes exchanged with workflow storage. Wire shapes are camelCase; Python
attributes are snake_case and both spellings are accepted on input.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    model_validator,
)
from pydantic.alias_generators import to_camel


class NodeVariant(str, Enum):
    """Kind of workflow step."""

    DEFAULT = "default"
    END = "end"
    JUMP = "jump"
    BRANCH = "branch"


class ItemKind(str, Enum):
    """Reference item lists attached to a step, keyed by their data field."""

    ACTIONS = "actions"
    FAQS = "faqs"
    OBJECTIONS = "objections"
    PRODUCTS = "products"
    SERVICES = "services"


class WireModel(BaseModel):
    """Base for models that travel to and from workflow storage."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ---------------------------------------------------------------------------
# Reference items
# ---------------------------------------------------------------------------


class ItemRef(WireModel):
    """Reference to a record owned by an external collaborator."""

    model_config = ConfigDict(extra="allow")

    id: str


class ActionRef(ItemRef):
    """Action attached to a step."""

    name: str = ""
    description: str = ""


class ActionDefinition(ActionRef):
    """Reusable action defined on the project, offered for attachment."""


class FaqRef(ItemRef):
    question: str = ""
    answer: str = ""


class ObjectionRef(ItemRef):
    case: str = ""
    instructions: str = ""


class Category(WireModel):
    model_config = ConfigDict(extra="allow")

    name: str


class CatalogItemRef(ItemRef):
    """Product or service attached to a step."""

    name: str = ""
    description: str | None = None
    price: float | None = None
    categories: list[Category] = Field(default_factory=list)


class ProductRef(CatalogItemRef):
    pass


class ServiceRef(CatalogItemRef):
    pass


class BranchOption(WireModel):
    """Legacy per-node branch descriptor, kept so stored records round-trip."""

    id: str
    label: str = ""
    condition: str | None = None


# ---------------------------------------------------------------------------
# Node data (tagged union on ``variant``)
# ---------------------------------------------------------------------------


class StepData(WireModel):
    """Content shared by every step variant."""

    model_config = ConfigDict(extra="ignore")

    label: str = ""
    require_user_response: bool = False
    instructions: str = ""
    instructions_detailed: str = ""
    has_instructions: bool = False
    branches: list[BranchOption] = Field(default_factory=list)
    actions: list[ActionRef] = Field(default_factory=list)
    faqs: list[FaqRef] = Field(default_factory=list)
    objections: list[ObjectionRef] = Field(default_factory=list)
    products: list[ProductRef] = Field(default_factory=list)
    services: list[ServiceRef] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _derive_has_instructions(cls, data: Any) -> Any:
        # has_instructions always follows the instructions text
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if v is not None}
            data.pop("hasInstructions", None)
            data["has_instructions"] = bool(data.get("instructions"))
        return data

    @property
    def kind(self) -> NodeVariant:
        return NodeVariant(self.variant)  # type: ignore[attr-defined]

    @property
    def shows_instructions(self) -> bool:
        """Whether instructions contribute to the rendered step."""
        return self.has_instructions and bool(
            self.instructions or self.instructions_detailed
        )

    def items(self, kind: ItemKind) -> list[ItemRef]:
        return list(getattr(self, kind.value))


class DefaultStepData(StepData):
    variant: Literal["default"] = "default"
    require_user_response: bool = True


class EndStepData(StepData):
    variant: Literal["end"] = "end"
    require_user_response: bool = True


class JumpStepData(StepData):
    variant: Literal["jump"] = "jump"
    target_node_id: str | None = None


class BranchStepData(StepData):
    variant: Literal["branch"] = "branch"


NodeData = Annotated[
    DefaultStepData | EndStepData | JumpStepData | BranchStepData,
    Field(discriminator="variant"),
]

_node_data_adapter: TypeAdapter[NodeData] = TypeAdapter(NodeData)


def build_node_data(variant: NodeVariant | str = NodeVariant.DEFAULT, **fields: Any) -> StepData:
    """Validate step content into the data model for ``variant``."""
    payload = dict(fields)
    payload["variant"] = NodeVariant(variant).value
    return _node_data_adapter.validate_python(payload)


def merge_node_data(data: StepData, updates: dict[str, Any]) -> StepData:
    """Shallow-merge ``updates`` into ``data``, keeping its variant."""
    fields = type(data).model_fields
    by_alias = {info.alias: name for name, info in fields.items() if info.alias}
    merged = data.model_dump()
    for key, value in updates.items():
        merged[by_alias.get(key, key)] = value
    merged["variant"] = data.kind.value
    return type(data).model_validate(merged)


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------


class Point(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float


class WorkflowNode(BaseModel):
    """A step on the canvas, with its last computed geometry."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str = ""
    width: float = 0
    height: float = 0
    x: float = 0
    y: float = 0
    data: NodeData = Field(default_factory=DefaultStepData)

    @property
    def variant(self) -> NodeVariant:
        return self.data.kind


class WorkflowEdge(BaseModel):
    """A directed connection; ``points`` is the route from the last layout."""

    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    points: list[Point] = Field(default_factory=list)

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.target)

    @property
    def edge_id(self) -> str:
        return f"{self.source}-{self.target}"


class Layout(BaseModel):
    """Positioned snapshot of the whole graph."""

    model_config = ConfigDict(frozen=True)

    nodes: list[WorkflowNode] = Field(default_factory=list)
    edges: list[WorkflowEdge] = Field(default_factory=list)
    width: float = 0
    height: float = 0

    @property
    def is_empty(self) -> bool:
        return not self.nodes and not self.edges

    def get_node(self, node_id: str) -> WorkflowNode | None:
        """Find a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def has_edge(self, source: str, target: str) -> bool:
        return any(e.source == source and e.target == target for e in self.edges)

    def get_edges_from(self, node_id: str) -> list[WorkflowEdge]:
        """Get all edges originating from a node."""
        return [e for e in self.edges if e.source == node_id]

    def get_edges_to(self, node_id: str) -> list[WorkflowEdge]:
        """Get all edges pointing to a node."""
        return [e for e in self.edges if e.target == node_id]


# ---------------------------------------------------------------------------
# Storage wire shapes
# ---------------------------------------------------------------------------


class Position(WireModel):
    x: float = 0
    y: float = 0


class StoredNode(WireModel):
    """Node as persisted by workflow storage."""

    model_config = ConfigDict(extra="allow")

    id: str
    type: str = "cardStep"
    label: str | None = None
    position: Position | None = None
    x: float | None = None
    y: float | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class StoredEdge(WireModel):
    """Edge as persisted by workflow storage."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    source: str
    target: str
    type: str = "step"


class WorkflowRecord(WireModel):
    """Workflow definition stored per agent."""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    description: str = ""
    instructions: str = ""
    project_id: str | None = None
    global_actions: list[dict[str, Any]] = Field(default_factory=list)
    global_faqs: list[dict[str, Any]] = Field(default_factory=list)
    global_objections: list[dict[str, Any]] = Field(default_factory=list)
    nodes: list[StoredNode] = Field(default_factory=list)
    edges: list[StoredEdge] = Field(default_factory=list)
    position_x: float | None = None
    position_y: float | None = None

    @model_validator(mode="before")
    @classmethod
    def _drop_non_list_collections(cls, data: Any) -> Any:
        # storage may hold null or malformed JSON for the list columns
        if isinstance(data, dict):
            data = dict(data)
            for key in (
                "nodes",
                "edges",
                "globalActions",
                "global_actions",
                "globalFaqs",
                "global_faqs",
                "globalObjections",
                "global_objections",
            ):
                if key in data and not isinstance(data[key], list):
                    data.pop(key)
        return data

    def to_wire(self) -> dict[str, Any]:
        """Dump in the camelCase shape expected by storage."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
