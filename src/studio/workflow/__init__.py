"""Workflow graph engine: graph store, mutations, layout and autosave."""

from __future__ import annotations

from studio.workflow.autosave import AutosaveController, SaveState
from studio.workflow.config import WorkflowSettings, workflow_settings
from studio.workflow.exceptions import WorkflowError, WorkflowPersistenceError
from studio.workflow.graph import (
    BranchInsertion,
    BranchPair,
    ChangeKind,
    WorkflowGraph,
)
from studio.workflow.height import estimate_height
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
    WorkflowEdge,
    WorkflowNode,
    WorkflowRecord,
)
from studio.workflow.repository import (
    HttpWorkflowRepository,
    InMemoryWorkflowRepository,
    WorkflowRepository,
)
from studio.workflow.session import WorkflowSession

__all__ = [
    "AutosaveController",
    "SaveState",
    "WorkflowSettings",
    "workflow_settings",
    "WorkflowError",
    "WorkflowPersistenceError",
    "BranchInsertion",
    "BranchPair",
    "ChangeKind",
    "WorkflowGraph",
    "estimate_height",
    "LayoutEngine",
    "ActionDefinition",
    "ActionRef",
    "FaqRef",
    "ItemKind",
    "Layout",
    "NodeVariant",
    "ObjectionRef",
    "ProductRef",
    "ServiceRef",
    "WorkflowEdge",
    "WorkflowNode",
    "WorkflowRecord",
    "HttpWorkflowRepository",
    "InMemoryWorkflowRepository",
    "WorkflowRepository",
    "WorkflowSession",
]
