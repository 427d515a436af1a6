"""Exceptions raised by the workflow engine."""

from __future__ import annotations


class WorkflowError(Exception):
    """Base exception for workflow engine errors."""


class WorkflowPersistenceError(WorkflowError):
    """Exception raised when a workflow record cannot be loaded or stored."""

    def __init__(self, message: str, *, agent_id: str | None = None) -> None:
        """Initialize with an optional agent identifier for context."""
        self.agent_id = agent_id
        super().__init__(message)
