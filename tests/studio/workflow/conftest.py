"""Shared fixtures for workflow engine tests."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import pytest

from studio.workflow.codec import start_node
from studio.workflow.config import WorkflowSettings
from studio.workflow.graph import WorkflowGraph
from studio.workflow.layout import LayoutEngine
from studio.workflow.repository import InMemoryWorkflowRepository


class RecordingNotifier:
    """Notifier that keeps every message for assertions."""

    def __init__(self) -> None:
        self.successes: list[str] = []
        self.errors: list[str] = []

    def success(self, message: str) -> None:
        self.successes.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


@pytest.fixture
def settings() -> WorkflowSettings:
    """Settings with short autosave timing."""
    return WorkflowSettings(
        autosave_debounce_seconds=0.05,
        save_echo_suppression_seconds=0.0,
    )


@pytest.fixture
def engine(settings: WorkflowSettings) -> LayoutEngine:
    return LayoutEngine(settings)


@pytest.fixture
def graph(engine: LayoutEngine) -> WorkflowGraph:
    """Graph seeded with the Start step, as a fresh workflow is."""
    graph = WorkflowGraph(engine)
    graph.seed([start_node()], [], counter=2)
    return graph


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def repository() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def eventually() -> Callable[..., Awaitable[None]]:
    """Poll a predicate until it holds or the timeout expires."""

    async def wait(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)

    return wait
