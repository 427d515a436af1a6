"""Tests for workflow storage repositories."""

from __future__ import annotations

import json

import httpx
import pytest
import respx
from httpx import Response

from studio.workflow.exceptions import WorkflowPersistenceError
from studio.workflow.models import ActionDefinition, WorkflowRecord
from studio.workflow.repository import HttpWorkflowRepository, InMemoryWorkflowRepository

BASE_URL = "https://storage.example.com/api"


@pytest.fixture
def stored_workflow() -> dict:
    """Workflow body as returned by the storage API."""
    return {
        "name": "Inbound",
        "projectId": "proj-1",
        "nodes": [
            {"id": "node_1", "type": "cardStep", "position": {"x": 0, "y": 0}, "data": {"label": "Start"}}
        ],
        "edges": [],
        "positionX": 250,
        "positionY": 25,
    }


class TestHttpWorkflowRepository:
    """Test the HTTP repository against a mocked storage API."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_get_by_agent_id(self, stored_workflow: dict) -> None:
        """Test a stored workflow is parsed into a record."""
        route = respx.get(f"{BASE_URL}/agents/agent-1/workflow").mock(
            return_value=Response(200, json=stored_workflow)
        )

        async with HttpWorkflowRepository(BASE_URL) as repository:
            record = await repository.get_by_agent_id("agent-1")

        assert route.called
        assert record is not None
        assert record.project_id == "proj-1"
        assert record.nodes[0].id == "node_1"

    @respx.mock
    @pytest.mark.asyncio
    async def test_get_missing_workflow(self) -> None:
        """Test a 404 means the agent has no workflow yet."""
        respx.get(f"{BASE_URL}/agents/agent-2/workflow").mock(return_value=Response(404))

        async with HttpWorkflowRepository(BASE_URL) as repository:
            assert await repository.get_by_agent_id("agent-2") is None

    @respx.mock
    @pytest.mark.asyncio
    async def test_get_server_error(self) -> None:
        """Test error statuses raise a persistence error."""
        respx.get(f"{BASE_URL}/agents/agent-1/workflow").mock(return_value=Response(500))

        async with HttpWorkflowRepository(BASE_URL) as repository:
            with pytest.raises(WorkflowPersistenceError) as exc_info:
                await repository.get_by_agent_id("agent-1")

        assert exc_info.value.agent_id == "agent-1"

    @respx.mock
    @pytest.mark.asyncio
    async def test_get_malformed_body(self) -> None:
        """Test a body that is not a workflow raises a persistence error."""
        respx.get(f"{BASE_URL}/agents/agent-1/workflow").mock(
            return_value=Response(200, json={"nodes": [{"data": {}}]})
        )

        async with HttpWorkflowRepository(BASE_URL) as repository:
            with pytest.raises(WorkflowPersistenceError):
                await repository.get_by_agent_id("agent-1")

    @respx.mock
    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        """Test connection failures are wrapped."""
        respx.get(f"{BASE_URL}/agents/agent-1/workflow").mock(
            side_effect=httpx.ConnectError("connection refused")
        )

        async with HttpWorkflowRepository(BASE_URL) as repository:
            with pytest.raises(WorkflowPersistenceError):
                await repository.get_by_agent_id("agent-1")

    @respx.mock
    @pytest.mark.asyncio
    async def test_upsert_sends_camel_case(self) -> None:
        """Test the record is PUT in the storage wire shape."""
        route = respx.put(f"{BASE_URL}/agents/agent-1/workflow").mock(
            return_value=Response(200, json={})
        )
        record = WorkflowRecord(name="Inbound", project_id="proj-1", position_x=250, position_y=25)

        async with HttpWorkflowRepository(BASE_URL) as repository:
            await repository.upsert("agent-1", record)

        body = json.loads(route.calls.last.request.content)
        assert body["projectId"] == "proj-1"
        assert body["positionX"] == 250
        assert body["nodes"] == []

    @respx.mock
    @pytest.mark.asyncio
    async def test_upsert_rejected(self) -> None:
        """Test a rejected upsert raises a persistence error."""
        respx.put(f"{BASE_URL}/agents/agent-1/workflow").mock(return_value=Response(422))

        async with HttpWorkflowRepository(BASE_URL) as repository:
            with pytest.raises(WorkflowPersistenceError):
                await repository.upsert("agent-1", WorkflowRecord())

    @respx.mock
    @pytest.mark.asyncio
    async def test_list_active_actions(self) -> None:
        """Test only active actions are requested."""
        route = respx.get(f"{BASE_URL}/projects/proj-1/actions", params={"active": "true"}).mock(
            return_value=Response(
                200,
                json=[{"id": "act_1", "name": "Lookup order", "description": "Find an order"}],
            )
        )

        async with HttpWorkflowRepository(BASE_URL) as repository:
            actions = await repository.list_active_actions("proj-1")

        assert route.called
        assert actions == [
            ActionDefinition(id="act_1", name="Lookup order", description="Find an order")
        ]

    @pytest.mark.asyncio
    async def test_shared_client_not_closed(self) -> None:
        """Test a caller-provided client outlives the repository."""
        client = httpx.AsyncClient(base_url=BASE_URL)

        async with HttpWorkflowRepository(client=client):
            pass

        assert not client.is_closed
        await client.aclose()


class TestInMemoryWorkflowRepository:
    """Test the in-memory repository."""

    @pytest.mark.asyncio
    async def test_upsert_then_get(self) -> None:
        """Test stored records are returned and recorded in history."""
        repository = InMemoryWorkflowRepository()
        record = WorkflowRecord(name="Inbound")

        await repository.upsert("agent-1", record)

        assert await repository.get_by_agent_id("agent-1") == record
        assert repository.history == [("agent-1", record)]

    @pytest.mark.asyncio
    async def test_unknown_project_has_no_actions(self) -> None:
        """Test a project without actions yields an empty list."""
        repository = InMemoryWorkflowRepository(
            actions={"proj-1": [ActionDefinition(id="act_1")]}
        )

        assert await repository.list_active_actions("proj-2") == []
        assert len(await repository.list_active_actions("proj-1")) == 1
