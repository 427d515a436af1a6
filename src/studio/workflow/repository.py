"""
Workflow Storage

Repositories that load and upsert workflow records keyed by agent, and
list the reusable actions active on a project.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog
from pydantic import ValidationError

from studio.workflow.config import WorkflowSettings, workflow_settings
from studio.workflow.exceptions import WorkflowPersistenceError
from studio.workflow.models import ActionDefinition, WorkflowRecord

logger = structlog.get_logger(__name__)


class WorkflowRepository(Protocol):
    """Storage collaborator consumed by the workflow session."""

    async def get_by_agent_id(self, agent_id: str) -> WorkflowRecord | None: ...

    async def upsert(self, agent_id: str, record: WorkflowRecord) -> None: ...

    async def list_active_actions(self, project_id: str) -> list[ActionDefinition]: ...


class InMemoryWorkflowRepository:
    """Repository backed by process memory."""

    def __init__(
        self,
        records: dict[str, WorkflowRecord] | None = None,
        actions: dict[str, list[ActionDefinition]] | None = None,
    ) -> None:
        """Initialize the repository.

        Args:
            records: Initial workflow records keyed by agent ID
            actions: Active actions keyed by project ID
        """
        self._records: dict[str, WorkflowRecord] = dict(records or {})
        self._actions: dict[str, list[ActionDefinition]] = dict(actions or {})
        self.history: list[tuple[str, WorkflowRecord]] = []

    async def get_by_agent_id(self, agent_id: str) -> WorkflowRecord | None:
        return self._records.get(agent_id)

    async def upsert(self, agent_id: str, record: WorkflowRecord) -> None:
        self._records[agent_id] = record
        self.history.append((agent_id, record))
        logger.debug("workflow_stored", agent_id=agent_id, nodes=len(record.nodes))

    async def list_active_actions(self, project_id: str) -> list[ActionDefinition]:
        return list(self._actions.get(project_id, []))


class HttpWorkflowRepository:
    """Repository talking to the workflow storage API over HTTP."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        settings: WorkflowSettings | None = None,
    ) -> None:
        """Initialize the HTTP repository.

        Args:
            base_url: API root; defaults to ``settings.api_base_url``
            client: Preconfigured client (the repository then does not own it)
            settings: Workflow settings
        """
        settings = settings or workflow_settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=settings.api_timeout_seconds,
        )

    async def get_by_agent_id(self, agent_id: str) -> WorkflowRecord | None:
        """Fetch the workflow of an agent.

        Returns:
            The stored record, or None if the agent has no workflow yet

        Raises:
            WorkflowPersistenceError: On transport errors, error statuses or
                a malformed body
        """
        response = await self._request("GET", f"/agents/{agent_id}/workflow", agent_id=agent_id)
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        body = self._json(response, agent_id)
        if body is None:
            return None
        try:
            return WorkflowRecord.model_validate(body)
        except ValidationError as e:
            raise WorkflowPersistenceError(
                f"Malformed workflow record for agent {agent_id}", agent_id=agent_id
            ) from e

    async def upsert(self, agent_id: str, record: WorkflowRecord) -> None:
        """Create or replace the workflow of an agent.

        Raises:
            WorkflowPersistenceError: If the API rejects the record
        """
        response = await self._request(
            "PUT",
            f"/agents/{agent_id}/workflow",
            agent_id=agent_id,
            json=record.to_wire(),
        )
        self._raise_for_status(response, agent_id)
        logger.info("workflow_upserted", agent_id=agent_id, nodes=len(record.nodes))

    async def list_active_actions(self, project_id: str) -> list[ActionDefinition]:
        """List the project's active reusable actions."""
        response = await self._request(
            "GET",
            f"/projects/{project_id}/actions",
            params={"active": "true"},
        )
        body = self._json(response, None) or []
        try:
            return [ActionDefinition.model_validate(item) for item in body]
        except (TypeError, ValidationError) as e:
            raise WorkflowPersistenceError(
                f"Malformed action list for project {project_id}"
            ) from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpWorkflowRepository:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        agent_id: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("storage_request_failed", method=method, url=url, error=str(e))
            raise WorkflowPersistenceError(
                f"{method} {url} failed: {e}", agent_id=agent_id
            ) from e

    def _raise_for_status(self, response: httpx.Response, agent_id: str | None) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise WorkflowPersistenceError(
                f"Storage API returned {response.status_code}", agent_id=agent_id
            ) from e

    def _json(self, response: httpx.Response, agent_id: str | None) -> Any:
        self._raise_for_status(response, agent_id)
        try:
            return response.json()
        except ValueError as e:
            raise WorkflowPersistenceError(
                "Storage API returned invalid JSON", agent_id=agent_id
            ) from e
