"""Pipedream REST API runtime client."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from .base import DeployedWorkflow, RuntimeAPIError, RuntimeClient, RuntimeExecution, RuntimeStep
from .registry import register

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

TRIGGER_NODE_NAME = "Trigger"


@register
class PipedreamRuntimeClient(RuntimeClient):
    """Deploys compiled graphs to Pipedream as linear step lists.

    Required settings: PIPEDREAM_API_KEY (PIPEDREAM_API_URL optional)
    """

    provider_name = "pipedream"

    def __init__(self, api_url: str, api_key: str, http_client: httpx.AsyncClient) -> None:
        super().__init__(http_client)
        self._base = api_url.rstrip("/")
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient) -> PipedreamRuntimeClient:
        return cls(settings.pipedream_api_url, settings.pipedream_api_key or "", http_client)

    @classmethod
    def is_configured(cls, settings: Settings) -> bool:
        return bool(settings.pipedream_api_key)

    # ------------------------------------------------------------------
    # Runtime operations
    # ------------------------------------------------------------------

    async def create_workflow(self, blueprint: dict[str, Any]) -> DeployedWorkflow:
        body = await self._request(
            "POST", f"{self._base}/workflows", headers=self._headers, json=to_pipedream_workflow(blueprint)
        )
        data = body.get("data", body) if isinstance(body, dict) else body
        if not isinstance(data, dict) or not data.get("id"):
            raise RuntimeAPIError(
                "Deployment succeeded but no workflow ID received from Pipedream",
                "unexpected_response",
                response_body=body,
            )
        logger.info("Created Pipedream workflow", extra={"workflow_id": str(data["id"])})
        return DeployedWorkflow(id=str(data["id"]), active=bool(data.get("active", False)))

    async def set_active(self, workflow_id: str, active: bool) -> None:
        await self._request(
            "PATCH", f"{self._base}/workflows/{workflow_id}", headers=self._headers, json={"active": active}
        )

    async def execute(self, workflow_id: str, input: dict[str, Any]) -> RuntimeExecution:
        body = await self._request(
            "POST", f"{self._base}/workflows/{workflow_id}/execute", headers=self._headers, json=input
        )
        if not isinstance(body, dict):
            raise RuntimeAPIError(
                "Unexpected execution payload from Pipedream", "unexpected_response", response_body=body
            )
        return _to_execution(body)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def to_pipedream_workflow(blueprint: dict[str, Any]) -> dict[str, Any]:
    """Flatten a compiled graph into Pipedream's trigger + ordered steps shape.

    Steps follow the graph's node order, which is the plan's action order.
    """
    trigger: dict[str, Any] = {}
    steps: list[dict[str, Any]] = []
    for node in blueprint.get("nodes", []):
        if node["name"] == TRIGGER_NODE_NAME:
            trigger = {"type": node["type"], "config": node.get("parameters", {})}
        else:
            steps.append({"id": node["name"], "type": node["type"], "config": node.get("parameters", {})})

    return {
        "name": blueprint.get("name", ""),
        "trigger": trigger,
        "steps": steps,
        "active": False,
    }


def _to_execution(body: dict[str, Any]) -> RuntimeExecution:
    output = body.get("output_data")
    if output is None:
        output = (body.get("data") or {}).get("output")

    steps = None
    if isinstance(body.get("steps"), list):
        steps = [_to_step(s) for s in body["steps"] if isinstance(s, dict)]

    return RuntimeExecution(
        id=str(body["id"]) if body.get("id") is not None else None,
        status=str(body["status"]) if body.get("status") else None,
        started_at=body.get("started_at"),
        finished_at=body.get("finished_at"),
        output=output,
        error=str(body["error"]) if body.get("error") else None,
        steps=steps,
    )


def _to_step(step: dict[str, Any]) -> RuntimeStep:
    return RuntimeStep(
        name=str(step.get("name") or step.get("id") or "Step"),
        status=str(step["status"]) if step.get("status") else None,
        started_at=step.get("started_at"),
        finished_at=step.get("finished_at"),
        duration_ms=step.get("duration_ms"),
        input=step.get("input") if isinstance(step.get("input"), dict) else None,
        output=step.get("output"),
        error=str(step["error"]) if step.get("error") else None,
    )
