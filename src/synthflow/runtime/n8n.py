"""n8n REST API runtime client."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import httpx

from .base import DeployedWorkflow, RuntimeAPIError, RuntimeClient, RuntimeExecution, RuntimeStep
from .registry import register

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

# Keys the n8n public API accepts on workflow create; the rest are read-only.
_CREATE_KEYS = ("name", "nodes", "connections", "settings")


@register
class N8nRuntimeClient(RuntimeClient):
    """Deploys compiled graphs to n8n and triggers runs through its REST API.

    Required settings: N8N_API_URL, N8N_API_KEY
    """

    provider_name = "n8n"

    def __init__(self, api_url: str, api_key: str, http_client: httpx.AsyncClient) -> None:
        super().__init__(http_client)
        self._base = f"{api_url.rstrip('/')}/api/v1"
        self._headers = {
            "X-N8N-API-KEY": api_key,
            "Content-Type": "application/json",
        }

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient) -> N8nRuntimeClient:
        return cls(settings.n8n_api_url, settings.n8n_api_key or "", http_client)

    @classmethod
    def is_configured(cls, settings: Settings) -> bool:
        return bool(settings.n8n_api_url and settings.n8n_api_key)

    # ------------------------------------------------------------------
    # Runtime operations
    # ------------------------------------------------------------------

    async def create_workflow(self, blueprint: dict[str, Any]) -> DeployedWorkflow:
        """Create a workflow from a compiled graph payload."""
        payload = {key: blueprint[key] for key in _CREATE_KEYS if key in blueprint}
        payload.setdefault("settings", {})
        data = _unwrap(await self._request("POST", f"{self._base}/workflows", headers=self._headers, json=payload))
        if not isinstance(data, dict) or not data.get("id"):
            raise RuntimeAPIError(
                "Deployment succeeded but no workflow ID received from n8n",
                "unexpected_response",
                response_body=data,
            )
        logger.info("Created n8n workflow", extra={"workflow_id": str(data["id"])})
        return DeployedWorkflow(id=str(data["id"]), active=bool(data.get("active", False)))

    async def set_active(self, workflow_id: str, active: bool) -> None:
        """Activate or deactivate a workflow."""
        verb = "activate" if active else "deactivate"
        await self._request("POST", f"{self._base}/workflows/{workflow_id}/{verb}", headers=self._headers)

    async def execute(self, workflow_id: str, input: dict[str, Any]) -> RuntimeExecution:
        """Run a workflow manually and map n8n's execution record."""
        data = _unwrap(
            await self._request(
                "POST",
                f"{self._base}/workflows/{workflow_id}/execute",
                headers=self._headers,
                json=input,
            )
        )
        if not isinstance(data, dict):
            raise RuntimeAPIError(
                "Unexpected execution payload from n8n", "unexpected_response", response_body=data
            )
        return _to_execution(data)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _unwrap(body: Any) -> Any:
    """Some n8n versions wrap responses in ``{"data": ...}``."""
    if isinstance(body, dict) and isinstance(body.get("data"), dict) and "id" not in body:
        return body["data"]
    return body


def _to_execution(data: dict[str, Any]) -> RuntimeExecution:
    result_data = (data.get("data") or {}).get("resultData") or {}
    run_error = (result_data.get("error") or {}).get("message")
    steps = _to_steps(result_data.get("runData") or {})

    return RuntimeExecution(
        id=str(data["id"]) if data.get("id") is not None else None,
        status=_status(data, run_error),
        started_at=data.get("startedAt"),
        finished_at=data.get("stoppedAt"),
        output=steps[-1].output if steps else None,
        error=run_error,
        steps=steps or None,
    )


def _status(data: dict[str, Any], run_error: str | None) -> str:
    status = data.get("status")
    if status in ("crashed", "canceled"):
        return "error"
    if status:
        return status
    if not data.get("finished"):
        return "running"
    return "error" if run_error else "success"


def _to_steps(run_data: dict[str, Any]) -> list[RuntimeStep]:
    steps: list[RuntimeStep] = []
    for node_name, runs in run_data.items():
        for run in runs or []:
            started = _from_millis(run.get("startTime"))
            elapsed = run.get("executionTime")
            finished = started + timedelta(milliseconds=elapsed) if started and elapsed is not None else None
            error = (run.get("error") or {}).get("message")
            steps.append(
                RuntimeStep(
                    name=node_name,
                    status=run.get("executionStatus") or ("error" if error else "success"),
                    started_at=started,
                    finished_at=finished,
                    duration_ms=elapsed,
                    output=_first_item(run),
                    error=error,
                )
            )
    return steps


def _first_item(run: dict[str, Any]) -> Any:
    main = ((run.get("data") or {}).get("main")) or []
    if main and main[0]:
        return main[0][0].get("json")
    return None


def _from_millis(value: Any) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
