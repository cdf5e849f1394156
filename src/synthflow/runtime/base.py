"""Base interface for automation runtime clients (n8n, Pipedream, the in-memory simulator)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel

if TYPE_CHECKING:
    from ..config import Settings


class RuntimeAPIError(Exception):
    """Raised when the runtime cannot be reached or rejects a request."""

    def __init__(
        self,
        message: str,
        error_type: str = "runtime_error",
        status_code: int | None = None,
        response_body: Any = None,
    ):
        self.error_type = error_type
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


class RuntimeConfigurationError(Exception):
    """Raised before any network call when the runtime is not configured."""


class DeployedWorkflow(BaseModel):
    """A workflow as created on the runtime."""

    id: str
    active: bool = False


class RuntimeStep(BaseModel):
    """Per-node detail of a run, when the runtime reports it."""

    name: str
    status: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_ms: float | None = None
    input: dict[str, Any] | None = None
    output: Any = None
    error: str | None = None


class RuntimeExecution(BaseModel):
    """The execute() response every client maps its native payload onto.

    ``status`` keeps the runtime's own vocabulary; normalization happens later.
    """

    id: str | None = None
    status: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    output: Any = None
    error: str | None = None
    steps: list[RuntimeStep] | None = None


_STATUS_ERROR_TYPES = {
    401: "auth_error",
    403: "auth_error",
    404: "not_found",
    429: "rate_limit",
}


class RuntimeClient(ABC):
    """Abstract base for all runtime clients.

    Interface contract:

        async def create_workflow(self, blueprint: dict) -> DeployedWorkflow: ...
        async def set_active(self, workflow_id: str, active: bool) -> None: ...
        async def execute(self, workflow_id: str, input: dict) -> RuntimeExecution: ...

    Every remote failure surfaces as RuntimeAPIError.
    """

    provider_name: str = ""

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self.http = http_client

    @abstractmethod
    async def create_workflow(self, blueprint: dict[str, Any]) -> DeployedWorkflow: ...

    @abstractmethod
    async def set_active(self, workflow_id: str, active: bool) -> None: ...

    @abstractmethod
    async def execute(self, workflow_id: str, input: dict[str, Any]) -> RuntimeExecution: ...

    @classmethod
    @abstractmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient) -> RuntimeClient:
        """Construct this client from application Settings."""
        ...

    @classmethod
    @abstractmethod
    def is_configured(cls, settings: Settings) -> bool:
        """Return True if all required credentials are present in settings."""
        ...

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json: Any = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (None for an empty body)."""
        if self.http is None:
            raise RuntimeConfigurationError(f"{self.provider_name} client has no HTTP client")

        try:
            resp = await self.http.request(method, url, headers=headers, json=json)
        except httpx.HTTPError as e:
            raise RuntimeAPIError(
                f"Failed to communicate with {self.provider_name}: {e}", "network"
            ) from e

        if resp.status_code >= 400:
            body = _decode_body(resp)
            detail = body.get("message") if isinstance(body, dict) else body
            raise RuntimeAPIError(
                f"{self.provider_name} API error ({resp.status_code}): {detail or resp.reason_phrase}",
                _STATUS_ERROR_TYPES.get(resp.status_code, "runtime_error"),
                status_code=resp.status_code,
                response_body=body,
            )

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise RuntimeAPIError(
                f"{self.provider_name} returned a non-JSON response",
                "unexpected_response",
                status_code=resp.status_code,
                response_body=resp.text[:500],
            ) from e


def _decode_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text
