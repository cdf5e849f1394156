"""API models for Synthflow."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class TemplatePlanRequest(BaseModel):
    """Inputs for turning a template into a plan."""

    inputs: dict[str, Any] = Field(
        default_factory=dict,
        description="Template inputs keyed by input key (e.g., targetUrl, webhookSlug)",
    )


class PlanRequest(BaseModel):
    """A raw workflow plan to validate or compile."""

    plan: Any = Field(..., description="Workflow plan JSON")


class DeployRequest(BaseModel):
    """Request to validate, compile and deploy a plan to the configured runtime."""

    plan: Any = Field(..., description="Workflow plan JSON")
    user_id: str = Field(..., description="Owner whose app connections are checked")
    activate: bool = Field(True, description="Activate the workflow after it is created")


class RunRequest(BaseModel):
    """Request to execute a deployed workflow once."""

    workflow_id: Optional[str] = Field(
        None, description="Runtime workflow id returned by the deploy stream"
    )
    active: bool = Field(True, description="Whether the workflow is currently active")
    input: dict[str, Any] = Field(
        default_factory=dict,
        description='Run input; a non-empty "payload" object inside it is used as the input instead',
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str = "Synthflow Backend"
