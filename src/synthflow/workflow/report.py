"""Normalized execution result models with markdown rendering."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

ExecutionStatus = Literal["success", "error", "failure", "running"]


class _ResultModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class ExecutionError(_ResultModel):
    message: str
    stack: str | None = None
    cause: str | None = None


class StepResult(_ResultModel):
    """Outcome of a single action (or of the whole run when the runtime gives no step detail)."""

    step_name: str
    status: str
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_ms: int | None = None
    input: dict[str, Any] | None = None
    output: dict[str, Any] | None = None
    error: ExecutionError | None = None


class NormalizedExecutionResult(_ResultModel):
    """Provider-agnostic outcome of one workflow run. A retry produces a new result."""

    status: ExecutionStatus
    provider_execution_id: str | None = None
    output: dict[str, Any] | None = None
    error: ExecutionError | None = None
    started_at: datetime
    finished_at: datetime | None = None
    duration_ms: int | None = None
    steps: list[StepResult] = []

    def to_markdown(self) -> str:
        lines = [
            "# Execution Result",
            "",
            f"**Status:** {self.status}",
            f"**Execution ID:** `{self.provider_execution_id or 'n/a'}`",
            f"**Started:** {self.started_at.isoformat()}",
        ]
        if self.finished_at:
            lines.append(f"**Finished:** {self.finished_at.isoformat()}")
        if self.duration_ms is not None:
            lines.append(f"**Duration:** {self.duration_ms / 1000:.2f}s")
        lines.append("")

        if self.error:
            lines.append("## Error")
            lines.append(f"- {self.error.message}")
            if self.error.cause:
                lines.append(f"- Cause: {self.error.cause}")
            lines.append("")

        lines.append("## Steps")
        lines.append("")
        lines.append("| # | Step | Status | Duration | Detail |")
        lines.append("|---|------|--------|----------|--------|")

        for i, step in enumerate(self.steps, 1):
            detail = ""
            if step.error:
                detail = step.error.message
            elif step.output:
                detail = ", ".join(f"{k}={v}" for k, v in step.output.items())
            duration = f"{step.duration_ms}ms" if step.duration_ms is not None else "-"
            lines.append(f"| {i} | `{step.step_name}` | {step.status} | {duration} | {detail} |")

        return "\n".join(lines)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
