"""Execution dispatcher: runs a deployed workflow once and normalizes the outcome."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from ..runtime.base import RuntimeAPIError, RuntimeClient, RuntimeExecution, RuntimeStep
from .report import ExecutionError, ExecutionStatus, NormalizedExecutionResult, StepResult

logger = logging.getLogger(__name__)

WHOLE_RUN_STEP_NAME = "Workflow Execution"


class WorkflowNotActiveError(Exception):
    """Raised before dispatch when the workflow reference cannot be run."""


@dataclass(frozen=True)
class DeployedWorkflowRef:
    provider_workflow_id: str | None
    active: bool = True


def normalize_status(raw: str | None) -> ExecutionStatus:
    """Collapse a runtime's status vocabulary onto success / error / running."""
    if raw == "success":
        return "success"
    if raw in ("error", "failure"):
        return "error"
    return "running"


def normalize_step_status(raw: str | None, run_status: ExecutionStatus) -> str:
    """Like normalize_status, plus "skipped" for nodes a runtime never ran. No status means the run's."""
    if raw is None:
        return run_status
    if raw == "skipped":
        return "skipped"
    return normalize_status(raw)


def _duration_ms(started_at: datetime | None, finished_at: datetime | None) -> int | None:
    if started_at is None or finished_at is None:
        return None
    return int((_aware(finished_at) - _aware(started_at)).total_seconds() * 1000)


def _aware(value: datetime) -> datetime:
    # Runtimes that omit an offset report UTC.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _as_dict(value: Any) -> dict[str, Any] | None:
    if value is None:
        return None
    if isinstance(value, dict):
        return value
    return {"data": value}


def _to_step_result(step: RuntimeStep, run_status: ExecutionStatus) -> StepResult:
    duration = step.duration_ms
    if duration is None:
        duration = _duration_ms(step.started_at, step.finished_at)
    return StepResult(
        step_name=step.name,
        status=normalize_step_status(step.status, run_status),
        started_at=step.started_at,
        finished_at=step.finished_at,
        duration_ms=int(duration) if duration is not None else None,
        input=step.input,
        output=_as_dict(step.output),
        error=ExecutionError(message=step.error) if step.error else None,
    )


def normalize_execution(
    execution: RuntimeExecution,
    input: dict[str, Any],
    started_at: datetime,
) -> NormalizedExecutionResult:
    """Map a runtime's execute() response onto the provider-agnostic result shape.

    The runtime's own ``started_at`` wins over the locally recorded one. When the
    runtime reports no per-node detail, one step spanning the whole run is made up.
    """
    status = normalize_status(execution.status)
    run_started = execution.started_at or started_at
    finished_at = execution.finished_at
    output = _as_dict(execution.output)

    step_results = [_to_step_result(step, status) for step in execution.steps or []]

    error = None
    if status == "error":
        message = execution.error
        if not message and output and output.get("error"):
            message = str(output["error"])
        if not message:
            message = next(
                (s.error.message for s in step_results if s.status == "error" and s.error), None
            )
        error = ExecutionError(message=message or "Execution failed")

    if step_results:
        steps = step_results
    else:
        steps = [
            StepResult(
                step_name=WHOLE_RUN_STEP_NAME,
                status=status,
                started_at=run_started,
                finished_at=finished_at,
                duration_ms=_duration_ms(run_started, finished_at),
                input=input,
                output=output,
                error=error,
            )
        ]

    return NormalizedExecutionResult(
        status=status,
        provider_execution_id=execution.id,
        output=output,
        error=error,
        started_at=run_started,
        finished_at=finished_at,
        duration_ms=_duration_ms(run_started, finished_at),
        steps=steps,
    )


def _failed_result(
    message: str,
    input: dict[str, Any],
    started_at: datetime,
    cause: str | None = None,
) -> NormalizedExecutionResult:
    finished_at = datetime.now(timezone.utc)
    duration = _duration_ms(started_at, finished_at)
    error = ExecutionError(message=message, cause=cause)
    return NormalizedExecutionResult(
        status="error",
        provider_execution_id=None,
        error=error,
        started_at=started_at,
        finished_at=finished_at,
        duration_ms=duration,
        steps=[
            StepResult(
                step_name=WHOLE_RUN_STEP_NAME,
                status="error",
                started_at=started_at,
                finished_at=finished_at,
                duration_ms=duration,
                input=input,
                error=error,
            )
        ],
    )


class ExecutionDispatcher:
    """Runs a deployed workflow through a RuntimeClient. One call out, no retries, no polling."""

    def __init__(self, client: RuntimeClient):
        self.client = client

    async def run(
        self,
        workflow_ref: DeployedWorkflowRef | str,
        input: dict[str, Any] | None = None,
    ) -> NormalizedExecutionResult:
        """Execute once and return a normalized result.

        Remote failures are encoded in the result; only an unusable workflow
        reference raises (WorkflowNotActiveError).
        """
        if isinstance(workflow_ref, str):
            workflow_ref = DeployedWorkflowRef(provider_workflow_id=workflow_ref)
        if not workflow_ref.provider_workflow_id:
            raise WorkflowNotActiveError("Workflow has not been deployed to a runtime")
        if not workflow_ref.active:
            raise WorkflowNotActiveError(
                f"Workflow {workflow_ref.provider_workflow_id} is not active"
            )

        payload = dict(input or {})
        if isinstance(payload.get("payload"), dict) and payload["payload"]:
            payload = payload["payload"]

        started_at = datetime.now(timezone.utc)
        workflow_id = workflow_ref.provider_workflow_id
        try:
            execution = await self.client.execute(workflow_id, payload)
        except RuntimeAPIError as e:
            logger.warning(
                "Runtime execute failed",
                extra={
                    "provider": self.client.provider_name,
                    "workflow_id": workflow_id,
                    "error_type": e.error_type,
                    "status_code": e.status_code,
                },
            )
            cause = str(e.response_body) if e.response_body not in (None, "") else None
            return _failed_result(str(e), payload, started_at, cause=cause)
        except Exception as e:
            logger.exception(
                "Unexpected error while dispatching workflow",
                extra={"provider": self.client.provider_name, "workflow_id": workflow_id},
            )
            return _failed_result(str(e) or type(e).__name__, payload, started_at)

        return normalize_execution(execution, payload, started_at)
