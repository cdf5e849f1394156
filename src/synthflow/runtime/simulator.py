"""In-memory runtime: deploys and "runs" compiled graphs without any network calls."""

from __future__ import annotations

import itertools
import logging
import random
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel

from .base import DeployedWorkflow, RuntimeAPIError, RuntimeClient, RuntimeExecution, RuntimeStep
from .registry import register

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)


class FailureRule(BaseModel):
    """Defines how a specific node should fail."""

    message: str
    probability: float = 1.0  # 1.0 = always fail, 0.5 = 50% chance


class FailureConfig(BaseModel):
    """Maps node names to failure rules."""

    rules: dict[str, FailureRule] = {}

    def should_fail(self, node_name: str) -> FailureRule | None:
        rule = self.rules.get(node_name)
        if rule is None:
            return None
        if random.random() <= rule.probability:
            return rule
        return None


@register
class SimulatorRuntimeClient(RuntimeClient):
    """Keeps deployed graphs in memory and walks them in topological order on execute.

    No settings required.
    """

    provider_name = "simulator"

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        failure_config: FailureConfig | None = None,
    ) -> None:
        super().__init__(http_client)
        self.failure_config = failure_config
        self.workflows: dict[str, dict[str, Any]] = {}
        self.active: dict[str, bool] = {}
        self._ids = itertools.count(1)
        self._run_ids = itertools.count(1)

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient) -> SimulatorRuntimeClient:
        return cls(http_client)

    @classmethod
    def is_configured(cls, settings: Settings) -> bool:
        return True

    async def create_workflow(self, blueprint: dict[str, Any]) -> DeployedWorkflow:
        workflow_id = f"sim-{next(self._ids)}"
        self.workflows[workflow_id] = blueprint
        self.active[workflow_id] = False
        logger.info("Created simulated workflow", extra={"workflow_id": workflow_id})
        return DeployedWorkflow(id=workflow_id, active=False)

    async def set_active(self, workflow_id: str, active: bool) -> None:
        self._get(workflow_id)
        self.active[workflow_id] = active

    async def execute(self, workflow_id: str, input: dict[str, Any]) -> RuntimeExecution:
        blueprint = self._get(workflow_id)
        started_at = datetime.now(timezone.utc)
        steps = self._run(blueprint, input)
        finished_at = datetime.now(timezone.utc)

        failed = [s for s in steps if s.status == "error"]
        succeeded = [s for s in steps if s.status == "success"]
        return RuntimeExecution(
            id=f"run-{next(self._run_ids)}",
            status="error" if failed else "success",
            started_at=started_at,
            finished_at=finished_at,
            output=succeeded[-1].output if succeeded else None,
            error=failed[0].error if failed else None,
            steps=steps,
        )

    def _get(self, workflow_id: str) -> dict[str, Any]:
        blueprint = self.workflows.get(workflow_id)
        if blueprint is None:
            raise RuntimeAPIError(
                f"simulator API error (404): workflow {workflow_id} not found",
                "not_found",
                status_code=404,
            )
        return blueprint

    def _run(self, blueprint: dict[str, Any], input: dict[str, Any]) -> list[RuntimeStep]:
        nodes = {node["name"]: node for node in blueprint.get("nodes", [])}
        predecessors: dict[str, set[str]] = defaultdict(set)
        for source, outputs in (blueprint.get("connections") or {}).items():
            for branch in outputs.get("main", []):
                for target in branch:
                    predecessors[target["node"]].add(source)

        failed: set[str] = set()
        skipped: set[str] = set()
        steps: list[RuntimeStep] = []

        for name in _topological_order(nodes, predecessors):
            node = nodes[name]
            now = datetime.now(timezone.utc)

            upstream = sorted(p for p in predecessors[name] if p in failed or p in skipped)
            if upstream:
                skipped.add(name)
                steps.append(
                    RuntimeStep(
                        name=name,
                        status="skipped",
                        error=f"Skipped due to upstream failure: {', '.join(upstream)}",
                    )
                )
                continue

            rule = self.failure_config.should_fail(name) if self.failure_config else None
            if rule:
                failed.add(name)
                steps.append(
                    RuntimeStep(
                        name=name,
                        status="error",
                        started_at=now,
                        finished_at=now,
                        duration_ms=0,
                        input=input,
                        error=rule.message,
                    )
                )
                continue

            steps.append(
                RuntimeStep(
                    name=name,
                    status="success",
                    started_at=now,
                    finished_at=now,
                    duration_ms=0,
                    input=input,
                    output=_node_output(node, input),
                )
            )
        return steps


def _topological_order(nodes: dict[str, dict[str, Any]], predecessors: dict[str, set[str]]) -> list[str]:
    """Kahn's algorithm; ties keep the blueprint's node order."""
    in_degree = {name: len([p for p in predecessors[name] if p in nodes]) for name in nodes}
    successors: dict[str, list[str]] = defaultdict(list)
    for name in nodes:
        for pred in predecessors[name]:
            successors[pred].append(name)

    queue = deque(name for name in nodes if in_degree[name] == 0)
    order: list[str] = []
    while queue:
        name = queue.popleft()
        order.append(name)
        for nxt in successors[name]:
            in_degree[nxt] -= 1
            if in_degree[nxt] == 0:
                queue.append(nxt)

    # Cycles are legal in a plan; run whatever is left in declaration order.
    order.extend(name for name in nodes if name not in order)
    return order


def _node_output(node: dict[str, Any], input: dict[str, Any]) -> dict[str, Any]:
    params = node.get("parameters") or {}
    if node["type"] == "n8n-nodes-base.set":
        return dict(params.get("fields") or {})
    if node["type"].endswith(("webhook", "cron", "manualTrigger")):
        return dict(input)
    return {"type": node["type"], "parameters": params}
