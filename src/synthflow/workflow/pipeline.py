"""Deploy pipeline: validate → check apps → compile → create → activate."""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator

from ..runtime.base import RuntimeAPIError, RuntimeClient
from .apps import ConnectionProvider, SupportedAppRegistry, validate_app_connections
from .compiler import compile_plan
from .validator import validate_plan

logger = logging.getLogger(__name__)


async def deploy_workflow(
    raw_plan: Any,
    *,
    user_id: str,
    client: RuntimeClient,
    app_registry: SupportedAppRegistry,
    connections: ConnectionProvider,
    activate: bool = True,
) -> AsyncGenerator[dict[str, Any], None]:
    """Take a raw plan all the way to an (optionally active) runtime workflow.

    Yields ``{"type", "content"}`` events. Any failing stage yields a single
    ``error`` event with an ``error_type`` and ends the stream.
    """
    result = validate_plan(raw_plan)
    if not result.ok:
        yield {"type": "error", "content": result.error.to_dict()}
        return
    plan = result.plan
    yield {"type": "plan_validated", "content": {"plan": plan.to_payload()}}

    availability = await validate_app_connections(plan, user_id, app_registry, connections)
    if not availability.ok:
        yield {
            "type": "error",
            "content": {
                "error": availability.message,
                "error_type": availability.error_type,
                "unsupported": availability.unsupported,
                "missing": availability.missing,
            },
        }
        return
    yield {"type": "apps_checked", "content": availability.to_dict()}

    graph = compile_plan(plan)
    blueprint = graph.to_payload()
    yield {"type": "graph_compiled", "content": {"graph": blueprint}}

    try:
        deployed = await client.create_workflow(blueprint)
    except RuntimeAPIError as e:
        logger.warning(
            "Workflow deployment failed",
            extra={"provider": client.provider_name, "error_type": e.error_type},
        )
        yield {"type": "error", "content": _runtime_error(e, "Deployment failed")}
        return
    logger.info(
        "Deployed workflow",
        extra={"provider": client.provider_name, "workflow_id": deployed.id, "user_id": user_id},
    )
    yield {
        "type": "workflow_deployed",
        "content": {"provider": client.provider_name, "workflow_id": deployed.id, "active": deployed.active},
    }

    if not activate:
        return

    try:
        await client.set_active(deployed.id, True)
    except RuntimeAPIError as e:
        logger.warning(
            "Workflow activation failed",
            extra={"provider": client.provider_name, "workflow_id": deployed.id, "error_type": e.error_type},
        )
        yield {"type": "error", "content": _runtime_error(e, "Activation failed", workflow_id=deployed.id)}
        return
    logger.info("Activated workflow", extra={"provider": client.provider_name, "workflow_id": deployed.id})
    yield {
        "type": "workflow_activated",
        "content": {"provider": client.provider_name, "workflow_id": deployed.id, "active": True},
    }


def _runtime_error(exc: RuntimeAPIError, prefix: str, **extra: Any) -> dict[str, Any]:
    return {"error": f"{prefix}: {exc}", "error_type": exc.error_type, **extra}
