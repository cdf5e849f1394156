"""Lower a validated WorkflowPlan into the node/connection graph an automation runtime deploys."""

from __future__ import annotations

import logging
from typing import Any, assert_never

from pydantic import BaseModel, ConfigDict, Field

from .expressions import resolve_references
from .schema import (
    ActionDefinition,
    CronTrigger,
    DelayAction,
    HttpRequestAction,
    ManualTrigger,
    SendEmailAction,
    SetDataAction,
    TriggerDefinition,
    WebhookTrigger,
    WorkflowPlan,
)
from .validator import find_start_actions

logger = logging.getLogger(__name__)

TRIGGER_NODE_NAME = "Trigger"
NODE_TYPE_VERSION = 1

# Cosmetic layout: trigger at the origin, actions on one row.
_ACTION_X_OFFSET = 200
_ACTION_X_SPACING = 280
_ACTION_Y = 200


class GraphNode(BaseModel):
    """A single node in the compiled runtime graph."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    type: str
    type_version: int = Field(default=NODE_TYPE_VERSION, alias="typeVersion")
    position: tuple[int, int]
    parameters: dict[str, Any] = {}


class ConnectionTarget(BaseModel):
    """One outgoing edge: the target node and the input it lands on."""

    model_config = ConfigDict(frozen=True)

    node: str
    type: str = "main"
    index: int = 0


class NodeConnections(BaseModel):
    """Outputs of a source node. ``main[0]`` is the default output."""

    main: list[list[ConnectionTarget]] = Field(default_factory=lambda: [[]])


class CompiledGraph(BaseModel):
    """The runtime-specific representation of exactly one validated plan."""

    name: str
    nodes: list[GraphNode]
    connections: dict[str, NodeConnections]
    settings: dict[str, Any] = {}
    tags: list[str] = []

    def node(self, name: str) -> GraphNode | None:
        return next((n for n in self.nodes if n.name == name), None)

    def targets(self, source: str) -> list[str]:
        """Names wired to ``source``'s default output, in order."""
        conns = self.connections.get(source)
        if conns is None:
            return []
        return [t.node for t in conns.main[0]]

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def compile_plan(plan: WorkflowPlan) -> CompiledGraph:
    """Compile a plan that already passed validate_plan. Deterministic; never re-validates."""
    nodes: list[GraphNode] = [_build_trigger_node(plan.trigger, node_id="1", position=(0, 0))]

    node_names = {action.id: action.id for action in plan.actions}
    for index, action in enumerate(plan.actions):
        nodes.append(
            _build_action_node(
                action,
                node_id=str(index + 2),
                position=(index * _ACTION_X_SPACING + _ACTION_X_OFFSET, _ACTION_Y),
                node_names=node_names,
            )
        )

    graph = CompiledGraph(
        name=plan.name,
        nodes=nodes,
        connections=_build_connections(plan, node_names),
    )
    logger.debug(
        "Compiled workflow plan",
        extra={"plan_name": plan.name, "node_count": len(nodes)},
    )
    return graph


def _build_trigger_node(
    trigger: TriggerDefinition,
    node_id: str,
    position: tuple[int, int],
) -> GraphNode:
    if isinstance(trigger, WebhookTrigger):
        node_type = "n8n-nodes-base.webhook"
        parameters: dict[str, Any] = {
            "path": trigger.config.path,
            "httpMethod": (trigger.config.method or "POST").upper(),
        }
    elif isinstance(trigger, CronTrigger):
        node_type = "n8n-nodes-base.cron"
        parameters = trigger.config.to_payload()
    elif isinstance(trigger, ManualTrigger):
        node_type = "n8n-nodes-base.manualTrigger"
        parameters = {}
    else:
        assert_never(trigger)

    return GraphNode(
        id=node_id,
        name=TRIGGER_NODE_NAME,
        type=node_type,
        position=position,
        parameters=parameters,
    )


def _action_node_type(action: ActionDefinition) -> str:
    if isinstance(action, HttpRequestAction):
        return "n8n-nodes-base.httpRequest"
    if isinstance(action, SetDataAction):
        return "n8n-nodes-base.set"
    if isinstance(action, SendEmailAction):
        return "n8n-nodes-base.emailSend"
    if isinstance(action, DelayAction):
        return "n8n-nodes-base.wait"
    assert_never(action)


def _build_action_node(
    action: ActionDefinition,
    node_id: str,
    position: tuple[int, int],
    node_names: dict[str, str],
) -> GraphNode:
    return GraphNode(
        id=node_id,
        name=node_names[action.id],
        type=_action_node_type(action),
        position=position,
        parameters=resolve_references(action.params.to_payload(), node_names, TRIGGER_NODE_NAME),
    )


def _build_connections(
    plan: WorkflowPlan,
    node_names: dict[str, str],
) -> dict[str, NodeConnections]:
    connections: dict[str, NodeConnections] = {}

    # Failure edges share the default output with success edges.
    for action in plan.actions:
        connections[node_names[action.id]] = NodeConnections(
            main=[[ConnectionTarget(node=node_names[next_id]) for next_id in action.next_ids()]]
        )

    start_actions = find_start_actions(plan.actions)
    if start_actions:
        connections[TRIGGER_NODE_NAME] = NodeConnections(
            main=[[ConnectionTarget(node=node_names[a.id]) for a in start_actions]]
        )

    return connections
