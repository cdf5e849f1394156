"""Plan validation: schema parsing followed by structural checks on the action graph.

Two stages, both pure:
  1. Schema: parse the raw JSON into a WorkflowPlan (shape + per-field rules)
  2. Structure: unique ids, resolvable next-references, at least one start action
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from pydantic import TypeAdapter, ValidationError

from .schema import ActionDefinition, WorkflowPlan

logger = logging.getLogger(__name__)

_plan_adapter = TypeAdapter(WorkflowPlan)


class PlanValidationError(Exception):
    """Raised (or returned) when a plan fails schema or structural validation."""

    def __init__(
        self,
        message: str,
        error_type: str = "structure",
        details: list[dict[str, Any]] | None = None,
    ):
        self.error_type = error_type  # "schema" | "structure"
        self.details = details or []
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "error_type": self.error_type, "details": self.details}


@dataclass(frozen=True)
class PlanValidationResult:
    """Outcome of validate_plan: either ok with the plan, or an error."""

    ok: bool
    plan: WorkflowPlan | None = None
    error: PlanValidationError | None = None


def validate_plan(raw: Any) -> PlanValidationResult:
    """Validate a raw plan. Never raises for invalid input; see parse_plan for that."""
    try:
        plan = parse_plan(raw)
    except PlanValidationError as e:
        logger.warning(
            "Rejected workflow plan",
            extra={"error_type": e.error_type, "reason": e.message},
        )
        return PlanValidationResult(ok=False, error=e)
    return PlanValidationResult(ok=True, plan=plan)


def parse_plan(raw: Any) -> WorkflowPlan:
    """Return the validated plan or raise PlanValidationError.

    An already-constructed WorkflowPlan is checked and returned as the same object.
    """
    if isinstance(raw, WorkflowPlan):
        plan = raw
    else:
        try:
            plan = _plan_adapter.validate_python(raw)
        except ValidationError as e:
            raise _schema_error(e) from e

    _check_structure(plan.actions)
    return plan


def incoming_counts(actions: Sequence[ActionDefinition]) -> dict[str, int]:
    """Count, for every action id, how often it appears as a success/failure target."""
    counts = {action.id: 0 for action in actions}
    for action in actions:
        for next_id in action.next_ids():
            if next_id in counts:
                counts[next_id] += 1
    return counts


def find_start_actions(actions: Sequence[ActionDefinition]) -> list[ActionDefinition]:
    """Return actions with no incoming edges, in declaration order."""
    counts = incoming_counts(actions)
    return [action for action in actions if counts[action.id] == 0]


def _check_structure(actions: Sequence[ActionDefinition]) -> None:
    seen: set[str] = set()
    for action in actions:
        if action.id in seen:
            raise PlanValidationError(f"Duplicate action id: {action.id}")
        seen.add(action.id)

    for action in actions:
        for next_id in action.on_success_next:
            if next_id not in seen:
                raise PlanValidationError(
                    f"Action '{action.id}' references unknown onSuccessNext id '{next_id}'."
                )
        for next_id in action.on_failure_next or []:
            if next_id not in seen:
                raise PlanValidationError(
                    f"Action '{action.id}' references unknown onFailureNext id '{next_id}'."
                )

    # The trigger is not wired by id in the plan; a start action stands in for that edge.
    if not find_start_actions(actions):
        raise PlanValidationError(
            "No valid starting action found. At least one action must not have a predecessor."
        )


def _schema_error(exc: ValidationError) -> PlanValidationError:
    details = [
        {"path": _format_loc(err["loc"]), "message": err["msg"]}
        for err in exc.errors(include_url=False)
    ]
    first = details[0] if details else {"path": "", "message": str(exc)}
    where = f" at {first['path']}" if first["path"] else ""
    return PlanValidationError(
        f"WorkflowPlan schema validation failed{where}: {first['message']}",
        "schema",
        details,
    )


def _format_loc(loc: tuple) -> str:
    return ".".join(str(part) for part in loc)
