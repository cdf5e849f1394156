"""Pydantic models defining the workflow plan DSL: a trigger plus a graph of actions."""

from typing import Annotated, Any, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Numbers stay numbers: no string coercion, and ints are not widened to floats.
PositiveNumber = Union[Annotated[StrictInt, Field(gt=0)], Annotated[StrictFloat, Field(gt=0)]]


class PlanModel(BaseModel):
    """Base for all plan models: immutable, snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Intervals
# ---------------------------------------------------------------------------


class Interval(PlanModel):
    """A structured schedule interval, e.g. every 15 minutes."""

    amount: PositiveNumber
    unit: Literal["seconds", "minutes", "hours", "days"]


class DelayInterval(PlanModel):
    amount: PositiveNumber
    unit: Literal["seconds", "minutes", "hours"]


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


class WebhookConfig(PlanModel):
    path: str = Field(min_length=1)
    method: str | None = None  # runtime default is POST


class WebhookTrigger(PlanModel):
    type: Literal["webhook"]
    config: WebhookConfig


class CronConfig(PlanModel):
    cron_expression: str | None = None
    interval: Interval | None = None

    @model_validator(mode="after")
    def _require_schedule(self) -> "CronConfig":
        if not self.cron_expression and self.interval is None:
            raise ValueError("Cron trigger requires either cronExpression or interval.")
        return self


class CronTrigger(PlanModel):
    type: Literal["cron"]
    config: CronConfig


class ManualTrigger(PlanModel):
    type: Literal["manual"]
    config: dict[str, Any] | None = None


TriggerDefinition = Annotated[
    Union[WebhookTrigger, CronTrigger, ManualTrigger],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class ActionBase(PlanModel):
    """Fields shared by every action variant."""

    id: str = Field(min_length=1)
    on_success_next: list[str] = []
    on_failure_next: list[str] | None = None

    def next_ids(self) -> Iterator[str]:
        """Yield outgoing target ids: success targets first, then failure targets."""
        yield from self.on_success_next
        yield from self.on_failure_next or []


class HttpRequestParams(PlanModel):
    url: str | None = None
    method: str | None = None
    headers: dict[str, str] | None = None
    query: dict[str, str] | None = None
    body: Any = None
    auth_ref: str | None = None  # points at a user connection, e.g. "slack:conn_42"

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str | None) -> str | None:
        if value is None:
            return value
        if not value:
            raise ValueError("URL cannot be empty")
        if not value.startswith(("http://", "https://")) or any(c.isspace() for c in value):
            raise ValueError("URL must start with http:// or https:// and contain no spaces")
        return value


class HttpRequestAction(ActionBase):
    type: Literal["http_request"]
    params: HttpRequestParams


class SetDataParams(PlanModel):
    fields: dict[str, Any]


class SetDataAction(ActionBase):
    type: Literal["set_data"]
    params: SetDataParams


class SendEmailParams(PlanModel):
    to: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)
    from_: str | None = Field(default=None, alias="from")


class SendEmailAction(ActionBase):
    type: Literal["send_email"]
    params: SendEmailParams


class DelayParams(PlanModel):
    duration_ms: PositiveNumber | None = None
    structured: DelayInterval | None = None

    @model_validator(mode="after")
    def _require_duration(self) -> "DelayParams":
        if self.duration_ms is None and self.structured is None:
            raise ValueError("Delay action requires either durationMs or structured interval.")
        return self


class DelayAction(ActionBase):
    type: Literal["delay"]
    params: DelayParams


ActionDefinition = Annotated[
    Union[HttpRequestAction, SetDataAction, SendEmailAction, DelayAction],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


class WorkflowPlan(PlanModel):
    """A complete, engine-agnostic workflow: one trigger and a graph of actions."""

    name: str = Field(min_length=1)
    description: str | None = None
    intent: str | None = None
    trigger: TriggerDefinition
    actions: list[ActionDefinition] = Field(min_length=1)
    metadata: dict[str, Any] | None = None
