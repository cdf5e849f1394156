"""Ready-made workflow recipes that expand a few inputs into a complete plan.

Templates only shape inputs into Plan JSON; they have no way around the
validator. ``instantiate_template`` checks inputs against the template's
descriptors first, so a missing value is reported by name instead of
surfacing later as an opaque schema error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from .schema import WorkflowPlan
from .validator import parse_plan

WEBHOOK_PATH_PREFIX = "/synth"

TemplateInputs = dict[str, Any]


@dataclass(frozen=True)
class TemplateInput:
    key: str
    label: str
    type: str  # "string" | "email" | "url" | "number" | "mapping" | "interval"
    description: str = ""
    required: bool = True

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "type": self.type,
            "description": self.description,
            "required": self.required,
        }


@dataclass(frozen=True)
class WorkflowTemplate:
    id: str
    name: str
    description: str
    category: str
    inputs: list[TemplateInput]
    build_plan: Callable[[TemplateInputs], dict[str, Any]]
    # Groups of keys where at least one must be supplied.
    required_one_of: list[tuple[str, ...]] = field(default_factory=list)

    @property
    def required_inputs(self) -> list[TemplateInput]:
        return [i for i in self.inputs if i.required]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "inputs": [i.to_dict() for i in self.inputs],
            "required_one_of": [list(group) for group in self.required_one_of],
        }


class TemplateInputError(Exception):
    """Raised when template inputs are missing or malformed."""

    def __init__(self, template_id: str, errors: list[str]):
        self.template_id = template_id
        self.errors = errors
        super().__init__(f"Invalid inputs for template '{template_id}': {'; '.join(errors)}")


def build_webhook_path(slug: str, prefix: str = WEBHOOK_PATH_PREFIX) -> str:
    """Turn a slug like ``/lead-intake/`` into ``/synth/lead-intake``."""
    return f"{prefix.rstrip('/')}/{slug.strip().strip('/')}"


def _str(inputs: TemplateInputs, key: str, default: str = "") -> str:
    value = inputs.get(key)
    return str(value).strip() if value is not None else default


def _webhook_trigger(inputs: TemplateInputs) -> dict[str, Any]:
    return {
        "type": "webhook",
        "config": {"path": build_webhook_path(_str(inputs, "webhookPath")), "method": "POST"},
    }


def _metadata(template_id: str, inputs: TemplateInputs) -> dict[str, Any]:
    return {"templateId": template_id, "rawInputs": dict(inputs)}


# ---------------------------------------------------------------------------
# Webhook -> Set -> HTTP request
# ---------------------------------------------------------------------------


def _build_webhook_set_http(inputs: TemplateInputs) -> dict[str, Any]:
    fields: dict[str, Any] = {"normalized": "{{webhook.body}}"}
    if inputs.get("mapping"):
        fields["mapping"] = inputs["mapping"]

    return {
        "name": "Webhook → Set → HTTP request",
        "description": (
            "Receives data via webhook, normalizes the payload, "
            "and forwards it to an external HTTP endpoint."
        ),
        "intent": "intake_forward_to_http",
        "trigger": _webhook_trigger(inputs),
        "actions": [
            {
                "id": "normalize_payload",
                "type": "set_data",
                "params": {"fields": fields},
                "onSuccessNext": ["forward_request"],
            },
            {
                "id": "forward_request",
                "type": "http_request",
                "params": {
                    "url": _str(inputs, "targetUrl"),
                    "method": _str(inputs, "requestMethod", "POST").upper() or "POST",
                    "body": "{{normalize_payload.normalized}}",
                },
                "onSuccessNext": [],
            },
        ],
        "metadata": _metadata("webhook_set_http", inputs),
    }


# ---------------------------------------------------------------------------
# Webhook -> Email
# ---------------------------------------------------------------------------


def _build_webhook_email(inputs: TemplateInputs) -> dict[str, Any]:
    subject = inputs.get("subjectTemplate") or "New webhook event received"
    body = inputs.get("bodyTemplate") or "A new event was received:\n\n{{webhook.body}}"

    return {
        "name": "Webhook → Email",
        "description": "Receives data via webhook and sends an email notification containing the payload.",
        "intent": "intake_notify_email",
        "trigger": _webhook_trigger(inputs),
        "actions": [
            {
                "id": "build_email_body",
                "type": "set_data",
                "params": {
                    "fields": {
                        "subject": subject,
                        "body": body,
                        "rawPayload": "{{webhook.body}}",
                    }
                },
                "onSuccessNext": ["send_email"],
            },
            {
                "id": "send_email",
                "type": "send_email",
                "params": {
                    "to": _str(inputs, "emailTo"),
                    "subject": "{{build_email_body.subject}}",
                    "body": "{{build_email_body.body}}",
                },
                "onSuccessNext": [],
            },
        ],
        "metadata": _metadata("webhook_email", inputs),
    }


# ---------------------------------------------------------------------------
# Cron -> HTTP request -> Email
# ---------------------------------------------------------------------------


def _build_cron_http_email(inputs: TemplateInputs) -> dict[str, Any]:
    config: dict[str, Any] = {}
    if _str(inputs, "cronExpression"):
        config["cronExpression"] = _str(inputs, "cronExpression")
    if inputs.get("interval"):
        config["interval"] = inputs["interval"]

    return {
        "name": "Cron → HTTP request → Email",
        "description": "Runs on a schedule, fetches data from an HTTP endpoint, and emails the results.",
        "intent": "scheduled_http_report",
        "trigger": {"type": "cron", "config": config},
        "actions": [
            {
                "id": "fetch_data",
                "type": "http_request",
                "params": {"url": _str(inputs, "requestUrl"), "method": "GET"},
                "onSuccessNext": ["format_email"],
            },
            {
                "id": "format_email",
                "type": "set_data",
                "params": {
                    "fields": {
                        "subject": inputs.get("emailSubject") or "Scheduled report from Synth",
                        "body": "Here is your scheduled report:\n\n{{fetch_data.response}}",
                    }
                },
                "onSuccessNext": ["send_email"],
            },
            {
                "id": "send_email",
                "type": "send_email",
                "params": {
                    "to": _str(inputs, "emailTo"),
                    "subject": "{{format_email.subject}}",
                    "body": "{{format_email.body}}",
                },
                "onSuccessNext": [],
            },
        ],
        "metadata": _metadata("cron_http_email", inputs),
    }


# ---------------------------------------------------------------------------
# Webhook -> Set -> Delay -> HTTP request
# ---------------------------------------------------------------------------


def _build_webhook_delay_http(inputs: TemplateInputs) -> dict[str, Any]:
    delay: dict[str, Any] = {}
    if isinstance(inputs.get("delayMs"), (int, float)):
        delay["durationMs"] = inputs["delayMs"]
    if inputs.get("interval"):
        delay["structured"] = inputs["interval"]

    return {
        "name": "Webhook → Delay → HTTP request",
        "description": "Receives data via webhook, waits for a delay, and then calls an HTTP endpoint.",
        "intent": "delayed_http_followup",
        "trigger": _webhook_trigger(inputs),
        "actions": [
            {
                "id": "prepare_payload",
                "type": "set_data",
                "params": {"fields": {"payload": "{{webhook.body}}"}},
                "onSuccessNext": ["delay_step"],
            },
            {
                "id": "delay_step",
                "type": "delay",
                "params": delay,
                "onSuccessNext": ["send_request"],
            },
            {
                "id": "send_request",
                "type": "http_request",
                "params": {
                    "url": _str(inputs, "targetUrl"),
                    "method": "POST",
                    "body": "{{prepare_payload.payload}}",
                },
                "onSuccessNext": [],
            },
        ],
        "metadata": _metadata("webhook_delay_http", inputs),
    }


_WEBHOOK_PATH_INPUT = TemplateInput(
    key="webhookPath",
    label="Webhook path slug",
    type="string",
    description="Slug for the webhook path, e.g. 'lead-intake'. The full path will be /synth/<slug>.",
)

TEMPLATES: dict[str, WorkflowTemplate] = {
    t.id: t
    for t in [
        WorkflowTemplate(
            id="webhook_set_http",
            name="Webhook → Set → HTTP request",
            description="Receive data via webhook, normalize it, and forward it to an external HTTP endpoint.",
            category="intake-forwarding",
            inputs=[
                _WEBHOOK_PATH_INPUT,
                TemplateInput("targetUrl", "Target URL", "url", "The HTTP endpoint to forward normalized data to."),
                TemplateInput("requestMethod", "HTTP method", "string", "HTTP method for the request (default POST).", required=False),
                TemplateInput("mapping", "Field mapping", "mapping", "Mapping from incoming fields to normalized fields.", required=False),
            ],
            build_plan=_build_webhook_set_http,
        ),
        WorkflowTemplate(
            id="webhook_email",
            name="Webhook → Email",
            description="Receive data via webhook and send an email notification with the details.",
            category="notifications",
            inputs=[
                _WEBHOOK_PATH_INPUT,
                TemplateInput("emailTo", "Recipient email", "email", "Email address that will receive the notification."),
                TemplateInput("subjectTemplate", "Email subject template", "string", "Defaults to a generic subject.", required=False),
                TemplateInput("bodyTemplate", "Email body template", "string", "Defaults to a dump of the payload.", required=False),
            ],
            build_plan=_build_webhook_email,
        ),
        WorkflowTemplate(
            id="cron_http_email",
            name="Cron → HTTP request → Email",
            description="Run on a schedule, fetch data via HTTP, and email the results to a recipient.",
            category="reporting",
            inputs=[
                TemplateInput("requestUrl", "Request URL", "url", "HTTP endpoint to call on the schedule."),
                TemplateInput("emailTo", "Recipient email", "email", "Email address that will receive the report."),
                TemplateInput("cronExpression", "Cron expression", "string", "Cron expression for scheduling.", required=False),
                TemplateInput("interval", "Interval", "interval", "Structured interval, used when cronExpression is not provided.", required=False),
                TemplateInput("emailSubject", "Email subject", "string", "Defaults to 'Scheduled report from Synth'.", required=False),
            ],
            build_plan=_build_cron_http_email,
            required_one_of=[("cronExpression", "interval")],
        ),
        WorkflowTemplate(
            id="webhook_delay_http",
            name="Webhook → Delay → HTTP request",
            description="Receive data via webhook, wait for a delay, then call an HTTP endpoint.",
            category="follow-ups",
            inputs=[
                _WEBHOOK_PATH_INPUT,
                TemplateInput("targetUrl", "Target URL", "url", "The HTTP endpoint to call after the delay."),
                TemplateInput("delayMs", "Delay (ms)", "number", "Delay in milliseconds.", required=False),
                TemplateInput("interval", "Delay interval", "interval", "Structured delay, used if delayMs is not set.", required=False),
            ],
            build_plan=_build_webhook_delay_http,
            required_one_of=[("delayMs", "interval")],
        ),
    ]
}


def list_templates() -> list[WorkflowTemplate]:
    return list(TEMPLATES.values())


def get_template(template_id: str) -> WorkflowTemplate | None:
    return TEMPLATES.get(template_id)


def check_template_inputs(template: WorkflowTemplate, inputs: TemplateInputs) -> list[str]:
    """Return a list of problems with ``inputs``. An empty list means they are usable."""
    errors: list[str] = []

    for descriptor in template.inputs:
        value = inputs.get(descriptor.key)
        if _is_blank(value):
            if descriptor.required:
                errors.append(f"Missing input: {descriptor.key}")
            continue
        problem = _check_type(descriptor, value)
        if problem:
            errors.append(problem)

    for group in template.required_one_of:
        if all(_is_blank(inputs.get(key)) for key in group):
            errors.append(f"Missing input: one of {', '.join(group)}")

    return errors


def instantiate_template(template_id: str, inputs: TemplateInputs) -> WorkflowPlan:
    """Check inputs, build the plan and run it through the validator.

    Raises KeyError for an unknown template, TemplateInputError for bad inputs
    and PlanValidationError if the built plan is rejected.
    """
    template = TEMPLATES.get(template_id)
    if template is None:
        raise KeyError(f"Unknown template: {template_id}")

    errors = check_template_inputs(template, inputs)
    if errors:
        raise TemplateInputError(template_id, errors)

    return parse_plan(template.build_plan(inputs))


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _check_type(descriptor: TemplateInput, value: Any) -> str | None:
    if descriptor.type == "url":
        text = str(value).strip()
        if not text.startswith(("http://", "https://")) or any(c.isspace() for c in text):
            return f"Input {descriptor.key} must be an http:// or https:// URL"
    elif descriptor.type == "email":
        if "@" not in str(value):
            return f"Input {descriptor.key} must be an email address"
    elif descriptor.type == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            return f"Input {descriptor.key} must be a positive number"
    elif descriptor.type == "interval":
        if not isinstance(value, dict) or "amount" not in value or "unit" not in value:
            return f"Input {descriptor.key} must be an object with amount and unit"
    elif descriptor.type == "mapping":
        if not isinstance(value, dict):
            return f"Input {descriptor.key} must be an object"
    return None
