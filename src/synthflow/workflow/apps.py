"""Third-party app requirements of a plan: which apps it needs, and whether the user can use them.

Two checks run in order, because they need different remediation:
  1. Supported: the runtime can talk to the app at all (a platform gap)
  2. Connected: the requesting user has an active connection (an OAuth step)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from pydantic import BaseModel

from .schema import HttpRequestAction, SendEmailAction, WorkflowPlan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SupportedApp:
    key: str
    name: str
    category: str = "Other"
    connection_type: str = "OAuth"  # "OAuth" | "APIKey" | "Both"


def _normalize(app_name: str) -> str:
    return app_name.strip().lower()


# Built-in app registry, populated via register_app
_BUILTIN_APPS: dict[str, SupportedApp] = {}


def register_app(key: str, name: str, category: str = "Other", connection_type: str = "OAuth") -> SupportedApp:
    """Register an app in the built-in registry."""
    app = SupportedApp(key=_normalize(key), name=name, category=category, connection_type=connection_type)
    _BUILTIN_APPS[app.key] = app
    return app


register_app("email", "Email (SMTP)", "Email", "Both")
register_app("gmail", "Gmail", "Email")
register_app("slack", "Slack", "Messaging")
register_app("github", "GitHub", "Developer Tools")
register_app("google_sheets", "Google Sheets", "Productivity")
register_app("notion", "Notion", "Productivity")
register_app("hubspot", "HubSpot", "CRM")
register_app("stripe", "Stripe", "Payments", "APIKey")


class SupportedAppRegistry:
    """Answers is_supported() from the built-in apps plus a refreshable dynamic set."""

    def __init__(self, extra_apps: Iterable[str] = ()) -> None:
        self._dynamic: set[str] = {_normalize(a) for a in extra_apps if a.strip()}

    def is_supported(self, app_name: str) -> bool:
        key = _normalize(app_name)
        return key in _BUILTIN_APPS or key in self._dynamic

    def refresh(self, app_names: Iterable[str]) -> None:
        """Replace the dynamically discovered apps, e.g. after querying the runtime's catalog."""
        self._dynamic = {_normalize(a) for a in app_names if a.strip()}

    def list_available(self) -> list[str]:
        return sorted(set(_BUILTIN_APPS) | self._dynamic)


class ConnectionRecord(BaseModel):
    """A user's connection to a third-party app, as reported by connection management."""

    service_name: str
    status: str = "active"


class ConnectionProvider(Protocol):
    async def list_active_connections(self, user_id: str) -> list[ConnectionRecord]: ...


class InMemoryConnectionStore:
    """ConnectionProvider backed by a dict; connection storage proper lives elsewhere."""

    def __init__(self) -> None:
        self._connections: dict[str, list[ConnectionRecord]] = {}

    def add(self, user_id: str, service_name: str, status: str = "active") -> ConnectionRecord:
        record = ConnectionRecord(service_name=service_name, status=status)
        self._connections.setdefault(user_id, []).append(record)
        return record

    async def list_active_connections(self, user_id: str) -> list[ConnectionRecord]:
        return [c for c in self._connections.get(user_id, []) if c.status == "active"]


@dataclass(frozen=True)
class AppAvailabilityResult:
    ok: bool
    unsupported: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    error_type: str | None = None  # "unsupported_apps" | "missing_connections"
    message: str | None = None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "unsupported": self.unsupported,
            "missing": self.missing,
            "error_type": self.error_type,
            "message": self.message,
        }


def app_for_auth_ref(auth_ref: str) -> str | None:
    """``"slack"`` and ``"slack:conn_42"`` both name the slack app."""
    app = auth_ref.split(":", 1)[0]
    return _normalize(app) or None


def resolve_required_apps(plan: WorkflowPlan) -> set[str]:
    """Return the app identifiers the plan's trigger and actions depend on."""
    apps: set[str] = set()

    # webhook, cron and manual triggers run inside the runtime and need no app;
    # neither do set_data and delay.
    for action in plan.actions:
        if isinstance(action, SendEmailAction):
            apps.add("email")
        elif isinstance(action, HttpRequestAction) and action.params.auth_ref:
            app = app_for_auth_ref(action.params.auth_ref)
            if app:
                apps.add(app)

    return apps


def check_app_availability(
    apps: Iterable[str],
    registry: SupportedAppRegistry,
    connected_apps: Iterable[str],
) -> AppAvailabilityResult:
    """Check apps are supported, then connected. The first failing check wins."""
    required = sorted({_normalize(a) for a in apps})

    unsupported = [app for app in required if not registry.is_supported(app)]
    if unsupported:
        return AppAvailabilityResult(
            ok=False,
            unsupported=unsupported,
            error_type="unsupported_apps",
            message=f"The following apps are not currently supported: {', '.join(unsupported)}",
        )

    connected = {_normalize(a) for a in connected_apps}
    missing = [app for app in required if app not in connected]
    if missing:
        return AppAvailabilityResult(
            ok=False,
            missing=missing,
            error_type="missing_connections",
            message=f"The following apps must be connected before creating this workflow: {', '.join(missing)}",
        )

    return AppAvailabilityResult(ok=True)


async def validate_app_connections(
    plan: WorkflowPlan,
    user_id: str,
    registry: SupportedAppRegistry,
    connections: ConnectionProvider,
) -> AppAvailabilityResult:
    """Resolve the plan's apps and check them against the registry and the user's connections."""
    required = resolve_required_apps(plan)
    if not required:
        return AppAvailabilityResult(ok=True)

    connected: list[str] = []
    if all(registry.is_supported(app) for app in required):
        active = await connections.list_active_connections(user_id)
        connected = [c.service_name for c in active]

    result = check_app_availability(required, registry, connected)
    if not result.ok:
        logger.info(
            "Workflow plan blocked by app availability",
            extra={"user_id": user_id, "error_type": result.error_type},
        )
    return result
