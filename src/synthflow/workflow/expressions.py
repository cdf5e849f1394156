"""Reference expressions embedded in plan parameters.

A parameter value that is exactly ``{{source.field.subfield}}`` refers to the
runtime output of another node. Only whole-string references are recognised;
anything else, including text with a reference inside it, is left untouched.

    {{normalize_payload.normalized}}  ->  ={{ $node["normalize_payload"].json["normalized"] }}
    {{webhook.body}}                  ->  ={{ $node["Trigger"].json }}
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

WEBHOOK_ALIAS = "webhook"

_REFERENCE_RE = re.compile(r"^\{\{([^{}]*)\}\}$")


@dataclass(frozen=True)
class Reference:
    """A parsed ``{{source.path...}}`` expression."""

    source: str
    path: tuple[str, ...] = ()

    def to_expression(self, node_name: str) -> str:
        """Render as an accessor into ``node_name``'s JSON output."""
        accessor = "".join(f'["{part}"]' for part in self.path)
        return f'={{{{ $node["{node_name}"].json{accessor} }}}}'


def parse_reference(value: str) -> Reference | None:
    """Parse a whole-string reference, or return None if ``value`` is not one."""
    match = _REFERENCE_RE.match(value.strip())
    if match is None:
        return None

    source, *fields = match.group(1).strip().split(".")
    source = source.strip()
    if not source:
        return None
    return Reference(source=source, path=tuple(f.strip() for f in fields if f.strip()))


def resolve_reference(
    ref: Reference,
    node_names: Mapping[str, str],
    trigger_node_name: str,
) -> str:
    """Translate a reference into a runtime expression against the compiled node names."""
    if ref.source == WEBHOOK_ALIAS:
        # The webhook body is the trigger's whole payload.
        if ref.path == ("body",):
            return Reference(ref.source).to_expression(trigger_node_name)
        return ref.to_expression(trigger_node_name)

    return ref.to_expression(node_names.get(ref.source, ref.source))


def resolve_references(
    value: Any,
    node_names: Mapping[str, str],
    trigger_node_name: str,
) -> Any:
    """Recursively rewrite every reference found in strings, dicts and lists."""
    if isinstance(value, str):
        ref = parse_reference(value)
        if ref is None:
            return value
        return resolve_reference(ref, node_names, trigger_node_name)

    if isinstance(value, list):
        return [resolve_references(v, node_names, trigger_node_name) for v in value]

    if isinstance(value, dict):
        return {
            k: resolve_references(v, node_names, trigger_node_name) for k, v in value.items()
        }

    return value
