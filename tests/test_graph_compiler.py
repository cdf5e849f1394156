import json
import sys
import unittest
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from synthflow.workflow.compiler import TRIGGER_NODE_NAME, compile_plan
from synthflow.workflow.expressions import Reference, parse_reference, resolve_references
from synthflow.workflow.templates import instantiate_template
from synthflow.workflow.validator import find_start_actions, parse_plan


def _branching_plan() -> dict:
    return {
        "name": "Branching",
        "trigger": {"type": "webhook", "config": {"path": "/synth/branch", "method": "put"}},
        "actions": [
            {
                "id": "step1",
                "type": "set_data",
                "params": {"fields": {"user": "{{webhook.body}}", "source": "{{webhook.headers.origin}}"}},
                "onSuccessNext": ["notify"],
                "onFailureNext": ["fallback"],
            },
            {
                "id": "notify",
                "type": "http_request",
                "params": {
                    "url": "https://hooks.example.com/notify",
                    "body": {"email": "{{step1.user.email}}", "tags": ["{{step1.source}}", "static"]},
                },
            },
            {
                "id": "fallback",
                "type": "send_email",
                "params": {"to": "ops@example.com", "subject": "Failed", "body": "Payload: {{webhook.body}}"},
            },
            {
                "id": "audit",
                "type": "delay",
                "params": {"durationMs": 1000},
            },
        ],
    }


class ReferenceExpressionTests(unittest.TestCase):
    def test_parse_whole_string_reference(self):
        self.assertEqual(parse_reference("{{step1.user.email}}"), Reference("step1", ("user", "email")))
        self.assertEqual(parse_reference(" {{ webhook.body }} "), Reference("webhook", ("body",)))

    def test_embedded_or_malformed_references_are_literals(self):
        self.assertIsNone(parse_reference("Hello {{step1.name}}"))
        self.assertIsNone(parse_reference("{{}}"))
        self.assertIsNone(parse_reference("{step1.name}"))

    def test_webhook_body_resolves_to_whole_trigger_output(self):
        value = resolve_references("{{webhook.body}}", {}, TRIGGER_NODE_NAME)

        self.assertEqual(value, '={{ $node["Trigger"].json }}')

    def test_nested_field_reference_resolves_to_accessor(self):
        value = resolve_references("{{step1.user.email}}", {"step1": "step1"}, TRIGGER_NODE_NAME)

        self.assertEqual(value, '={{ $node["step1"].json["user"]["email"] }}')
        self.assertIn('step1"].json["user"]["email"]', value)

    def test_non_body_webhook_paths_address_the_trigger(self):
        value = resolve_references("{{webhook.headers.origin}}", {}, TRIGGER_NODE_NAME)

        self.assertEqual(value, '={{ $node["Trigger"].json["headers"]["origin"] }}')

    def test_resolution_recurses_into_containers(self):
        value = resolve_references(
            {"a": ["{{s.x}}", 3, None], "b": {"c": "{{s.y}}"}},
            {"s": "s"},
            TRIGGER_NODE_NAME,
        )

        self.assertEqual(
            value,
            {
                "a": ['={{ $node["s"].json["x"] }}', 3, None],
                "b": {"c": '={{ $node["s"].json["y"] }}'},
            },
        )


class GraphCompilerTests(unittest.TestCase):
    def test_nodes_are_trigger_then_actions_in_declaration_order(self):
        graph = compile_plan(parse_plan(_branching_plan()))

        self.assertEqual([n.name for n in graph.nodes], ["Trigger", "step1", "notify", "fallback", "audit"])
        self.assertEqual([n.id for n in graph.nodes], ["1", "2", "3", "4", "5"])
        self.assertEqual(graph.nodes[0].position, (0, 0))
        self.assertEqual([n.position[0] for n in graph.nodes[1:]], [200, 480, 760, 1040])

    def test_node_types_and_trigger_parameters(self):
        graph = compile_plan(parse_plan(_branching_plan()))

        trigger = graph.node("Trigger")
        self.assertEqual(trigger.type, "n8n-nodes-base.webhook")
        self.assertEqual(trigger.parameters, {"path": "/synth/branch", "httpMethod": "PUT"})
        self.assertEqual(graph.node("step1").type, "n8n-nodes-base.set")
        self.assertEqual(graph.node("notify").type, "n8n-nodes-base.httpRequest")
        self.assertEqual(graph.node("fallback").type, "n8n-nodes-base.emailSend")
        self.assertEqual(graph.node("audit").type, "n8n-nodes-base.wait")

    def test_references_are_lowered_in_parameters(self):
        graph = compile_plan(parse_plan(_branching_plan()))

        fields = graph.node("step1").parameters["fields"]
        self.assertEqual(fields["user"], '={{ $node["Trigger"].json }}')
        body = graph.node("notify").parameters["body"]
        self.assertEqual(body["email"], '={{ $node["step1"].json["user"]["email"] }}')
        self.assertEqual(body["tags"][1], "static")
        # Only whole-string references are rewritten.
        self.assertEqual(graph.node("fallback").parameters["body"], "Payload: {{webhook.body}}")

    def test_success_and_failure_edges_share_main_output(self):
        graph = compile_plan(parse_plan(_branching_plan()))

        self.assertEqual(graph.targets("step1"), ["notify", "fallback"])
        self.assertEqual(graph.targets("notify"), [])

    def test_trigger_is_wired_to_exactly_the_start_actions(self):
        plan = parse_plan(_branching_plan())
        graph = compile_plan(plan)

        self.assertEqual(graph.targets(TRIGGER_NODE_NAME), [a.id for a in find_start_actions(plan.actions)])
        self.assertEqual(graph.targets(TRIGGER_NODE_NAME), ["step1", "audit"])

    def test_compiling_twice_is_byte_identical(self):
        plan = parse_plan(_branching_plan())

        first = json.dumps(compile_plan(plan).to_payload())
        second = json.dumps(compile_plan(plan).to_payload())

        self.assertEqual(first, second)

    def test_payload_uses_runtime_field_names(self):
        payload = compile_plan(parse_plan(_branching_plan())).to_payload()

        self.assertEqual(payload["nodes"][0]["typeVersion"], 1)
        self.assertEqual(payload["nodes"][0]["position"], [0, 0])
        self.assertEqual(
            payload["connections"]["Trigger"]["main"][0][0],
            {"node": "step1", "type": "main", "index": 0},
        )

    def test_integer_interval_reaches_the_graph_unchanged(self):
        plan = parse_plan(
            {
                "name": "Every 15 minutes",
                "trigger": {"type": "cron", "config": {"interval": {"amount": 15, "unit": "minutes"}}},
                "actions": [{"id": "a", "type": "delay", "params": {"durationMs": 1000}}],
            }
        )

        payload = compile_plan(plan).to_payload()

        self.assertEqual(payload["nodes"][0]["parameters"], {"interval": {"amount": 15, "unit": "minutes"}})
        self.assertIsInstance(payload["nodes"][0]["parameters"]["interval"]["amount"], int)
        self.assertIsInstance(payload["nodes"][1]["parameters"]["durationMs"], int)

    def test_cron_and_manual_triggers(self):
        plan = instantiate_template(
            "cron_http_email",
            {"requestUrl": "https://api.example.com", "emailTo": "a@example.com", "cronExpression": "0 9 * * 1"},
        )
        graph = compile_plan(plan)
        self.assertEqual(graph.node("Trigger").type, "n8n-nodes-base.cron")
        self.assertEqual(graph.node("Trigger").parameters, {"cronExpression": "0 9 * * 1"})

        manual = parse_plan(
            {"name": "Manual", "trigger": {"type": "manual"}, "actions": [{"id": "a", "type": "set_data", "params": {"fields": {}}}]}
        )
        graph = compile_plan(manual)
        self.assertEqual(graph.node("Trigger").type, "n8n-nodes-base.manualTrigger")
        self.assertEqual(graph.targets("Trigger"), ["a"])


if __name__ == "__main__":
    unittest.main()
