import json
import sys
import unittest
from pathlib import Path

import httpx

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from synthflow.config import Settings
from synthflow.runtime import (
    N8nRuntimeClient,
    PipedreamRuntimeClient,
    RuntimeAPIError,
    RuntimeConfigurationError,
    SimulatorRuntimeClient,
    create_runtime_client,
    list_providers,
)
from synthflow.runtime.pipedream import to_pipedream_workflow
from synthflow.workflow.compiler import compile_plan
from synthflow.workflow.templates import instantiate_template


def _blueprint() -> dict:
    plan = instantiate_template("webhook_email", {"webhookPath": "alerts", "emailTo": "ops@example.com"})
    return compile_plan(plan).to_payload()


class _Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, *responses: httpx.Response):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class RuntimeRegistryTests(unittest.IsolatedAsyncioTestCase):
    async def test_all_providers_are_registered(self):
        self.assertEqual(list_providers(), ["n8n", "pipedream", "simulator"])

    async def test_missing_credentials_fail_before_any_request(self):
        async with httpx.AsyncClient() as http:
            with self.assertRaises(RuntimeConfigurationError):
                create_runtime_client(_settings(runtime_provider="n8n", n8n_api_key=None), http)
            with self.assertRaises(RuntimeConfigurationError):
                create_runtime_client(_settings(runtime_provider="pipedream", pipedream_api_key=None), http)

    async def test_clients_are_built_from_settings(self):
        async with httpx.AsyncClient() as http:
            n8n = create_runtime_client(_settings(runtime_provider="n8n", n8n_api_key="k"), http)
            sim = create_runtime_client(_settings(runtime_provider="simulator"), http)

        self.assertIsInstance(n8n, N8nRuntimeClient)
        self.assertIsInstance(sim, SimulatorRuntimeClient)


class N8nClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_create_sends_only_writable_fields(self):
        recorder = _Recorder(httpx.Response(200, json={"id": "42", "active": False, "name": "x"}))
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
            client = N8nRuntimeClient("http://n8n.local/", "secret", http)
            deployed = await client.create_workflow({**_blueprint(), "tags": ["a"]})

        self.assertEqual(deployed.id, "42")
        request = recorder.requests[0]
        self.assertEqual(str(request.url), "http://n8n.local/api/v1/workflows")
        self.assertEqual(request.headers["X-N8N-API-KEY"], "secret")
        sent = json.loads(request.content)
        self.assertEqual(sorted(sent), ["connections", "name", "nodes", "settings"])

    async def test_activate_and_deactivate_use_dedicated_endpoints(self):
        recorder = _Recorder(httpx.Response(200, json={"id": "42"}), httpx.Response(200, json={"id": "42"}))
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
            client = N8nRuntimeClient("http://n8n.local", "secret", http)
            await client.set_active("42", True)
            await client.set_active("42", False)

        self.assertEqual(
            [r.url.path for r in recorder.requests],
            ["/api/v1/workflows/42/activate", "/api/v1/workflows/42/deactivate"],
        )

    async def test_execution_record_is_mapped(self):
        body = {
            "data": {
                "id": 7,
                "finished": True,
                "startedAt": "2024-05-01T12:00:00.000Z",
                "stoppedAt": "2024-05-01T12:00:01.250Z",
                "data": {
                    "resultData": {
                        "runData": {
                            "Trigger": [{"startTime": 1714564800000, "executionTime": 3, "data": {"main": [[{"json": {"a": 1}}]]}}],
                            "send_email": [{"startTime": 1714564800100, "executionTime": 900, "data": {"main": [[{"json": {"sent": True}}]]}}],
                        }
                    }
                },
            }
        }
        recorder = _Recorder(httpx.Response(200, json=body))
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
            execution = await N8nRuntimeClient("http://n8n.local", "k", http).execute("42", {"a": 1})

        self.assertEqual(execution.id, "7")
        self.assertEqual(execution.status, "success")
        self.assertEqual(execution.output, {"sent": True})
        self.assertEqual([s.name for s in execution.steps], ["Trigger", "send_email"])
        self.assertEqual(execution.steps[1].duration_ms, 900)
        self.assertEqual(json.loads(recorder.requests[0].content), {"a": 1})

    async def test_crashed_execution_is_an_error(self):
        body = {"id": "8", "status": "crashed", "data": {"resultData": {"error": {"message": "out of memory"}}}}
        recorder = _Recorder(httpx.Response(200, json=body))
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
            execution = await N8nRuntimeClient("http://n8n.local", "k", http).execute("42", {})

        self.assertEqual(execution.status, "error")
        self.assertEqual(execution.error, "out of memory")

    async def test_http_errors_are_classified(self):
        cases = [(401, "auth_error"), (404, "not_found"), (429, "rate_limit"), (500, "runtime_error")]
        for status, error_type in cases:
            recorder = _Recorder(httpx.Response(status, json={"message": "nope"}))
            async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
                client = N8nRuntimeClient("http://n8n.local", "k", http)
                with self.assertRaises(RuntimeAPIError) as ctx:
                    await client.execute("42", {})
            self.assertEqual(ctx.exception.error_type, error_type)
            self.assertEqual(ctx.exception.status_code, status)
            self.assertEqual(ctx.exception.response_body, {"message": "nope"})

    async def test_network_errors_are_classified(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as http:
            with self.assertRaises(RuntimeAPIError) as ctx:
                await N8nRuntimeClient("http://n8n.local", "k", http).execute("42", {})

        self.assertEqual(ctx.exception.error_type, "network")

    async def test_missing_workflow_id_is_unexpected(self):
        recorder = _Recorder(httpx.Response(200, json={"name": "no id"}))
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
            with self.assertRaises(RuntimeAPIError) as ctx:
                await N8nRuntimeClient("http://n8n.local", "k", http).create_workflow(_blueprint())

        self.assertEqual(ctx.exception.error_type, "unexpected_response")


class PipedreamClientTests(unittest.IsolatedAsyncioTestCase):
    def test_graph_is_flattened_into_ordered_steps(self):
        workflow = to_pipedream_workflow(_blueprint())

        self.assertEqual(workflow["trigger"]["type"], "n8n-nodes-base.webhook")
        self.assertEqual([s["id"] for s in workflow["steps"]], ["build_email_body", "send_email"])
        self.assertFalse(workflow["active"])

    async def test_deploy_activate_and_execute(self):
        recorder = _Recorder(
            httpx.Response(200, json={"data": {"id": "p_1", "active": False}}),
            httpx.Response(200, json={}),
            httpx.Response(
                200,
                json={
                    "id": "run_1",
                    "status": "success",
                    "started_at": "2024-05-01T12:00:00Z",
                    "finished_at": "2024-05-01T12:00:02Z",
                    "data": {"output": {"delivered": True}},
                    "steps": [{"id": "send_email", "duration_ms": 10.5}],
                },
            ),
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
            client = PipedreamRuntimeClient("https://api.pipedream.com/v1", "tok", http)
            deployed = await client.create_workflow(_blueprint())
            await client.set_active(deployed.id, True)
            execution = await client.execute(deployed.id, {"x": 1})

        self.assertEqual(deployed.id, "p_1")
        self.assertEqual(recorder.requests[0].headers["Authorization"], "Bearer tok")
        self.assertEqual(recorder.requests[1].method, "PATCH")
        self.assertEqual(json.loads(recorder.requests[1].content), {"active": True})
        self.assertEqual(recorder.requests[2].url.path, "/v1/workflows/p_1/execute")
        self.assertEqual(execution.output, {"delivered": True})
        self.assertEqual(execution.steps[0].name, "send_email")
        self.assertIsNone(execution.steps[0].status)

    async def test_non_json_response_is_unexpected(self):
        recorder = _Recorder(httpx.Response(200, text="<html>maintenance</html>"))
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
            with self.assertRaises(RuntimeAPIError) as ctx:
                await PipedreamRuntimeClient("https://api.pipedream.com/v1", "tok", http).execute("p_1", {})

        self.assertEqual(ctx.exception.error_type, "unexpected_response")


class SimulatorClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_unknown_workflow_is_not_found(self):
        client = SimulatorRuntimeClient()

        with self.assertRaises(RuntimeAPIError) as ctx:
            await client.execute("sim-404", {})

        self.assertEqual(ctx.exception.error_type, "not_found")

    async def test_activation_is_tracked(self):
        client = SimulatorRuntimeClient()
        deployed = await client.create_workflow(_blueprint())

        self.assertFalse(deployed.active)
        await client.set_active(deployed.id, True)
        self.assertTrue(client.active[deployed.id])


if __name__ == "__main__":
    unittest.main()
