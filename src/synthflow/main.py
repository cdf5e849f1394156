import json
from contextlib import asynccontextmanager

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from .config import get_settings
from .logging import configure_logging
from .models import DeployRequest, HealthResponse, PlanRequest, RunRequest, TemplatePlanRequest
from .runtime import create_runtime_client
from .workflow.apps import InMemoryConnectionStore, SupportedAppRegistry
from .workflow.compiler import compile_plan
from .workflow.executor import DeployedWorkflowRef, ExecutionDispatcher, WorkflowNotActiveError
from .workflow.pipeline import deploy_workflow
from .workflow.templates import TemplateInputError, instantiate_template, list_templates
from .workflow.validator import PlanValidationError, parse_plan, validate_plan

load_dotenv()

settings = get_settings()
configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await http_client.aclose()


app = FastAPI(
    title="Synthflow API",
    description="Validate, compile, deploy and run workflow plans on an automation runtime",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

http_client = httpx.AsyncClient(timeout=settings.runtime_timeout_seconds)
runtime_client = create_runtime_client(settings, http_client)
app_registry = SupportedAppRegistry(settings.supported_apps)
connection_store = InMemoryConnectionStore()


@app.get("/api/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


# --- Templates ---

@app.get("/api/templates")
def get_templates():
    return [template.to_dict() for template in list_templates()]


@app.post("/api/templates/{template_id}/plan")
def plan_from_template(template_id: str, request: TemplatePlanRequest):
    try:
        plan = instantiate_template(template_id, request.inputs)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Template '{template_id}' not found")
    except TemplateInputError as e:
        raise HTTPException(status_code=422, detail={"error": str(e), "errors": e.errors})
    except PlanValidationError as e:
        raise HTTPException(status_code=422, detail=e.to_dict())
    return plan.to_payload()


# --- Plans ---

@app.post("/api/workflows/validate")
def validate_workflow(request: PlanRequest):
    result = validate_plan(request.plan)
    if not result.ok:
        return {"ok": False, **result.error.to_dict()}
    return {"ok": True, "plan": result.plan.to_payload()}


@app.post("/api/workflows/compile")
def compile_workflow(request: PlanRequest):
    try:
        plan = parse_plan(request.plan)
    except PlanValidationError as e:
        raise HTTPException(status_code=422, detail=e.to_dict())
    return compile_plan(plan).to_payload()


@app.post("/api/workflows/deploy")
async def deploy_workflow_endpoint(request: DeployRequest):
    """Validate, check apps, compile, create and activate; streamed as server-sent events."""

    async def event_stream():
        async for event in deploy_workflow(
            request.plan,
            user_id=request.user_id,
            client=runtime_client,
            app_registry=app_registry,
            connections=connection_store,
            activate=request.activate,
        ):
            yield f"data: {json.dumps(event, default=str)}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


@app.post("/api/workflows/run")
async def run_workflow(request: RunRequest):
    dispatcher = ExecutionDispatcher(runtime_client)
    ref = DeployedWorkflowRef(provider_workflow_id=request.workflow_id, active=request.active)
    try:
        result = await dispatcher.run(ref, request.input)
    except WorkflowNotActiveError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {**result.to_dict(), "markdown": result.to_markdown()}
