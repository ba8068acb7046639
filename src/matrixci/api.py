from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from pydantic import BaseModel, Field

from .errors import InputError
from .inputs import resolve_inputs
from .model import TRIGGERS, CalledByWorkflow, Trigger, Workflow
from .runner import run_workflow

# -------------------- Schemas --------------------

class DispatchRequest(BaseModel):
    inputs: dict[str, Any] = Field(default_factory=dict)
    env: dict[str, str] = Field(default_factory=dict)
    caller: str | None = None  # workflow_call only

class DispatchResponse(BaseModel):
    run_id: str
    workflow: str
    event: str
    inputs: dict[str, Any]
    status: str

class RunResponse(BaseModel):
    run_id: str
    workflow: str
    event: str
    status: str  # queued|running|ok|failed|error
    inputs: dict[str, Any]
    cells: list[dict[str, Any]] = Field(default_factory=list)
    error: str | None = None
    created_at: datetime

class InputDescription(BaseModel):
    name: str
    type: str
    required: bool
    default: Any = None

class WorkflowResponse(BaseModel):
    name: str
    triggers: dict[str, list[InputDescription]]
    jobs: list[str]

# -------------------- App --------------------

def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def create_app(
    workflows: Dict[str, Workflow],
    *,
    workspace: str | Path = ".",
    cache_root: str | Path | None = None,
    publisher: Any = None,
    strict: bool = False,
) -> FastAPI:
    """
    HTTP trigger surface: workflow_dispatch and workflow_call over REST.

    Runs execute in background tasks, one at a time.
    """
    app = FastAPI(title="matrixci trigger API")
    runs: Dict[str, RunResponse] = {}
    run_lock = threading.Lock()

    def _get_workflow(name: str) -> Workflow:
        wf = workflows.get(name)
        if wf is None:
            raise HTTPException(status_code=404, detail=f"Workflow {name!r} not found")
        return wf

    def _execute(run_id: str, wf: Workflow, trigger: Trigger, env: dict[str, str]) -> None:
        with run_lock:
            record = runs[run_id]
            record.status = "running"
            try:
                result = run_workflow(
                    wf,
                    trigger,
                    workspace=workspace,
                    env=env,
                    strict=strict,
                    cache_root=cache_root,
                    publisher=publisher,
                )
            except Exception as e:  # surfaced through GET /runs/{id}
                record.status = "error"
                record.error = str(e)
                return
            record.cells = [c.to_dict() for c in result.cells]
            record.status = "ok" if result.ok else "failed"

    def _start(name: str, event: str, req: DispatchRequest, background: BackgroundTasks) -> DispatchResponse:
        wf = _get_workflow(name)
        if event == CalledByWorkflow.event:
            trigger: Trigger = CalledByWorkflow(inputs=req.inputs, caller=req.caller)
        else:
            trigger = TRIGGERS[event](inputs=req.inputs)
        try:
            inputs = resolve_inputs(wf, trigger)
        except InputError as e:
            raise HTTPException(status_code=422, detail=str(e))

        run_id = str(uuid.uuid4())
        runs[run_id] = RunResponse(
            run_id=run_id,
            workflow=wf.name,
            event=event,
            status="queued",
            inputs=inputs,
            created_at=now_utc(),
        )
        background.add_task(_execute, run_id, wf, trigger, dict(req.env))
        return DispatchResponse(run_id=run_id, workflow=wf.name, event=event, inputs=inputs, status="queued")

    # -------------------- Endpoints --------------------

    @app.get("/workflows", response_model=list[WorkflowResponse])
    def list_workflows():
        return [
            WorkflowResponse(
                name=key,
                triggers={
                    event: [InputDescription(name=s.name, type=s.type, required=s.required, default=s.default)
                            for s in specs]
                    for event, specs in wf.on.items()
                },
                jobs=[j.name for j in wf.jobs],
            )
            for key, wf in workflows.items()
        ]

    @app.post("/workflows/{name}/dispatches", response_model=DispatchResponse, status_code=202)
    def dispatch(name: str, req: DispatchRequest, background: BackgroundTasks):
        return _start(name, "workflow_dispatch", req, background)

    @app.post("/workflows/{name}/calls", response_model=DispatchResponse, status_code=202)
    def call(name: str, req: DispatchRequest, background: BackgroundTasks):
        return _start(name, "workflow_call", req, background)

    @app.get("/runs/{run_id}", response_model=RunResponse)
    def get_run(run_id: str):
        record: Optional[RunResponse] = runs.get(run_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Run not found")
        return record

    return app
