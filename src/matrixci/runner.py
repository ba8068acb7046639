# runner.py
from __future__ import annotations

import runpy
import subprocess
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .context import CellContext
from .dag import execution_order
from .errors import CIError, StepFailure, UndefinedReferenceError
from .git_facts.git import current_ref, head_sha, is_work_tree
from .inputs import resolve_inputs
from .model import Job, MatrixCell, RunConfig, Step, Trigger, Workflow
from .release import DraftRelease, LocalReleasePublisher
from .step_workflows import cache as cache_step
from .step_workflows import checkout as checkout_step
from .step_workflows import release as release_step
from .step_workflows import shell as shell_step
from .ui.console import get_console

STEP_HANDLERS = {
    "checkout": checkout_step.run_step,
    "cache": cache_step.run_step,
    "shell": shell_step.run_step,
    "release": release_step.run_step,
}


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------

@dataclass
class StepResult:
    name: str
    kind: str
    status: str  # ok | failed | failed(continued) | skipped
    exit_code: Optional[int] = None
    duration: float = 0.0
    message: str = ""


@dataclass
class CellResult:
    job: str
    cell: MatrixCell
    status: str  # ok | failed | cancelled | skipped
    steps: List[StepResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    release: Optional[DraftRelease] = None

    @property
    def label(self) -> str:
        if not self.cell.values:
            return self.job
        return f"{self.job} ({self.cell.label})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.job,
            "matrix": self.cell.as_dict(),
            "status": self.status,
            "steps": [s.__dict__.copy() for s in self.steps],
            "warnings": list(self.warnings),
            "release": self.release.to_dict() if self.release else None,
        }


@dataclass
class RunResult:
    workflow: str
    event: str
    inputs: Dict[str, Any]
    cells: List[CellResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(c.status == "ok" for c in self.cells)

    @property
    def releases(self) -> List[DraftRelease]:
        return [c.release for c in self.cells if c.release is not None]

    def statuses(self) -> Dict[str, str]:
        return {c.label: c.status for c in self.cells}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow": self.workflow,
            "event": self.event,
            "inputs": dict(self.inputs),
            "ok": self.ok,
            "cells": [c.to_dict() for c in self.cells],
        }


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> Workflow:
    """
    Load a workflow from a python file path.

    The file must define either:
      - workflow() -> Workflow | List[Job]
      - WORKFLOW = Workflow(...)
      - JOBS = [Job, ...]
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ValueError(f"Workflow must be a .py file, got: {wf_path.name}")

    module_name = f"matrixci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    loaded: Any = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        try:
            loaded = globals_dict["workflow"]()
        except TypeError as e:
            if "positional argument" in str(e):
                raise TypeError(
                    "Your workflow() is being called with arguments (name collision with the helper). "
                    "Use the 'wf' helper instead: `from matrixci import wf, job, sh` then "
                    "`def workflow(): return wf(job(...))`"
                ) from e
            raise
    elif "WORKFLOW" in globals_dict:
        loaded = globals_dict["WORKFLOW"]
    elif "JOBS" in globals_dict:
        loaded = globals_dict["JOBS"]

    if isinstance(loaded, Workflow):
        return loaded
    if isinstance(loaded, list) and loaded and all(isinstance(j, Job) for j in loaded):
        return Workflow(name=wf_path.stem, jobs=loaded, on={"workflow_dispatch": []})

    raise TypeError(
        "Workflow must return/define a Workflow or a List[Job]. "
        "Define workflow() -> Workflow, WORKFLOW = wf(...) or JOBS = [Job, ...]."
    )


# ----------------------------------------------------------------------
# Pipeline executor
# ----------------------------------------------------------------------

def _describe(exc: Exception) -> tuple[Optional[int], str]:
    if isinstance(exc, StepFailure):
        tail = (exc.stderr or exc.stdout or "").strip()
        return exc.exit_code, f"{exc}\n{tail}" if tail else str(exc)
    if isinstance(exc, UndefinedReferenceError):
        return None, f"{exc} (strict mode)"
    return None, str(exc)


def run_cell(
    job: Job,
    cell: MatrixCell,
    config: RunConfig,
    *,
    github: Optional[Mapping[str, Any]] = None,
    publish: bool = True,
) -> CellResult:
    """
    Execute a cell's steps strictly in order.

    A failing step halts the cell unless it has continue_on_error. Release
    steps run only when `publish` is set. Queued cache saves happen after
    every step succeeded.
    """
    console = get_console()
    ctx = CellContext(job=job, cell=cell, config=config, github=dict(github or {}))
    result = CellResult(job=job.name, cell=cell, status="ok")
    console.print_job_start(ctx.label)

    halted = False
    for step in job.steps:
        if halted:
            result.steps.append(StepResult(step.name, step.kind, "skipped", message="previous step failed"))
            continue
        if step.kind == "release" and not publish:
            reason = "release is published from the final cell"
            console.print_step_skipped(step.name, reason)
            result.steps.append(StepResult(step.name, step.kind, "skipped", message=reason))
            continue

        console.print_step(step.name)
        started = time.monotonic()
        try:
            resolved: Step = ctx.resolve_step(step)
            STEP_HANDLERS[step.kind](ctx, resolved)
        except (StepFailure, CIError, UndefinedReferenceError, ValueError, OSError) as e:
            exit_code, reason = _describe(e)
            elapsed = time.monotonic() - started
            if step.continue_on_error:
                console.print_continued(step.name, exit_code)
                result.steps.append(StepResult(step.name, step.kind, "failed(continued)", exit_code, elapsed, reason))
                continue
            console.print_failure(step.name, reason, exit_code=exit_code)
            result.steps.append(StepResult(step.name, step.kind, "failed", exit_code, elapsed, reason))
            result.status = "failed"
            halted = True
            continue

        result.steps.append(StepResult(step.name, step.kind, "ok", 0, time.monotonic() - started))

    if result.status == "ok":
        cache_step.save_pending(ctx)
        console.print_success(ctx.label)
    else:
        console.print_failure(ctx.label, "one or more steps failed", is_job=True)

    result.warnings = list(ctx.warnings)
    result.release = ctx.release
    return result


def run_job(
    job: Job,
    config: RunConfig,
    *,
    github: Optional[Mapping[str, Any]] = None,
    max_parallel: Optional[int] = None,
    fail_fast: Optional[bool] = None,
) -> List[CellResult]:
    """
    Run every matrix cell of a job.

    At most `max_parallel` cells run at once (job default: 1, i.e. serial).
    With fail_fast, cells not yet started after the first failure are
    recorded as cancelled; cells already running finish.
    """
    cells = job.cells()
    limit = max_parallel if max_parallel is not None else job.max_parallel
    if limit < 1:
        raise ValueError(f"max_parallel must be >= 1, got {limit}")
    stop_on_failure = job.fail_fast if fail_fast is None else fail_fast
    last = len(cells) - 1

    results: Dict[int, CellResult] = {}
    pending = deque(enumerate(cells))
    in_flight: Dict[Future, int] = {}
    failed = False

    with ThreadPoolExecutor(max_workers=limit) as pool:
        while pending or in_flight:
            # schedule up to the limit
            while pending and len(in_flight) < limit and not (stop_on_failure and failed):
                idx, cell = pending.popleft()
                publish = job.publish_on == "every" or idx == last
                fut = pool.submit(run_cell, job, cell, config, github=github, publish=publish)
                in_flight[fut] = idx

            if not in_flight:
                break

            # wait for one completion, then loop to schedule more
            fut = next(as_completed(list(in_flight.keys())))
            idx = in_flight.pop(fut)
            results[idx] = fut.result()
            if results[idx].status != "ok":
                failed = True

    for idx, cell in pending:
        results[idx] = CellResult(job=job.name, cell=cell, status="cancelled")

    return [results[i] for i in range(len(cells))]


def github_context(workspace: Path, event: str) -> Dict[str, Any]:
    ctx: Dict[str, Any] = {"event_name": event, "workspace": str(workspace), "sha": "", "ref": ""}
    if is_work_tree(workspace):
        try:
            ctx["sha"] = head_sha(workspace)
            ctx["ref"] = current_ref(workspace)
        except subprocess.CalledProcessError:
            pass  # repository without commits
    return ctx


def run_workflow(
    workflow: Workflow,
    trigger: Trigger,
    *,
    workspace: str | Path = ".",
    env: Optional[Mapping[str, str]] = None,
    strict: bool = False,
    cache_root: str | Path | None = None,
    publisher: Any = None,
    max_parallel: Optional[int] = None,
    fail_fast: Optional[bool] = None,
) -> RunResult:
    """
    Resolve trigger inputs, build the immutable RunConfig and run all jobs
    in dependency order. A job whose needs did not all succeed is skipped.
    """
    ws = Path(workspace).resolve()
    inputs = resolve_inputs(workflow, trigger)

    run_env = dict(workflow.env)
    run_env.update(env or {})

    config = RunConfig(
        workspace=str(ws),
        env=run_env,
        inputs=inputs,
        event=trigger.event,
        strict=strict,
        cache_root=str(cache_root if cache_root is not None else ws / ".matrixci" / "cache"),
        publisher=publisher or LocalReleasePublisher(ws / ".matrixci" / "releases"),
    )
    github = github_context(ws, trigger.event)

    result = RunResult(workflow=workflow.name, event=trigger.event, inputs=inputs)
    job_ok: Dict[str, bool] = {}

    for job in execution_order(workflow.jobs):
        if not all(job_ok.get(n, False) for n in job.needs):
            get_console().print_job_skipped(job.name, "a needed job did not succeed")
            result.cells.extend(CellResult(job=job.name, cell=c, status="skipped") for c in job.cells())
            job_ok[job.name] = False
            continue

        cells = run_job(job, config, github=github, max_parallel=max_parallel, fail_fast=fail_fast)
        result.cells.extend(cells)
        job_ok[job.name] = all(c.status == "ok" for c in cells)

    return result
