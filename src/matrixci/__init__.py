from .runner import run_workflow, run_job, run_cell, load_workflow
from .model import Job, Step, Workflow, MatrixCell, RunConfig, ManualDispatch, CalledByWorkflow
from .dsl import job, sh, checkout, cache, release, matrix, wf, workflow, string_input, boolean_input, number_input

__all__ = [
    "job", "sh", "checkout", "cache", "release", "matrix", "wf", "workflow",
    "string_input", "boolean_input", "number_input",
    "run_workflow", "run_job", "run_cell", "load_workflow",
    "Job", "Step", "Workflow", "MatrixCell", "RunConfig", "ManualDispatch", "CalledByWorkflow",
]
