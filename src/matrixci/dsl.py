# dsl.py
from __future__ import annotations

from itertools import product
from typing import Any, Dict, Iterable, List, Optional

from .model import InputSpec, Job, MatrixCell, Step, Workflow


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(
    name: str,
    cmd: str,
    *,
    shell: str | None = None,
    cwd: str | None = None,
    env: Optional[Dict[str, str]] = None,
    continue_on_error: bool = False,
    timeout: float | None = None,
) -> Step:
    """Create a shell step."""
    return Step(
        name=name,
        kind="shell",
        run=cmd,
        shell=shell,
        working_directory=cwd,
        env=env or {},
        continue_on_error=continue_on_error,
        timeout=timeout,
    )


def checkout(
    name: str = "Check out",
    *,
    repository: str | None = None,
    ref: str | None = None,
    path: str = ".",
    continue_on_error: bool = False,
) -> Step:
    """Create a checkout step. Without a repository the workspace itself is used."""
    return Step(
        name=name,
        kind="checkout",
        with_={"repository": repository, "ref": ref, "path": path},
        continue_on_error=continue_on_error,
    )


def cache(
    name: str,
    *,
    path: Iterable[str],
    key: str,
    restore_keys: Iterable[str] = (),
    continue_on_error: bool = False,
) -> Step:
    """Create a cache step: restore now, save after the cell succeeds."""
    paths = [p for p in path if p.strip()]
    if not paths:
        raise ValueError(f"cache({name!r}) needs at least one path")
    if not key:
        raise ValueError(f"cache({name!r}) needs a key")
    return Step(
        name=name,
        kind="cache",
        with_={"path": paths, "key": key, "restore_keys": list(restore_keys)},
        continue_on_error=continue_on_error,
    )


def release(
    name: str,
    *,
    tag_name: str,
    files: Iterable[str],
    fail_on_unmatched_files: bool = False,
    continue_on_error: bool = False,
) -> Step:
    """Create a publish step. The release is always created as a draft."""
    return Step(
        name=name,
        kind="release",
        with_={
            "draft": True,
            "tag_name": tag_name,
            "files": [f for f in files if f.strip()],
            "fail_on_unmatched_files": fail_on_unmatched_files,
        },
        continue_on_error=continue_on_error,
    )


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    steps_list: Optional[List[Step]] = None,  # allow: job("x", steps_list=[...])
    matrix: Optional["Matrix"] = None,
    needs: Optional[List[str]] = None,
    env: Optional[Dict[str, str]] = None,
    runs_on: str = "local",
    max_parallel: int = 1,
    fail_fast: bool = True,
    publish_on: str = "last",
) -> Job:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ValueError(f"job({name!r}) must have at least one step")
    if max_parallel < 1:
        raise ValueError(f"job({name!r}) max_parallel must be >= 1, got {max_parallel}")
    if publish_on not in ("last", "every"):
        raise ValueError(f"job({name!r}) publish_on must be 'last' or 'every', got {publish_on!r}")

    return Job(
        name=name,
        steps=steps_final,
        matrix=matrix,
        needs=needs or [],
        env={k: str(v) for k, v in (env or {}).items()},
        runs_on=runs_on,
        max_parallel=max_parallel,
        fail_fast=fail_fast,
        publish_on=publish_on,
    )


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

class Matrix:
    """
    Cross-product matrix expander.

    Axes keep their declaration order; the first axis varies slowest.

    Example:
        matrix(backend=["simple", "redis"], client=["none", "graphql"]).cells()
    """
    def __init__(self, axes: Dict[str, Iterable[Any]]):
        if not axes:
            raise ValueError("matrix needs at least one axis")
        self.axes: Dict[str, List[Any]] = {}
        for key, values in axes.items():
            vals = list(values)
            if not vals:
                raise ValueError(f"matrix axis {key!r} has no values")
            if len(set(map(repr, vals))) != len(vals):
                raise ValueError(f"matrix axis {key!r} has duplicate values: {vals}")
            self.axes[key] = vals

    def __len__(self) -> int:
        n = 1
        for vals in self.axes.values():
            n *= len(vals)
        return n

    def cells(self) -> List[MatrixCell]:
        keys = list(self.axes)
        return [
            MatrixCell(values=tuple(zip(keys, combo)))
            for combo in product(*(self.axes[k] for k in keys))
        ]


def matrix(**axes: Iterable[Any]) -> Matrix:
    return Matrix(axes)


# ---------------------------------------------------------------------
# Triggers / workflow helper
# ---------------------------------------------------------------------

def string_input(name: str, *, default: str | None = None, required: bool = False, description: str = "") -> InputSpec:
    return InputSpec(name=name, type="string", required=required, default=default, description=description)


def boolean_input(name: str, *, default: bool | None = None, required: bool = False, description: str = "") -> InputSpec:
    return InputSpec(name=name, type="boolean", required=required, default=default, description=description)


def number_input(name: str, *, default: float | None = None, required: bool = False, description: str = "") -> InputSpec:
    return InputSpec(name=name, type="number", required=required, default=default, description=description)


def wf(
    *jobs: Job,
    name: str = "workflow",
    on: Optional[Dict[str, List[InputSpec]]] = None,
    env: Optional[Dict[str, str]] = None,
) -> Workflow:
    """
    Workflow definition helper.

    Users can write:
        from matrixci import wf, job, sh

        def workflow():
            return wf(
                job(...),
                name="release",
                on={"workflow_dispatch": [string_input("rust-version", default="stable")]},
            )
    """
    if not jobs:
        raise ValueError("workflow must have at least one job")
    triggers = on if on is not None else {"workflow_dispatch": []}
    for event in triggers:
        if event not in ("workflow_dispatch", "workflow_call"):
            raise ValueError(f"Unsupported trigger {event!r}")
    return Workflow(
        name=name,
        jobs=list(jobs),
        on={event: list(specs) for event, specs in triggers.items()},
        env={k: str(v) for k, v in (env or {}).items()},
    )


workflow = wf  # alias (avoid naming your own function workflow if you use it)
