# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple


STEP_KINDS = ("checkout", "cache", "shell", "release")


@dataclass(frozen=True)
class Step:
    """A single unit of work inside a CI job."""
    name: str
    kind: str = "shell"
    run: str = ""
    shell: str | None = None
    working_directory: str | None = None
    with_: Dict[str, Any] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    continue_on_error: bool = False
    timeout: float | None = None  # seconds

    def __post_init__(self) -> None:
        if self.kind not in STEP_KINDS:
            raise ValueError(f"Unknown step kind {self.kind!r} for step {self.name!r}")


@dataclass(frozen=True)
class InputSpec:
    """A declared trigger input (workflow_dispatch / workflow_call)."""
    name: str
    type: str = "string"
    required: bool = False
    default: Any = None
    description: str = ""


@dataclass(frozen=True)
class MatrixCell:
    """One concrete combination of matrix axis values."""
    values: Tuple[Tuple[str, Any], ...]

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.values)

    def __getitem__(self, axis: str) -> Any:
        return self.as_dict()[axis]

    @property
    def label(self) -> str:
        return ", ".join(str(v) for _k, v in self.values)


@dataclass
class Job:
    """
    A CI job: a step pipeline run once per matrix cell.

    max_parallel bounds how many cells run at once (1 == serialized).
    publish_on controls which cells execute release steps:
      - "last":  only the final cell of the expansion
      - "every": every cell (publishers update the same draft by tag)
    """
    name: str
    steps: list[Step]
    matrix: Optional[Any] = None  # dsl.Matrix
    needs: list[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    runs_on: str = "local"
    max_parallel: int = 1
    fail_fast: bool = True
    publish_on: str = "last"

    def cells(self) -> List[MatrixCell]:
        if self.matrix is None:
            return [MatrixCell(values=())]
        return self.matrix.cells()


@dataclass
class Workflow:
    """Workflow definition: triggers with their inputs, global env and jobs."""
    name: str
    jobs: list[Job]
    on: Dict[str, List[InputSpec]] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)

    def job(self, name: str) -> Job:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(name)


# ---------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Trigger:
    """What started a run, plus the raw inputs it carried."""
    inputs: Mapping[str, Any] = field(default_factory=dict)

    event: ClassVar[str] = ""


@dataclass(frozen=True)
class ManualDispatch(Trigger):
    event: ClassVar[str] = "workflow_dispatch"


@dataclass(frozen=True)
class CalledByWorkflow(Trigger):
    caller: str | None = None

    event: ClassVar[str] = "workflow_call"


TRIGGERS = {
    ManualDispatch.event: ManualDispatch,
    CalledByWorkflow.event: CalledByWorkflow,
}


# ---------------------------------------------------------------------
# Run configuration
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class RunConfig:
    """
    Immutable per-run configuration handed to the executor at cell start.

    `env` is the run-wide environment (CARGO_TERM_COLOR, TAG_NAME, ...).
    It is layered on top of os.environ for every step subprocess; the
    runner never writes it back into the process environment.
    """
    workspace: str = "."
    env: Mapping[str, str] = field(default_factory=dict)
    inputs: Mapping[str, Any] = field(default_factory=dict)
    event: str = ManualDispatch.event
    strict: bool = False
    cache_root: str = ".matrixci/cache"
    publisher: Any = None  # release.ReleasePublisher

    def __post_init__(self) -> None:
        object.__setattr__(self, "env", MappingProxyType({k: str(v) for k, v in dict(self.env).items()}))
        object.__setattr__(self, "inputs", MappingProxyType(dict(self.inputs)))
