# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - API responses
      - debugging without full tracebacks
    """
    kind: str
    job: str
    step: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}", f"job={self.job}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class StepFailure(Exception):
    job: str
    step: str
    cmd: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        return f"[{self.job}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"


class InputError(ValueError):
    """Trigger inputs do not match the workflow's declared inputs."""


class ExpressionError(ValueError):
    """A ${{ ... }} expression could not be parsed."""


class UndefinedReferenceError(LookupError):
    """An expression referenced a context value that has no source."""

    def __init__(self, reference: str):
        super().__init__(f"undefined reference: {reference}")
        self.reference = reference


class ReleaseError(RuntimeError):
    """Publishing a draft release failed."""
