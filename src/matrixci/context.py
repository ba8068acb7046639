# context.py
from __future__ import annotations

import platform
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .expressions import ExpressionContext, build_contexts
from .model import Job, MatrixCell, RunConfig, Step
from .release import DraftRelease

_RUNNER_OS = {"Linux": "Linux", "Darwin": "macOS", "Windows": "Windows"}


def runner_context() -> Dict[str, str]:
    system = platform.system()
    return {
        "os": _RUNNER_OS.get(system, system),
        "arch": platform.machine().upper() or "UNKNOWN",
        "name": platform.node() or "local",
    }


@dataclass
class CellContext:
    """Mutable state of one matrix cell while its pipeline runs."""
    job: Job
    cell: MatrixCell
    config: RunConfig
    github: Dict[str, Any]
    runner: Dict[str, str] = field(default_factory=runner_context)
    warnings: List[str] = field(default_factory=list)
    pending_cache_saves: List[Tuple[str, List[str]]] = field(default_factory=list)
    release: Optional[DraftRelease] = None

    @property
    def workspace(self) -> Path:
        return Path(self.config.workspace).resolve()

    @property
    def label(self) -> str:
        if not self.cell.values:
            return self.job.name
        return f"{self.job.name} ({self.cell.label})"

    def env_context(self) -> Dict[str, str]:
        env = dict(self.config.env)
        env.update(self.job.env)
        return env

    def process_env(self, step: Step) -> Dict[str, str]:
        """Environment layered on top of os.environ for a step subprocess."""
        env = self.env_context()
        env.update(step.env)
        env.update({
            "CI": "true",
            "MATRIXCI": "true",
            "MATRIXCI_JOB": self.job.name,
            "MATRIXCI_CELL": self.cell.label,
            "GITHUB_WORKSPACE": str(self.workspace),
            "GITHUB_EVENT_NAME": self.config.event,
            "RUNNER_OS": self.runner["os"],
        })
        return env

    def _note_undefined(self, reference: str) -> None:
        msg = f"'{reference}' is not defined; using an empty string"
        if msg not in self.warnings:
            self.warnings.append(msg)
            from .ui.console import get_console
            get_console().print_warning(f"[{self.label}] {msg}")

    def expressions(self) -> ExpressionContext:
        contexts = build_contexts(
            matrix=self.cell.as_dict(),
            env=self.env_context(),
            inputs=self.config.inputs,
            runner=self.runner,
            github=self.github,
        )
        return ExpressionContext(
            contexts,
            workspace=self.workspace,
            strict=self.config.strict,
            on_undefined=self._note_undefined,
        )

    def resolve_step(self, step: Step) -> Step:
        """Return a copy of the step with every ${{ }} expression evaluated."""
        expr = self.expressions()
        return replace(
            step,
            name=expr.interpolate(step.name),
            run=expr.interpolate(step.run),
            working_directory=expr.interpolate(step.working_directory),
            with_=expr.interpolate(dict(step.with_)),
            env=expr.interpolate(dict(step.env)),
        )
