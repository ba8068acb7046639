# step_workflows/shell.py
from __future__ import annotations

import os
import subprocess
from typing import List, Union

from ..context import CellContext
from ..errors import StepFailure
from ..model import Step
from ..ui.console import get_console

OUTPUT_TAIL = 4000


def shell_command(step: Step) -> Union[str, List[str]]:
    """
    Build the command for a step's shell.

    - None:   run through the platform shell (subprocess shell=True)
    - "bash": bash --noprofile --norc -eo pipefail -c <run>
    - "sh":   sh -e -c <run>
    """
    if step.shell is None:
        return step.run
    if step.shell == "bash":
        return ["bash", "--noprofile", "--norc", "-eo", "pipefail", "-c", step.run]
    if step.shell == "sh":
        return ["sh", "-e", "-c", step.run]
    raise ValueError(f"step '{step.name}' uses unsupported shell {step.shell!r}")


def _text(output) -> str:
    # TimeoutExpired carries bytes even when the process ran with text=True
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output or ""


def run_step(ctx: CellContext, step: Step) -> None:
    """Run a shell step; raises StepFailure on a non-zero exit or timeout."""
    console = get_console()
    cwd = (ctx.workspace / (step.working_directory or ".")).resolve()
    if not cwd.is_dir():
        raise FileNotFoundError(f"[{ctx.label}] step '{step.name}' working directory not found: {cwd}")

    env = os.environ.copy()
    env.update(ctx.process_env(step))

    cmd = shell_command(step)
    try:
        proc = subprocess.run(
            cmd,
            shell=isinstance(cmd, str),
            cwd=str(cwd),
            env=env,
            text=True,
            capture_output=True,
            timeout=step.timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise StepFailure(
            job=ctx.label,
            step=step.name,
            cmd=step.run,
            exit_code=-1,
            stdout=_text(e.stdout)[-OUTPUT_TAIL:],
            stderr=f"timed out after {step.timeout}s",
        ) from None

    console.print_output(proc.stdout)
    console.print_output(proc.stderr)

    if proc.returncode != 0:
        raise StepFailure(
            job=ctx.label,
            step=step.name,
            cmd=step.run,
            exit_code=proc.returncode,
            stdout=proc.stdout[-OUTPUT_TAIL:],
            stderr=proc.stderr[-OUTPUT_TAIL:],
        )
