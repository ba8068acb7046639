# step_workflows/checkout.py
from __future__ import annotations

from ..context import CellContext
from ..errors import CIError
from ..git_facts.git import clone_or_update, is_work_tree, short_head
from ..model import Step
from ..ui.console import get_console


def run_step(ctx: CellContext, step: Step) -> None:
    """
    Fetch repository contents into the workspace.

    Without `repository` the workspace must already be a git work tree
    (local runs check out nothing). With it, clone or update into
    workspace/path and check out `ref`.
    """
    console = get_console()
    repository = step.with_.get("repository")
    ref = step.with_.get("ref")
    target = (ctx.workspace / (step.with_.get("path") or ".")).resolve()

    if not repository:
        if not is_work_tree(target):
            raise CIError(
                kind="checkout_failed",
                job=ctx.label,
                step=step.name,
                message="workspace is not a git work tree",
                details={"path": str(target), "hint": "pass repository= to clone into the workspace"},
            )
        console.print_info(f"[{ctx.label}] checkout: using workspace at {short_head(target)}")
        return

    try:
        clone_or_update(repository, target, ref or None)
    except RuntimeError as e:
        raise CIError(
            kind="checkout_failed",
            job=ctx.label,
            step=step.name,
            message=str(e),
            details={"repository": repository, "ref": ref or "(default)"},
        ) from e
    console.print_info(f"[{ctx.label}] checkout: {repository} at {short_head(target)}")
