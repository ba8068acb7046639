# step_workflows/release.py
from __future__ import annotations

from ..context import CellContext
from ..errors import CIError, ReleaseError
from ..model import Step
from ..release import DraftRelease, LocalReleasePublisher, expand_artifacts
from ..ui.console import get_console


def run_step(ctx: CellContext, step: Step) -> DraftRelease:
    """Assemble the artifact set and create/update the draft release."""
    console = get_console()
    tag_name = str(step.with_.get("tag_name") or "").strip()
    patterns = list(step.with_.get("files") or [])

    if not tag_name:
        raise CIError(
            kind="release_tag_missing",
            job=ctx.label,
            step=step.name,
            message="tag_name evaluated to an empty string",
            details={"hint": "set TAG_NAME, e.g. --env TAG_NAME=v1.2.3"},
        )

    try:
        files, unmatched = expand_artifacts(patterns, ctx.workspace)
    except ReleaseError as e:
        raise CIError(kind="release_asset_conflict", job=ctx.label, step=step.name, message=str(e)) from e
    for pat in unmatched:
        if step.with_.get("fail_on_unmatched_files"):
            raise CIError(kind="release_files_unmatched", job=ctx.label, step=step.name,
                          message=f"pattern does not match any files: {pat}")
        msg = f"release pattern does not match any files: {pat}"
        ctx.warnings.append(msg)
        console.print_warning(f"[{ctx.label}] {msg}")

    publisher = ctx.config.publisher or LocalReleasePublisher(ctx.workspace / ".matrixci" / "releases")
    try:
        release = publisher.publish(tag_name, files)
    except ReleaseError as e:
        raise CIError(kind="release_failed", job=ctx.label, step=step.name, message=str(e)) from e

    ctx.release = release
    console.print_release(release.tag_name, release.location, len(files))
    return release
