# cli.py
from __future__ import annotations

import sys
from pathlib import Path

import click

from matrixci import settings
from matrixci.errors import CIError, InputError, ReleaseError
from matrixci.git_facts.git import get_remote_url
from matrixci.inputs import parse_pairs, resolve_inputs
from matrixci.model import TRIGGERS, CalledByWorkflow, ManualDispatch, Workflow
from matrixci.release import GitHubReleasePublisher, LocalReleasePublisher, ReleasePublisher
from matrixci.runner import load_workflow, run_workflow
from matrixci.ui.console import Console, get_console, set_console

EVENTS = {"dispatch": ManualDispatch.event, "call": CalledByWorkflow.event}


def find_workflow_files(root: Path = Path(".")) -> list[Path]:
    """
    Find all workflow files in a directory.

    Returns:
        List of Path objects for workflow files
    """
    workflow_files = []

    default_workflow = root / settings.DEFAULT_WORKFLOW
    if default_workflow.exists():
        workflow_files.append(default_workflow)

    # other *_workflow.py files
    for path in root.glob("*_workflow.py"):
        if path != default_workflow:
            workflow_files.append(path)

    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix != ".py":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  matrixci run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=[
                "Looked for:",
                f"  {settings.DEFAULT_WORKFLOW}",
                "  *_workflow.py",
            ],
            suggestion="Create a workflow file or specify one explicitly:\n  matrixci run --workflow my_workflow.py",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a workflow explicitly:\n  matrixci run --workflow {settings.DEFAULT_WORKFLOW}",
        )
        sys.exit(1)

    return workflow_files[0]


def make_publisher(target: str, release_dir: str, repository: str | None) -> ReleasePublisher:
    if target == "local":
        return LocalReleasePublisher(release_dir)

    repo = repository or settings.GITHUB_REPOSITORY
    if not repo or not settings.GITHUB_TOKEN:
        raise ReleaseError("--publish-to github needs GITHUB_TOKEN and --repository (or GITHUB_REPOSITORY)")
    return GitHubReleasePublisher(repo, settings.GITHUB_TOKEN, api_url=settings.GITHUB_API_URL)


def _repo_name(workspace: Path) -> str:
    try:
        repo_url = get_remote_url("origin", cwd=workspace)
        return repo_url.rstrip("/").split("/")[-1].replace(".git", "")
    except Exception:
        return workspace.resolve().name


def _load(ctx, workflow: str | None) -> tuple[Path, Workflow]:
    console = get_console()
    workflow_path = discover_workflow(workflow)
    try:
        return workflow_path, load_workflow(workflow_path)
    except Exception as e:
        console.print_error(
            "Failed to load workflow",
            f"Could not load workflow from {workflow_path}",
            details=[str(e)],
        )
        if ctx.obj.get("debug", False):
            import traceback
            traceback.print_exc()
        sys.exit(1)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and command output)",
)
@click.pass_context
def cli(ctx, debug):
    """matrixci: matrix build-and-release runner."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--workflow", default=None, help="Workflow file path (defaults to matrixci_workflow.py if present)")
@click.option("--event", type=click.Choice(sorted(EVENTS)), default="dispatch", show_default=True,
              help="Trigger: manual dispatch or call from another workflow")
@click.option("--caller", default=None, help="Calling workflow name (with --event call)")
@click.option("--input", "inputs", multiple=True, metavar="KEY=VALUE", help="Trigger input, repeatable")
@click.option("--env", "env_pairs", multiple=True, metavar="KEY=VALUE", help="Run-wide env var (e.g. TAG_NAME), repeatable")
@click.option("--workspace", default=".", show_default=True, help="Workspace directory")
@click.option("--max-parallel", default=None, type=int, help="Override the job's max-parallel bound")
@click.option("--fail-fast/--no-fail-fast", default=None, help="Cancel cells not yet started after the first failure")
@click.option("--strict", is_flag=True, default=False, help="Fail steps that reference undefined values")
@click.option("--cache-dir", default=settings.CACHE_DIR, show_default=True, help="Cache directory")
@click.option("--release-dir", default=settings.RELEASE_DIR, show_default=True, help="Local draft release directory")
@click.option("--publish-to", type=click.Choice(["local", "github"]), default="local", show_default=True)
@click.option("--repository", default=None, help="owner/name for --publish-to github")
@click.pass_context
def run(ctx, workflow, event, caller, inputs, env_pairs, workspace, max_parallel, fail_fast, strict,
        cache_dir, release_dir, publish_to, repository):
    """Run a workflow across its matrix."""
    console = get_console()
    workflow_path, wf = _load(ctx, workflow)

    try:
        raw_inputs = parse_pairs(list(inputs), what="input")
        env = parse_pairs(list(env_pairs), what="env")
        if EVENTS[event] == CalledByWorkflow.event:
            trigger = CalledByWorkflow(inputs=raw_inputs, caller=caller)
        else:
            trigger = ManualDispatch(inputs=raw_inputs)

        ws = Path(workspace)
        publisher = make_publisher(publish_to, release_dir, repository)

        console.print_run_started(
            repository=_repo_name(ws),
            workflow=workflow_path.name,
            event=trigger.event,
            cell_count=sum(len(j.cells()) for j in wf.jobs),
        )

        result = run_workflow(
            wf,
            trigger,
            workspace=ws,
            env=env,
            strict=strict,
            cache_root=cache_dir,
            publisher=publisher,
            max_parallel=max_parallel,
            fail_fast=fail_fast,
        )

        console.print_results(result.statuses())
        for rel in result.releases:
            console.print_info(f"Draft release: {rel.tag_name} ({rel.location})")

        if not result.ok:
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except (InputError, ReleaseError, CIError) as e:
        console.print_error("Run failed", str(e))
        sys.exit(1)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file path (defaults to matrixci_workflow.py if present)")
@click.option("--event", type=click.Choice(sorted(EVENTS)), default="dispatch", show_default=True)
@click.option("--input", "inputs", multiple=True, metavar="KEY=VALUE", help="Trigger input, repeatable")
@click.pass_context
def plan(ctx, workflow, event, inputs):
    """Show resolved inputs, matrix cells and step order without running anything."""
    console = get_console()
    _path, wf = _load(ctx, workflow)

    try:
        trigger = TRIGGERS[EVENTS[event]](inputs=parse_pairs(list(inputs), what="input"))
        resolved = resolve_inputs(wf, trigger)
    except InputError as e:
        console.print_error("Invalid inputs", str(e))
        sys.exit(1)

    console.print_header(f"{wf.name} ({trigger.event})")
    for key, value in resolved.items():
        console.print_info(f"input {key} = {value!r}")
    for job in wf.jobs:
        cells = job.cells()
        console.print_info(f"\njob {job.name}: {len(cells)} cell(s), max-parallel {job.max_parallel}, "
                           f"fail-fast {'on' if job.fail_fast else 'off'}")
        for cell in cells:
            console.print_plan_cell(job.name, cell.label or "-", [s.name for s in job.steps])


@cli.command()
@click.option("--workflow", default=None, help="Workflow file path (defaults to matrixci_workflow.py if present)")
@click.option("--workspace", default=".", show_default=True, help="Workspace directory")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, type=int, show_default=True)
@click.option("--cache-dir", default=settings.CACHE_DIR, show_default=True, help="Cache directory")
@click.option("--release-dir", default=settings.RELEASE_DIR, show_default=True, help="Local draft release directory")
@click.option("--strict", is_flag=True, default=False, help="Fail steps that reference undefined values")
@click.pass_context
def serve(ctx, workflow, workspace, host, port, cache_dir, release_dir, strict):
    """Serve the workflow_dispatch / workflow_call HTTP API."""
    import uvicorn
    from matrixci.api import create_app

    _path, wf = _load(ctx, workflow)
    app = create_app(
        {wf.name: wf},
        workspace=workspace,
        cache_root=cache_dir,
        publisher=LocalReleasePublisher(release_dir),
        strict=strict,
    )
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    cli()
