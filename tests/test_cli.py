"""Tests for the command line interface and workflow loading."""

import json
import textwrap

import pytest
from click.testing import CliRunner

from matrixci.cli import cli
from matrixci.model import Workflow
from matrixci.runner import load_workflow

SIMPLE_WORKFLOW = textwrap.dedent(
    """
    from matrixci import wf, job, sh, matrix, release, string_input

    def workflow():
        return wf(
            job(
                "check",
                sh("record", "echo ${{ inputs.rust-version }}-${{ matrix.backend }} >> order.log"),
                release("publish", tag_name="${{ env.TAG_NAME }}", files=["order.log"]),
                matrix=matrix(backend=["simple-backend", "redis-backend"]),
            ),
            name="demo",
            on={
                "workflow_dispatch": [string_input("rust-version", default="stable")],
                "workflow_call": [string_input("rust-version", default="stable")],
            },
        )
    """
)


@pytest.fixture
def project(tmp_path, monkeypatch):
    (tmp_path / "demo_workflow.py").write_text(SIMPLE_WORKFLOW)
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestLoadWorkflow:
    """Tests for load_workflow."""

    def test_loads_workflow_function(self, project):
        wf = load_workflow(project / "demo_workflow.py")
        assert isinstance(wf, Workflow)
        assert wf.name == "demo"

    def test_jobs_list(self, tmp_path):
        path = tmp_path / "jobs_workflow.py"
        path.write_text("from matrixci import job, sh\nJOBS = [job('a', sh('s', 'true'))]\n")

        wf = load_workflow(path)

        assert [j.name for j in wf.jobs] == ["a"]
        assert "workflow_dispatch" in wf.on

    def test_rejects_other_values(self, tmp_path):
        path = tmp_path / "bad_workflow.py"
        path.write_text("JOBS = 3\n")
        with pytest.raises(TypeError):
            load_workflow(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_workflow(tmp_path / "nope.py")


class TestCli:
    """Tests for matrixci run / plan."""

    def test_plan_lists_cells_and_default_input(self, project):
        result = CliRunner().invoke(cli, ["plan"])

        assert result.exit_code == 0, result.output
        assert "input rust-version = 'stable'" in result.output
        assert "check (simple-backend)" in result.output
        assert "check (redis-backend)" in result.output

    def test_run_dispatch(self, project):
        result = CliRunner().invoke(cli, [
            "run", "--env", "TAG_NAME=v9", "--input", "rust-version=1.74",
            "--cache-dir", str(project / "cache"), "--release-dir", str(project / "releases"),
        ])

        assert result.exit_code == 0, result.output
        assert (project / "order.log").read_text().split() == ["1.74-simple-backend", "1.74-redis-backend"]
        meta = json.loads((project / "releases" / "v9" / "release.json").read_text())
        assert meta["draft"] is True
        assert "RESULTS" in result.output

    def test_run_call_event(self, project):
        result = CliRunner().invoke(cli, [
            "run", "--event", "call", "--caller", "parent", "--env", "TAG_NAME=v9",
            "--cache-dir", str(project / "cache"), "--release-dir", str(project / "releases"),
        ])

        assert result.exit_code == 0, result.output
        assert (project / "order.log").read_text().split()[0] == "stable-simple-backend"

    def test_unknown_input_exits_1(self, project):
        result = CliRunner().invoke(cli, ["run", "--input", "nope=1"])
        assert result.exit_code == 1

    def test_failed_cell_exits_1(self, project):
        result = CliRunner().invoke(cli, [
            "run", "--cache-dir", str(project / "cache"), "--release-dir", str(project / "releases"),
        ])
        # TAG_NAME unset -> publish step in the final cell fails
        assert result.exit_code == 1

    def test_multiple_workflows_need_explicit_choice(self, project):
        (project / "other_workflow.py").write_text(SIMPLE_WORKFLOW)
        result = CliRunner().invoke(cli, ["plan"])
        assert result.exit_code == 1

    def test_explicit_workflow(self, project):
        (project / "other_workflow.py").write_text(SIMPLE_WORKFLOW)
        result = CliRunner().invoke(cli, ["plan", "--workflow", "other_workflow"])
        assert result.exit_code == 0, result.output
