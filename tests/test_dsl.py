"""Tests for the workflow DSL and matrix expansion."""

import pytest

from matrixci.dsl import cache, checkout, job, matrix, release, sh, string_input, wf
from matrixci.presets import act_release


class TestMatrix:
    """Tests for Matrix expansion."""

    def test_two_by_two_gives_four_unique_cells(self):
        m = matrix(backend=["simple-backend", "redis-backend"], client=["no-client", "graphql"])

        cells = m.cells()

        assert len(cells) == 4
        assert len(m) == 4
        assert len({c.values for c in cells}) == 4

    def test_declaration_order_first_axis_slowest(self):
        m = matrix(backend=["simple-backend", "redis-backend"], client=["no-client", "graphql"])

        pairs = [(c["backend"], c["client"]) for c in m.cells()]

        assert pairs == [
            ("simple-backend", "no-client"),
            ("simple-backend", "graphql"),
            ("redis-backend", "no-client"),
            ("redis-backend", "graphql"),
        ]

    def test_expansion_is_deterministic(self):
        m = matrix(a=[1, 2, 3], b=["x", "y"], c=[True])
        assert m.cells() == m.cells()
        assert len(m.cells()) == 6

    def test_empty_axis_rejected(self):
        with pytest.raises(ValueError, match="no values"):
            matrix(backend=[], client=["graphql"])

    def test_duplicate_values_rejected(self):
        with pytest.raises(ValueError, match="duplicate"):
            matrix(backend=["a", "a"])

    def test_cell_label(self):
        cell = matrix(backend=["redis-backend"], client=["graphql"]).cells()[0]
        assert cell.label == "redis-backend, graphql"
        assert cell.as_dict() == {"backend": "redis-backend", "client": "graphql"}


class TestStepHelpers:
    """Tests for step factory helpers."""

    def test_sh_defaults(self):
        step = sh("Lint", "cargo fmt --all -- --check")
        assert step.kind == "shell"
        assert step.continue_on_error is False
        assert step.shell is None

    def test_release_is_always_draft(self):
        step = release("Publish", tag_name="v1", files=["a/*", "", "b"])
        assert step.with_["draft"] is True
        assert step.with_["files"] == ["a/*", "b"]

    def test_cache_requires_paths_and_key(self):
        with pytest.raises(ValueError):
            cache("c", path=[], key="k")
        with pytest.raises(ValueError):
            cache("c", path=["target/"], key="")

    def test_job_requires_steps(self):
        with pytest.raises(ValueError, match="at least one step"):
            job("empty")

    def test_job_rejects_bad_parallel_bound(self):
        with pytest.raises(ValueError, match="max_parallel"):
            job("j", sh("s", "true"), max_parallel=0)

    def test_unknown_trigger_rejected(self):
        with pytest.raises(ValueError, match="Unsupported trigger"):
            wf(job("j", sh("s", "true")), on={"push": []})


class TestActReleasePreset:
    """Tests for the act-release preset."""

    def test_step_order(self):
        wf_ = act_release()
        check = wf_.job("check")

        assert [s.kind for s in check.steps] == ["checkout", "cache", "shell", "shell", "shell", "release"]
        assert [s.name for s in check.steps] == [
            "Check out", "Set up cache", "Lint", "Run tests", "Build", "Publish Release",
        ]

    def test_matrix_and_serialization(self):
        check = act_release().job("check")
        assert len(check.cells()) == 4
        assert check.max_parallel == 1
        assert check.fail_fast is True

    def test_triggers_share_input_contract(self):
        wf_ = act_release()
        assert set(wf_.on) == {"workflow_dispatch", "workflow_call"}
        for specs in wf_.on.values():
            assert specs == [string_input("rust-version", default="stable", description="Rust toolchain")]

    def test_process_wide_env(self):
        assert act_release().env == {"CARGO_TERM_COLOR": "always", "RUST_BACKTRACE": "1"}

    def test_checkout_helper_defaults(self):
        step = checkout()
        assert step.with_ == {"repository": None, "ref": None, "path": "."}
