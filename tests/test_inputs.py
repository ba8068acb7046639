"""Tests for trigger input resolution."""

import pytest

from matrixci.dsl import boolean_input, job, number_input, sh, string_input, wf
from matrixci.errors import InputError
from matrixci.inputs import parse_pairs, resolve_inputs
from matrixci.model import CalledByWorkflow, ManualDispatch
from matrixci.presets import act_release


class TestResolveInputs:
    """Tests for resolve_inputs."""

    def test_rust_version_defaults_to_stable_on_dispatch(self):
        assert resolve_inputs(act_release(), ManualDispatch()) == {"rust-version": "stable"}

    def test_rust_version_defaults_to_stable_on_call(self):
        assert resolve_inputs(act_release(), CalledByWorkflow(caller="parent")) == {"rust-version": "stable"}

    def test_explicit_value_wins(self):
        resolved = resolve_inputs(act_release(), ManualDispatch(inputs={"rust-version": "1.74.0"}))
        assert resolved == {"rust-version": "1.74.0"}

    def test_unknown_input_rejected(self):
        with pytest.raises(InputError, match="unexpected inputs"):
            resolve_inputs(act_release(), ManualDispatch(inputs={"toolchain": "nightly"}))

    def test_event_not_declared(self):
        only_dispatch = wf(job("j", sh("s", "true")), on={"workflow_dispatch": []})
        with pytest.raises(InputError, match="not triggered by workflow_call"):
            resolve_inputs(only_dispatch, CalledByWorkflow())

    def test_required_input_missing(self):
        w = wf(job("j", sh("s", "true")), on={"workflow_dispatch": [string_input("tag", required=True)]})
        with pytest.raises(InputError, match="required input 'tag'"):
            resolve_inputs(w, ManualDispatch())

    def test_typed_inputs_are_coerced(self):
        w = wf(
            job("j", sh("s", "true")),
            on={"workflow_dispatch": [boolean_input("dry-run", default=False), number_input("retries", default=1)]},
        )

        resolved = resolve_inputs(w, ManualDispatch(inputs={"dry-run": "true", "retries": "3"}))

        assert resolved == {"dry-run": True, "retries": 3}

    def test_bad_boolean(self):
        w = wf(job("j", sh("s", "true")), on={"workflow_dispatch": [boolean_input("dry-run")]})
        with pytest.raises(InputError, match="expects a boolean"):
            resolve_inputs(w, ManualDispatch(inputs={"dry-run": "maybe"}))


class TestParsePairs:
    """Tests for key=value parsing."""

    def test_value_may_contain_equals(self):
        assert parse_pairs(["ASSET_SRC=dist/a=b.tar.gz"]) == {"ASSET_SRC": "dist/a=b.tar.gz"}

    def test_missing_equals(self):
        with pytest.raises(InputError):
            parse_pairs(["rust-version"])
