# inputs.py
from __future__ import annotations

from typing import Any, Dict, List, Mapping

from .errors import InputError
from .model import InputSpec, Trigger, Workflow

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


def _coerce(spec: InputSpec, value: Any) -> Any:
    if spec.type == "string":
        return "" if value is None else str(value)

    if spec.type == "boolean":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise InputError(f"input {spec.name!r} expects a boolean, got {value!r}")

    if spec.type == "number":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        try:
            num = float(str(value).strip())
        except ValueError:
            raise InputError(f"input {spec.name!r} expects a number, got {value!r}") from None
        return int(num) if num.is_integer() else num

    raise InputError(f"input {spec.name!r} has unsupported type {spec.type!r}")


def resolve_inputs(workflow: Workflow, trigger: Trigger) -> Dict[str, Any]:
    """
    Resolve a trigger's raw inputs against the inputs declared for its event.

    - omitted optional inputs take their declared default
    - omitted required inputs, unknown inputs and badly typed values raise InputError
    """
    if trigger.event not in workflow.on:
        raise InputError(f"workflow {workflow.name!r} is not triggered by {trigger.event}")

    specs: List[InputSpec] = workflow.on[trigger.event]
    known = {s.name for s in specs}
    raw: Mapping[str, Any] = trigger.inputs or {}

    unknown = sorted(set(raw) - known)
    if unknown:
        raise InputError(f"unexpected inputs for {trigger.event}: {unknown}. Known inputs: {sorted(known)}")

    resolved: Dict[str, Any] = {}
    for spec in specs:
        if spec.name in raw and raw[spec.name] is not None:
            resolved[spec.name] = _coerce(spec, raw[spec.name])
        elif spec.required:
            raise InputError(f"required input {spec.name!r} was not provided")
        elif spec.default is not None:
            resolved[spec.name] = _coerce(spec, spec.default)
        else:
            resolved[spec.name] = "" if spec.type == "string" else None
    return resolved


def parse_pairs(pairs: List[str], *, what: str = "input") -> Dict[str, str]:
    """Parse CLI style `key=value` pairs."""
    out: Dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            raise InputError(f"{what} {pair!r} must look like key=value")
        key, value = pair.split("=", 1)
        key = key.strip()
        if not key:
            raise InputError(f"{what} {pair!r} has an empty key")
        out[key] = value
    return out
