# expressions.py
# ${{ ... }} interpolation for step fields.
#
# Supported expressions:
#   matrix.backend            dotted context lookups (matrix, env, inputs, runner, github)
#   inputs.rust-version       identifiers may contain '-'
#   hashFiles('**/Cargo.lock', ...)
#   'literal'
from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from .errors import ExpressionError, UndefinedReferenceError

_EXPR = re.compile(r"\$\{\{\s*(.*?)\s*\}\}")
_IDENT = r"[A-Za-z_][A-Za-z0-9_-]*"
_REFERENCE = re.compile(rf"^{_IDENT}(?:\.{_IDENT})*$")
_CALL = re.compile(rf"^({_IDENT})\((.*)\)$")
_STRING = re.compile(r"^'((?:[^']|'')*)'$")
_ARG = re.compile(r"\s*'((?:[^']|'')*)'\s*(?:,|$)")

_MISSING = object()


def _sha256_file(path: Path) -> bytes:
    h = hashlib.sha256()
    with path.open("rb") as f:
        while True:
            chunk = f.read(1024 * 1024)
            if not chunk:
                break
            h.update(chunk)
    return h.digest()


def hash_files(root: str | Path, patterns: List[str]) -> str:
    """
    Hash every file matching any of the glob patterns (relative to root).

    Returns "" when nothing matches, so keys built from it still work.
    """
    base = Path(root).resolve()
    matched = set()
    for pat in patterns:
        for p in base.glob(pat):
            if p.is_file() and ".git" not in p.relative_to(base).parts:
                matched.add(p.resolve())
    if not matched:
        return ""

    h = hashlib.sha256()
    for p in sorted(matched):
        h.update(_sha256_file(p))
    return h.hexdigest()


def _render(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ExpressionContext:
    """Evaluates ${{ ... }} expressions against the run contexts of one cell."""

    def __init__(
        self,
        contexts: Mapping[str, Mapping[str, Any]],
        *,
        workspace: str | Path = ".",
        strict: bool = False,
        on_undefined: Optional[Callable[[str], None]] = None,
    ):
        self.contexts = contexts
        self.workspace = Path(workspace)
        self.strict = strict
        self.on_undefined = on_undefined

    def _lookup(self, reference: str) -> Any:
        node: Any = self.contexts
        for part in reference.split("."):
            if isinstance(node, Mapping) and part in node:
                node = node[part]
            else:
                return _MISSING
        return node

    def _undefined(self, reference: str) -> str:
        if self.strict:
            raise UndefinedReferenceError(reference)
        if self.on_undefined is not None:
            self.on_undefined(reference)
        return ""

    def _call(self, fn: str, raw_args: str) -> str:
        args: List[str] = []
        pos = 0
        raw_args = raw_args.strip()
        while pos < len(raw_args):
            m = _ARG.match(raw_args, pos)
            if not m:
                raise ExpressionError(f"bad arguments to {fn}(): {raw_args!r}")
            args.append(m.group(1).replace("''", "'"))
            pos = m.end()

        if fn == "hashFiles":
            if not args:
                raise ExpressionError("hashFiles() needs at least one pattern")
            return hash_files(self.workspace, args)
        raise ExpressionError(f"unknown function {fn}()")

    def evaluate(self, expr: str) -> str:
        expr = expr.strip()
        m = _STRING.match(expr)
        if m:
            return m.group(1).replace("''", "'")

        m = _CALL.match(expr)
        if m:
            return self._call(m.group(1), m.group(2))

        if _REFERENCE.match(expr):
            value = self._lookup(expr)
            if value is _MISSING:
                return self._undefined(expr)
            return _render(value)

        raise ExpressionError(f"unsupported expression: ${{{{ {expr} }}}}")

    def interpolate(self, value: Any) -> Any:
        """Interpolate strings, recursing into lists and dicts."""
        if isinstance(value, str):
            return _EXPR.sub(lambda m: self.evaluate(m.group(1)), value)
        if isinstance(value, list):
            return [self.interpolate(v) for v in value]
        if isinstance(value, dict):
            return {k: self.interpolate(v) for k, v in value.items()}
        return value


def build_contexts(
    *,
    matrix: Mapping[str, Any],
    env: Mapping[str, str],
    inputs: Mapping[str, Any],
    runner: Mapping[str, Any],
    github: Mapping[str, Any],
) -> Dict[str, Mapping[str, Any]]:
    return {
        "matrix": dict(matrix),
        "env": dict(env),
        "inputs": dict(inputs),
        "runner": dict(runner),
        "github": dict(github),
    }
