# presets.py
# Ready-made workflows.
from __future__ import annotations

from .dsl import cache, checkout, job, matrix, release, sh, string_input, wf
from .model import Workflow

CARGO_CACHE_PATHS = [
    "~/.cargo/bin/",
    "~/.cargo/registry/index/",
    "~/.cargo/registry/cache/",
    "~/.cargo/git/db/",
    "target/",
]


def act_release(*, max_parallel: int = 1, fail_fast: bool = True) -> Workflow:
    """
    Lint, test and build a cargo workspace for every backend/client feature
    combination, then attach the build outputs to a draft release.

    The build step references `matrix.job.target`, which no axis defines;
    it evaluates to "" (warning) or fails the step under --strict.
    """
    rust_version = string_input("rust-version", default="stable", description="Rust toolchain")

    check = job(
        "check",
        checkout("Check out"),
        cache(
            "Set up cache",
            path=CARGO_CACHE_PATHS,
            key="${{ runner.os }}-cargo-${{ hashFiles('**/Cargo.lock') }}",
            restore_keys=["${{ runner.os }}-cargo-"],
        ),
        sh("Lint", "cargo fmt --all -- --check"),
        sh("Run tests", "cargo test --verbose --workspace --features ${{ matrix.client }},${{ matrix.backend }}"),
        sh("Build", "cargo build --locked --release --target=${{ matrix.job.target }}", shell="bash"),
        release(
            "Publish Release",
            tag_name="${{ env.TAG_NAME }}",
            files=["target/release/*", "./SignOutput/*", "${{ env.ASSET_SRC }}"],
        ),
        matrix=matrix(
            backend=["simple-backend", "redis-backend"],
            client=["no-client", "graphql"],
        ),
        runs_on="ubuntu-latest",
        max_parallel=max_parallel,
        fail_fast=fail_fast,
    )

    return wf(
        check,
        name="act-release",
        on={
            "workflow_dispatch": [rust_version],
            "workflow_call": [rust_version],
        },
        env={"CARGO_TERM_COLOR": "always", "RUST_BACKTRACE": "1"},
    )
