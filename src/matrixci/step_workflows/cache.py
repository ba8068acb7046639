# step_workflows/cache.py
from __future__ import annotations

import tarfile

from ..cache import CacheHit, CacheStore
from ..context import CellContext
from ..errors import CIError
from ..model import Step
from ..ui.console import get_console


def run_step(ctx: CellContext, step: Step) -> CacheHit:
    """
    Restore a cache now; queue a save for when the cell succeeds.

    Misses never fail the step. A blank key (e.g. an undefined reference)
    does.
    """
    console = get_console()
    key = str(step.with_.get("key") or "").strip()
    paths = list(step.with_.get("path") or [])
    restore_keys = [k for k in step.with_.get("restore_keys") or [] if k]

    if not key:
        raise CIError(kind="cache_key_empty", job=ctx.label, step=step.name,
                      message="cache key evaluated to an empty string")

    store = CacheStore(ctx.config.cache_root)
    hit = store.restore(key, restore_keys, paths, workspace=ctx.workspace)

    if hit.hit:
        console.print_cache_hit(hit.reason)
    elif hit.restored:
        console.print_cache_restored(hit.reason)
    else:
        console.print_cache_miss(key)
        if hit.reason != "cache miss":
            console.print_warning(f"[{ctx.label}] {hit.reason}")

    if not hit.hit:
        ctx.pending_cache_saves.append((key, paths))
    return hit


def save_pending(ctx: CellContext) -> None:
    """
    Persist queued cache entries under their exact keys.

    A failed save is a warning; it never fails the cell.
    """
    console = get_console()
    store = CacheStore(ctx.config.cache_root)
    for key, paths in ctx.pending_cache_saves:
        try:
            saved, _manifest = store.save(key, paths, workspace=ctx.workspace)
        except (OSError, tarfile.TarError) as e:
            message = f"[{ctx.label}] cache save for {key} failed: {e}"
            ctx.warnings.append(message)
            console.print_warning(message)
            continue
        if saved:
            console.print_cache_saved(key)
        else:
            console.print_debug(f"cache key {key} already stored; not saving again")
    ctx.pending_cache_saves.clear()
