# cache.py
from __future__ import annotations

import hashlib
import io
import json
import os
import re
import tarfile
import tempfile
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

# ---------------------------------------------------------------------
# Core idea
# ---------------------------------------------------------------------
# Key-addressed directory caching:
#   key          = user supplied string (e.g. "Linux-cargo-<hash of Cargo.lock>")
#   restore_keys = ordered prefixes tried when the exact key misses;
#                  within one prefix the newest entry wins
#
# Cache artifact:
#   a tar.gz containing the declared paths, member names prefixed by the
#   index of the path they came from ("0/...", "1/..."), plus a manifest.json
#   recording key, paths and creation time.
#
# Entries are only matched when their path list equals the requested one.
#
# Layout:
#   root/
#     <safe key>.tar.gz
#     <safe key>.manifest.json
# ---------------------------------------------------------------------


DEFAULT_CACHE_DIR = ".matrixci/cache"
DEFAULT_CACHE_EXCLUDES = [
    ".matrixci/**",
    "**/__pycache__/**",
    "**/.DS_Store",
]

# one save lock per (cache root, key), shared by every CacheStore instance
_SAVE_LOCKS: Dict[Tuple[str, str], threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


@dataclass(frozen=True)
class CacheHit:
    hit: bool  # exact key match
    key: str
    matched_key: Optional[str]  # exact key or the restore-key entry that was used
    reason: str  # human readable
    manifest: Dict = field(default_factory=dict)

    @property
    def restored(self) -> bool:
        return self.matched_key is not None


def _safe_name(key: str) -> str:
    stem = re.sub(r"[^A-Za-z0-9._-]", "_", key)[:80]
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:12]
    return f"{stem}-{digest}"


def _iter_files_under(root: Path) -> Iterable[Path]:
    # deterministic traversal
    for p in sorted(root.rglob("*")):
        if p.is_file():
            yield p


def _matches_any_glob(rel: str, globs: List[str]) -> bool:
    rel_path = Path(rel)
    return any(rel_path.match(g) for g in globs)


def resolve_cache_path(spec: str, workspace: Path) -> Path:
    """Expand ~ and make relative paths workspace-relative."""
    p = Path(os.path.expanduser(spec.strip()))
    if not p.is_absolute():
        p = workspace / p
    return p.resolve()


class CacheStore:
    """File-based key/restore-keys cache store."""

    def __init__(self, root: str | Path = DEFAULT_CACHE_DIR):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def artifact_path(self, key: str) -> Path:
        return self.root / f"{_safe_name(key)}.tar.gz"

    def manifest_path(self, key: str) -> Path:
        return self.root / f"{_safe_name(key)}.manifest.json"

    def exists(self, key: str) -> bool:
        return self.artifact_path(key).exists() and self.manifest_path(key).exists()

    def entries(self) -> List[Dict]:
        """All stored manifests, newest first."""
        out: List[Dict] = []
        for man in self.root.glob("*.manifest.json"):
            try:
                data = json.loads(man.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                continue
            if isinstance(data, dict) and "key" in data:
                out.append(data)
        out.sort(key=lambda m: m.get("created_ns", 0), reverse=True)
        return out

    # -----------------------------------------------------------------
    # restore
    # -----------------------------------------------------------------

    def _extract(self, key: str, paths: List[str], workspace: Path) -> None:
        targets = [resolve_cache_path(p, workspace) for p in paths]
        with tarfile.open(str(self.artifact_path(key)), mode="r:gz") as tar:
            for member in tar.getmembers():
                if not member.isfile():
                    continue
                head, _, rel = member.name.partition("/")
                if not head.isdigit() or int(head) >= len(targets):
                    continue
                base = targets[int(head)]
                dest = (base / rel) if rel else base
                if rel and base not in dest.resolve().parents:
                    raise ValueError(f"refusing to extract outside cache path: {member.name}")
                dest.parent.mkdir(parents=True, exist_ok=True)
                src = tar.extractfile(member)
                if src is None:
                    continue
                with src, dest.open("wb") as f:
                    f.write(src.read())
                os.chmod(dest, member.mode & 0o777)

    def restore(
        self,
        key: str,
        restore_keys: Iterable[str],
        paths: List[str],
        *,
        workspace: str | Path = ".",
    ) -> CacheHit:
        """
        Restore cached paths into place.

        Exact key first; on a miss each restore-key prefix in order (newest
        entry per prefix). A total miss, or an unreadable artifact, is a
        miss and never an error. An unreadable exact-key entry is discarded
        so the next successful run can store it again.
        """
        ws = Path(workspace).resolve()
        paths = list(paths)
        failure: Optional[str] = None

        if self.exists(key):
            manifest = self._read_manifest(key)
            if manifest.get("paths") == paths:
                try:
                    self._extract(key, paths, ws)
                    return CacheHit(hit=True, key=key, matched_key=key, reason="cache hit: exact key", manifest=manifest)
                except (OSError, tarfile.TarError, ValueError, EOFError) as e:
                    failure = f"cache exists but restore failed: {e}"
                    with self._lock_for(key):
                        self.discard(key)

        entries = [m for m in self.entries() if m.get("paths") == paths and m["key"] != key]
        for prefix in restore_keys:
            if not prefix:
                continue
            for manifest in entries:
                candidate = manifest["key"]
                if not candidate.startswith(prefix) or not self.exists(candidate):
                    continue
                try:
                    self._extract(candidate, paths, ws)
                except (OSError, tarfile.TarError, ValueError, EOFError):
                    continue
                reason = f"cache restored from restore-key '{prefix}' ({candidate})"
                if failure:
                    reason = f"{failure}; {reason}"
                return CacheHit(hit=False, key=key, matched_key=candidate, reason=reason, manifest=manifest)

        return CacheHit(hit=False, key=key, matched_key=None, reason=failure or "cache miss")

    def _read_manifest(self, key: str) -> Dict:
        try:
            data = json.loads(self.manifest_path(key).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    # -----------------------------------------------------------------
    # save / prune
    # -----------------------------------------------------------------

    def _lock_for(self, key: str) -> threading.Lock:
        with _LOCKS_GUARD:
            return _SAVE_LOCKS.setdefault((str(self.root), key), threading.Lock())

    def discard(self, key: str) -> None:
        """Drop an entry (artifact and manifest)."""
        self.artifact_path(key).unlink(missing_ok=True)
        self.manifest_path(key).unlink(missing_ok=True)

    def save(
        self,
        key: str,
        paths: List[str],
        *,
        workspace: str | Path = ".",
        excludes: Optional[List[str]] = None,
    ) -> Tuple[bool, Dict]:
        """
        Save paths under key. Returns (saved, manifest).

        A key is written at most once: if it already exists this is a no-op
        and returns the stored manifest. Concurrent saves of one key are
        serialized; the first writer wins.
        """
        with self._lock_for(key):
            if self.exists(key):
                return False, self._read_manifest(key)
            return True, self._write(key, paths, Path(workspace).resolve(), excludes)

    def _write(self, key: str, paths: List[str], ws: Path, excludes: Optional[List[str]]) -> Dict:
        exclude_globs = list(DEFAULT_CACHE_EXCLUDES) + list(excludes or [])

        art = self.artifact_path(key)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{art.name}.", suffix=".tmp", dir=str(self.root))
        os.close(fd)
        tmp = Path(tmp_name)
        file_count = 0
        try:
            # Build tar.gz in tmp, then atomic rename
            with tarfile.open(str(tmp), mode="w:gz") as tar:
                for idx, spec in enumerate(paths):
                    src = resolve_cache_path(spec, ws)
                    if src.is_file():
                        tar.add(str(src), arcname=str(idx), recursive=False)
                        file_count += 1
                        continue
                    if not src.is_dir():
                        continue
                    for f in _iter_files_under(src):
                        rel = f.relative_to(src).as_posix()
                        if _matches_any_glob(rel, exclude_globs):
                            continue
                        tar.add(str(f), arcname=f"{idx}/{rel}", recursive=False)
                        file_count += 1

                manifest = {
                    "key": key,
                    "paths": list(paths),
                    "files": file_count,
                    "created_ns": time.time_ns(),
                }
                payload = json.dumps(manifest, sort_keys=True, indent=2).encode("utf-8")
                info = tarfile.TarInfo(name=".matrixci_cache_manifest.json")
                info.size = len(payload)
                info.mtime = int(time.time())
                tar.addfile(info, fileobj=io.BytesIO(payload))

            tmp.replace(art)
            self.manifest_path(key).write_text(json.dumps(manifest, sort_keys=True, indent=2), encoding="utf-8")
        finally:
            tmp.unlink(missing_ok=True)

        return manifest

    def prune(self, keep: int = 10) -> List[str]:
        """Keep only the newest N entries. Returns removed keys."""
        removed: List[str] = []
        for manifest in self.entries()[keep:]:
            key = manifest["key"]
            self.discard(key)
            removed.append(key)
        return removed
