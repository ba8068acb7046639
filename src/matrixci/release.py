# release.py
from __future__ import annotations

import glob
import json
import os
import re
import shutil
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

from .errors import ReleaseError

_NEXT_LINK = re.compile(r"<([^>]+)>\s*;\s*rel=\"next\"")


@dataclass
class DraftRelease:
    """A release object that is created but held back from publication."""
    tag_name: str
    files: List[str]
    draft: bool = True
    location: str = ""
    uploaded: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tag_name": self.tag_name,
            "draft": self.draft,
            "files": [str(f) for f in self.files],
            "location": self.location,
            "uploaded": list(self.uploaded),
        }


def expand_artifacts(patterns: List[str], workspace: str | Path = ".") -> Tuple[List[Path], List[str]]:
    """
    Expand file-glob patterns in declared order.

    Returns (files, unmatched_patterns). Directories are ignored, duplicates
    keep their first position, blank patterns are dropped. Two different
    files with the same name raise ReleaseError, since release assets are
    addressed by name.
    """
    ws = Path(workspace).resolve()
    files: List[Path] = []
    seen = set()
    unmatched: List[str] = []

    for pat in patterns:
        pat = pat.strip()
        if not pat:
            continue
        full = os.path.expanduser(pat)
        if not os.path.isabs(full):
            full = str(ws / full)
        matches = [Path(m).resolve() for m in sorted(glob.glob(full, recursive=True))]
        matches = [m for m in matches if m.is_file()]
        if not matches:
            unmatched.append(pat)
            continue
        for m in matches:
            if m not in seen:
                seen.add(m)
                files.append(m)
    check_asset_names(files)
    return files, unmatched


def check_asset_names(files: List[Path]) -> None:
    """Raise ReleaseError when two files would become assets with the same name."""
    by_name: Dict[str, Path] = {}
    for f in files:
        first = by_name.setdefault(f.name, f)
        if first != f:
            raise ReleaseError(f"asset name {f.name!r} is used by both {first} and {f}")


class ReleasePublisher:
    """Creates or updates a draft release for a tag and attaches files."""

    def publish(self, tag_name: str, files: List[Path]) -> DraftRelease:
        raise NotImplementedError


# ---------------------------------------------------------------------
# Local directory publisher
# ---------------------------------------------------------------------

class LocalReleasePublisher(ReleasePublisher):
    """
    File-based draft releases:
      root/
        <tag>/
          release.json
          assets/<file name>
    """

    def __init__(self, root: str | Path = ".matrixci/releases"):
        self.root = Path(root).resolve()

    def publish(self, tag_name: str, files: List[Path]) -> DraftRelease:
        if not tag_name or "/" in tag_name or tag_name in (".", ".."):
            raise ReleaseError(f"invalid tag name: {tag_name!r}")
        check_asset_names(files)

        rel_dir = self.root / tag_name
        assets_dir = rel_dir / "assets"
        meta_path = rel_dir / "release.json"

        meta: Dict[str, Any] = {}
        if meta_path.exists():
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
            if not meta.get("draft", True):
                raise ReleaseError(f"release {tag_name!r} is already published; refusing to modify it")

        assets_dir.mkdir(parents=True, exist_ok=True)
        uploaded: List[str] = []
        for f in files:
            shutil.copy2(f, assets_dir / f.name)
            uploaded.append(f.name)

        now = int(time.time())
        assets = sorted(set(meta.get("assets", [])) | set(uploaded))
        meta = {
            "tag_name": tag_name,
            "draft": True,
            "assets": assets,
            "created_at": meta.get("created_at", now),
            "updated_at": now,
        }
        meta_path.write_text(json.dumps(meta, sort_keys=True, indent=2), encoding="utf-8")

        return DraftRelease(
            tag_name=tag_name,
            files=[str(f) for f in files],
            location=str(rel_dir),
            uploaded=uploaded,
        )


# ---------------------------------------------------------------------
# GitHub REST publisher
# ---------------------------------------------------------------------

class GitHubReleasePublisher(ReleasePublisher):
    """Draft releases through the GitHub REST API."""

    def __init__(
        self,
        repository: str,
        token: str,
        *,
        api_url: str = "https://api.github.com",
        opener: Optional[Callable[..., Any]] = None,
    ):
        """
        Args:
            repository: "owner/name"
            token: API token with contents:write
            api_url: API base URL (GitHub Enterprise uses a different one)
            opener: urlopen-compatible callable, injectable for tests
        """
        if repository.count("/") != 1:
            raise ReleaseError(f"repository must look like owner/name, got {repository!r}")
        self.repository = repository
        self.token = token
        self.api_url = api_url.rstrip("/")
        self._open = opener or urllib.request.urlopen

    def _request(
        self,
        method: str,
        url: str,
        data: Optional[bytes] = None,
        content_type: str = "application/json",
    ) -> Any:
        return self._send(method, url, data, content_type)[0]

    def _send(
        self,
        method: str,
        url: str,
        data: Optional[bytes] = None,
        content_type: str = "application/json",
    ) -> Tuple[Any, Optional[str]]:
        """Returns (decoded JSON body, URL of the next page or None)."""
        req_headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.token}",
            "Content-Type": content_type,
        }
        req = urllib.request.Request(url, data=data, headers=req_headers, method=method)
        try:
            with self._open(req) as response:
                body = response.read().decode("utf-8")
                headers = getattr(response, "headers", None)
                link = headers.get("Link", "") if headers is not None else ""
                match = _NEXT_LINK.search(link or "")
                return (json.loads(body) if body else {}), (match.group(1) if match else None)
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8") if e.fp else ""
            raise ReleaseError(f"{method} {url} failed: {e.code} {e.reason}. {error_body}") from e
        except urllib.error.URLError as e:
            raise ReleaseError(f"could not reach {url}: {e.reason}") from e

    def _json(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        return self._request(method, f"{self.api_url}/repos/{self.repository}{path}", data)

    def find_release(self, tag_name: str) -> Optional[Dict[str, Any]]:
        # drafts are not visible through /releases/tags/{tag}, so list instead
        url: Optional[str] = f"{self.api_url}/repos/{self.repository}/releases?per_page=100"
        while url:
            releases, url = self._send("GET", url)
            for rel in releases or []:
                if rel.get("tag_name") == tag_name:
                    return rel
        return None

    def publish(self, tag_name: str, files: List[Path]) -> DraftRelease:
        if not tag_name:
            raise ReleaseError("tag name is empty")
        check_asset_names(files)

        existing = self.find_release(tag_name)
        if existing is not None and not existing.get("draft", False):
            raise ReleaseError(f"release {tag_name!r} is already published; refusing to modify it")

        if existing is None:
            existing = self._json("POST", "/releases", {"tag_name": tag_name, "name": tag_name, "draft": True})

        current = {a.get("name"): a.get("id") for a in existing.get("assets", [])}
        upload_base = str(existing.get("upload_url", "")).split("{", 1)[0]
        if files and not upload_base:
            raise ReleaseError(f"release {tag_name!r} has no upload_url")

        uploaded: List[str] = []
        for f in files:
            if f.name in current:
                self._json("DELETE", f"/releases/assets/{current[f.name]}")
            self._request(
                "POST",
                f"{upload_base}?name={quote(f.name)}",
                data=f.read_bytes(),
                content_type="application/octet-stream",
            )
            uploaded.append(f.name)

        return DraftRelease(
            tag_name=tag_name,
            files=[str(f) for f in files],
            location=str(existing.get("html_url", "")),
            uploaded=uploaded,
        )
