"""Tests for draft release assembly and publishers."""

import io
import json
import urllib.error

import pytest

from matrixci.errors import ReleaseError
from matrixci.release import GitHubReleasePublisher, LocalReleasePublisher, expand_artifacts


class TestExpandArtifacts:
    """Tests for glob expansion of the artifact set."""

    def test_order_and_unmatched(self, workspace):
        (workspace / "target" / "release").mkdir(parents=True)
        (workspace / "target" / "release" / "b").write_text("b")
        (workspace / "target" / "release" / "a").write_text("a")
        (workspace / "target" / "release" / "deps").mkdir()
        (workspace / "dist").mkdir()
        (workspace / "dist" / "pkg.tar.gz").write_text("pkg")

        files, unmatched = expand_artifacts(
            ["target/release/*", "./SignOutput/*", "", "dist/pkg.tar.gz"], workspace
        )

        assert [f.name for f in files] == ["a", "b", "pkg.tar.gz"]
        assert unmatched == ["./SignOutput/*"]

    def test_duplicates_keep_first_position(self, workspace):
        (workspace / "x.bin").write_text("x")
        files, _ = expand_artifacts(["*.bin", "x.bin"], workspace)
        assert len(files) == 1

    def test_same_asset_name_from_two_paths(self, workspace):
        (workspace / "target" / "release").mkdir(parents=True)
        (workspace / "target" / "release" / "app").write_text("unsigned")
        (workspace / "SignOutput").mkdir()
        (workspace / "SignOutput" / "app").write_text("signed")

        with pytest.raises(ReleaseError, match="asset name 'app'"):
            expand_artifacts(["target/release/*", "./SignOutput/*"], workspace)


class TestLocalReleasePublisher:
    """Tests for LocalReleasePublisher."""

    def test_creates_draft(self, workspace, tmp_path):
        (workspace / "app").write_text("bin")
        publisher = LocalReleasePublisher(tmp_path / "releases")

        release = publisher.publish("v1.0.0", [workspace / "app"])

        meta = json.loads((tmp_path / "releases" / "v1.0.0" / "release.json").read_text())
        assert release.draft is True
        assert meta["draft"] is True
        assert meta["assets"] == ["app"]
        assert (tmp_path / "releases" / "v1.0.0" / "assets" / "app").read_text() == "bin"

    def test_updates_existing_draft(self, workspace, tmp_path):
        (workspace / "a").write_text("a")
        (workspace / "b").write_text("b")
        publisher = LocalReleasePublisher(tmp_path / "releases")

        publisher.publish("v1", [workspace / "a"])
        publisher.publish("v1", [workspace / "b"])

        meta = json.loads((tmp_path / "releases" / "v1" / "release.json").read_text())
        assert meta["assets"] == ["a", "b"]
        assert meta["draft"] is True

    def test_refuses_colliding_asset_names(self, workspace, tmp_path):
        (workspace / "a").mkdir()
        (workspace / "b").mkdir()
        (workspace / "a" / "app").write_text("1")
        (workspace / "b" / "app").write_text("2")

        with pytest.raises(ReleaseError, match="asset name"):
            LocalReleasePublisher(tmp_path / "releases").publish("v1", [workspace / "a" / "app", workspace / "b" / "app"])
        assert not (tmp_path / "releases" / "v1").exists()

    def test_refuses_published_release(self, tmp_path):
        rel = tmp_path / "releases" / "v1"
        rel.mkdir(parents=True)
        (rel / "release.json").write_text(json.dumps({"tag_name": "v1", "draft": False}))

        with pytest.raises(ReleaseError, match="already published"):
            LocalReleasePublisher(tmp_path / "releases").publish("v1", [])

    @pytest.mark.parametrize("tag", ["", "a/b", ".."])
    def test_invalid_tag(self, tmp_path, tag):
        with pytest.raises(ReleaseError):
            LocalReleasePublisher(tmp_path).publish(tag, [])


class FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeGitHub:
    """urlopen stand-in that records requests and serves canned JSON."""

    def __init__(self, releases):
        self.releases = releases
        self.requests = []

    def __call__(self, req):
        body = req.data
        self.requests.append((req.get_method(), req.full_url, body))
        method, url = req.get_method(), req.full_url
        if method == "GET" and url.endswith("/releases?per_page=100"):
            return FakeResponse(json.dumps(self.releases).encode())
        if method == "POST" and url.endswith("/releases"):
            created = {
                "id": 7,
                "tag_name": json.loads(body)["tag_name"],
                "draft": json.loads(body)["draft"],
                "assets": [],
                "upload_url": "https://uploads.example/repos/o/r/releases/7/assets{?name,label}",
                "html_url": "https://example/o/r/releases/7",
            }
            return FakeResponse(json.dumps(created).encode())
        if method == "DELETE":
            return FakeResponse(b"")
        if method == "POST" and "uploads.example" in url:
            return FakeResponse(b'{"state": "uploaded"}')
        raise urllib.error.HTTPError(url, 404, "Not Found", {}, None)


class TestGitHubReleasePublisher:
    """Tests for GitHubReleasePublisher against a fake API."""

    def test_creates_draft_and_uploads(self, workspace):
        (workspace / "app").write_bytes(b"\x7fELF")
        api = FakeGitHub(releases=[])
        publisher = GitHubReleasePublisher("o/r", "token", api_url="https://api.example", opener=api)

        release = publisher.publish("v2", [workspace / "app"])

        methods = [(m, u) for m, u, _ in api.requests]
        assert methods[0] == ("GET", "https://api.example/repos/o/r/releases?per_page=100")
        assert methods[1] == ("POST", "https://api.example/repos/o/r/releases")
        assert json.loads(api.requests[1][2]) == {"tag_name": "v2", "name": "v2", "draft": True}
        assert methods[2] == ("POST", "https://uploads.example/repos/o/r/releases/7/assets?name=app")
        assert api.requests[2][2] == b"\x7fELF"
        assert release.draft is True
        assert release.uploaded == ["app"]

    def test_updates_existing_draft_replacing_assets(self, workspace):
        (workspace / "app").write_text("new")
        api = FakeGitHub(releases=[{
            "id": 3,
            "tag_name": "v2",
            "draft": True,
            "assets": [{"id": 11, "name": "app"}],
            "upload_url": "https://uploads.example/repos/o/r/releases/3/assets{?name,label}",
        }])
        publisher = GitHubReleasePublisher("o/r", "token", api_url="https://api.example", opener=api)

        publisher.publish("v2", [workspace / "app"])

        methods = [(m, u) for m, u, _ in api.requests]
        assert ("DELETE", "https://api.example/repos/o/r/releases/assets/11") in methods
        assert not any(m == "POST" and u.endswith("/releases") for m, u in methods)

    def test_refuses_published_release(self):
        api = FakeGitHub(releases=[{"id": 3, "tag_name": "v2", "draft": False, "assets": []}])
        publisher = GitHubReleasePublisher("o/r", "token", opener=api)

        with pytest.raises(ReleaseError, match="already published"):
            publisher.publish("v2", [])

    def test_http_error_becomes_release_error(self):
        def failing(req):
            raise urllib.error.HTTPError(req.full_url, 401, "Unauthorized", {}, None)

        publisher = GitHubReleasePublisher("o/r", "bad", opener=failing)
        with pytest.raises(ReleaseError, match="401"):
            publisher.publish("v2", [])

    def test_repository_format(self):
        with pytest.raises(ReleaseError):
            GitHubReleasePublisher("just-a-name", "token")

    def test_finds_draft_on_a_later_page(self, workspace):
        (workspace / "app").write_text("bin")
        page2 = "https://api.example/repos/o/r/releases?per_page=100&page=2"
        pages = {
            "https://api.example/repos/o/r/releases?per_page=100": (
                [{"id": n, "tag_name": f"old-{n}", "draft": False, "assets": []} for n in range(100)],
                f'<{page2}>; rel="next", <{page2}>; rel="last"',
            ),
            page2: (
                [{"id": 500, "tag_name": "v2", "draft": True, "assets": [],
                  "upload_url": "https://uploads.example/repos/o/r/releases/500/assets{?name,label}"}],
                "",
            ),
        }
        requests = []

        def opener(req):
            requests.append((req.get_method(), req.full_url))
            if req.get_method() == "GET":
                body, link = pages[req.full_url]
                response = FakeResponse(json.dumps(body).encode())
                response.headers = {"Link": link}
                return response
            return FakeResponse(b"{}")

        publisher = GitHubReleasePublisher("o/r", "token", api_url="https://api.example", opener=opener)
        publisher.publish("v2", [workspace / "app"])

        assert ("GET", page2) in requests
        assert not any(m == "POST" and u.endswith("/releases") for m, u in requests)
        assert ("POST", "https://uploads.example/repos/o/r/releases/500/assets?name=app") in requests
