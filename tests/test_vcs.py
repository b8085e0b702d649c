"""Tests for gitguide.vcs: URL parsing, listings, file text and full trees."""

import asyncio

import httpx
import pytest

from gitguide.errors import (
    FetchFailedError,
    GitGuideError,
    InvalidUrlError,
    MalformedResponseError,
    RateLimitedError,
    RepoNotFoundError,
)
from gitguide.vcs.github import GitHubContentFetcher, find_readme, parse_repo_url
from gitguide.vcs.models import FileEntry, TreeNode

API = "https://api.github.com"
CONTENTS = f"{API}/repos/octo/demo/contents"


def _router(routes, calls=None):
    """Answer requests from ``routes`` (url -> response or list of responses)."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if calls is not None:
            calls.append(request)
        answer = routes.get(url)
        if answer is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if isinstance(answer, list):
            answer = answer.pop(0) if len(answer) > 1 else answer[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    return handler


@pytest.fixture(autouse=True)
def _no_token(monkeypatch):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)


@pytest.fixture
def fetcher_for(make_client, github_settings, fake_clock):
    def _make(routes, calls=None, token=None):
        client = make_client(_router(routes, calls))
        return GitHubContentFetcher(
            github_settings, client=client, token=token, sleep=fake_clock.sleep
        )

    return _make


# ── parse_repo_url ──────────────────────────────────────────────────


class TestParseRepoUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "https://github.com/octo/demo",
            "https://github.com/octo/demo/",
            "https://github.com/octo/demo.git",
            "github.com/octo/demo/tree/main/src",
            "https://github.com/octo/demo?tab=readme#top",
            "  https://github.com/octo/demo  ",
        ],
    )
    def test_valid_urls(self, url):
        assert parse_repo_url(url) == ("octo", "demo")

    @pytest.mark.parametrize(
        "url", ["not a url", "https://gitlab.com/octo/demo", "https://github.com/octo"]
    )
    def test_invalid_urls(self, url):
        with pytest.raises(InvalidUrlError):
            parse_repo_url(url)

    def test_invalid_url_is_value_error(self):
        with pytest.raises(ValueError):
            parse_repo_url("nope")

    def test_custom_host(self):
        assert parse_repo_url("https://ghe.corp/team/tool", host="ghe.corp") == ("team", "tool")


# ── find_readme ─────────────────────────────────────────────────────


class TestFindReadme:
    def test_finds_case_insensitive_readme(self, sample_entries):
        assert find_readme(sample_entries).name == "README.md"
        lower = [FileEntry(name="readme.rst", path="readme.rst", kind="file")]
        assert find_readme(lower).name == "readme.rst"

    def test_ignores_directories_and_lookalikes(self):
        entries = [
            FileEntry(name="README", path="README", kind="dir"),
            FileEntry(name="README_old.txt", path="README_old.txt", kind="file"),
        ]
        assert find_readme(entries) is None


# ── fetch_root_listing ──────────────────────────────────────────────


class TestFetchRootListing:
    async def test_loads_snapshot(self, fetcher_for, make_listing_item):
        routes = {
            CONTENTS: httpx.Response(
                200,
                json=[
                    make_listing_item("README.md"),
                    make_listing_item("src", "dir"),
                    make_listing_item("setup.py", size=42),
                ],
            ),
            f"{API}/repos/octo/demo": httpx.Response(200, json={"default_branch": "develop"}),
        }
        async with fetcher_for(routes) as fetcher:
            snapshot = await fetcher.fetch_root_listing("https://github.com/octo/demo")

        assert snapshot.full_name == "octo/demo"
        assert snapshot.path == ""
        assert snapshot.default_branch == "develop"
        assert [f.name for f in snapshot.files] == ["README.md", "src", "setup.py"]
        src = snapshot.files[1]
        assert src.kind == "dir"
        assert src.download_url is None
        setup = snapshot.files[2]
        assert setup.size == 42
        assert setup.content_hash == "sha-setup.py"
        assert setup.api_url == f"{CONTENTS}/setup.py"

    async def test_minimal_listing_items(self, fetcher_for):
        routes = {
            CONTENTS: httpx.Response(
                200,
                json=[
                    {"name": "a.ts", "path": "a.ts", "type": "file"},
                    {"name": "lib", "path": "lib", "type": "dir"},
                ],
            )
        }
        async with fetcher_for(routes) as fetcher:
            snapshot = await fetcher.fetch_root_listing("https://github.com/octo/demo")
        assert (snapshot.owner, snapshot.name) == ("octo", "demo")
        assert [(f.name, f.kind) for f in snapshot.files] == [("a.ts", "file"), ("lib", "dir")]
        assert snapshot.files[0].size is None

    async def test_git_suffix_is_stripped(self, fetcher_for):
        calls = []
        routes = {CONTENTS: httpx.Response(200, json=[])}
        async with fetcher_for(routes, calls) as fetcher:
            snapshot = await fetcher.fetch_root_listing("https://github.com/octo/demo.git")
        assert snapshot.name == "demo"
        assert str(calls[0].url) == CONTENTS

    async def test_default_branch_falls_back(self, fetcher_for):
        routes = {
            CONTENTS: httpx.Response(200, json=[]),
            f"{API}/repos/octo/demo": httpx.Response(500),
        }
        async with fetcher_for(routes) as fetcher:
            snapshot = await fetcher.fetch_root_listing("https://github.com/octo/demo")
        assert snapshot.default_branch == "main"

    async def test_default_branch_bad_json_falls_back(self, fetcher_for):
        routes = {
            CONTENTS: httpx.Response(200, json=[]),
            f"{API}/repos/octo/demo": httpx.Response(200, content=b"<html>"),
        }
        async with fetcher_for(routes) as fetcher:
            snapshot = await fetcher.fetch_root_listing("https://github.com/octo/demo")
        assert snapshot.default_branch == "main"

    async def test_403_is_rate_limited(self, fetcher_for):
        async with fetcher_for({CONTENTS: httpx.Response(403)}) as fetcher:
            with pytest.raises(RateLimitedError, match="rate limit exceeded"):
                await fetcher.fetch_root_listing("https://github.com/octo/demo")

    async def test_404_is_not_found(self, fetcher_for):
        async with fetcher_for({}) as fetcher:
            with pytest.raises(RepoNotFoundError, match="private"):
                await fetcher.fetch_root_listing("https://github.com/octo/demo")

    async def test_other_status_is_fetch_failed(self, fetcher_for):
        async with fetcher_for({CONTENTS: httpx.Response(502)}) as fetcher:
            with pytest.raises(FetchFailedError, match="Failed to fetch repository: Bad Gateway") as exc:
                await fetcher.fetch_root_listing("https://github.com/octo/demo")
        assert exc.value.status_code == 502

    async def test_connection_error_is_fetch_failed(self, fetcher_for):
        routes = {CONTENTS: httpx.ConnectError("dns failure")}
        async with fetcher_for(routes) as fetcher:
            with pytest.raises(FetchFailedError, match="Failed to reach GitHub: dns failure") as exc:
                await fetcher.fetch_root_listing("https://github.com/octo/demo")
        assert isinstance(exc.value, GitGuideError)
        assert isinstance(exc.value.__cause__, httpx.ConnectError)

    async def test_default_branch_transport_error_falls_back(self, fetcher_for):
        routes = {
            CONTENTS: httpx.Response(200, json=[]),
            f"{API}/repos/octo/demo": httpx.ReadTimeout("timed out"),
        }
        async with fetcher_for(routes) as fetcher:
            snapshot = await fetcher.fetch_root_listing("https://github.com/octo/demo")
        assert snapshot.default_branch == "main"

    async def test_invalid_url_makes_no_request(self, fetcher_for):
        calls = []
        async with fetcher_for({}, calls) as fetcher:
            with pytest.raises(InvalidUrlError):
                await fetcher.fetch_root_listing("https://example.com/nothing")
        assert calls == []

    async def test_non_list_listing_is_malformed(self, fetcher_for):
        routes = {CONTENTS: httpx.Response(200, json={"type": "file", "name": "x"})}
        async with fetcher_for(routes) as fetcher:
            with pytest.raises(MalformedResponseError):
                await fetcher.fetch_root_listing("https://github.com/octo/demo")

    async def test_headers_and_token(self, fetcher_for):
        calls = []
        routes = {CONTENTS: httpx.Response(200, json=[])}
        async with fetcher_for(routes, calls, token="ghp_secret") as fetcher:
            await fetcher.fetch_root_listing("https://github.com/octo/demo")
        headers = calls[0].headers
        assert headers["Accept"] == "application/vnd.github+json"
        assert headers["Authorization"] == "Bearer ghp_secret"

    async def test_anonymous_by_default(self, fetcher_for):
        calls = []
        routes = {CONTENTS: httpx.Response(200, json=[])}
        async with fetcher_for(routes, calls) as fetcher:
            await fetcher.fetch_root_listing("https://github.com/octo/demo")
        assert "Authorization" not in calls[0].headers

    async def test_token_from_environment(self, fetcher_for, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")
        calls = []
        routes = {CONTENTS: httpx.Response(200, json=[])}
        async with fetcher_for(routes, calls) as fetcher:
            await fetcher.fetch_root_listing("https://github.com/octo/demo")
        assert calls[0].headers["Authorization"] == "Bearer from-env"


# ── fetch_directory / fetch_file_text ───────────────────────────────


class TestFetchDirectory:
    async def test_lists_children(self, fetcher_for, make_listing_item):
        routes = {
            f"{CONTENTS}/src": httpx.Response(
                200, json=[make_listing_item("src/app.py"), make_listing_item("src/api", "dir")]
            )
        }
        async with fetcher_for(routes) as fetcher:
            entries = await fetcher.fetch_directory("octo", "demo", "src")
        assert [(e.name, e.kind) for e in entries] == [("app.py", "file"), ("api", "dir")]

    async def test_failure_raises(self, fetcher_for):
        async with fetcher_for({}) as fetcher:
            with pytest.raises(FetchFailedError, match="Failed to fetch directory contents"):
                await fetcher.fetch_directory("octo", "demo", "missing")

    async def test_foreign_paths_rejected(self, fetcher_for, make_listing_item):
        routes = {f"{CONTENTS}/src": httpx.Response(200, json=[make_listing_item("other/x.py")])}
        async with fetcher_for(routes) as fetcher:
            with pytest.raises(MalformedResponseError, match="foreign path"):
                await fetcher.fetch_directory("octo", "demo", "src")

    async def test_connection_error_is_fetch_failed(self, fetcher_for):
        routes = {f"{CONTENTS}/src": httpx.ConnectError("connection refused")}
        async with fetcher_for(routes) as fetcher:
            with pytest.raises(FetchFailedError, match="Failed to reach GitHub"):
                await fetcher.fetch_directory("octo", "demo", "src")

    async def test_path_segments_are_percent_encoded(self, fetcher_for, make_listing_item):
        calls = []
        routes = {
            f"{CONTENTS}/C%23/my%20docs": httpx.Response(
                200, json=[make_listing_item("C#/my docs/notes.md")]
            )
        }
        async with fetcher_for(routes, calls) as fetcher:
            entries = await fetcher.fetch_directory("octo", "demo", "C#/my docs")
        assert calls[0].url.raw_path == b"/repos/octo/demo/contents/C%23/my%20docs"
        assert entries[0].path == "C#/my docs/notes.md"


class TestFetchFileText:
    async def test_returns_body_without_auth(self, fetcher_for):
        calls = []
        routes = {"https://raw.example/README.md": httpx.Response(200, text="# Demo\n")}
        async with fetcher_for(routes, calls, token="ghp_secret") as fetcher:
            text = await fetcher.fetch_file_text("https://raw.example/README.md")
        assert text == "# Demo\n"
        assert "Authorization" not in calls[0].headers

    async def test_failure_raises(self, fetcher_for):
        async with fetcher_for({}) as fetcher:
            with pytest.raises(FetchFailedError, match="Failed to fetch file content: Not Found"):
                await fetcher.fetch_file_text("https://raw.example/gone.txt")

    async def test_timeout_is_fetch_failed(self, fetcher_for):
        routes = {"https://raw.example/slow.txt": httpx.ReadTimeout("read timed out")}
        async with fetcher_for(routes) as fetcher:
            with pytest.raises(FetchFailedError, match="Failed to reach GitHub: read timed out"):
                await fetcher.fetch_file_text("https://raw.example/slow.txt")


# ── fetch_full_tree ─────────────────────────────────────────────────


class TestFetchFullTree:
    async def test_builds_nested_tree(self, fetcher_for, make_listing_item, fake_clock):
        routes = {
            CONTENTS: httpx.Response(
                200,
                json=[make_listing_item("src", "dir"), make_listing_item("README.md")],
            ),
            f"{CONTENTS}/src": httpx.Response(
                200,
                json=[make_listing_item("src/app.py", size=500), make_listing_item("src/api", "dir")],
            ),
            f"{CONTENTS}/src/api": httpx.Response(200, json=[make_listing_item("src/api/routes.py")]),
        }
        async with fetcher_for(routes) as fetcher:
            tree = await fetcher.fetch_full_tree("octo", "demo")

        assert tree.name == "demo"
        assert [c.name for c in tree.children] == ["src", "README.md"]
        src = tree.children[0]
        assert src.kind == "dir"
        assert src.path == "src"
        assert [c.name for c in src.children] == ["app.py", "api"]
        assert src.children[0].size == 500
        assert src.children[1].children[0].path == "src/api/routes.py"
        assert tree.count("file") == 3
        assert tree.count("dir") == 2
        # One delay per non-root listing.
        assert fake_clock.sleeps == [0.15, 0.15]

    async def test_depth_limit_skips_requests(self, fetcher_for, make_listing_item):
        calls = []
        routes = {
            CONTENTS: httpx.Response(
                200, json=[make_listing_item("src", "dir"), make_listing_item("docs", "dir")]
            )
        }
        async with fetcher_for(routes, calls) as fetcher:
            tree = await fetcher.fetch_full_tree("octo", "demo", max_depth=1)

        assert len(calls) == 1
        assert [c.name for c in tree.children] == ["src", "docs"]
        assert all(c.kind == "dir" and c.children == [] for c in tree.children)

    async def test_zero_depth_returns_leaf(self, fetcher_for):
        calls = []
        async with fetcher_for({}, calls) as fetcher:
            tree = await fetcher.fetch_full_tree("octo", "demo", max_depth=0)
        assert tree == TreeNode(name="demo", kind="dir", path="", children=[])
        assert calls == []

    async def test_batches_limit_concurrency(self, make_client, github_settings, fake_clock, make_listing_item):
        dirs = [f"d{i}" for i in range(7)]
        in_flight = 0
        peak = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal in_flight, peak
            path = request.url.path
            if path.endswith("/contents"):
                return httpx.Response(200, json=[make_listing_item(d, "dir") for d in dirs])
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            name = path.rsplit("/", 1)[-1]
            return httpx.Response(200, json=[make_listing_item(f"{name}/f.py")])

        fetcher = GitHubContentFetcher(
            github_settings, client=make_client(handler), sleep=fake_clock.sleep
        )
        async with fetcher:
            tree = await fetcher.fetch_full_tree("octo", "demo", max_depth=2)

        assert peak == 3
        assert [c.name for c in tree.children] == dirs
        assert all(len(c.children) == 1 for c in tree.children)

    async def test_429_retried_once(self, fetcher_for, make_listing_item, fake_clock):
        calls = []
        routes = {
            CONTENTS: [
                httpx.Response(429),
                httpx.Response(200, json=[make_listing_item("a.py")]),
            ]
        }
        async with fetcher_for(routes, calls) as fetcher:
            tree = await fetcher.fetch_full_tree("octo", "demo")
        assert len(calls) == 2
        assert fake_clock.sleeps == [3.0]
        assert tree.children[0].name == "a.py"

    async def test_persistent_429_is_rate_limited(self, fetcher_for):
        calls = []
        async with fetcher_for({CONTENTS: httpx.Response(429)}, calls) as fetcher:
            with pytest.raises(RateLimitedError):
                await fetcher.fetch_full_tree("octo", "demo")
        assert len(calls) == 2

    async def test_403_is_rate_limited(self, fetcher_for):
        async with fetcher_for({CONTENTS: httpx.Response(403)}) as fetcher:
            with pytest.raises(RateLimitedError, match="wait a few minutes"):
                await fetcher.fetch_full_tree("octo", "demo")

    async def test_missing_subdirectory(self, fetcher_for, make_listing_item):
        routes = {CONTENTS: httpx.Response(200, json=[make_listing_item("src", "dir")])}
        async with fetcher_for(routes) as fetcher:
            with pytest.raises(RepoNotFoundError, match="Repository or path not found: octo/demo/src"):
                await fetcher.fetch_full_tree("octo", "demo")

    async def test_other_status_is_fetch_failed(self, fetcher_for):
        async with fetcher_for({CONTENTS: httpx.Response(500)}) as fetcher:
            with pytest.raises(FetchFailedError) as exc:
                await fetcher.fetch_full_tree("octo", "demo")
        assert exc.value.status_code == 500

    async def test_non_array_listing_is_malformed(self, fetcher_for):
        routes = {CONTENTS: httpx.Response(200, json={"message": "weird"})}
        async with fetcher_for(routes) as fetcher:
            with pytest.raises(MalformedResponseError, match="Invalid repository structure"):
                await fetcher.fetch_full_tree("octo", "demo")

    async def test_connection_error_is_fetch_failed(self, fetcher_for):
        async with fetcher_for({CONTENTS: httpx.ConnectError("dns failure")}) as fetcher:
            with pytest.raises(FetchFailedError, match="Failed to reach GitHub"):
                await fetcher.fetch_full_tree("octo", "demo")

    async def test_failed_subtree_cancels_siblings(
        self, make_client, github_settings, fake_clock, make_listing_item
    ):
        requested: list[tuple[str, bool]] = []
        failed = False

        async def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            requested.append((path, failed))
            if path.endswith("/contents"):
                return httpx.Response(
                    200, json=[make_listing_item("a", "dir"), make_listing_item("b", "dir")]
                )
            if path.endswith("/contents/a"):
                return httpx.Response(404)
            if path.endswith("/contents/b"):
                await asyncio.sleep(0.05)
                return httpx.Response(200, json=[make_listing_item("b/c", "dir")])
            return httpx.Response(200, json=[])

        fetcher = GitHubContentFetcher(
            github_settings, client=make_client(handler), sleep=fake_clock.sleep
        )
        async with fetcher:
            with pytest.raises(RepoNotFoundError, match="octo/demo/a"):
                await fetcher.fetch_full_tree("octo", "demo")
            failed = True
            await asyncio.sleep(0.1)

        assert all(not after for _, after in requested)
        assert "/repos/octo/demo/contents/b/c" not in [path for path, _ in requested]

    async def test_encoded_directory_names(self, fetcher_for, make_listing_item):
        calls = []
        routes = {
            CONTENTS: httpx.Response(200, json=[make_listing_item("C#", "dir")]),
            f"{CONTENTS}/C%23": httpx.Response(200, json=[make_listing_item("C#/Program.cs")]),
        }
        async with fetcher_for(routes, calls) as fetcher:
            tree = await fetcher.fetch_full_tree("octo", "demo")
        assert tree.children[0].children[0].name == "Program.cs"
        assert calls[1].url.raw_path == b"/repos/octo/demo/contents/C%23"


# ── client ownership ────────────────────────────────────────────────


class TestClientOwnership:
    async def test_shared_client_left_open(self, make_client, github_settings):
        client = make_client(_router({}))
        async with GitHubContentFetcher(github_settings, client=client):
            pass
        assert client.is_closed is False
        await client.aclose()

    async def test_owned_client_closed(self, github_settings):
        fetcher = GitHubContentFetcher(github_settings)
        await fetcher.aclose()
        assert fetcher._client.is_closed is True
