"""Shared test fixtures for gitguide."""

from collections.abc import Callable

import httpx
import pytest

from gitguide.config.models import GitGuideConfig, GitHubSettings, LLMSettings
from gitguide.llm.rate_limiter import RateLimiter
from gitguide.vcs.models import FileEntry, TreeNode

API = "https://api.github.com"


class FakeClock:
    """Monotonic clock whose sleep just advances time and records the delay."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def listing_item(path: str, type_: str = "file", size: int = 10) -> dict:
    name = path.rsplit("/", 1)[-1]
    return {
        "name": name,
        "path": path,
        "type": type_,
        "size": 0 if type_ == "dir" else size,
        "download_url": None if type_ == "dir" else f"https://raw.example/{path}",
        "sha": f"sha-{path}",
        "url": f"{API}/repos/octo/demo/contents/{path}",
    }


def gemini_text_response(text: str, finish_reason: str = "STOP") -> dict:
    return {
        "candidates": [
            {"content": {"parts": [{"text": text}]}, "finishReason": finish_reason}
        ]
    }


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_client() -> Callable[[Callable], httpx.AsyncClient]:
    """Build an AsyncClient whose requests are answered by ``handler``."""

    def _make(handler: Callable) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture
def github_settings():
    return GitHubSettings()


@pytest.fixture
def llm_settings():
    return LLMSettings()


@pytest.fixture
def rate_limiter(fake_clock):
    return RateLimiter(min_interval=1.0, clock=fake_clock, sleep=fake_clock.sleep)


@pytest.fixture
def sample_config():
    return GitGuideConfig()


@pytest.fixture
def sample_entries():
    return [
        FileEntry(name="a.ts", path="a.ts", kind="file", size=120),
        FileEntry(name="lib", path="lib", kind="dir"),
        FileEntry(name="README.md", path="README.md", kind="file", size=300),
    ]


@pytest.fixture
def sample_tree():
    return TreeNode(
        name="demo",
        kind="dir",
        path="",
        children=[
            TreeNode(
                name="src",
                kind="dir",
                path="src",
                children=[
                    TreeNode(name="app.py", kind="file", path="src/app.py", size=500),
                    TreeNode(name="api", kind="dir", path="src/api", children=[]),
                ],
            ),
            TreeNode(name="node_modules", kind="dir", path="node_modules"),
            TreeNode(name="README.md", kind="file", path="README.md", size=300),
        ],
    )


@pytest.fixture
def make_listing_item():
    return listing_item


@pytest.fixture
def make_gemini_response():
    return gemini_text_response
