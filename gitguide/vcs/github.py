"""GitHub contents API client built on httpx.

Talks to the public REST API directly so that status codes (403 quota,
404 missing, 429 throttled) map onto gitguide's error types.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from gitguide.config.models import GitHubSettings
from gitguide.errors import (
    FetchFailedError,
    InvalidUrlError,
    MalformedResponseError,
    RateLimitedError,
    RepoNotFoundError,
)
from gitguide.vcs.models import FileEntry, RepoSnapshot, TreeNode

logger = logging.getLogger(__name__)

_README_RE = re.compile(r"^readme(\.[\w.]+)?$", re.IGNORECASE)


def parse_repo_url(url: str, host: str = "github.com") -> tuple[str, str]:
    """Extract (owner, repo) from a repository URL.

    Anything after the repo segment (tree/main/..., query, fragment) is
    ignored, and a trailing ``.git`` is dropped.
    """
    pattern = re.escape(host) + r"/([^/?#\s]+)/([^/?#\s]+)"
    match = re.search(pattern, url.strip())
    if not match:
        raise InvalidUrlError(
            f"Invalid GitHub URL '{url}'. Please provide a URL like "
            f"https://{host}/OWNER/REPO."
        )
    owner, repo = match.group(1), match.group(2)
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not repo:
        raise InvalidUrlError(f"Invalid GitHub URL '{url}': missing repository name.")
    return owner, repo


def find_readme(files: list[FileEntry] | tuple[FileEntry, ...]) -> FileEntry | None:
    """Return the first README-like file in a listing, if any."""
    for entry in files:
        if entry.kind == "file" and _README_RE.match(entry.name):
            return entry
    return None


class GitHubContentFetcher:
    """Fetches listings, file bodies and bounded full trees from GitHub.

    Pass an ``httpx.AsyncClient`` to share a connection pool (or to fake the
    transport in tests); otherwise one is created and closed with the fetcher.
    """

    def __init__(
        self,
        settings: GitHubSettings | None = None,
        client: httpx.AsyncClient | None = None,
        token: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or GitHubSettings()
        self._token = token or os.environ.get(self.settings.token_env) or None
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.settings.timeout)
        self._sleep = sleep

    async def __aenter__(self) -> GitHubContentFetcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def fetch_root_listing(self, url: str) -> RepoSnapshot:
        """Load the top-level listing and default branch of a repository."""
        owner, repo = parse_repo_url(url, self.settings.web_host)
        logger.info("Fetching repository %s/%s", owner, repo)

        response = await self._get(self._contents_url(owner, repo))
        if not response.is_success:
            if response.status_code == 403:
                raise RateLimitedError(
                    "GitHub API rate limit exceeded. Please try again later."
                )
            if response.status_code == 404:
                raise RepoNotFoundError(
                    "Repository not found or is private. "
                    "Only public repositories are supported."
                )
            raise FetchFailedError(
                f"Failed to fetch repository: {response.reason_phrase}",
                status_code=response.status_code,
            )

        files = self._decode_listing(response, f"{owner}/{repo}")
        default_branch = await self._fetch_default_branch(owner, repo)

        return RepoSnapshot(
            name=repo,
            owner=owner,
            path="",
            default_branch=default_branch,
            files=tuple(files),
        )

    async def fetch_directory(self, owner: str, repo: str, path: str) -> list[FileEntry]:
        """List the direct children of one directory."""
        response = await self._get(self._contents_url(owner, repo, path))
        if not response.is_success:
            raise FetchFailedError(
                f"Failed to fetch directory contents: {response.reason_phrase}",
                status_code=response.status_code,
            )
        entries = self._decode_listing(response, f"{owner}/{repo}/{path}")

        prefix = path.strip("/") + "/" if path.strip("/") else ""
        for entry in entries:
            if not entry.path.startswith(prefix):
                raise MalformedResponseError(
                    f"Listing for '{path}' contains foreign path '{entry.path}'"
                )
        return entries

    async def fetch_file_text(self, download_url: str) -> str:
        """Download the raw text of a file."""
        try:
            response = await self._client.get(download_url)
        except httpx.HTTPError as e:
            raise FetchFailedError(f"Failed to reach GitHub: {e}") from e
        if not response.is_success:
            raise FetchFailedError(
                f"Failed to fetch file content: {response.reason_phrase}",
                status_code=response.status_code,
            )
        return response.text

    async def fetch_full_tree(
        self,
        owner: str,
        repo: str,
        path: str = "",
        max_depth: int | None = None,
        current_depth: int = 0,
    ) -> TreeNode:
        """Recursively snapshot the repository structure down to ``max_depth``.

        Subdirectories are listed ``batch_size`` at a time; a directory at the
        depth limit comes back with no children and costs no request.
        """
        if max_depth is None:
            max_depth = self.settings.max_depth
        name = path.rsplit("/", 1)[-1] if path else repo

        if current_depth >= max_depth:
            return TreeNode(name=name, kind="dir", path=path, children=[])

        if current_depth > 0:
            await self._sleep(self.settings.recursive_delay)

        logger.debug(
            "Fetching structure for %s/%s%s (depth %d)",
            owner,
            repo,
            f"/{path}" if path else "",
            current_depth,
        )
        url = self._contents_url(owner, repo, path)
        response = await self._get(url)

        if response.status_code == 429:
            logger.warning(
                "Rate limit hit listing '%s', retrying in %.1fs",
                path or "/",
                self.settings.rate_limit_retry_delay,
            )
            await self._sleep(self.settings.rate_limit_retry_delay)
            response = await self._get(url)

        if not response.is_success:
            self._raise_for_tree_status(response, owner, repo, path)

        entries = self._decode_listing(response, f"{owner}/{repo}/{path}")

        children: list[TreeNode] = []
        batch_size = self.settings.batch_size
        for start in range(0, len(entries), batch_size):
            batch = entries[start : start + batch_size]
            tasks = [
                asyncio.ensure_future(
                    self._tree_child(owner, repo, entry, max_depth, current_depth)
                )
                for entry in batch
            ]
            try:
                results = await asyncio.gather(*tasks)
            except BaseException:
                # A failed subtree is fatal; stop its siblings before re-raising.
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
            children.extend(results)

        return TreeNode(name=name, kind="dir", path=path, children=children)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _tree_child(
        self,
        owner: str,
        repo: str,
        entry: FileEntry,
        max_depth: int,
        current_depth: int,
    ) -> TreeNode:
        if entry.kind == "dir":
            subtree = await self.fetch_full_tree(
                owner, repo, entry.path, max_depth, current_depth + 1
            )
            return TreeNode(
                name=entry.name, kind="dir", path=entry.path, children=subtree.children
            )
        return TreeNode(name=entry.name, kind="file", path=entry.path, size=entry.size)

    async def _fetch_default_branch(self, owner: str, repo: str) -> str:
        """Best-effort lookup; any failure falls back to the configured default."""
        fallback = self.settings.default_branch
        try:
            response = await self._get(f"{self.settings.api_base}/repos/{owner}/{repo}")
            if not response.is_success:
                logger.warning(
                    "Repo details for %s/%s returned %d, assuming branch '%s'",
                    owner,
                    repo,
                    response.status_code,
                    fallback,
                )
                return fallback
            details = response.json()
        except (FetchFailedError, ValueError) as e:
            logger.warning("Failed to fetch repo details for default branch: %s", e)
            return fallback

        branch = details.get("default_branch") if isinstance(details, dict) else None
        return branch if isinstance(branch, str) and branch else fallback

    async def _get(self, url: str) -> httpx.Response:
        try:
            return await self._client.get(url, headers=self._headers())
        except httpx.HTTPError as e:
            raise FetchFailedError(f"Failed to reach GitHub: {e}") from e

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "gitguide",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _contents_url(self, owner: str, repo: str, path: str = "") -> str:
        url = f"{self.settings.api_base}/repos/{owner}/{repo}/contents"
        segments = [s for s in path.strip("/").split("/") if s]
        path = "/".join(quote(s, safe="") for s in segments)
        return f"{url}/{path}" if path else url

    @staticmethod
    def _decode_listing(response: httpx.Response, where: str) -> list[FileEntry]:
        try:
            data: Any = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Listing for {where} is not JSON") from e
        if not isinstance(data, list):
            raise MalformedResponseError(
                f"Invalid repository structure response from GitHub API for {where}"
            )
        try:
            return [FileEntry.from_api(item) for item in data]
        except (KeyError, TypeError, ValidationError) as e:
            raise MalformedResponseError(f"Unexpected listing entry for {where}: {e}") from e

    @staticmethod
    def _raise_for_tree_status(
        response: httpx.Response, owner: str, repo: str, path: str
    ) -> None:
        status = response.status_code
        logger.error(
            "Failed to fetch %s: %d %s", path or "/", status, response.reason_phrase
        )
        if status in (403, 429):
            raise RateLimitedError(
                "GitHub API rate limit exceeded. Please wait a few minutes and try again."
            )
        if status == 404:
            suffix = f"/{path}" if path else ""
            raise RepoNotFoundError(
                f"Repository or path not found: {owner}/{repo}{suffix}"
            )
        raise FetchFailedError(
            f"Failed to fetch repository structure: {status} {response.reason_phrase}",
            status_code=status,
        )
