"""Repository listing and content fetching."""

from gitguide.vcs.github import GitHubContentFetcher, find_readme, parse_repo_url
from gitguide.vcs.models import FileEntry, RepoSnapshot, TreeNode

__all__ = [
    "FileEntry",
    "GitHubContentFetcher",
    "RepoSnapshot",
    "TreeNode",
    "find_readme",
    "parse_repo_url",
]
