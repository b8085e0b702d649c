"""Pydantic models for repository listing data."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class FileEntry(BaseModel):
    """A single item of a contents-API directory listing.

    Directory children are not embedded; callers fetch them by ``path``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    kind: Literal["file", "dir"]
    size: int | None = None
    download_url: str | None = None
    content_hash: str | None = Field(default=None, description="Git blob sha")
    api_url: str | None = None

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> FileEntry:
        """Build from a raw GitHub contents item.

        Symlinks and submodules are listed as files.
        """
        return cls(
            name=item["name"],
            path=item["path"],
            kind="dir" if item.get("type") == "dir" else "file",
            size=item.get("size"),
            download_url=item.get("download_url"),
            content_hash=item.get("sha"),
            api_url=item.get("url"),
        )


class RepoSnapshot(BaseModel):
    """Root listing of a repository, captured once per load."""

    model_config = ConfigDict(frozen=True)

    name: str
    owner: str
    path: str = ""
    default_branch: str = "main"
    files: tuple[FileEntry, ...] = ()

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


class TreeNode(BaseModel):
    """One node of a depth-bounded full-structure snapshot."""

    name: str
    kind: Literal["file", "dir"]
    path: str = ""
    size: int | None = None
    children: list[TreeNode] = Field(default_factory=list)

    def count(self, kind: Literal["file", "dir"]) -> int:
        """Number of descendants (excluding self) of the given kind."""
        return sum(
            (1 if child.kind == kind else 0) + child.count(kind)
            for child in self.children
        )
