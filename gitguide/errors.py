"""Exception types raised by gitguide.

Content fetching and diagram generation raise these to the caller.
Explanation requests never do: they come back as a normal Explanation
carrying the failure message (see gitguide.llm.gemini).
"""

from __future__ import annotations


class GitGuideError(Exception):
    """Base class for all gitguide errors."""


class InvalidUrlError(GitGuideError, ValueError):
    """The repository URL does not look like host/<owner>/<repo>."""


class RepoNotFoundError(GitGuideError):
    """The repository (or a path inside it) does not exist or is private."""


class RateLimitedError(GitGuideError):
    """An upstream API refused the request because of quota."""


class FetchFailedError(GitGuideError):
    """Any other non-success response from the contents API."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(GitGuideError):
    """The API answered 2xx but the payload has the wrong shape."""


class InvalidDiagramDataError(GitGuideError):
    """The architecture JSON returned by the model cannot be compiled."""


class DiagramGenerationError(GitGuideError):
    """Every attempt to generate an architecture diagram failed."""
