"""GitLab API exceptions."""

from __future__ import annotations

from enum import Enum


class ErrorClassification(str, Enum):
    """Severity class of a normalized failure."""

    CLIENT_ERROR = "client-error"
    SERVER_ERROR = "server-error"


class GitLabError(Exception):
    """Base exception for GitLab operations."""


class GitLabApiError(GitLabError):
    """Raised when the GitLab API returns a non-success or unreadable response."""

    def __init__(self, status_code: int, message: str, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class GitLabGraphQLError(GitLabError):
    """Raised when a GraphQL response carries a non-empty ``errors`` array."""

    def __init__(self, messages: list[str]) -> None:
        self.messages = messages
        super().__init__(f"GraphQL error: {'; '.join(messages)}")


class GitLabNormalizedError(GitLabError):
    """A failure that has passed through the error normalizer.

    Every error leaving the REST or GraphQL client is one of these.
    """

    classification: ErrorClassification = ErrorClassification.SERVER_ERROR

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class GitLabClientError(GitLabNormalizedError):
    """Caller-correctable failure: bad input, missing resource, auth."""

    classification = ErrorClassification.CLIENT_ERROR


class GitLabServerError(GitLabNormalizedError):
    """GitLab-side, network, or malformed-response failure."""

    classification = ErrorClassification.SERVER_ERROR


class GitLabWriteDisabledError(GitLabClientError):
    """Raised when a write operation is attempted in read-only mode."""

    def __init__(self) -> None:
        super().__init__("Write operations are disabled (GITLAB_READ_ONLY=true)")
