"""Error normalization shared by the REST and GraphQL clients."""

from __future__ import annotations

from typing import NoReturn

from .exceptions import GitLabClientError, GitLabNormalizedError, GitLabServerError


def _status_of(error: Exception) -> int | None:
    status = getattr(error, "status_code", None)
    if isinstance(status, bool) or not isinstance(status, int):
        return None
    return status


def normalize_error(error: object) -> GitLabNormalizedError:
    """Collapse any failure into a client or server error.

    Already-normalized errors come back unchanged, so normalizing twice never
    nests messages.
    """
    if isinstance(error, GitLabNormalizedError):
        return error

    if isinstance(error, Exception):
        status = _status_of(error)
        if status is not None and 400 <= status < 500:
            return GitLabClientError(
                f"GitLab API client error ({status}): {error}", status_code=status
            )
        if status is not None and status >= 500:
            return GitLabServerError(
                f"GitLab API server error ({status}): {error}", status_code=status
            )
        return GitLabServerError(f"GitLab API error: {error}", status_code=status)

    return GitLabServerError(f"Unknown error: {error}")


def handle_gitlab_error(error: object) -> NoReturn:
    """Raise the normalized form of *error*. Never returns."""
    normalized = normalize_error(error)
    if normalized is error:
        raise normalized
    if isinstance(error, BaseException):
        raise normalized from error
    raise normalized
