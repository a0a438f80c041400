"""GraphQL response envelope models."""

from __future__ import annotations

from typing import Any

from .base import GitLabModel


class GraphQLErrorItem(GitLabModel):
    message: str | None = None
    locations: Any = None
    path: Any = None


class GraphQLResponse(GitLabModel):
    data: Any = None
    errors: list[GraphQLErrorItem] | None = None

    @property
    def error_messages(self) -> list[str]:
        return [str(e.message) for e in self.errors or []]
