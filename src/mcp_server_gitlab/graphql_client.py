"""GitLab GraphQL API client."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from .client import BaseGitLabClient
from .errors import handle_gitlab_error
from .exceptions import GitLabApiError, GitLabGraphQLError
from .models.graphql import GraphQLResponse


class GitLabGraphQLClient(BaseGitLabClient):
    """Async client for the GitLab GraphQL endpoint.

    Used by the work-item note tools and semantic code search.
    """

    async def query(self, document: str, variables: dict[str, Any] | None = None) -> Any:
        """Run a query or mutation and return its ``data`` field.

        A non-empty ``errors`` array fails the call even when ``data`` is present.
        """
        payload: dict[str, Any] = {"query": document}
        if variables is not None:
            payload["variables"] = variables

        try:
            resp = await self._send("POST", self.config.graphql_url, json_data=payload)
            try:
                envelope = GraphQLResponse.model_validate(self._decode_json(resp))
            except ValidationError as e:
                msg = "Malformed GraphQL response"
                raise GitLabApiError(resp.status_code, msg, resp.text[:500]) from e
            if envelope.errors:
                raise GitLabGraphQLError(envelope.error_messages)
            return envelope.data
        except Exception as e:
            handle_gitlab_error(e)
