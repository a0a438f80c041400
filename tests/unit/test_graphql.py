"""Tests for the GitLab GraphQL client."""

from __future__ import annotations

import json

import httpx
import pytest

from mcp_server_gitlab.exceptions import (
    ErrorClassification,
    GitLabClientError,
    GitLabGraphQLError,
    GitLabServerError,
)

QUERY = "query { currentUser { username } }"


async def test_returns_data(graphql, mock_graphql):
    mock_graphql.mock(
        return_value=httpx.Response(200, json={"data": {"currentUser": {"username": "root"}}})
    )
    result = await graphql.query(QUERY)
    assert result == {"currentUser": {"username": "root"}}

    request = mock_graphql.calls.last.request
    assert request.headers["Authorization"] == "Bearer test-token"
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.content) == {"query": QUERY}


async def test_sends_variables(graphql, mock_graphql):
    mock_graphql.mock(return_value=httpx.Response(200, json={"data": {"workItem": None}}))
    await graphql.query(QUERY, {"fullPath": "group/project", "iid": "7"})
    body = json.loads(mock_graphql.calls.last.request.content)
    assert body["variables"] == {"fullPath": "group/project", "iid": "7"}


async def test_in_band_errors_win_over_data(graphql, mock_graphql):
    mock_graphql.mock(
        return_value=httpx.Response(
            200,
            json={
                "data": {"workItem": {"id": "gid://gitlab/WorkItem/1"}},
                "errors": [
                    {"message": "Field 'foo' doesn't exist"},
                    {"message": "Variable $iid is required", "locations": [{"line": 1}]},
                ],
            },
        )
    )
    with pytest.raises(GitLabServerError) as exc_info:
        await graphql.query(QUERY)
    err = exc_info.value
    assert err.classification is ErrorClassification.SERVER_ERROR
    assert "Field 'foo' doesn't exist; Variable $iid is required" in str(err)
    assert str(err).startswith("GitLab API error: GraphQL error:")
    assert isinstance(err.__cause__, GitLabGraphQLError)


async def test_null_error_message_is_still_graphql_error(graphql, mock_graphql):
    mock_graphql.mock(
        return_value=httpx.Response(
            200, json={"errors": [{"message": None}, {"message": "boom"}]}
        )
    )
    with pytest.raises(GitLabServerError) as exc_info:
        await graphql.query(QUERY)
    assert str(exc_info.value) == "GitLab API error: GraphQL error: None; boom"
    assert isinstance(exc_info.value.__cause__, GitLabGraphQLError)


async def test_empty_errors_array_is_success(graphql, mock_graphql):
    mock_graphql.mock(return_value=httpx.Response(200, json={"data": {"ok": True}, "errors": []}))
    assert await graphql.query(QUERY) == {"ok": True}


async def test_http_client_error(graphql, mock_graphql):
    mock_graphql.mock(return_value=httpx.Response(401, json={"message": "401 Unauthorized"}))
    with pytest.raises(GitLabClientError) as exc_info:
        await graphql.query(QUERY)
    assert exc_info.value.status_code == 401
    assert str(exc_info.value) == "GitLab API client error (401): 401 Unauthorized"


async def test_http_server_error_falls_back_to_reason(graphql, mock_graphql):
    mock_graphql.mock(return_value=httpx.Response(503, text="upstream down"))
    with pytest.raises(GitLabServerError, match=r"\(503\): Service Unavailable"):
        await graphql.query(QUERY)


async def test_malformed_envelope(graphql, mock_graphql):
    mock_graphql.mock(return_value=httpx.Response(200, json=["not", "an", "object"]))
    with pytest.raises(GitLabServerError, match="Malformed GraphQL response"):
        await graphql.query(QUERY)


async def test_network_failure(graphql, mock_graphql):
    mock_graphql.mock(side_effect=httpx.ConnectTimeout("timed out"))
    with pytest.raises(GitLabServerError, match="GitLab API error: timed out"):
        await graphql.query(QUERY)
