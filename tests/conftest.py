"""Shared test fixtures for mcp-server-gitlab."""

from __future__ import annotations

import pytest
import respx

from mcp_server_gitlab.client import GitLabClient
from mcp_server_gitlab.config import GitLabConfig
from mcp_server_gitlab.graphql_client import GitLabGraphQLClient

TEST_URL = "https://gitlab.example.com"
TEST_TOKEN = "test-token"


@pytest.fixture
def config() -> GitLabConfig:
    return GitLabConfig(url=TEST_URL, token=TEST_TOKEN)


@pytest.fixture
async def client(config: GitLabConfig):
    c = GitLabClient(config)
    yield c
    await c.close()


@pytest.fixture
async def graphql(config: GitLabConfig):
    c = GitLabGraphQLClient(config)
    yield c
    await c.close()


@pytest.fixture
def mock_api() -> respx.MockRouter:
    with respx.mock(base_url=f"{TEST_URL}/api/v4") as router:
        yield router


@pytest.fixture
def mock_graphql() -> respx.Route:
    with respx.mock() as router:
        yield router.post(f"{TEST_URL}/api/graphql")
