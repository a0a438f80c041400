"""GitLab MCP server — all tool registrations."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version
from typing import Annotated, Any, Literal

from fastmcp import Context, FastMCP
from pydantic import Field

from ..client import GitLabClient
from ..config import GitLabConfig
from ..errors import normalize_error
from ..exceptions import GitLabClientError, GitLabError, GitLabWriteDisabledError
from ..graphql_client import GitLabGraphQLClient

logger = logging.getLogger(__name__)

SERVER_NAME = "mcp-server-gitlab"

ProjectId = Annotated[
    str,
    Field(description="Project ID or path (e.g. 'my-group/my-project')", min_length=1),
]


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[dict[str, Any]]:
    config = GitLabConfig.from_env()
    config.validate()
    client = GitLabClient(config)
    graphql = GitLabGraphQLClient(config)
    logger.info("Connected to %s (read_only=%s)", config.base_url, config.read_only)
    try:
        yield {"client": client, "graphql": graphql, "config": config}
    finally:
        await client.close()
        await graphql.close()


mcp = FastMCP(
    name=SERVER_NAME,
    instructions=(
        "Provides tools for interacting with GitLab"
        " — issues, merge requests, pipelines, search, and work item notes."
    ),
    lifespan=lifespan,
)


def _get_client(ctx: Context) -> GitLabClient:
    return ctx.request_context.lifespan_context["client"]


def _get_graphql(ctx: Context) -> GitLabGraphQLClient:
    return ctx.request_context.lifespan_context["graphql"]


def _get_config(ctx: Context) -> GitLabConfig:
    return ctx.request_context.lifespan_context["config"]


def _check_write(ctx: Context) -> None:
    if _get_config(ctx).read_only:
        raise GitLabWriteDisabledError


def _compact(**values: Any) -> dict[str, Any]:
    """Drop arguments the caller left unset."""
    return {k: v for k, v in values.items() if v is not None}


def _ok(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def _err(error: Exception) -> str:
    normalized = normalize_error(error)
    detail: dict[str, Any] = {
        "error": str(normalized),
        "classification": normalized.classification.value,
    }
    status = normalized.status_code
    if status is not None:
        detail["status_code"] = status

    if isinstance(normalized, GitLabWriteDisabledError):
        detail["hint"] = "Server is in read-only mode. Set GITLAB_READ_ONLY=false to enable writes."
    elif status == 404:
        detail["hint"] = "Verify the resource ID/path and that the token can see it."
    elif status in (401, 403):
        detail["hint"] = "Check GITLAB_TOKEN permissions. Token needs 'api' scope."
    elif status == 409:
        detail["hint"] = "Conflict — resource may already exist or be locked."
    elif status == 422:
        detail["hint"] = "Validation failed — check required fields and formats."
    elif status == 429:
        detail["hint"] = "Rate limited. Wait before retrying."
    return json.dumps(detail, indent=2, ensure_ascii=False)


def _server_version() -> str:
    try:
        return version(SERVER_NAME)
    except PackageNotFoundError:
        return "1.0.0"


# ════════════════════════════════════════════════════════════════════
# Server info
# ════════════════════════════════════════════════════════════════════


@mcp.tool(
    tags={"server", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": False},
)
async def get_mcp_server_version() -> str:
    """Return the version of this GitLab MCP server."""
    return _ok({"version": _server_version(), "name": SERVER_NAME})


# ════════════════════════════════════════════════════════════════════
# Issues
# ════════════════════════════════════════════════════════════════════


@mcp.tool(
    tags={"gitlab", "issues", "write"},
    annotations={"readOnlyHint": False, "openWorldHint": True},
)
async def create_issue(
    ctx: Context,
    project_id: ProjectId,
    title: Annotated[str, Field(description="Issue title", min_length=1)],
    description: Annotated[str | None, Field(description="Issue description (Markdown)")] = None,
    labels: Annotated[str | None, Field(description="Comma-separated label names")] = None,
    assignee_ids: Annotated[list[int] | None, Field(description="Assignee user IDs")] = None,
    milestone_id: Annotated[int | None, Field(description="Milestone ID")] = None,
    due_date: Annotated[str | None, Field(description="Due date (YYYY-MM-DD)")] = None,
) -> str:
    """Create a new issue in a GitLab project."""
    try:
        _check_write(ctx)
        enc = GitLabClient.encode_id(project_id)
        body = _compact(
            title=title,
            description=description,
            labels=labels,
            assignee_ids=assignee_ids,
            milestone_id=milestone_id,
            due_date=due_date,
        )
        data = await _get_client(ctx).post(f"/projects/{enc}/issues", body)
        return _ok(data)
    except Exception as e:
        return _err(e)


@mcp.tool(
    tags={"gitlab", "issues", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def get_issue(
    ctx: Context,
    project_id: ProjectId,
    issue_iid: Annotated[int, Field(description="Issue IID (project-scoped, not the global ID)")],
) -> str:
    """Get details of a single issue."""
    try:
        enc = GitLabClient.encode_id(project_id)
        data = await _get_client(ctx).get(f"/projects/{enc}/issues/{issue_iid}")
        return _ok(data)
    except Exception as e:
        return _err(e)


# ════════════════════════════════════════════════════════════════════
# Merge Requests
# ════════════════════════════════════════════════════════════════════


@mcp.tool(
    tags={"gitlab", "merge-requests", "write"},
    annotations={"readOnlyHint": False, "openWorldHint": True},
)
async def create_merge_request(
    ctx: Context,
    project_id: ProjectId,
    title: Annotated[str, Field(description="MR title", min_length=1)],
    source_branch: Annotated[str, Field(description="Source branch", min_length=1)],
    target_branch: Annotated[str, Field(description="Target branch", min_length=1)],
    description: Annotated[str | None, Field(description="MR description (Markdown)")] = None,
    assignee_ids: Annotated[list[int] | None, Field(description="Assignee user IDs")] = None,
    labels: Annotated[str | None, Field(description="Comma-separated label names")] = None,
    milestone_id: Annotated[int | None, Field(description="Milestone ID")] = None,
    remove_source_branch: Annotated[
        bool | None, Field(description="Delete source branch after merge")
    ] = None,
    squash: Annotated[bool | None, Field(description="Squash commits on merge")] = None,
) -> str:
    """Create a new merge request."""
    try:
        _check_write(ctx)
        enc = GitLabClient.encode_id(project_id)
        body = _compact(
            title=title,
            source_branch=source_branch,
            target_branch=target_branch,
            description=description,
            assignee_ids=assignee_ids,
            labels=labels,
            milestone_id=milestone_id,
            remove_source_branch=remove_source_branch,
            squash=squash,
        )
        data = await _get_client(ctx).post(f"/projects/{enc}/merge_requests", body)
        return _ok(data)
    except Exception as e:
        return _err(e)


@mcp.tool(
    tags={"gitlab", "merge-requests", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def get_merge_request(
    ctx: Context,
    project_id: ProjectId,
    mr_iid: Annotated[int, Field(description="Merge request IID")],
) -> str:
    """Get details of a merge request."""
    try:
        enc = GitLabClient.encode_id(project_id)
        data = await _get_client(ctx).get(f"/projects/{enc}/merge_requests/{mr_iid}")
        return _ok(data)
    except Exception as e:
        return _err(e)


@mcp.tool(
    tags={"gitlab", "merge-requests", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def get_merge_request_commits(
    ctx: Context,
    project_id: ProjectId,
    mr_iid: Annotated[int, Field(description="Merge request IID")],
) -> str:
    """List the commits of a merge request."""
    try:
        enc = GitLabClient.encode_id(project_id)
        data = await _get_client(ctx).get(f"/projects/{enc}/merge_requests/{mr_iid}/commits")
        return _ok(data)
    except Exception as e:
        return _err(e)


@mcp.tool(
    tags={"gitlab", "merge-requests", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def get_merge_request_diffs(
    ctx: Context,
    project_id: ProjectId,
    mr_iid: Annotated[int, Field(description="Merge request IID")],
    unidiff: Annotated[bool | None, Field(description="Return diffs in unified format")] = None,
) -> str:
    """List the file diffs of a merge request."""
    try:
        enc = GitLabClient.encode_id(project_id)
        data = await _get_client(ctx).get(
            f"/projects/{enc}/merge_requests/{mr_iid}/diffs",
            params={"unidiff": unidiff},
        )
        return _ok(data)
    except Exception as e:
        return _err(e)


@mcp.tool(
    tags={"gitlab", "merge-requests", "pipelines", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def get_merge_request_pipelines(
    ctx: Context,
    project_id: ProjectId,
    mr_iid: Annotated[int, Field(description="Merge request IID")],
) -> str:
    """List the pipelines that ran for a merge request."""
    try:
        enc = GitLabClient.encode_id(project_id)
        data = await _get_client(ctx).get(f"/projects/{enc}/merge_requests/{mr_iid}/pipelines")
        return _ok(data)
    except Exception as e:
        return _err(e)


# ════════════════════════════════════════════════════════════════════
# Pipelines
# ════════════════════════════════════════════════════════════════════

JobScope = Literal[
    "created",
    "pending",
    "running",
    "failed",
    "success",
    "canceled",
    "skipped",
    "waiting_for_resource",
    "manual",
]

PipelineStatus = Literal["running", "pending", "finished", "branches", "tags"]


@mcp.tool(
    tags={"gitlab", "pipelines", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def get_pipeline_jobs(
    ctx: Context,
    project_id: ProjectId,
    pipeline_id: Annotated[int, Field(description="Pipeline ID")],
    scope: Annotated[JobScope | None, Field(description="Only return jobs in this state")] = None,
) -> str:
    """List the jobs of a pipeline."""
    try:
        enc = GitLabClient.encode_id(project_id)
        data = await _get_client(ctx).get(
            f"/projects/{enc}/pipelines/{pipeline_id}/jobs",
            params={"scope": scope},
        )
        return _ok(data)
    except Exception as e:
        return _err(e)


@mcp.tool(
    tags={"gitlab", "pipelines", "write"},
    annotations={"destructiveHint": True, "readOnlyHint": False, "openWorldHint": True},
)
async def manage_pipeline(
    ctx: Context,
    project_id: ProjectId,
    pipeline_id: Annotated[
        int | None, Field(description="Pipeline ID (required to act on an existing pipeline)")
    ] = None,
    list: Annotated[bool | None, Field(description="List the project's pipelines")] = None,
    ref: Annotated[
        str | None, Field(description="Branch or tag to run a new pipeline on")
    ] = None,
    retry: Annotated[bool | None, Field(description="Retry the pipeline")] = None,
    cancel: Annotated[bool | None, Field(description="Cancel the pipeline")] = None,
    name: Annotated[str | None, Field(description="Rename the pipeline")] = None,
    status: Annotated[
        PipelineStatus | None, Field(description="Filter listed pipelines by status")
    ] = None,
    page: Annotated[int | None, Field(description="Page number", ge=1)] = None,
    per_page: Annotated[int | None, Field(description="Results per page", ge=1, le=100)] = None,
) -> str:
    """List, create, retry, cancel, rename, or delete pipelines.

    Set list=true to list; give ref without pipeline_id to create; give
    pipeline_id with retry, cancel, or name to act on it; pipeline_id alone
    deletes it.
    """
    try:
        client = _get_client(ctx)
        enc = GitLabClient.encode_id(project_id)

        if list:
            data = await client.get(
                f"/projects/{enc}/pipelines",
                params={"status": status, "page": page, "per_page": per_page},
            )
            return _ok(data)

        if ref and not pipeline_id:
            _check_write(ctx)
            data = await client.post(f"/projects/{enc}/pipeline", {"ref": ref})
            return _ok(data)

        if not pipeline_id:
            msg = (
                "pipeline_id is required unless list=true, or ref is given to create a pipeline"
            )
            raise GitLabClientError(msg)

        _check_write(ctx)
        base = f"/projects/{enc}/pipelines/{pipeline_id}"
        if retry:
            data = await client.post(f"{base}/retry")
        elif cancel:
            data = await client.post(f"{base}/cancel")
        elif name is not None:
            data = await client.put(f"{base}/metadata", {"name": name})
        else:
            await client.delete(base)
            data = {"success": True, "message": f"Pipeline {pipeline_id} deleted"}
        return _ok(data)
    except Exception as e:
        return _err(e)


# ════════════════════════════════════════════════════════════════════
# Work Items (GraphQL)
# ════════════════════════════════════════════════════════════════════

NOTE_FIELDS_FRAGMENT = """
  fragment NoteFields on Note {
    id
    body
    createdAt
    updatedAt
    system
    author {
      id
      username
      name
    }
  }
"""

CREATE_NOTE_MUTATION = (
    """
  mutation createNote($input: CreateNoteInput!) {
    createNote(input: $input) {
      note {
        ...NoteFields
      }
      errors
    }
  }
"""
    + NOTE_FIELDS_FRAGMENT
)

GET_WORK_ITEM_NOTES_QUERY = (
    """
  query getWorkItemNotes(
    $fullPath: ID!
    $iid: String!
    $after: String
    $before: String
    $first: Int
    $last: Int
  ) {
    workItem(fullPath: $fullPath, iid: $iid) {
      id
      iid
      title
      notes(after: $after, before: $before, first: $first, last: $last) {
        nodes {
          ...NoteFields
        }
        pageInfo {
          hasNextPage
          hasPreviousPage
          startCursor
          endCursor
        }
      }
    }
  }
"""
    + NOTE_FIELDS_FRAGMENT
)


@mcp.tool(
    tags={"gitlab", "work-items", "write"},
    annotations={"readOnlyHint": False, "openWorldHint": True},
)
async def create_workitem_note(
    ctx: Context,
    noteable_id: Annotated[
        str,
        Field(description="Global ID of the work item (e.g. gid://gitlab/Issue/123)", min_length=1),
    ],
    body: Annotated[str, Field(description="Note body (Markdown)", min_length=1)],
    internal: Annotated[
        bool | None, Field(description="Internal note, visible to project members only")
    ] = None,
) -> str:
    """Add a note to a work item (issue, epic, task, ...)."""
    try:
        _check_write(ctx)
        note_input = _compact(noteableId=noteable_id, body=body, internal=internal)
        data = await _get_graphql(ctx).query(CREATE_NOTE_MUTATION, {"input": note_input})
        payload = (data or {}).get("createNote") or {}
        if payload.get("errors"):
            msg = f"Failed to create note: {', '.join(payload['errors'])}"
            raise GitLabError(msg)
        return _ok(payload.get("note"))
    except Exception as e:
        return _err(e)


@mcp.tool(
    tags={"gitlab", "work-items", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def get_workitem_notes(
    ctx: Context,
    full_path: Annotated[
        str, Field(description="Full path of the project or group", min_length=1)
    ],
    work_item_iid: Annotated[str, Field(description="Work item IID", min_length=1)],
    after: Annotated[str | None, Field(description="Return notes after this cursor")] = None,
    before: Annotated[str | None, Field(description="Return notes before this cursor")] = None,
    first: Annotated[int | None, Field(description="Return the first N notes", ge=1)] = None,
    last: Annotated[int | None, Field(description="Return the last N notes", ge=1)] = None,
) -> str:
    """List the notes of a work item with cursor pagination."""
    try:
        variables = _compact(
            fullPath=full_path,
            iid=work_item_iid,
            after=after,
            before=before,
            first=first,
            last=last,
        )
        data = await _get_graphql(ctx).query(GET_WORK_ITEM_NOTES_QUERY, variables)
        return _ok((data or {}).get("workItem"))
    except Exception as e:
        return _err(e)


# ════════════════════════════════════════════════════════════════════
# Search
# ════════════════════════════════════════════════════════════════════

SearchScope = Literal[
    "projects",
    "issues",
    "merge_requests",
    "milestones",
    "snippet_titles",
    "wiki_blobs",
    "commits",
    "blobs",
    "notes",
    "users",
]

SEMANTIC_CODE_SEARCH_QUERY = """
  query codeSnippetSearch(
    $projectPath: ID!
    $search: String!
    $after: String
    $first: Int
  ) {
    codeSnippetSearch(
      projectPath: $projectPath
      search: $search
      after: $after
      first: $first
    ) {
      nodes {
        filename
        projectPath
        ref
        startLine
        data
        blobPath
      }
      pageInfo {
        hasNextPage
        endCursor
      }
    }
  }
"""


@mcp.tool(
    tags={"gitlab", "search", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def search(
    ctx: Context,
    scope: Annotated[SearchScope, Field(description="What kind of object to search for")],
    search: Annotated[str, Field(description="Search term", min_length=1)],
    project_id: Annotated[
        str | None, Field(description="Search within this project (takes precedence)")
    ] = None,
    group_id: Annotated[str | None, Field(description="Search within this group")] = None,
    page: Annotated[int | None, Field(description="Page number", ge=1)] = None,
    per_page: Annotated[int | None, Field(description="Results per page", ge=1, le=100)] = None,
) -> str:
    """Search GitLab globally, within a group, or within a project."""
    try:
        if project_id:
            path = f"/projects/{GitLabClient.encode_id(project_id)}/search"
        elif group_id:
            path = f"/groups/{GitLabClient.encode_id(group_id)}/search"
        else:
            path = "/search"
        data = await _get_client(ctx).get(
            path,
            params={"scope": scope, "search": search, "page": page, "per_page": per_page},
        )
        return _ok(data)
    except Exception as e:
        return _err(e)


@mcp.tool(
    tags={"gitlab", "search", "labels", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def search_labels(
    ctx: Context,
    project_id: Annotated[str | None, Field(description="Project ID or path")] = None,
    group_id: Annotated[str | None, Field(description="Group ID or path")] = None,
    search: Annotated[str | None, Field(description="Filter labels by name")] = None,
    page: Annotated[int | None, Field(description="Page number", ge=1)] = None,
    per_page: Annotated[int | None, Field(description="Results per page", ge=1, le=100)] = None,
) -> str:
    """Search the labels of a project or group."""
    try:
        if project_id:
            path = f"/projects/{GitLabClient.encode_id(project_id)}/labels"
        elif group_id:
            path = f"/groups/{GitLabClient.encode_id(group_id)}/labels"
        else:
            msg = "Either project_id or group_id is required"
            raise GitLabClientError(msg)
        data = await _get_client(ctx).get(
            path,
            params={"search": search, "page": page, "per_page": per_page},
        )
        return _ok(data)
    except Exception as e:
        return _err(e)


@mcp.tool(
    tags={"gitlab", "search", "graphql", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def semantic_code_search(
    ctx: Context,
    project_path: Annotated[
        str, Field(description="Full project path (e.g. my-group/my-project)", min_length=1)
    ],
    search: Annotated[str, Field(description="Natural-language or code query", min_length=1)],
    after: Annotated[str | None, Field(description="Pagination cursor")] = None,
    first: Annotated[int | None, Field(description="Number of results", ge=1)] = None,
) -> str:
    """Semantic code search in a project (requires GitLab Duo)."""
    try:
        variables = _compact(projectPath=project_path, search=search, after=after, first=first)
        data = await _get_graphql(ctx).query(SEMANTIC_CODE_SEARCH_QUERY, variables)
        return _ok((data or {}).get("codeSnippetSearch"))
    except Exception as e:
        return _err(e)
