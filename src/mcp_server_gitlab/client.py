"""GitLab API clients using httpx."""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from .config import GitLabConfig
from .errors import handle_gitlab_error
from .exceptions import GitLabApiError

logger = logging.getLogger(__name__)


class BaseGitLabClient:
    """Transport shared by the REST and GraphQL clients.

    Owns the authenticated ``httpx.AsyncClient`` and turns non-success
    responses into :class:`GitLabApiError`.
    """

    def __init__(self, config: GitLabConfig) -> None:
        config.validate()
        self.config = config
        self._client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {config.token}",
                "Content-Type": "application/json",
            },
            timeout=config.timeout,
            verify=config.ssl_verify,
        )

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _failure_message(resp: httpx.Response) -> str:
        """Pick the error text out of a failed response, falling back to the reason phrase."""
        fallback = resp.reason_phrase or ""
        try:
            payload = resp.json()
        except ValueError:
            return fallback
        if not isinstance(payload, dict):
            return fallback
        detail = payload.get("message")
        if detail is None:
            detail = payload.get("error")
        if detail is None:
            return fallback
        return detail if isinstance(detail, str) else json.dumps(detail, ensure_ascii=False)

    @staticmethod
    def _decode_json(resp: httpx.Response) -> Any:
        content_type = resp.headers.get("content-type", "")
        if "text/html" in content_type:
            msg = "Unexpected HTML response — check URL and authentication"
            raise GitLabApiError(resp.status_code, msg, resp.text[:500])

        try:
            return resp.json()
        except json.JSONDecodeError as e:
            raise GitLabApiError(
                resp.status_code,
                f"JSON parse error: {e}",
                resp.text[:500],
            ) from e

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
    ) -> httpx.Response:
        kwargs: dict[str, Any] = {}
        if params:
            # None means "not given"; never send it as a literal value
            kwargs["params"] = {k: v for k, v in params.items() if v is not None}
        if json_data is not None:
            kwargs["json"] = json_data

        logger.debug("%s %s", method, url)
        resp = await self._client.request(method, url, **kwargs)

        if not resp.is_success:
            logger.warning("GitLab responded %s for %s %s", resp.status_code, method, url)
            raise GitLabApiError(resp.status_code, self._failure_message(resp), resp.text)
        return resp


class GitLabClient(BaseGitLabClient):
    """Async HTTP client for the GitLab REST API v4."""

    @staticmethod
    def encode_id(identifier: str | int) -> str:
        """Encode a project/group ID. Numeric IDs pass through; paths are URL-encoded."""
        if isinstance(identifier, int):
            return str(identifier)
        return quote(identifier, safe="")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
    ) -> Any:
        """Make an API request and return parsed JSON, or None for empty responses."""
        try:
            resp = await self._send(
                method, f"{self.config.api_url}{path}", params=params, json_data=json_data
            )
            if resp.status_code == 204 or not resp.content:
                return None
            return self._decode_json(resp)
        except Exception as e:
            handle_gitlab_error(e)

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self._request("GET", path, params=params)

    async def post(self, path: str, body: Any = None) -> Any:
        return await self._request("POST", path, json_data=body)

    async def put(self, path: str, body: Any = None) -> Any:
        return await self._request("PUT", path, json_data=body)

    async def delete(self, path: str) -> Any:
        return await self._request("DELETE", path)
