"""HTTP client for the Clarity PPM REST API.

Logs in once on first use and sends the returned session id as
``X-Session-ID`` on every call.  Sessions are not renewed; a rejected
session surfaces as a ``ClarityAPIError`` like any other HTTP failure.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from clarity_bridge.config import ClarityApiConfig

logger = logging.getLogger(__name__)


class ClarityAPIError(Exception):
    """Error from the Clarity REST API (``status_code`` 0 means no response)."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Clarity API error {status_code}: {detail}")


class ClarityClient:
    def __init__(
        self,
        base_url: str,
        username: str = "",
        password: str = "",
        *,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.timeout = timeout
        self.session_id: str | None = None
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: ClarityApiConfig) -> ClarityClient:
        return cls(config.base_url, config.username, config.password, timeout=config.timeout)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Content-Type": "application/json"},
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _send(
        self,
        method: str,
        path: str,
        json_data: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        client = await self._get_client()
        try:
            logger.debug("HTTP %s %s%s", method, self.base_url, path)
            response = await client.request(method, path, json=json_data, headers=headers)
        except httpx.RequestError as e:
            logger.error("Request to %s failed: %s", path, e)
            raise ClarityAPIError(0, str(e)) from e

        if response.status_code >= 400:
            try:
                body = response.json()
                detail = body.get("message") or body.get("detail") or response.text
            except (ValueError, AttributeError):
                detail = response.text
            raise ClarityAPIError(response.status_code, str(detail))
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def authenticate(self) -> str:
        data = await self._send(
            "POST",
            "/api/authentication/login",
            {"username": self.username, "password": self.password},
        )
        session_id = data.get("sessionId") if isinstance(data, dict) else None
        if not session_id:
            raise ClarityAPIError(401, "Authentication failed: no sessionId in login response")
        self.session_id = str(session_id)
        logger.info("Authenticated with Clarity API at %s", self.base_url)
        return self.session_id

    async def _request(self, method: str, path: str, json_data: Any = None) -> Any:
        session_id = self.session_id or await self.authenticate()
        return await self._send(method, path, json_data, headers={"X-Session-ID": session_id})

    # -- Projects and tasks --

    async def get_projects(self) -> Any:
        return await self._request("GET", "/api/project")

    async def get_project(self, project_id: str) -> Any:
        return await self._request("GET", f"/api/project/{project_id}")

    async def get_tasks(self, project_id: str) -> Any:
        return await self._request("GET", f"/api/project/{project_id}/tasks")

    async def create_task(self, project_id: str, task_data: dict[str, Any]) -> Any:
        return await self._request("POST", f"/api/project/{project_id}/tasks", task_data)

    async def update_task(self, task_id: str, updates: dict[str, Any]) -> Any:
        return await self._request("PUT", f"/api/task/{task_id}", updates)
