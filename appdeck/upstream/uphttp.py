"""
HTTP Upstream for appdeck.

Delivers calls to Apps served over HTTP (for example by appdeck.sdk):

    POST {root_url}{call.path}     body: CallRequest JSON
    GET  {root_url}/static/{path}  static assets
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import httpx

from appdeck.apps.errors import CallTimeoutError, ConfigurationError, TransportError
from appdeck.apps.manifest import DeployType
from appdeck.config.schemas import REQUEST_TIMEOUT

if TYPE_CHECKING:
    from appdeck.apps.app import App
    from appdeck.apps.call import CallRequest

logger = logging.getLogger(__name__)


class HTTPUpstream:
    """
    Upstream for HTTP-deployed Apps.

    The httpx client is created lazily unless one is injected (tests
    inject a client with an ASGI or mock transport).
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self._client = client
        self._timeout = timeout
        self._background: set[asyncio.Task] = set()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Wait for pending async calls, then close the HTTP client."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HTTPUpstream:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _root_url(self, app: App) -> str:
        settings = app.manifest.deploy_settings(DeployType.HTTP)
        if not settings.root_url:
            raise ConfigurationError(f"app {app.app_id} has no HTTP root URL")
        return settings.root_url.rstrip("/")

    async def roundtrip(
        self,
        app: App,
        creq: CallRequest,
        async_: bool = False,
        timeout: float | None = None,
    ) -> bytes:
        url = self._root_url(app) + creq.call.path
        body = creq.model_dump_json()

        if async_:
            task = asyncio.create_task(self._notify(url, body, timeout))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            return b""

        response = await self._send(
            "POST",
            url,
            content=body,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
        return response.content

    async def _notify(self, url: str, body: str, timeout: float | None) -> None:
        # Nobody waits on an async call, so failures can only be logged
        try:
            await self._send(
                "POST",
                url,
                content=body,
                headers={"Content-Type": "application/json"},
                timeout=timeout,
            )
        except (TransportError, CallTimeoutError) as e:
            logger.warning(f"[upstream:http] Async call to {url} failed: {e}")

    async def get_static(self, app: App, path: str, timeout: float | None = None) -> bytes:
        url = f"{self._root_url(app)}/static/{path.lstrip('/')}"
        response = await self._send("GET", url, timeout=timeout)
        return response.content

    async def _send(
        self,
        method: str,
        url: str,
        *,
        content: str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """
        Execute a single request and map failures.

        Raises:
            CallTimeoutError: On any httpx timeout
            TransportError: On network errors and non-2xx responses
        """
        client = await self._get_client()
        kwargs: dict[str, Any] = {}
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            response = await client.request(method, url, content=content, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise CallTimeoutError(f"{method} {url} timed out", detail=str(e)) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed", detail=str(e)) from e

        if not response.is_success:
            raise TransportError(
                f"{method} {url} failed",
                detail=response.text[:500],
                status_code=response.status_code,
            )
        return response
