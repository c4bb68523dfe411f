"""
Client for registering deployed Apps with the host platform.

Used by `appsctl aws deploy --install`:

    POST {url}/api/v1/update-app-listing   {"manifest": ..., "add_deploys": [...]}
    POST {url}/api/v1/install-app          {"app_id": ..., "deploy_type": ...}

Retry Strategy:
    - Retryable: timeouts, network errors, 5xx
    - Non-retryable: 4xx
    - Backoff: exponential with jitter
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any

import httpx

from appdeck.apps.errors import CallTimeoutError, TransportError
from appdeck.apps.manifest import DeployType, Manifest
from appdeck.config.schemas import REQUEST_TIMEOUT, HostSettings

logger = logging.getLogger(__name__)

LISTING_PATH = "/api/v1/update-app-listing"
INSTALL_PATH = "/api/v1/install-app"


class HostClient:
    """
    Minimal host API client.

    Example:
        async with HostClient(load_host_settings(os.environ)) as host:
            await host.update_listing(manifest, DeployType.AWS_LAMBDA)
            await host.install(manifest.app_id, DeployType.AWS_LAMBDA)
    """

    def __init__(
        self,
        settings: HostSettings,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = REQUEST_TIMEOUT,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self.settings = settings
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._timeout = timeout
        self._client = client

    def _get_auth_headers(self) -> dict[str, str]:
        token = self.settings.token.get_secret_value()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.settings.url,
                timeout=self._timeout,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                    **self._get_auth_headers(),
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HostClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # =========================================================================
    # API
    # =========================================================================

    async def update_listing(self, manifest: Manifest, deploy_type: DeployType) -> None:
        """List (or re-list) the App on the host with the given deploy type."""
        await self._post(
            LISTING_PATH,
            {
                "manifest": manifest.model_dump(mode="json", exclude_none=True),
                "add_deploys": [deploy_type.value],
            },
        )
        logger.info(f"[host] Listed {manifest.app_id} ({deploy_type.value})")

    async def install(self, app_id: str, deploy_type: DeployType) -> None:
        await self._post(INSTALL_PATH, {"app_id": app_id, "deploy_type": deploy_type.value})
        logger.info(f"[host] Installed {app_id}")

    # =========================================================================
    # Transport
    # =========================================================================

    async def _post(self, path: str, body: dict[str, Any]) -> httpx.Response:
        for attempt in range(self.max_retries + 1):
            try:
                return await self._do_post(path, body)
            except (TransportError, CallTimeoutError) as e:
                if not _is_retryable(e) or attempt >= self.max_retries:
                    raise
                backoff = self._calculate_backoff(attempt)
                logger.info(
                    f"[host] Retry {attempt + 1}/{self.max_retries} "
                    f"for POST {path} after {backoff:.2f}s"
                )
                await asyncio.sleep(backoff)
        raise TransportError(f"POST {path} failed")

    def _calculate_backoff(self, attempt: int) -> float:
        base_delay = self.retry_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return min(base_delay + jitter, 30.0)

    async def _do_post(self, path: str, body: dict[str, Any]) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.post(path, json=body)
        except httpx.TimeoutException as e:
            raise CallTimeoutError(f"POST {path} timed out", detail=str(e)) from e
        except httpx.HTTPError as e:
            raise TransportError(f"POST {path} failed", detail=str(e)) from e

        if not response.is_success:
            raise TransportError(
                f"POST {path} failed",
                detail=response.text[:500],
                status_code=response.status_code,
            )
        return response


def _is_retryable(err: Exception) -> bool:
    if isinstance(err, CallTimeoutError):
        return True
    status = getattr(err, "status_code", None)
    return status is None or status >= 500
