"""
Dispatch of calls to the Upstream matching an App's deploy type.

The transport is chosen purely from App.deploy_type, with no runtime
probing. The match is exhaustive: a DeployType without a branch here
is a type-checking error, not a silent no-op.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, assert_never

from appdeck.apps.errors import ConfigurationError
from appdeck.apps.manifest import DeployType

if TYPE_CHECKING:
    from appdeck.apps.app import App
    from appdeck.apps.call import CallRequest

    from .protocol import Upstream

logger = logging.getLogger(__name__)


class UpstreamRouter:
    """
    Holds one Upstream per deploy type and dispatches to it.

    Example:
        router = UpstreamRouter(http=HTTPUpstream(), aws_lambda=aws_upstream)
        data = await router.roundtrip(app, creq)
        cresp = decode_call_response(data)
    """

    def __init__(
        self,
        *,
        http: Upstream | None = None,
        aws_lambda: Upstream | None = None,
    ) -> None:
        self._http = http
        self._aws_lambda = aws_lambda

    def upstream_for(self, app: App) -> Upstream:
        """
        The Upstream for the App's deploy type.

        Raises:
            ValidationError: If the manifest does not declare the deploy type
            ConfigurationError: If no Upstream is configured for it
        """
        deploy_type = app.deploy_type
        app.manifest.deploy_settings(deploy_type)

        match deploy_type:
            case DeployType.HTTP:
                upstream = self._http
            case DeployType.AWS_LAMBDA:
                upstream = self._aws_lambda
            case _:
                assert_never(deploy_type)

        if upstream is None:
            raise ConfigurationError(f"no upstream is configured for deploy type {deploy_type.value}")
        return upstream

    async def roundtrip(
        self,
        app: App,
        creq: CallRequest,
        async_: bool = False,
        timeout: float | None = None,
    ) -> bytes:
        upstream = self.upstream_for(app)
        logger.debug(f"[upstream] {app.app_id} {creq.call.path} via {app.deploy_type.value}")
        return await upstream.roundtrip(app, creq, async_=async_, timeout=timeout)

    async def get_static(self, app: App, path: str, timeout: float | None = None) -> bytes:
        return await self.upstream_for(app).get_static(app, path, timeout=timeout)
