"""
App composition and serving harness.

An App bundles a Manifest, a FastAPI router, and up to three binding
trees (command, post menu, channel header). It is built once from a
base manifest and an ordered list of build steps:

    app = make_app(
        Manifest(app_id="hello", display_name="Hello"),
        with_command(BindableAction("Send", handle_send)),
        with_post_menu(BindableAction("Echo", handle_echo)),
    )

Construction is fail-fast: the first step that raises aborts the build
and no App is returned. Whatever the steps do, the App always serves:

    GET  /ping            liveness, returns {}
    GET  /manifest.json   the manifest document
    POST /bindings        the binding trees, through the Call protocol

An App is then served once, either by an ephemeral test server
(new_test_server) or by the production listener (run_http).
"""

from __future__ import annotations

import inspect
import logging
import os
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError as PydanticValidationError

from appdeck.apps.binding import Binding
from appdeck.apps.call import CallRequest, CallResponse
from appdeck.apps.errors import ValidationError
from appdeck.apps.manifest import (
    LOCATION_CHANNEL_HEADER,
    LOCATION_COMMAND,
    LOCATION_POST_MENU,
    DeployType,
    HTTPDeploy,
    Manifest,
    Permission,
    location_from_name,
)
from appdeck.config.env import resolve_http_settings

from .bindable import Bindable, BindableMulti, init_all
from .server import TestServer, serve_forever

logger = logging.getLogger(__name__)

CallHandler = Callable[[CallRequest], "CallResponse | Awaitable[CallResponse]"]
AppStep = Callable[["App"], None]


class App:
    """
    An App as served to the host.

    Build with make_app(); do not mutate after construction except
    through the serving methods, which finalize manifest.deploy.
    """

    def __init__(self, manifest: Manifest):
        self.manifest = manifest
        self.log = logger
        self.mode: DeployType | None = None
        self.router = FastAPI(title=manifest.display_name or manifest.app_id)

        self.command: BindableMulti | None = None
        self.post_menu: list[Bindable] = []
        self.channel_header: list[Bindable] = []

        self._call_paths: set[str] = set()
        self._serving: str | None = None

    # =========================================================================
    # Calls
    # =========================================================================

    def handle_call(self, path: str, handler: CallHandler) -> None:
        """
        Serve a call handler at POST `path`.

        The request body is decoded as a CallRequest. The handler may be
        sync or async; if it raises, the caller gets an error
        CallResponse instead of a server error.

        Raises:
            ValueError: If a handler is already registered at `path`
        """
        if path in self._call_paths:
            raise ValueError(f"call path {path!r} is already registered")
        self._call_paths.add(path)

        async def endpoint(request: Request) -> Response:
            try:
                creq = CallRequest.model_validate_json(await request.body())
            except PydanticValidationError as e:
                cresp = CallResponse.error_response(
                    ValidationError("invalid call request", detail=str(e))
                )
            else:
                cresp = await self._invoke(path, handler, creq)
            return Response(content=cresp.to_json(), media_type="application/json")

        self.router.add_api_route(path, endpoint, methods=["POST"])

    async def _invoke(self, path: str, handler: CallHandler, creq: CallRequest) -> CallResponse:
        try:
            result = handler(creq)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            self.log.error(f"[sdk] Call {path} failed: {e}", exc_info=True)
            return CallResponse.error_response(e)
        if not isinstance(result, CallResponse):
            self.log.error(f"[sdk] Call {path} returned {type(result).__name__}, not a CallResponse")
            return CallResponse.error_response(
                ValidationError(f"call handler for {path} returned {type(result).__name__}")
            )
        return result

    def get_bindings(self, creq: CallRequest) -> CallResponse:
        """Handler of the /bindings call."""
        bindings: list[Binding] = []
        if self.command is not None:
            bindings.append(Binding(location=LOCATION_COMMAND, bindings=[self.command.binding()]))
        if self.post_menu:
            bindings.append(
                Binding(
                    location=LOCATION_POST_MENU,
                    bindings=[b.binding() for b in self.post_menu],
                )
            )
        if self.channel_header:
            bindings.append(
                Binding(
                    location=LOCATION_CHANNEL_HEADER,
                    bindings=[b.binding() for b in self.channel_header],
                )
            )
        return CallResponse.data_response([b.model_dump(exclude_none=True) for b in bindings])

    # =========================================================================
    # Routes
    # =========================================================================

    def _install_fixed_routes(self) -> None:
        async def ping() -> Response:
            return Response(content=b"{}", media_type="application/json")

        async def manifest_json() -> Response:
            return Response(content=self.manifest.to_json(), media_type="application/json")

        async def not_found(request: Request, exc: Exception) -> Response:
            self.log.debug(f"[sdk] App request: not found: {request.url}")
            return JSONResponse({"detail": "Not Found"}, status_code=404)

        self.router.add_api_route("/ping", ping, methods=["GET", "POST"])
        self.router.add_api_route("/manifest.json", manifest_json, methods=["GET"])
        self.handle_call("/bindings", self.get_bindings)
        self.router.add_exception_handler(404, not_found)

    # =========================================================================
    # Serving
    # =========================================================================

    def _select_mode(self, serving: str) -> None:
        if self._serving is not None:
            raise RuntimeError(f"{self.manifest.app_id} is already serving ({self._serving})")
        self._serving = serving
        self.mode = DeployType.HTTP
        if self.manifest.deploy.http is None:
            self.log.debug("[sdk] Using default HTTP deploy settings")
            self.manifest.deploy.http = HTTPDeploy()

    def new_test_server(self) -> TestServer:
        """
        Serve the App on an OS-assigned local port for the duration of a test.

        The advertised root URL becomes the server's own address.
        Close the returned server (or use it as a context manager) when done.
        """
        self._select_mode("test")
        server = TestServer(self.router)
        server.start()
        self.manifest.deploy.http.root_url = server.url

        self.log.info(
            f"{self.manifest.app_id} started, listening on port {server.port}, "
            f"manifest at `{server.url}/manifest.json`"
        )
        return server

    def run_http(self, environ: Mapping[str, str] | None = None) -> None:
        """
        Serve the App in production until the process exits.

        Listener settings come from PORT and ROOT_URL (see
        resolve_http_settings). Failing to bind terminates the process.
        """
        if environ is None:
            environ = os.environ
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        self._select_mode("production")
        settings = resolve_http_settings(self.manifest.deploy.http.root_url, environ)
        self.manifest.deploy.http.root_url = settings.root_url

        self.log.info(
            f"{self.manifest.app_id} started, listening on port {settings.port}, "
            f"manifest at `{settings.root_url}/manifest.json`; "
            f"use environment variables PORT and ROOT_URL to customize."
        )
        serve_forever(self.router, settings.port)


# =============================================================================
# Construction
# =============================================================================


def make_app(manifest: Manifest, *steps: AppStep) -> App:
    """
    Build an App from a base manifest and build steps.

    The base manifest is copied, never mutated. An empty permission
    list defaults to exactly [act_as_bot].

    Raises:
        Exception: Whatever the first failing step raised
    """
    m = manifest.model_copy(deep=True)
    if not m.requested_permissions:
        m.requested_permissions = [Permission.ACT_AS_BOT]

    app = App(m)
    for step in steps:
        step(app)

    app._install_fixed_routes()
    return app


def with_log(log: logging.Logger) -> AppStep:
    def step(app: App) -> None:
        app.log = log

    return step


def with_static(directory: str | Path) -> AppStep:
    """Serve files from `directory` under /static/."""

    def step(app: App) -> None:
        app.router.mount("/static", StaticFiles(directory=directory), name="static")

    return step


def with_command(*subcommands: Bindable) -> AppStep:
    """Bind a top-level command named after the App, with `subcommands`."""

    def step(app: App) -> None:
        command = BindableMulti(app.manifest.app_id, subcommands)
        command.init(app)
        app.command = command
        app.manifest.add_location(LOCATION_COMMAND)

    return step


def with_post_menu(*items: Bindable) -> AppStep:
    def step(app: App) -> None:
        init_all(items, app)
        app.post_menu = list(items)
        app.manifest.add_location(LOCATION_POST_MENU)

    return step


def with_channel_header(*items: Bindable) -> AppStep:
    def step(app: App) -> None:
        init_all(items, app)
        app.channel_header = list(items)
        app.manifest.add_location(LOCATION_CHANNEL_HEADER)

    return step


def with_location(label: str) -> AppStep:
    """Request a custom location derived from a human-readable label."""

    def step(app: App) -> None:
        app.manifest.add_location(location_from_name(label))

    return step
