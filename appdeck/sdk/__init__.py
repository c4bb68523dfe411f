"""
appdeck App SDK.

Compose an App from a manifest, binding trees and call handlers, then
serve it with an ephemeral test server or the production listener.

Usage:
    from appdeck.apps import CallResponse, Manifest
    from appdeck.sdk import BindableAction, make_app, with_command

    def send(creq):
        return CallResponse.text_response("sent")

    app = make_app(
        Manifest(app_id="hello", display_name="Hello"),
        with_command(BindableAction("send", send)),
    )
    app.run_http()
"""

from .app import (
    App,
    AppStep,
    CallHandler,
    make_app,
    with_channel_header,
    with_command,
    with_location,
    with_log,
    with_post_menu,
    with_static,
)
from .bindable import Bindable, BindableAction, BindableMulti
from .server import TestServer

__all__ = [
    "App",
    "AppStep",
    "CallHandler",
    "make_app",
    "with_channel_header",
    "with_command",
    "with_location",
    "with_log",
    "with_post_menu",
    "with_static",
    "Bindable",
    "BindableAction",
    "BindableMulti",
    "TestServer",
]
