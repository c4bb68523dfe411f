"""
Call delivery for appdeck.

An Upstream turns a CallRequest into response bytes for one App,
over the transport its deploy type selects:

    router = UpstreamRouter(http=HTTPUpstream(), aws_lambda=AWSUpstream(...))
    cresp = decode_call_response(await router.roundtrip(app, creq))
"""

from .protocol import Upstream
from .router import UpstreamRouter
from .uphttp import HTTPUpstream

__all__ = [
    "Upstream",
    "UpstreamRouter",
    "HTTPUpstream",
]
