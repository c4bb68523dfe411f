"""
Upstream Protocol for appdeck.

An Upstream delivers CallRequests to an App's actual runtime over one
transport (HTTP, AWS Lambda, ...) and fetches its static assets.

Contract:
    - roundtrip() returns the raw response bytes; every transport
      returns bytes that decode as the same CallResponse schema
    - a deadline that elapses raises CallTimeoutError
    - connection, invocation or status failures raise TransportError
    - a malformed response body is NOT an Upstream error; it is
      returned as-is and fails in the caller's decode_call_response()
    - async_=True only changes what the App is expected to do
      (acknowledge rather than complete); it returns b"" once the call
      has been dispatched
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from appdeck.apps.app import App
    from appdeck.apps.call import CallRequest


@runtime_checkable
class Upstream(Protocol):
    """
    Transport to one kind of App runtime.

    Example implementations:
    - HTTPUpstream (Apps served over HTTP)
    - AWSUpstream (Apps deployed to AWS Lambda + S3)
    """

    async def roundtrip(
        self,
        app: App,
        creq: CallRequest,
        async_: bool = False,
        timeout: float | None = None,
    ) -> bytes:
        """
        Deliver a call to the App.

        Args:
            app: The App to call
            creq: The call request
            async_: Dispatch without waiting for the App to complete
            timeout: Seconds to wait for the response (None = transport default)

        Returns:
            Response body bytes, normally a CallResponse document

        Raises:
            CallTimeoutError: If the deadline elapsed
            TransportError: If the call could not be delivered
        """
        ...

    async def get_static(
        self,
        app: App,
        path: str,
        timeout: float | None = None,
    ) -> bytes:
        """
        Fetch a static asset of the App.

        Raises:
            CallTimeoutError: If the deadline elapsed
            TransportError: If the asset could not be fetched
        """
        ...
