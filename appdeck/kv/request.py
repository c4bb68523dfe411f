"""Identity of an incoming capability request."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from appdeck.apps.errors import PermissionDeniedError


@dataclass(frozen=True, slots=True)
class IncomingRequest:
    """
    Caller identity of a request made by an App to the host.

    Attributes:
        acting_user_id: User on whose behalf the App is acting
        from_app_id: App making the request
    """

    acting_user_id: str = ""
    from_app_id: str = ""

    def require_acting_user(self) -> None:
        if not self.acting_user_id:
            raise PermissionDeniedError("user ID is required")

    def require_from_app(self) -> None:
        if not self.from_app_id:
            raise PermissionDeniedError("app ID is required")

    def check(self, *requirements: Callable[[], None]) -> None:
        """
        Run each requirement in order.

        Example:
            r.check(r.require_acting_user, r.require_from_app)

        Raises:
            PermissionDeniedError: From the first failing requirement
        """
        for requirement in requirements:
            requirement()
