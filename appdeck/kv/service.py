"""
App KV capability.

Apps store small JSON documents per acting user. Every operation
requires both an acting user and a calling App, and the effective key
always includes both, so no App sees another App's data and no user
sees another user's data.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable

from appdeck.apps.errors import NotFoundError, ValidationError

from .request import IncomingRequest
from .store import KVStore

logger = logging.getLogger(__name__)

EMPTY_OBJECT = b"{}"


def _reject_constant(name: str) -> None:
    raise ValueError(f"{name} is not valid json")


def _is_valid_json(data: bytes) -> bool:
    try:
        json.loads(data, parse_constant=_reject_constant)
    except (ValueError, UnicodeDecodeError, RecursionError):
        return False
    return True


class AppKVService:
    """
    Per-App, per-user namespaced KV operations.

    Example:
        kv = AppKVService(InMemoryKVStore())
        r = IncomingRequest(acting_user_id="u1", from_app_id="hello")
        await kv.set(r, "prefs", "theme", b'{"dark": true}')
        data = await kv.get(r, "prefs", "theme")
    """

    def __init__(self, store: KVStore):
        self._store = store

    async def set(self, r: IncomingRequest, prefix: str, id: str, data: bytes) -> bool:
        """
        Store a JSON document.

        Returns:
            True if the stored value changed

        Raises:
            PermissionDeniedError: If the acting user or calling App is missing
            ValidationError: If data is not valid JSON (nothing is stored)
        """
        r.check(r.require_acting_user, r.require_from_app)
        if not _is_valid_json(data):
            raise ValidationError("payload is not valid json")

        return await self._store.set(r.from_app_id, r.acting_user_id, prefix, id, data)

    async def get(self, r: IncomingRequest, prefix: str, id: str) -> bytes:
        """
        Read a JSON document.

        A key that was never set reads back as `{}`. Any other store
        error propagates, so a successful return is always valid JSON.
        """
        r.check(r.require_acting_user, r.require_from_app)
        try:
            data = await self._store.get(r.from_app_id, r.acting_user_id, prefix, id)
        except NotFoundError:
            data = b""

        if not data:
            # Ensure valid json is returned even if no data is set yet
            data = EMPTY_OBJECT
        return data

    async def delete(self, r: IncomingRequest, prefix: str, id: str) -> None:
        r.check(r.require_acting_user, r.require_from_app)
        await self._store.delete(r.from_app_id, r.acting_user_id, prefix, id)

    async def list(
        self,
        r: IncomingRequest,
        prefix: str,
        visit: Callable[[str], None],
    ) -> None:
        """
        Call `visit` once per id stored under the prefix.

        An exception from `visit` stops the listing and propagates.
        """
        r.check(r.require_acting_user, r.require_from_app)
        async for id in self._store.iter_ids(r.from_app_id, r.acting_user_id, prefix):
            visit(id)
