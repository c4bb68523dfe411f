"""
HTTP surface of the KV capability.

Apps reach the KV service through these routes. Errors come back as
JSON CallResponse error documents with a matching status code, never
as server crashes.

Routes:
    PUT    /kv/{prefix}/{key}   store the request body
    GET    /kv/{prefix}/{key}   read a value ({} when absent)
    DELETE /kv/{prefix}/{key}   remove a value
    GET    /kv/{prefix}         list keys under a prefix
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Header, Request, Response
from fastapi.responses import JSONResponse

from appdeck.apps.call import CallResponse
from appdeck.apps.errors import AppsError, PermissionDeniedError, ValidationError

from .request import IncomingRequest
from .service import AppKVService

logger = logging.getLogger(__name__)

ACTING_USER_HEADER = "X-Acting-User-Id"
APP_ID_HEADER = "X-App-Id"


def _error_response(err: AppsError) -> JSONResponse:
    if isinstance(err, PermissionDeniedError):
        status = 403
    elif isinstance(err, ValidationError):
        status = 400
    else:
        status = 500
    logger.info(f"[kv] Request failed ({status}): {err}")
    return JSONResponse(
        status_code=status,
        content=CallResponse.error_response(err).model_dump(mode="json", exclude_none=True),
    )


def make_kv_router(service: AppKVService) -> APIRouter:
    """Create the KV routes bound to a service."""
    router = APIRouter(prefix="/kv", tags=["kv"])

    def incoming(
        acting_user_id: str | None,
        app_id: str | None,
    ) -> IncomingRequest:
        return IncomingRequest(acting_user_id=acting_user_id or "", from_app_id=app_id or "")

    @router.put("/{prefix}/{key}")
    async def kv_set(
        prefix: str,
        key: str,
        request: Request,
        x_acting_user_id: str | None = Header(None),
        x_app_id: str | None = Header(None),
    ) -> Response:
        r = incoming(x_acting_user_id, x_app_id)
        try:
            changed = await service.set(r, prefix, key, await request.body())
        except AppsError as e:
            return _error_response(e)
        return JSONResponse({"changed": changed})

    @router.get("/{prefix}/{key}")
    async def kv_get(
        prefix: str,
        key: str,
        x_acting_user_id: str | None = Header(None),
        x_app_id: str | None = Header(None),
    ) -> Response:
        r = incoming(x_acting_user_id, x_app_id)
        try:
            data = await service.get(r, prefix, key)
        except AppsError as e:
            return _error_response(e)
        return Response(content=data, media_type="application/json")

    @router.delete("/{prefix}/{key}")
    async def kv_delete(
        prefix: str,
        key: str,
        x_acting_user_id: str | None = Header(None),
        x_app_id: str | None = Header(None),
    ) -> Response:
        r = incoming(x_acting_user_id, x_app_id)
        try:
            await service.delete(r, prefix, key)
        except AppsError as e:
            return _error_response(e)
        return Response(status_code=204)

    @router.get("/{prefix}")
    async def kv_list(
        prefix: str,
        x_acting_user_id: str | None = Header(None),
        x_app_id: str | None = Header(None),
    ) -> Response:
        r = incoming(x_acting_user_id, x_app_id)
        keys: list[str] = []
        try:
            await service.list(r, prefix, keys.append)
        except AppsError as e:
            return _error_response(e)
        return JSONResponse({"keys": sorted(keys)})

    return router
