"""
AWS Upstream for appdeck.

Delivers calls to Apps deployed as Lambda functions and reads their
static assets from S3. The Lambda payload is an API Gateway style
envelope:

    request:  {"path": "/ping", "httpMethod": "POST",
               "headers": {"Content-Type": "application/json"},
               "body": "<CallRequest JSON>"}
    response: {"statusCode": 200, "headers": {...},
               "body": "<CallResponse JSON>"}

boto3 is synchronous; every call runs in a worker thread bounded by
the call deadline. A deadline only stops the waiting, the Lambda
invocation itself is not cancelled.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

import boto3
from botocore.exceptions import BotoCoreError, ClientError, ReadTimeoutError

from appdeck.apps.errors import CallTimeoutError, TransportError
from appdeck.apps.manifest import AWSLambdaFunction, DeployType
from appdeck.config.schemas import REQUEST_TIMEOUT, AWSCredentials

from .client import is_not_found
from .names import MANIFESTS_FOLDER, lambda_name, static_key

if TYPE_CHECKING:
    from appdeck.apps.app import App
    from appdeck.apps.call import CallRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Wire envelope
# =============================================================================


def invoke_payload(creq: CallRequest) -> bytes:
    """Lambda request payload for a call."""
    return json.dumps(
        {
            "path": creq.call.path,
            "httpMethod": "POST",
            "headers": {"Content-Type": "application/json"},
            "body": creq.model_dump_json(),
        }
    ).encode()


def parse_invoke_response(raw: bytes) -> bytes:
    """
    Unwrap the body of a Lambda response envelope.

    A payload that is not an envelope is returned unchanged; decoding it
    as a CallResponse is the caller's job.

    Raises:
        TransportError: If the envelope carries statusCode >= 400
    """
    try:
        envelope = json.loads(raw)
    except ValueError:
        return raw
    if not isinstance(envelope, dict) or "statusCode" not in envelope or "body" not in envelope:
        return raw

    status = envelope["statusCode"]
    body = envelope["body"] or ""
    if isinstance(status, int) and status >= 400:
        raise TransportError("lambda returned an error status", detail=str(body)[:500], status_code=status)

    if not isinstance(body, str):
        return json.dumps(body).encode()
    if envelope.get("isBase64Encoded"):
        try:
            return base64.b64decode(body)
        except binascii.Error:
            return body.encode()
    return body.encode()


def _serves(function_path: str, path: str) -> bool:
    if path == function_path or function_path.endswith("/"):
        return path.startswith(function_path)
    return path.startswith(function_path + "/")


def match_function(path: str, functions: list[AWSLambdaFunction]) -> AWSLambdaFunction | None:
    """The function with the longest `path` covering the call path, matched by whole segments."""
    best: AWSLambdaFunction | None = None
    for function in functions:
        if _serves(function.path, path) and (best is None or len(function.path) > len(best.path)):
            best = function
    return best


# =============================================================================
# Upstream
# =============================================================================


class AWSUpstream:
    """
    Upstream for AWS Lambda deployed Apps.

    Example:
        upstream = AWSUpstream.from_credentials(settings.invoke, region, bucket)
        data = await upstream.roundtrip(app, CallRequest.for_path("/ping"))
    """

    def __init__(
        self,
        lambda_client: Any,
        s3_client: Any,
        bucket: str,
        *,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self._lambda = lambda_client
        self._s3 = s3_client
        self._bucket = bucket
        self._timeout = timeout

    @classmethod
    def from_credentials(
        cls,
        credentials: AWSCredentials,
        region: str,
        bucket: str,
        *,
        timeout: float = REQUEST_TIMEOUT,
    ) -> AWSUpstream:
        session = boto3.session.Session(
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key.get_secret_value(),
            region_name=region,
        )
        return cls(session.client("lambda"), session.client("s3"), bucket, timeout=timeout)

    async def _run(self, action: str, fn: Callable[[], T], timeout: float | None) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn), timeout=timeout or self._timeout)
        except TimeoutError as e:
            raise CallTimeoutError(f"{action} timed out") from e
        except ReadTimeoutError as e:
            raise CallTimeoutError(f"{action} timed out", detail=str(e)) from e
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"{action} failed", detail=str(e)) from e

    async def roundtrip(
        self,
        app: App,
        creq: CallRequest,
        async_: bool = False,
        timeout: float | None = None,
    ) -> bytes:
        settings = app.manifest.deploy_settings(DeployType.AWS_LAMBDA)
        function = match_function(creq.call.path, settings.functions)
        if function is None:
            raise TransportError(f"app {app.app_id} has no function for {creq.call.path}")

        name = lambda_name(app.manifest.app_id, app.manifest.version, function.name)
        payload = invoke_payload(creq)
        invocation_type = "Event" if async_ else "RequestResponse"

        def invoke() -> tuple[str, bytes]:
            response = self._lambda.invoke(
                FunctionName=name,
                InvocationType=invocation_type,
                Payload=payload,
            )
            stream = response.get("Payload")
            return response.get("FunctionError", ""), stream.read() if stream else b""

        logger.debug(f"[upstream:aws] Invoking {name} for {creq.call.path} ({invocation_type})")
        function_error, raw = await self._run(f"invoke {name}", invoke, timeout)

        if function_error:
            raise TransportError(
                f"function {name} failed: {function_error}",
                detail=raw.decode(errors="replace")[:500],
            )
        if async_:
            return b""
        return parse_invoke_response(raw)

    async def get_static(self, app: App, path: str, timeout: float | None = None) -> bytes:
        key = static_key(app.manifest.app_id, app.manifest.version, path)

        def fetch() -> bytes:
            return self._s3.get_object(Bucket=self._bucket, Key=key)["Body"].read()

        try:
            return await self._run(f"get s3://{self._bucket}/{key}", fetch, timeout)
        except TransportError as e:
            if is_not_found(e.__cause__):
                raise TransportError(f"static asset {path!r} not found", status_code=404) from e
            raise

    async def list_s3_apps(self, app_id_prefix: str = "", timeout: float | None = None) -> list[str]:
        """
        Deployed App versions whose manifests start with `app_id_prefix`.

        Returns:
            Sorted `{app_id}_{version}` names
        """
        prefix = f"{MANIFESTS_FOLDER}/{app_id_prefix}"

        def list_keys() -> list[str]:
            keys: list[str] = []
            paginator = self._s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
            return keys

        keys = await self._run(f"list s3://{self._bucket}/{prefix}", list_keys, timeout)
        names = [
            key[len(MANIFESTS_FOLDER) + 1 : -len(".json")]
            for key in keys
            if key.endswith(".json")
        ]
        return sorted(names)
