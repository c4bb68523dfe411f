"""
Deployment of an App bundle to AWS.

A bundle is a zip archive laid out as:

    manifest.json           the App manifest, with deploy.aws_lambda set
    <function name>.zip     one Lambda code package per declared function
    static/...              static assets, uploaded under the App's prefix

The archive may also wrap all of the above in a single top-level
directory.
"""

from __future__ import annotations

import io
import logging
import mimetypes
import posixpath
import time
import zipfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError as PydanticValidationError

from appdeck.apps.errors import ProvisioningError, ValidationError
from appdeck.apps.manifest import AWSLambdaDeploy, AWSLambdaFunction, Deploy, DeployType, Manifest

from .client import AWSClient, error_code, provisioning
from .initialize import ensure_execute_role
from .names import (
    DEFAULT_EXECUTE_ROLE_NAME,
    DEFAULT_POLICY_NAME,
    LAMBDA_BASIC_EXECUTION_POLICY_ARN,
    lambda_name,
    manifest_key,
    s3_arn,
    static_key,
)
from .policy import MAX_POLICY_VERSIONS, PolicyDocument, invoke_policy_document

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"
STATIC_DIR = "static/"

LAMBDA_TIMEOUT = 30
LAMBDA_MEMORY_SIZE = 128


# =============================================================================
# Bundle
# =============================================================================


@dataclass(slots=True)
class AppBundle:
    """
    Parsed contents of an App bundle.

    Attributes:
        manifest: The App manifest
        functions: Code package per function name
        static: Asset bytes per path relative to static/
    """

    manifest: Manifest
    functions: dict[str, bytes] = field(default_factory=dict)
    static: dict[str, bytes] = field(default_factory=dict)

    @property
    def lambda_functions(self) -> list[AWSLambdaFunction]:
        settings = self.manifest.deploy_settings(DeployType.AWS_LAMBDA)
        return settings.functions

    @classmethod
    def from_zip(cls, data: bytes) -> AppBundle:
        """
        Parse a bundle archive.

        Raises:
            ValidationError: If the archive, its manifest, or a declared
                function package is missing or malformed
        """
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            raise ValidationError("bundle is not a zip archive", detail=str(e)) from e

        with archive:
            files = {info.filename: info for info in archive.infolist() if not info.is_dir()}
            base = _bundle_base(files)

            try:
                manifest = Manifest.model_validate_json(archive.read(base + MANIFEST_FILE))
            except PydanticValidationError as e:
                raise ValidationError("bundle manifest is invalid", detail=str(e)) from e

            bundle = cls(manifest=manifest)
            for function in bundle.lambda_functions:
                name = base + function.name + ".zip"
                if name not in files:
                    raise ValidationError(f"bundle is missing the code package {name!r}")
                bundle.functions[function.name] = archive.read(name)

            static_prefix = base + STATIC_DIR
            for name in files:
                if name.startswith(static_prefix):
                    bundle.static[name[len(static_prefix):]] = archive.read(name)

        return bundle


def _bundle_base(files: Mapping[str, zipfile.ZipInfo]) -> str:
    if MANIFEST_FILE in files:
        return ""
    nested = [name for name in files if posixpath.basename(name) == MANIFEST_FILE and name.count("/") == 1]
    if len(nested) != 1:
        raise ValidationError(f"bundle has no {MANIFEST_FILE}")
    return posixpath.dirname(nested[0]) + "/"


# =============================================================================
# Deploy
# =============================================================================


@dataclass(frozen=True, slots=True)
class DeployAppParams:
    """
    Parameters of deploy_app.

    Attributes:
        bucket: S3 bucket for the manifest and static assets
        should_update: Replace the code of functions that already exist
        environment: Environment variables set on created or updated functions
        role_retries: Attempts to create a function while a new execute
            role is not yet assumable by Lambda
    """

    bucket: str
    invoke_policy_name: str = DEFAULT_POLICY_NAME
    execute_role_name: str = DEFAULT_EXECUTE_ROLE_NAME
    should_update: bool = False
    environment: Mapping[str, str] = field(default_factory=dict)
    role_retries: int = 6
    role_retry_delay: float = 5.0


@dataclass(slots=True)
class DeployAppResult:
    manifest: Manifest
    lambda_arns: list[str]
    static_arns: list[str]
    manifest_arn: str
    execute_role_arn: str
    execute_policy_arn: str
    invoke_policy_arn: str
    invoke_policy_document: str


def _is_role_not_ready(err: ClientError) -> bool:
    # Lambda reports a freshly created role that is not yet assumable as an invalid parameter
    message = err.response.get("Error", {}).get("Message", "")
    return error_code(err) == "InvalidParameterValueException" and "role" in message.lower()


def _create_function(
    client: AWSClient,
    name: str,
    function: AWSLambdaFunction,
    code: bytes,
    role_arn: str,
    params: DeployAppParams,
) -> str:
    for attempt in range(1, params.role_retries + 1):
        try:
            response = client.lambda_.create_function(
                FunctionName=name,
                Runtime=function.runtime,
                Role=role_arn,
                Handler=function.handler,
                Code={"ZipFile": code},
                Timeout=LAMBDA_TIMEOUT,
                MemorySize=LAMBDA_MEMORY_SIZE,
                Environment={"Variables": dict(params.environment)},
            )
            return response["FunctionArn"]
        except ClientError as e:
            if not _is_role_not_ready(e) or attempt == params.role_retries:
                raise ProvisioningError(f"failed to create function {name!r}", detail=str(e)) from e
            logger.info(
                f"[upaws] Execute role not ready for {name!r}, "
                f"retrying in {params.role_retry_delay}s ({attempt}/{params.role_retries})"
            )
            time.sleep(params.role_retry_delay)
        except BotoCoreError as e:
            raise ProvisioningError(f"failed to create function {name!r}", detail=str(e)) from e
    raise ProvisioningError(f"failed to create function {name!r}")


def _deploy_function(
    client: AWSClient,
    manifest: Manifest,
    function: AWSLambdaFunction,
    code: bytes,
    role_arn: str,
    params: DeployAppParams,
) -> str:
    name = lambda_name(manifest.app_id, manifest.version, function.name)
    arn = client.find_function(name)

    if arn is None:
        arn = _create_function(client, name, function, code, role_arn, params)
        logger.info(f"[upaws] Created function {name!r}: {arn}")
        return arn

    if not params.should_update:
        logger.info(f"[upaws] Function {name!r} exists, not updating: {arn}")
        return arn

    with provisioning(f"update function {name!r}"):
        client.lambda_.update_function_code(FunctionName=name, ZipFile=code)
        if params.environment:
            # Lambda rejects a configuration change while the code update is in progress
            client.lambda_.get_waiter("function_updated").wait(FunctionName=name)
            client.lambda_.update_function_configuration(
                FunctionName=name,
                Environment={"Variables": dict(params.environment)},
            )
    logger.info(f"[upaws] Updated function {name!r}: {arn}")
    return arn


def _upload(client: AWSClient, bucket: str, key: str, body: bytes, content_type: str) -> str:
    with provisioning(f"upload s3://{bucket}/{key}"):
        client.s3.put_object(Bucket=bucket, Key=key, Body=body, ContentType=content_type)
    logger.debug(f"[upaws] Uploaded s3://{bucket}/{key}")
    return s3_arn(bucket, key)


def _prune_policy_versions(client: AWSClient, policy_arn: str) -> None:
    with provisioning("list invoke policy versions"):
        versions = client.iam.list_policy_versions(PolicyArn=policy_arn)["Versions"]
    if len(versions) < MAX_POLICY_VERSIONS:
        return
    candidates = sorted(
        (v for v in versions if not v.get("IsDefaultVersion")),
        key=lambda v: v["CreateDate"],
    )
    if not candidates:
        return
    oldest = candidates[0]["VersionId"]
    with provisioning(f"delete invoke policy version {oldest}"):
        client.iam.delete_policy_version(PolicyArn=policy_arn, VersionId=oldest)
    logger.info(f"[upaws] Deleted invoke policy version {oldest}")


def update_invoke_policy(client: AWSClient, policy_name: str, document: PolicyDocument) -> str:
    """
    Merge `document` into the invoke policy and publish it as the default version.

    Statements are merged by Sid; nothing is published when the merged
    document equals the current one.

    Returns:
        The invoke policy ARN

    Raises:
        ProvisioningError: If the policy does not exist or cannot be updated
    """
    policy_arn = client.find_policy(policy_name)
    if policy_arn is None:
        raise ProvisioningError(f"invoke policy {policy_name!r} does not exist, run init first")

    with provisioning(f"get invoke policy {policy_name!r}"):
        default_version = client.iam.get_policy(PolicyArn=policy_arn)["Policy"]["DefaultVersionId"]
        current = client.iam.get_policy_version(PolicyArn=policy_arn, VersionId=default_version)
    existing = PolicyDocument.from_dict(current["PolicyVersion"]["Document"])

    merged = existing.merge(document)
    if merged == existing:
        logger.info(f"[upaws] Invoke policy {policy_name!r} is up to date")
        return policy_arn

    _prune_policy_versions(client, policy_arn)
    with provisioning(f"update invoke policy {policy_name!r}"):
        client.iam.create_policy_version(
            PolicyArn=policy_arn,
            PolicyDocument=merged.to_json(),
            SetAsDefault=True,
        )
    logger.info(f"[upaws] Updated invoke policy {policy_name!r}")
    return policy_arn


def deploy_app(client: AWSClient, bundle: AppBundle, params: DeployAppParams) -> DeployAppResult:
    """
    Deploy an App bundle: functions, static assets, manifest, invoke policy.

    Args:
        client: AWS clients built from the deploy credentials
        bundle: Parsed App bundle
        params: Bucket, resource names and update behavior

    Returns:
        DeployAppResult with the ARNs of everything deployed and the
        App's invoke policy statements

    Raises:
        ValidationError: If the manifest declares no AWS Lambda deploy
        ProvisioningError: If any AWS resource cannot be created or updated
    """
    manifest = bundle.manifest
    functions = bundle.lambda_functions
    logger.info(f"[upaws] Deploying {manifest.app_id} {manifest.version} ({len(functions)} functions)")

    execute_role_arn = ensure_execute_role(client, params.execute_role_name, should_create=True)

    lambda_arns = [
        _deploy_function(
            client,
            manifest,
            function,
            bundle.functions[function.name],
            execute_role_arn,
            params,
        )
        for function in functions
    ]

    static_arns = []
    for asset, data in sorted(bundle.static.items()):
        content_type = mimetypes.guess_type(asset)[0] or "application/octet-stream"
        key = static_key(manifest.app_id, manifest.version, asset)
        static_arns.append(_upload(client, params.bucket, key, data, content_type))

    deployed = manifest.model_copy(deep=True)
    deployed.deploy = Deploy(aws_lambda=AWSLambdaDeploy(functions=functions))
    manifest_arn = _upload(
        client,
        params.bucket,
        manifest_key(manifest.app_id, manifest.version),
        deployed.to_json(),
        "application/json",
    )

    document = invoke_policy_document(lambda_arns, params.bucket, manifest.app_id, manifest.version)
    invoke_policy_arn = update_invoke_policy(client, params.invoke_policy_name, document)

    return DeployAppResult(
        manifest=deployed,
        lambda_arns=lambda_arns,
        static_arns=static_arns,
        manifest_arn=manifest_arn,
        execute_role_arn=execute_role_arn,
        execute_policy_arn=LAMBDA_BASIC_EXECUTION_POLICY_ARN,
        invoke_policy_arn=invoke_policy_arn,
        invoke_policy_document=document.to_json(),
    )


def deploy_app_from_file(
    client: AWSClient,
    path: str | Path,
    params: DeployAppParams,
) -> DeployAppResult:
    """Deploy the bundle archive at `path`."""
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise ValidationError(f"cannot read bundle {str(path)!r}", detail=str(e)) from e
    return deploy_app(client, AppBundle.from_zip(data), params)
