"""
One-time provisioning of the AWS account used for App deployments.

Resolves (and optionally creates) the invoke user, its group, the
shared invoke policy attached to the group, the Lambda execute role,
and the S3 bucket. Every resource is looked up by its deterministic
name first, so repeated runs converge on the same state.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass

from appdeck.apps.errors import ProvisioningError

from .client import AWSClient, provisioning
from .names import (
    DEFAULT_EXECUTE_ROLE_NAME,
    DEFAULT_GROUP_NAME,
    DEFAULT_POLICY_NAME,
    DEFAULT_USER_NAME,
    LAMBDA_BASIC_EXECUTION_POLICY_ARN,
)
from .policy import LAMBDA_ASSUME_ROLE_POLICY, initial_invoke_policy_document

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class InitParams:
    """
    Parameters of initialize_aws.

    Attributes:
        bucket: S3 bucket for manifests and static assets
        should_create: Create missing resources instead of failing
        should_create_access_key: Issue a new access key for the invoke user
    """

    bucket: str
    user: str = DEFAULT_USER_NAME
    group: str = DEFAULT_GROUP_NAME
    policy: str = DEFAULT_POLICY_NAME
    execute_role: str = DEFAULT_EXECUTE_ROLE_NAME
    should_create: bool = False
    should_create_access_key: bool = False


@dataclass(slots=True)
class InitResult:
    bucket: str
    user_arn: str
    group_arn: str
    policy_arn: str
    execute_role_arn: str
    access_key_id: str = ""
    access_key_secret: str = ""


def _ensure(
    kind: str,
    name: str,
    find: Callable[[str], str | None],
    create: Callable[[str], str],
    should_create: bool,
) -> str:
    arn = find(name)
    if arn:
        logger.info(f"[upaws] Found existing {kind} {name!r}: {arn}")
        return arn
    if not should_create:
        raise ProvisioningError(f"{kind} {name!r} does not exist, use --create to create it")
    with provisioning(f"create {kind} {name!r}"):
        arn = create(name)
    logger.info(f"[upaws] Created {kind} {name!r}: {arn}")
    return arn


def ensure_execute_role(client: AWSClient, name: str, *, should_create: bool) -> str:
    """
    ARN of the Lambda execute role, with basic execution attached.

    Raises:
        ProvisioningError: If the role is missing and should_create is False,
            or any AWS call fails
    """

    def create(role: str) -> str:
        response = client.iam.create_role(
            RoleName=role,
            AssumeRolePolicyDocument=json.dumps(LAMBDA_ASSUME_ROLE_POLICY),
        )
        return response["Role"]["Arn"]

    arn = _ensure("execute role", name, client.find_role, create, should_create)

    with provisioning(f"list policies attached to role {name!r}"):
        attached = client.iam.list_attached_role_policies(RoleName=name)
    arns = {p["PolicyArn"] for p in attached.get("AttachedPolicies", [])}
    if LAMBDA_BASIC_EXECUTION_POLICY_ARN not in arns:
        if not should_create:
            raise ProvisioningError(
                f"execute role {name!r} lacks {LAMBDA_BASIC_EXECUTION_POLICY_ARN}"
            )
        with provisioning(f"attach basic execution policy to role {name!r}"):
            client.iam.attach_role_policy(
                RoleName=name,
                PolicyArn=LAMBDA_BASIC_EXECUTION_POLICY_ARN,
            )
        logger.info(f"[upaws] Attached basic execution policy to role {name!r}")
    return arn


def _ensure_group_member(client: AWSClient, params: InitParams) -> None:
    with provisioning(f"get group {params.group!r}"):
        group = client.iam.get_group(GroupName=params.group)
    if any(u["UserName"] == params.user for u in group.get("Users", [])):
        return
    if not params.should_create:
        raise ProvisioningError(f"user {params.user!r} is not a member of group {params.group!r}")
    with provisioning(f"add user {params.user!r} to group {params.group!r}"):
        client.iam.add_user_to_group(GroupName=params.group, UserName=params.user)
    logger.info(f"[upaws] Added user {params.user!r} to group {params.group!r}")


def _ensure_policy_attached(client: AWSClient, params: InitParams, policy_arn: str) -> None:
    with provisioning(f"list policies attached to group {params.group!r}"):
        attached = client.iam.list_attached_group_policies(GroupName=params.group)
    if any(p["PolicyArn"] == policy_arn for p in attached.get("AttachedPolicies", [])):
        return
    if not params.should_create:
        raise ProvisioningError(
            f"policy {params.policy!r} is not attached to group {params.group!r}"
        )
    with provisioning(f"attach policy {params.policy!r} to group {params.group!r}"):
        client.iam.attach_group_policy(GroupName=params.group, PolicyArn=policy_arn)
    logger.info(f"[upaws] Attached policy {params.policy!r} to group {params.group!r}")


def _ensure_bucket(client: AWSClient, params: InitParams) -> None:
    if client.bucket_exists(params.bucket):
        logger.info(f"[upaws] Found existing bucket {params.bucket!r}")
        return
    if not params.should_create:
        raise ProvisioningError(f"bucket {params.bucket!r} does not exist, use --create to create it")

    kwargs: dict = {"Bucket": params.bucket}
    # us-east-1 rejects an explicit location constraint
    if client.region and client.region != "us-east-1":
        kwargs["CreateBucketConfiguration"] = {"LocationConstraint": client.region}
    with provisioning(f"create bucket {params.bucket!r}"):
        client.s3.create_bucket(**kwargs)
    logger.info(f"[upaws] Created bucket {params.bucket!r}")


def initialize_aws(client: AWSClient, params: InitParams) -> InitResult:
    """
    Resolve or create the resources App deployments rely on.

    Args:
        client: AWS clients built from the deploy credentials
        params: Resource names and creation flags

    Returns:
        ARNs of every resolved resource, plus a new access key pair when
        should_create_access_key is set

    Raises:
        ProvisioningError: On the first resource that is missing (without
            should_create) or cannot be resolved or created
    """
    user_arn = _ensure(
        "user",
        params.user,
        client.find_user,
        lambda name: client.iam.create_user(UserName=name)["User"]["Arn"],
        params.should_create,
    )
    group_arn = _ensure(
        "group",
        params.group,
        client.find_group,
        lambda name: client.iam.create_group(GroupName=name)["Group"]["Arn"],
        params.should_create,
    )
    _ensure_group_member(client, params)

    policy_document = initial_invoke_policy_document(params.bucket).to_json()
    policy_arn = _ensure(
        "policy",
        params.policy,
        client.find_policy,
        lambda name: client.iam.create_policy(
            PolicyName=name,
            PolicyDocument=policy_document,
        )["Policy"]["Arn"],
        params.should_create,
    )
    _ensure_policy_attached(client, params, policy_arn)

    execute_role_arn = ensure_execute_role(
        client,
        params.execute_role,
        should_create=params.should_create,
    )
    _ensure_bucket(client, params)

    result = InitResult(
        bucket=params.bucket,
        user_arn=user_arn,
        group_arn=group_arn,
        policy_arn=policy_arn,
        execute_role_arn=execute_role_arn,
    )

    if params.should_create_access_key:
        with provisioning(f"create access key for user {params.user!r}"):
            key = client.iam.create_access_key(UserName=params.user)["AccessKey"]
        result.access_key_id = key["AccessKeyId"]
        result.access_key_secret = key["SecretAccessKey"]
        logger.info(f"[upaws] Created access key {result.access_key_id} for {params.user!r}")

    return result
