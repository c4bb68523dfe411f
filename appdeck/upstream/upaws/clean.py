"""
Teardown of the IAM resources created by initialize_aws.

Starting from an access key, removes the owning user's groups
(detaching and deleting their customer-managed policies), the user's
access keys, and the user. Deployed functions, the execute role and the
bucket are left in place.

Teardown is not transactional: it stops at the first failure and the
error says which step failed.
"""

from __future__ import annotations

import logging

from .client import AWSClient, provisioning

logger = logging.getLogger(__name__)

AWS_MANAGED_POLICY_PREFIX = "arn:aws:iam::aws:policy/"


def _delete_policy(client: AWSClient, policy_arn: str) -> None:
    with provisioning(f"list versions of policy {policy_arn}"):
        versions = client.iam.list_policy_versions(PolicyArn=policy_arn)["Versions"]
    for version in versions:
        if version.get("IsDefaultVersion"):
            continue
        with provisioning(f"delete version {version['VersionId']} of policy {policy_arn}"):
            client.iam.delete_policy_version(PolicyArn=policy_arn, VersionId=version["VersionId"])
    with provisioning(f"delete policy {policy_arn}"):
        client.iam.delete_policy(PolicyArn=policy_arn)
    logger.info(f"[upaws] Deleted policy {policy_arn}")


def _delete_group(client: AWSClient, group: str, user: str) -> None:
    with provisioning(f"list policies attached to group {group!r}"):
        attached = client.iam.list_attached_group_policies(GroupName=group)["AttachedPolicies"]

    for policy in attached:
        with provisioning(f"detach policy {policy['PolicyName']!r} from group {group!r}"):
            client.iam.detach_group_policy(GroupName=group, PolicyArn=policy["PolicyArn"])
        logger.info(f"[upaws] Detached policy {policy['PolicyName']!r} from group {group!r}")

    with provisioning(f"remove user {user!r} from group {group!r}"):
        client.iam.remove_user_from_group(GroupName=group, UserName=user)
    with provisioning(f"delete group {group!r}"):
        client.iam.delete_group(GroupName=group)
    logger.info(f"[upaws] Deleted group {group!r}")

    for policy in attached:
        if not policy["PolicyArn"].startswith(AWS_MANAGED_POLICY_PREFIX):
            _delete_policy(client, policy["PolicyArn"])


def clean_aws(client: AWSClient, access_key_id: str) -> None:
    """
    Delete the user owning `access_key_id` and everything init attached to it.

    Args:
        client: AWS clients built from the deploy credentials
        access_key_id: An access key of the invoke user

    Raises:
        ProvisioningError: On the first step that fails
    """
    with provisioning(f"look up access key {access_key_id}"):
        user = client.iam.get_access_key_last_used(AccessKeyId=access_key_id)["UserName"]
    logger.info(f"[upaws] Cleaning up user {user!r}")

    with provisioning(f"list groups of user {user!r}"):
        groups = client.iam.list_groups_for_user(UserName=user)["Groups"]
    for group in groups:
        _delete_group(client, group["GroupName"], user)

    with provisioning(f"list access keys of user {user!r}"):
        keys = client.iam.list_access_keys(UserName=user)["AccessKeyMetadata"]
    for key in keys:
        with provisioning(f"delete access key {key['AccessKeyId']}"):
            client.iam.delete_access_key(UserName=user, AccessKeyId=key["AccessKeyId"])
        logger.info(f"[upaws] Deleted access key {key['AccessKeyId']}")

    with provisioning(f"delete user {user!r}"):
        client.iam.delete_user(UserName=user)
    logger.info(f"[upaws] Deleted user {user!r}")
