"""
AWS client wrapper for the control plane.

Bundles the boto3 IAM, Lambda and S3 clients built from one explicit
credential pair, plus lookups that turn "does not exist" into None so
callers can decide whether to create.

boto3 errors are translated at this boundary: lookups return None for
not-found codes and raise ProvisioningError for anything else.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from appdeck.apps.errors import ProvisioningError
from appdeck.config.schemas import AWSCredentials

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset(
    {
        "NoSuchEntity",
        "ResourceNotFoundException",
        "NoSuchKey",
        "NoSuchBucket",
        "NotFound",
        "404",
    }
)


def error_code(err: ClientError) -> str:
    return err.response.get("Error", {}).get("Code", "")


def is_not_found(err: Exception) -> bool:
    return isinstance(err, ClientError) and error_code(err) in NOT_FOUND_CODES


@contextmanager
def provisioning(action: str) -> Iterator[None]:
    """
    Translate boto3 failures inside the block into ProvisioningError.

    Example:
        with provisioning(f"create user {name!r}"):
            client.iam.create_user(UserName=name)
    """
    try:
        yield
    except (ClientError, BotoCoreError) as e:
        raise ProvisioningError(f"failed to {action}", detail=str(e)) from e


class AWSClient:
    """
    IAM, Lambda and S3 clients for one AWS account and region.

    Example:
        client = AWSClient.from_credentials(settings.deploy, settings.region)
        arn = client.find_user("apps-invoke")
    """

    def __init__(self, iam: Any, lambda_: Any, s3: Any, *, region: str = ""):
        self.iam = iam
        self.lambda_ = lambda_
        self.s3 = s3
        self.region = region

    @classmethod
    def from_credentials(cls, credentials: AWSCredentials, region: str) -> AWSClient:
        session = boto3.session.Session(
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key.get_secret_value(),
            region_name=region,
        )
        logger.debug(f"[upaws] Created AWS session in {region}")
        return cls(
            session.client("iam"),
            session.client("lambda"),
            session.client("s3"),
            region=region,
        )

    # =========================================================================
    # Lookups
    # =========================================================================

    def _find(self, action: str, call: Any, extract: Any) -> str | None:
        try:
            return extract(call())
        except ClientError as e:
            if is_not_found(e):
                return None
            raise ProvisioningError(f"failed to {action}", detail=str(e)) from e
        except BotoCoreError as e:
            raise ProvisioningError(f"failed to {action}", detail=str(e)) from e

    def find_user(self, name: str) -> str | None:
        """ARN of the IAM user, or None."""
        return self._find(
            f"get user {name!r}",
            lambda: self.iam.get_user(UserName=name),
            lambda r: r["User"]["Arn"],
        )

    def find_group(self, name: str) -> str | None:
        return self._find(
            f"get group {name!r}",
            lambda: self.iam.get_group(GroupName=name),
            lambda r: r["Group"]["Arn"],
        )

    def find_role(self, name: str) -> str | None:
        return self._find(
            f"get role {name!r}",
            lambda: self.iam.get_role(RoleName=name),
            lambda r: r["Role"]["Arn"],
        )

    def find_function(self, name: str) -> str | None:
        """ARN of the Lambda function, or None."""
        return self._find(
            f"get function {name!r}",
            lambda: self.lambda_.get_function(FunctionName=name),
            lambda r: r["Configuration"]["FunctionArn"],
        )

    def find_policy(self, name: str) -> str | None:
        """ARN of the customer-managed policy with this name, or None."""
        marker: str | None = None
        while True:
            kwargs: dict[str, Any] = {"Scope": "Local"}
            if marker:
                kwargs["Marker"] = marker
            with provisioning("list policies"):
                response = self.iam.list_policies(**kwargs)
            for policy in response.get("Policies", []):
                if policy["PolicyName"] == name:
                    return policy["Arn"]
            if not response.get("IsTruncated"):
                return None
            marker = response.get("Marker")

    def bucket_exists(self, bucket: str) -> bool:
        try:
            self.s3.head_bucket(Bucket=bucket)
        except ClientError as e:
            if is_not_found(e):
                return False
            raise ProvisioningError(f"failed to access bucket {bucket!r}", detail=str(e)) from e
        except BotoCoreError as e:
            raise ProvisioningError(f"failed to access bucket {bucket!r}", detail=str(e)) from e
        return True
