"""
Deterministic AWS resource names.

Every resource name is either a fixed default or an explicit
override, never random, so re-running init or deploy targets the same
resources. That is what makes both operations safe to repeat.
"""

from __future__ import annotations

import hashlib
import re

DEFAULT_USER_NAME = "apps-invoke"
DEFAULT_GROUP_NAME = "apps-invoke-group"
DEFAULT_POLICY_NAME = "apps-invoke-policy"
DEFAULT_EXECUTE_ROLE_NAME = "apps-execute-lambda-role"

LAMBDA_BASIC_EXECUTION_POLICY_ARN = (
    "arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole"
)

MAX_LAMBDA_NAME_LENGTH = 64

STATIC_FOLDER = "static"
MANIFESTS_FOLDER = "manifests"

_INVALID_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_HASH_LENGTH = 10


def _short_hash(value: str, length: int = _HASH_LENGTH) -> str:
    return hashlib.sha256(value.encode()).hexdigest()[:length]


def app_version_key(app_id: str, version: str) -> str:
    """`{app_id}_{version}` with characters unsafe in names replaced by '-'."""
    return _INVALID_NAME_CHARS.sub("-", f"{app_id}_{version}")


def lambda_name(app_id: str, version: str, function: str) -> str:
    """
    Lambda function name for a function of an App version.

    Names longer than Lambda's 64 character limit are truncated and
    suffixed with a hash of the full name.

    >>> lambda_name("hello", "v1.0.0", "hello")
    'hello_v1-0-0_hello'
    """
    name = _INVALID_NAME_CHARS.sub("-", f"{app_id}_{version}_{function}")
    if len(name) <= MAX_LAMBDA_NAME_LENGTH:
        return name
    keep = MAX_LAMBDA_NAME_LENGTH - _HASH_LENGTH - 1
    return f"{name[:keep]}-{_short_hash(name)}"


def static_key_prefix(app_id: str, version: str) -> str:
    return f"{STATIC_FOLDER}/{app_version_key(app_id, version)}/"


def static_key(app_id: str, version: str, asset: str) -> str:
    return static_key_prefix(app_id, version) + asset.lstrip("/")


def manifest_key(app_id: str, version: str) -> str:
    return f"{MANIFESTS_FOLDER}/{app_version_key(app_id, version)}.json"


def s3_arn(bucket: str, key: str = "") -> str:
    if not key:
        return f"arn:aws:s3:::{bucket}"
    return f"arn:aws:s3:::{bucket}/{key}"


def statement_sid(kind: str, resource: str) -> str:
    """Policy statement id: alphanumeric, stable for a given resource."""
    return f"{kind}{_short_hash(resource, 16)}"
