"""
AWS backend for appdeck.

Control plane (initialize_aws, deploy_app, clean_aws) provisions IAM,
Lambda and S3 resources under deterministic names; AWSUpstream invokes
the deployed functions and reads static assets at call time.

Deploy credentials drive the control plane; the host invokes Apps with
the narrower invoke credentials that init issues.
"""

from .clean import clean_aws
from .client import AWSClient, is_not_found, provisioning
from .deploy import (
    AppBundle,
    DeployAppParams,
    DeployAppResult,
    deploy_app,
    deploy_app_from_file,
    update_invoke_policy,
)
from .initialize import InitParams, InitResult, ensure_execute_role, initialize_aws
from .names import (
    DEFAULT_EXECUTE_ROLE_NAME,
    DEFAULT_GROUP_NAME,
    DEFAULT_POLICY_NAME,
    DEFAULT_USER_NAME,
    lambda_name,
    manifest_key,
    static_key,
)
from .policy import PolicyDocument, PolicyStatement, invoke_policy_document
from .upstream import AWSUpstream, invoke_payload, match_function, parse_invoke_response

__all__ = [
    # Client
    "AWSClient",
    "is_not_found",
    "provisioning",
    # Naming
    "DEFAULT_EXECUTE_ROLE_NAME",
    "DEFAULT_GROUP_NAME",
    "DEFAULT_POLICY_NAME",
    "DEFAULT_USER_NAME",
    "lambda_name",
    "manifest_key",
    "static_key",
    # Policy
    "PolicyDocument",
    "PolicyStatement",
    "invoke_policy_document",
    # Control plane
    "InitParams",
    "InitResult",
    "initialize_aws",
    "ensure_execute_role",
    "AppBundle",
    "DeployAppParams",
    "DeployAppResult",
    "deploy_app",
    "deploy_app_from_file",
    "update_invoke_policy",
    "clean_aws",
    # Upstream
    "AWSUpstream",
    "invoke_payload",
    "match_function",
    "parse_invoke_response",
]
