"""
appdeck configuration

Settings models and explicit environment loaders.
"""

from .env import (
    BUCKET_ENV_VAR,
    DEFAULT_BUCKET,
    DEPLOY_ACCESS_ENV_VAR,
    DEPLOY_SECRET_ENV_VAR,
    INVOKE_ACCESS_ENV_VAR,
    INVOKE_SECRET_ENV_VAR,
    PORT_ENV_VAR,
    REGION_ENV_VAR,
    ROOT_URL_ENV_VAR,
    load_aws_settings,
    load_host_settings,
    require_deploy_credentials,
    require_invoke_credentials,
    resolve_http_settings,
)
from .schemas import (
    DEFAULT_PORT,
    REQUEST_TIMEOUT,
    AWSCredentials,
    AWSSettings,
    HostSettings,
    HTTPServeSettings,
)

__all__ = [
    "AWSCredentials",
    "AWSSettings",
    "HostSettings",
    "HTTPServeSettings",
    "DEFAULT_PORT",
    "REQUEST_TIMEOUT",
    "BUCKET_ENV_VAR",
    "DEFAULT_BUCKET",
    "DEPLOY_ACCESS_ENV_VAR",
    "DEPLOY_SECRET_ENV_VAR",
    "INVOKE_ACCESS_ENV_VAR",
    "INVOKE_SECRET_ENV_VAR",
    "PORT_ENV_VAR",
    "REGION_ENV_VAR",
    "ROOT_URL_ENV_VAR",
    "load_aws_settings",
    "load_host_settings",
    "require_deploy_credentials",
    "require_invoke_credentials",
    "resolve_http_settings",
]
