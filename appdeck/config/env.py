"""
Environment loading for appdeck settings.

Each loader takes the environment mapping explicitly, so tests pass a
plain dict and entry points pass os.environ.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from urllib.parse import urlsplit

from appdeck.apps.errors import ConfigurationError

from .schemas import (
    DEFAULT_PORT,
    AWSCredentials,
    AWSSettings,
    HostSettings,
    HTTPServeSettings,
)

logger = logging.getLogger(__name__)

# Serving
PORT_ENV_VAR = "PORT"
ROOT_URL_ENV_VAR = "ROOT_URL"

# AWS
REGION_ENV_VAR = "AWS_REGION"
DEPLOY_ACCESS_ENV_VAR = "APPS_DEPLOY_AWS_ACCESS_KEY"
DEPLOY_SECRET_ENV_VAR = "APPS_DEPLOY_AWS_SECRET_KEY"
INVOKE_ACCESS_ENV_VAR = "APPS_INVOKE_AWS_ACCESS_KEY"
INVOKE_SECRET_ENV_VAR = "APPS_INVOKE_AWS_SECRET_KEY"
BUCKET_ENV_VAR = "APPS_S3_BUCKET"
DEFAULT_BUCKET = "apps-bucket"

# Host
HOST_URL_ENV_VAR = "APPS_HOST_URL"
HOST_TOKEN_ENV_VAR = "APPS_HOST_TOKEN"


# =============================================================================
# Serving
# =============================================================================


def resolve_http_settings(
    root_url: str,
    environ: Mapping[str, str],
) -> HTTPServeSettings:
    """
    Resolve the production listener port and advertised root URL.

    Port: PORT, else the port of the root URL, else 8080.
    Root URL: ROOT_URL, else `root_url` (from the manifest), else
    http://localhost:{port}.

    Raises:
        ConfigurationError: If the root URL cannot be parsed
    """
    root_url = environ.get(ROOT_URL_ENV_VAR) or root_url

    port = environ.get(PORT_ENV_VAR, "")
    if not port:
        try:
            parsed_port = urlsplit(root_url).port if root_url else None
        except ValueError as e:
            raise ConfigurationError(f"invalid root URL {root_url!r}", detail=str(e)) from e
        port = str(parsed_port) if parsed_port else DEFAULT_PORT

    if not root_url:
        root_url = f"http://localhost:{port}"

    return HTTPServeSettings(port=port, root_url=root_url)


# =============================================================================
# AWS
# =============================================================================


def _credentials(
    environ: Mapping[str, str],
    access_var: str,
    secret_var: str,
) -> AWSCredentials | None:
    access_key = environ.get(access_var, "")
    secret_key = environ.get(secret_var, "")
    if not access_key and not secret_key:
        return None
    if not access_key:
        raise ConfigurationError(f"no AWS access key was provided. Please set {access_var}")
    if not secret_key:
        raise ConfigurationError(f"no AWS secret key was provided. Please set {secret_var}")
    return AWSCredentials(access_key_id=access_key, secret_access_key=secret_key)


def load_aws_settings(environ: Mapping[str, str], *, include_invoke: bool = True) -> AWSSettings:
    """
    Load AWS settings from the environment.

    Either credential pair may be absent; a half-set pair is an error.
    With include_invoke=False the invoke pair is not read at all.
    """
    invoke = None
    if include_invoke:
        invoke = _credentials(environ, INVOKE_ACCESS_ENV_VAR, INVOKE_SECRET_ENV_VAR)
    return AWSSettings(
        region=environ.get(REGION_ENV_VAR, ""),
        bucket=environ.get(BUCKET_ENV_VAR) or DEFAULT_BUCKET,
        deploy=_credentials(environ, DEPLOY_ACCESS_ENV_VAR, DEPLOY_SECRET_ENV_VAR),
        invoke=invoke,
    )


def require_region(settings: AWSSettings) -> str:
    if not settings.region:
        raise ConfigurationError(f"no AWS region was provided. Please set {REGION_ENV_VAR}")
    return settings.region


def require_deploy_credentials(settings: AWSSettings) -> AWSCredentials:
    """Deploy credentials, or ConfigurationError naming the missing variable."""
    require_region(settings)
    if settings.deploy is None:
        raise ConfigurationError(
            f"no AWS access key was provided. Please set {DEPLOY_ACCESS_ENV_VAR}"
        )
    return settings.deploy


def require_invoke_credentials(settings: AWSSettings) -> AWSCredentials:
    """Invoke credentials, or ConfigurationError naming the missing variable."""
    require_region(settings)
    if settings.invoke is None:
        raise ConfigurationError(
            f"no AWS access key was provided. Please set {INVOKE_ACCESS_ENV_VAR}"
        )
    return settings.invoke


# =============================================================================
# Host
# =============================================================================


def load_host_settings(environ: Mapping[str, str]) -> HostSettings:
    url = environ.get(HOST_URL_ENV_VAR, "")
    if not url:
        raise ConfigurationError(f"no host URL was provided. Please set {HOST_URL_ENV_VAR}")
    return HostSettings(url=url.rstrip("/"), token=environ.get(HOST_TOKEN_ENV_VAR, ""))
