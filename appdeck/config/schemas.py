"""
Configuration schemas for appdeck.

Settings are plain pydantic models built once at an entry point and
passed down explicitly; components never read the environment
themselves.

Security:
    Secret keys use SecretStr to prevent accidental logging.
    Access the value with `.get_secret_value()`.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, SecretStr

DEFAULT_PORT = "8080"

# Timeout for a single call to an App, in seconds
REQUEST_TIMEOUT = 30.0


class AWSCredentials(BaseModel):
    """An IAM access key pair."""

    access_key_id: str = Field(..., min_length=1)
    secret_access_key: SecretStr


class AWSSettings(BaseModel):
    """
    AWS settings for the control plane and the Lambda upstream.

    Two credential pairs are kept apart: `deploy` provisions and manages
    resources, `invoke` is what the host uses at call time.
    """

    region: str = ""
    bucket: str = ""
    deploy: AWSCredentials | None = None
    invoke: AWSCredentials | None = None


class HTTPServeSettings(BaseModel):
    """Resolved listener settings of an App in production mode."""

    port: str = DEFAULT_PORT
    root_url: str = ""


class HostSettings(BaseModel):
    """Where and how `appsctl --install` reaches the host platform."""

    url: str = ""
    token: SecretStr = SecretStr("")
