"""
App manifest model.

The Manifest is the declarative description of an App: its identity,
the permissions and UI locations it requests, and the deploy targets
it can run on. Deploy is a tagged union; each variant is an optional
field and exactly one is selected per invocation by DeployType.
"""

from __future__ import annotations

from enum import Enum
from typing import assert_never
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ValidationError

# =============================================================================
# Enums
# =============================================================================


class DeployType(str, Enum):
    """Deploy types an App can be invoked through."""

    HTTP = "http"
    AWS_LAMBDA = "aws_lambda"


class Permission(str, Enum):
    """Capabilities an App may request from the host."""

    ACT_AS_BOT = "act_as_bot"
    ACT_AS_USER = "act_as_user"
    REMOTE_WEBHOOKS = "remote_webhooks"
    REMOTE_OAUTH2 = "remote_oauth2"


Location = str

LOCATION_COMMAND: Location = "/command"
LOCATION_POST_MENU: Location = "/post_menu"
LOCATION_CHANNEL_HEADER: Location = "/channel_header"


def location_from_name(name: str) -> Location:
    """
    Derive a canonical location from a human-readable label.

    Whitespace and underscores become hyphens, everything else is kept.

    >>> location_from_name("My Command")
    'My-Command'
    """
    return "".join("-" if c.isspace() or c == "_" else c for c in name)


def path_from_name(name: str) -> str:
    """URL path segment for a label, e.g. "My Command" -> "/My-Command"."""
    return "/" + quote(location_from_name(name), safe="")


# =============================================================================
# Deploy variants
# =============================================================================


class HTTPDeploy(BaseModel):
    """Settings for Apps served over HTTP."""

    root_url: str = ""
    use_jwt: bool = False


class AWSLambdaFunction(BaseModel):
    """A single Lambda function serving the calls under `path`."""

    path: str = "/"
    name: str
    handler: str
    runtime: str


class AWSLambdaDeploy(BaseModel):
    """Settings for Apps deployed as AWS Lambda functions."""

    functions: list[AWSLambdaFunction] = Field(default_factory=list)


class Deploy(BaseModel):
    """Deploy settings, one optional field per DeployType."""

    http: HTTPDeploy | None = None
    aws_lambda: AWSLambdaDeploy | None = None

    def types(self) -> list[DeployType]:
        """Deploy types this manifest declares settings for."""
        declared = []
        if self.http is not None:
            declared.append(DeployType.HTTP)
        if self.aws_lambda is not None:
            declared.append(DeployType.AWS_LAMBDA)
        return declared


# =============================================================================
# Manifest
# =============================================================================


class Manifest(BaseModel):
    """App manifest, served as /manifest.json."""

    model_config = ConfigDict(validate_assignment=True)

    app_id: str = Field(..., min_length=1, description="Stable App identifier")
    display_name: str = ""
    version: str = ""
    homepage_url: str = ""
    icon: str = ""
    requested_permissions: list[Permission] = Field(default_factory=list)
    requested_locations: list[Location] = Field(default_factory=list)
    deploy: Deploy = Field(default_factory=Deploy)

    @field_validator("requested_permissions", "requested_locations")
    @classmethod
    def _dedupe(cls, values: list) -> list:
        seen: list = []
        for value in values:
            if value not in seen:
                seen.append(value)
        return seen

    def add_location(self, location: Location) -> None:
        """Request a location unless it is already requested."""
        if location not in self.requested_locations:
            self.requested_locations = [*self.requested_locations, location]

    def deploy_settings(self, deploy_type: DeployType) -> HTTPDeploy | AWSLambdaDeploy:
        """
        Settings of the selected deploy variant.

        Raises:
            ValidationError: If the manifest does not declare that deploy type
        """
        match deploy_type:
            case DeployType.HTTP:
                settings = self.deploy.http
            case DeployType.AWS_LAMBDA:
                settings = self.deploy.aws_lambda
            case _:
                assert_never(deploy_type)
        if settings is None:
            raise ValidationError(
                f"app {self.app_id} does not declare deploy type {deploy_type.value}"
            )
        return settings

    def to_json(self) -> bytes:
        return self.model_dump_json(exclude_none=True).encode()
