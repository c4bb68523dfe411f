"""
Pytest configuration and fixtures for appdeck tests.
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

# Add the repository root to path for imports
# This allows `from appdeck.apps import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from appdeck.apps import (  # noqa: E402
    App,
    AWSLambdaDeploy,
    AWSLambdaFunction,
    Deploy,
    DeployType,
    HTTPDeploy,
    Manifest,
)
from appdeck.upstream.upaws import AWSClient  # noqa: E402


def client_error(code: str, message: str = "", operation: str = "Operation") -> ClientError:
    """Build a botocore ClientError with the given error code."""
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


@pytest.fixture
def sample_manifest():
    """Minimal manifest for an App."""
    return Manifest(app_id="hello", display_name="Hello", version="v1.0.0")


@pytest.fixture
def lambda_manifest():
    """Manifest of an App deployed as one Lambda function."""
    return Manifest(
        app_id="hello",
        display_name="Hello",
        version="v1.0.0",
        deploy=Deploy(
            aws_lambda=AWSLambdaDeploy(
                functions=[
                    AWSLambdaFunction(
                        path="/",
                        name="hello",
                        handler="bootstrap",
                        runtime="provided.al2023",
                    )
                ]
            )
        ),
    )


@pytest.fixture
def lambda_app(lambda_manifest):
    return App(manifest=lambda_manifest, deploy_type=DeployType.AWS_LAMBDA)


@pytest.fixture
def http_app():
    """App served over HTTP at http://app."""
    return App(
        manifest=Manifest(app_id="hello", deploy=Deploy(http=HTTPDeploy(root_url="http://app"))),
        deploy_type=DeployType.HTTP,
    )


@pytest.fixture
def aws_client():
    """AWSClient over mocked boto3 clients."""
    return AWSClient(MagicMock(), MagicMock(), MagicMock(), region="us-west-2")


@pytest.fixture
def make_client_error():
    """Factory for botocore ClientErrors."""
    return client_error
