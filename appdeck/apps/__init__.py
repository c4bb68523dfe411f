"""
appdeck protocol model.

Types shared by every component: the Manifest and its deploy
variants, the Call protocol, UI bindings, and the error taxonomy.
"""

from .app import App
from .binding import Binding
from .call import (
    Call,
    CallRequest,
    CallResponse,
    CallResponseType,
    Context,
    decode_call_response,
)
from .errors import (
    AppsError,
    CallTimeoutError,
    ConfigurationError,
    NotFoundError,
    PermissionDeniedError,
    ProvisioningError,
    TransportError,
    ValidationError,
)
from .manifest import (
    LOCATION_CHANNEL_HEADER,
    LOCATION_COMMAND,
    LOCATION_POST_MENU,
    AWSLambdaDeploy,
    AWSLambdaFunction,
    Deploy,
    DeployType,
    HTTPDeploy,
    Location,
    Manifest,
    Permission,
    location_from_name,
    path_from_name,
)

__all__ = [
    # Manifest
    "AWSLambdaDeploy",
    "AWSLambdaFunction",
    "Deploy",
    "DeployType",
    "HTTPDeploy",
    "LOCATION_CHANNEL_HEADER",
    "LOCATION_COMMAND",
    "LOCATION_POST_MENU",
    "Location",
    "Manifest",
    "Permission",
    "location_from_name",
    "path_from_name",
    # Call protocol
    "App",
    "Binding",
    "Call",
    "CallRequest",
    "CallResponse",
    "CallResponseType",
    "Context",
    "decode_call_response",
    # Errors
    "AppsError",
    "CallTimeoutError",
    "ConfigurationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ProvisioningError",
    "TransportError",
    "ValidationError",
]
