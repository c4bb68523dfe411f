"""
appdeck - build, deploy and call chat-platform Apps.

Apps are independently deployed services invoked through the Call
protocol, either over HTTP or as AWS Lambda functions:

- **appdeck.apps**: Manifest, Call protocol types and errors
- **appdeck.sdk**: compose and serve an App from binding trees
- **appdeck.upstream**: deliver calls over HTTP or AWS Lambda
- **appdeck.upstream.upaws**: provision and deploy Apps on AWS
- **appdeck.kv**: per-App, per-user key-value storage
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
