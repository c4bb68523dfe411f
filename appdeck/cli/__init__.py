"""Command line tools for appdeck."""

from .appsctl import build_parser, hello_serverless, main
from .host import HostClient

__all__ = ["build_parser", "hello_serverless", "main", "HostClient"]
