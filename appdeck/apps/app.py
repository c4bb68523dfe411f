"""Installed App record: a manifest bound to the deploy type it runs on."""

from __future__ import annotations

from pydantic import BaseModel

from .manifest import DeployType, Manifest


class App(BaseModel):
    """
    An App as seen by the caller side.

    Upstreams dispatch on deploy_type; the matching settings are read
    from manifest.deploy.
    """

    manifest: Manifest
    deploy_type: DeployType

    @property
    def app_id(self) -> str:
        return self.manifest.app_id
