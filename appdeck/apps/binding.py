"""UI binding document returned by the /bindings call."""

from __future__ import annotations

from pydantic import BaseModel, Field

from .call import Call
from .manifest import Location


class Binding(BaseModel):
    """A menu entry, command, or group of them, attached to a location."""

    location: Location = ""
    label: str = ""
    description: str = ""
    hint: str = ""
    icon: str = ""
    submit: Call | None = None
    bindings: list[Binding] = Field(default_factory=list)
