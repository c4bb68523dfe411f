"""
Call protocol types.

A Call addresses an operation on an App by path. The host sends a
CallRequest (the Call, the caller's context and input values) and the
App answers with a CallResponse. The schema is the same whatever
transport carries it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import AppsError, ValidationError


class Call(BaseModel):
    """An addressable operation on an App."""

    path: str
    expand: dict[str, str] | None = None
    state: Any = None


class Context(BaseModel):
    """Who is calling, and from where."""

    acting_user_id: str = ""
    acting_user_is_admin: bool = False
    app_id: str = ""
    location: str = ""
    channel_id: str = ""
    team_id: str = ""
    post_id: str = ""


class CallRequest(BaseModel):
    """A Call plus the caller context and submitted values."""

    call: Call
    context: Context = Field(default_factory=Context)
    values: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def for_path(cls, path: str, **values: Any) -> CallRequest:
        return cls(call=Call(path=path), values=values)


class CallResponseType(str, Enum):
    """Kinds of CallResponse."""

    OK = "ok"
    ERROR = "error"
    FORM = "form"
    NAVIGATE = "navigate"


class CallResponse(BaseModel):
    """The App's answer to a CallRequest."""

    type: CallResponseType = CallResponseType.OK
    text: str = ""
    data: Any = None
    error: str = ""
    navigate_to_url: str = ""

    @classmethod
    def text_response(cls, text: str) -> CallResponse:
        return cls(type=CallResponseType.OK, text=text)

    @classmethod
    def data_response(cls, data: Any) -> CallResponse:
        return cls(type=CallResponseType.OK, data=data)

    @classmethod
    def error_response(cls, err: Exception | str) -> CallResponse:
        """Wrap an error; AppsError kinds are kept in data for the host."""
        if isinstance(err, AppsError):
            return cls(type=CallResponseType.ERROR, error=str(err), data={"kind": err.kind})
        return cls(type=CallResponseType.ERROR, error=str(err))

    @property
    def is_error(self) -> bool:
        return self.type == CallResponseType.ERROR

    def to_json(self) -> bytes:
        return self.model_dump_json(exclude_none=True).encode()


def decode_call_response(data: bytes | str) -> CallResponse:
    """
    Decode the bytes returned by an Upstream.

    Raises:
        ValidationError: If the body is not a CallResponse document
    """
    try:
        return CallResponse.model_validate_json(data)
    except PydanticValidationError as e:
        raise ValidationError("malformed call response", detail=str(e)) from e
