"""
Binding tree nodes for App-side UI bindings.

A binding tree is built from two node kinds:

- BindableAction: a leaf; owns a call handler served at a path
  derived from its name
- BindableMulti: a composite; owns an ordered list of children

Both implement the Bindable interface: init() registers whatever the
node needs on the App (call routes), binding() describes the node as
a Binding document for the /bindings call.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING

from appdeck.apps.binding import Binding
from appdeck.apps.call import Call
from appdeck.apps.manifest import location_from_name, path_from_name

if TYPE_CHECKING:
    from .app import App, CallHandler

logger = logging.getLogger(__name__)


class Bindable(ABC):
    """A node of an App's binding tree."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable label the node's location is derived from."""
        ...

    @abstractmethod
    def init(self, app: App) -> None:
        """
        Register the node (and its children) on the App.

        Raises:
            ValueError: If the node cannot be registered
        """
        ...

    @abstractmethod
    def binding(self) -> Binding:
        """Describe the node for the /bindings call."""
        ...


class BindableAction(Bindable):
    """
    A leaf binding that submits a call to its own handler.

    Example:
        send = BindableAction("Send Message", handle_send, description="Send a message")
        # served at POST /Send-Message, bound at location "Send-Message"
    """

    def __init__(
        self,
        name: str,
        handler: CallHandler,
        *,
        label: str | None = None,
        description: str = "",
        hint: str = "",
        icon: str = "",
    ):
        self._name = name
        self._handler = handler
        self._label = label
        self._description = description
        self._hint = hint
        self._icon = icon

    @property
    def name(self) -> str:
        return self._name

    @property
    def path(self) -> str:
        """Call path the handler is served at."""
        return path_from_name(self._name)

    def init(self, app: App) -> None:
        if not self._name:
            raise ValueError("binding name is required")
        if self._handler is None:
            raise ValueError(f"binding {self._name!r} has no handler")
        app.handle_call(self.path, self._handler)

    def binding(self) -> Binding:
        return Binding(
            location=location_from_name(self._name),
            label=self._label or self._name,
            description=self._description,
            hint=self._hint,
            icon=self._icon,
            submit=Call(path=self.path),
        )


class BindableMulti(Bindable):
    """A binding that groups child bindings, e.g. a command with subcommands."""

    def __init__(
        self,
        name: str,
        children: Sequence[Bindable] = (),
        *,
        label: str | None = None,
        description: str = "",
        hint: str = "",
        icon: str = "",
    ):
        self._name = name
        self._children = list(children)
        self._label = label
        self._description = description
        self._hint = hint
        self._icon = icon

    @property
    def name(self) -> str:
        return self._name

    @property
    def children(self) -> list[Bindable]:
        return list(self._children)

    def init(self, app: App) -> None:
        if not self._name:
            raise ValueError("binding name is required")
        seen: set[str] = set()
        for child in self._children:
            location = location_from_name(child.name)
            if location in seen:
                raise ValueError(f"duplicate binding {location!r} under {self._name!r}")
            seen.add(location)
        for child in self._children:
            child.init(app)
        logger.debug(f"[sdk] Initialized {self._name!r} with {len(self._children)} children")

    def binding(self) -> Binding:
        return Binding(
            location=location_from_name(self._name),
            label=self._label or self._name,
            description=self._description,
            hint=self._hint,
            icon=self._icon,
            bindings=[child.binding() for child in self._children],
        )


def init_all(bindables: Sequence[Bindable], app: App) -> None:
    """Initialize top-level bindables in order, stopping at the first failure."""
    for bindable in bindables:
        bindable.init(app)
