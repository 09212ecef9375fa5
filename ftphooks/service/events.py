"""Turns FTP commands into named application events.

The protocol engine calls :meth:`EventDispatcher.dispatch_before` before it
executes a command and :meth:`EventDispatcher.dispatch_after` once the
command has completed. Listeners registered for the event a command maps
to are called in registration order with ``(session, request, event_name)``.
Listeners registered for ``"all"`` run first, for every command.

A listener vetoes by returning exactly ``False``: no further listeners run
and the dispatcher answers :attr:`DispatchResult.SKIP`, which the engine
honours by rejecting the command. Any other return value continues.
Exceptions raised by listeners are not caught here.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple, Union

from ftphooks.logging import get_logger

Listener = Callable[[Any, Any, str], Any]

ALL_EVENTS = "all"


class DispatchResult(str, Enum):
    CONTINUE = "continue"
    SKIP = "skip"


class FtpCommand(str, Enum):
    """FTP verbs that map to public events."""

    APPE = "APPE"
    DELE = "DELE"
    MKD = "MKD"
    PASS = "PASS"
    RETR = "RETR"
    RMD = "RMD"
    RNTO = "RNTO"
    SITE = "SITE"
    STOR = "STOR"
    STOU = "STOU"

    @classmethod
    def parse(cls, verb: str) -> Optional["FtpCommand"]:
        """Return the command for ``verb`` or None for verbs without events."""
        try:
            return cls(verb.strip().upper())
        except ValueError:
            return None


BEFORE_COMMAND_EVENTS: Mapping[FtpCommand, str] = MappingProxyType(
    {
        FtpCommand.DELE: "beforedelete",
        FtpCommand.STOR: "beforeupload",
        FtpCommand.RETR: "beforedownload",
        FtpCommand.RMD: "beforeremovedir",
        FtpCommand.MKD: "beforemakedir",
        FtpCommand.APPE: "beforeappend",
        FtpCommand.STOU: "beforeuploadunique",
        FtpCommand.RNTO: "beforerename",
        FtpCommand.SITE: "site",
    }
)

AFTER_COMMAND_EVENTS: Mapping[FtpCommand, str] = MappingProxyType(
    {
        FtpCommand.PASS: "login",
        FtpCommand.DELE: "delete",
        FtpCommand.STOR: "upload",
        FtpCommand.RETR: "download",
        FtpCommand.RMD: "removedir",
        FtpCommand.MKD: "makedir",
        FtpCommand.APPE: "append",
        FtpCommand.STOU: "uploadunique",
        FtpCommand.RNTO: "rename",
    }
)

EVENT_NAMES = frozenset(
    {ALL_EVENTS, *BEFORE_COMMAND_EVENTS.values(), *AFTER_COMMAND_EVENTS.values()}
)


class FtpRequest(Protocol):
    command: str


@dataclass(frozen=True)
class Request:
    command: str
    argument: Optional[str] = None


@dataclass(frozen=True, eq=False)
class ListenerHandle:
    """Token returned by :meth:`EventDispatcher.add_listener`."""

    event_name: str
    callback: Listener


def _command_verb(request: Union[FtpRequest, str]) -> str:
    verb = request if isinstance(request, str) else request.command
    return (verb or "").strip().upper()


class EventDispatcher:
    """Registry of named listeners plus the before/after command dispatch."""

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self._lock = threading.Lock()
        # copy-on-write: dispatch iterates whatever tuple it read under the lock
        self._listeners: Dict[str, Tuple[ListenerHandle, ...]] = {}

    def __repr__(self) -> str:
        return "<EventDispatcher>"

    # -- lifecycle hooks called by the protocol engine --

    def init(self, context: Any = None) -> None:
        self.logger.info("event_dispatcher_init")

    def destroy(self) -> None:
        self.logger.info("event_dispatcher_destroy")

    def on_connect(self, session: Any) -> DispatchResult:
        # not wired to any event
        return DispatchResult.CONTINUE

    def on_disconnect(self, session: Any) -> DispatchResult:
        return DispatchResult.CONTINUE

    # -- registry --

    def add_listener(self, event_name: str, callback: Listener) -> ListenerHandle:
        name = event_name.lower()
        handle = ListenerHandle(name, callback)
        with self._lock:
            self._listeners[name] = self._listeners.get(name, ()) + (handle,)
        if name not in EVENT_NAMES:
            self.logger.warning("listener_event_unknown", event_name=name)
        self.logger.info("listener_registered", event_name=name)
        return handle

    def remove_listener(
        self, event_name: str, listener: Union[ListenerHandle, Listener, None] = None
    ) -> None:
        """Remove every listener of an event, or only the given one.

        ``listener`` may be the handle returned by :meth:`add_listener`,
        which removes exactly that registration, or the callback itself,
        which removes every registration of it.
        """
        name = event_name.lower()
        with self._lock:
            current = self._listeners.get(name)
            if not current:
                return
            if listener is None:
                del self._listeners[name]
            else:
                if isinstance(listener, ListenerHandle):
                    remaining = tuple(h for h in current if h is not listener)
                else:
                    remaining = tuple(h for h in current if h.callback != listener)
                if remaining:
                    self._listeners[name] = remaining
                else:
                    del self._listeners[name]
        self.logger.info("listener_removed", event_name=name)

    def listeners(self, event_name: str) -> List[Listener]:
        with self._lock:
            handles = self._listeners.get(event_name.lower(), ())
        return [h.callback for h in handles]

    # -- dispatch --

    def dispatch_before(self, session: Any, request: Union[FtpRequest, str]) -> DispatchResult:
        self.logger.debug("dispatching_before_command", command=_command_verb(request))
        return self._dispatch(BEFORE_COMMAND_EVENTS, session, request)

    def dispatch_after(self, session: Any, request: Union[FtpRequest, str]) -> DispatchResult:
        self.logger.debug("dispatching_after_command", command=_command_verb(request))
        return self._dispatch(AFTER_COMMAND_EVENTS, session, request)

    def _dispatch(
        self,
        table: Mapping[FtpCommand, str],
        session: Any,
        request: Union[FtpRequest, str],
    ) -> DispatchResult:
        result = self._call_listeners(ALL_EVENTS, session, request)
        if result is DispatchResult.SKIP:
            return result
        command = FtpCommand.parse(_command_verb(request))
        event_name = table.get(command) if command is not None else None
        if event_name is None:
            return DispatchResult.CONTINUE
        self.logger.debug("dispatching_event", event_name=event_name)
        return self._call_listeners(event_name, session, request)

    def _call_listeners(
        self, event_name: str, session: Any, request: Union[FtpRequest, str]
    ) -> DispatchResult:
        with self._lock:
            handles = self._listeners.get(event_name, ())
        for handle in handles:
            if handle.callback(session, request, event_name) is False:
                self.logger.info("command_vetoed", event_name=event_name)
                return DispatchResult.SKIP
        return DispatchResult.CONTINUE
