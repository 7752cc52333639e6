"""Event wire between the session manager and its transports."""

from termhost.session.wire import EventType, Wire, WireEvent

__all__ = ["EventType", "Wire", "WireEvent"]
