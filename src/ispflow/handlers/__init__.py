"""
Event handler registration.

The built-in lifecycle and notification handlers live in
``ispflow.handlers.lifecycle``.
"""

from ispflow.handlers.decorators import (
    get_handled_event_type,
    handles,
    is_event_handler,
)
from ispflow.handlers.registry import (
    EventHandler,
    EventHandlerRegistry,
    HandlerSignatureError,
    RegisteredHandler,
)

__all__ = [
    "handles",
    "get_handled_event_type",
    "is_event_handler",
    "EventHandler",
    "EventHandlerRegistry",
    "HandlerSignatureError",
    "RegisteredHandler",
]
