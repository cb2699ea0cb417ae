"""Event bus infrastructure for decoupled editor integration.

The prediction lifecycle publishes its transitions here so an editor
front-end can react without holding a reference to the manager.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


@dataclass(slots=True)
class Event:
    """Base class for all events in the system.

    Example::

        @dataclass(slots=True)
        class SuggestionReady(Event):
            request_id: str
            text: str
    """

    pass


# High-frequency event types that should not log each publish
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Prediction Events
# =============================================================================


@dataclass(slots=True)
class PredictionStarted(Event):
    """Emitted when a prediction request is dispatched.

    Attributes:
        request_id: Identifier of the new request (e.g., "pred-1a2b3c4d").
        context: Value of the cursor context the request was built for.
    """

    request_id: str
    context: str


@dataclass(slots=True)
class PredictionCanceled(Event):
    """Emitted when an in-flight prediction is cancelled.

    Attributes:
        request_id: Identifier of the cancelled request.
        reason: Short description of what triggered the cancellation.
    """

    request_id: str
    reason: str = ""


@dataclass(slots=True)
class PredictionFailed(Event):
    """Emitted when the backend fails to produce a prediction.

    Attributes:
        request_id: Identifier of the failed request.
        error: Error message for diagnostics (not shown to the user).
        error_type: Exception class name.
    """

    request_id: str
    error: str
    error_type: str | None = None


# =============================================================================
# Suggestion Events
# =============================================================================


@dataclass(slots=True)
class SuggestionReady(Event):
    """Emitted when a non-empty suggestion can be shown at the cursor."""

    request_id: str
    text: str


@dataclass(slots=True)
class SuggestionAccepted(Event):
    """Emitted when the user accepts the current suggestion."""

    request_id: str
    text: str


@dataclass(slots=True)
class SuggestionDismissed(Event):
    """Emitted when the current suggestion is discarded without being accepted."""

    request_id: str
    reason: str = ""


# =============================================================================
# UI Events
# =============================================================================


@dataclass(slots=True)
class NoticeRaised(Event):
    """Emitted when a notice should be shown to the user.

    Attributes:
        message: The notice text to display to the user.
    """

    message: str


@dataclass(slots=True)
class LifecycleStateChanged(Event):
    """Emitted on every lifecycle transition.

    Attributes:
        previous: Status value before the transition.
        current: Status value after the transition.
        status_text: Status-bar text for the new state.
    """

    previous: str
    current: str
    status_text: str


# Suggestion shrinking fires once per keystroke
_QUIET_EVENT_TYPES.add(LifecycleStateChanged)


class EventBus:
    """Synchronous publish-subscribe bus keyed by exact event type.

    Example::

        bus = EventBus()
        bus.subscribe(SuggestionReady, lambda event: print(event.text))
        bus.publish(SuggestionReady(request_id="pred-1", text="world"))

    Not thread-safe: drive it from the event loop thread.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: dict[type[Event], list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type[Event], handler: Handler) -> None:
        """Register ``handler``; subscribing twice means two calls per publish."""
        self._handlers[event_type].append(handler)
        logger.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[Event], handler: Handler) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            logger.debug("Unsubscribed %s from %s", _handler_name(handler), event_type.__name__)

    def publish(self, event: Event) -> None:
        """Call every handler for ``type(event)`` in registration order.

        A handler that raises is logged and the remaining handlers still run.
        """
        event_type = type(event)
        handlers = list(self._handlers.get(event_type, []))
        if event_type not in _QUIET_EVENT_TYPES:
            logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers))

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised exception for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


__all__ = [
    # Core infrastructure
    "Event",
    "EventBus",
    "Handler",
    # Prediction events
    "PredictionStarted",
    "PredictionCanceled",
    "PredictionFailed",
    # Suggestion events
    "SuggestionReady",
    "SuggestionAccepted",
    "SuggestionDismissed",
    # UI events
    "NoticeRaised",
    "LifecycleStateChanged",
]
