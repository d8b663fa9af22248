"""
Publish/subscribe registry used for price and opportunity fan-out.
Handlers are invoked synchronously, in subscription order.
"""

import logging
from typing import Any, Callable, Optional

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .monitor import Logger


_log = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class Subscribers:
    """
    Ordered set of handlers with unsubscribe handles.

    Each publish iterates over a snapshot of the handlers taken when the
    publish starts, so handlers may subscribe or unsubscribe (including
    themselves) while an event is being delivered. A handler added during
    delivery first sees the next event; a handler removed during delivery
    is still called for the current one if it had not been reached yet.
    """

    def __init__(self, name: str, logger: Optional["Logger"] = None):
        self.name = name
        self.logger = logger
        self._handlers: list[Callable[..., Any]] = []

    def subscribe(self, handler: Callable[..., Any]) -> Unsubscribe:
        """Register a handler. Returns a callable that removes it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass  # already removed

        return unsubscribe

    def publish(self, *args: Any) -> None:
        """Deliver an event to every handler subscribed at call time."""
        for handler in list(self._handlers):
            try:
                handler(*args)
            except Exception as e:
                # One faulty subscriber must not starve the others
                name = getattr(handler, "__qualname__", repr(handler))
                if self.logger:
                    self.logger.error(
                        "subscriber_error",
                        channel=self.name,
                        handler=name,
                        error=str(e),
                    )
                else:
                    _log.exception("subscriber %s on %s failed", name, self.name)

    def __len__(self) -> int:
        return len(self._handlers)
