"""
Last-resort guard around the picker's host-facing entry points.

Expected failures (validation, provider, timeout) never reach this layer; they
travel inside ResultSet.error. The supervisor only deals with bugs: it logs
them, remembers the fault, tells the host, and lets the user retry.
"""

import asyncio
import logging
from collections.abc import Callable

from .events import EventChannel, PickerFaulted

logger = logging.getLogger(__name__)


class Supervisor:
    def __init__(self, channel: EventChannel):
        self._channel = channel
        self.fault: BaseException | None = None
        self.fault_context: str | None = None

    @property
    def has_fault(self) -> bool:
        return self.fault is not None

    def record(self, error: BaseException, context: str) -> None:
        logger.error("File picker fault in %s: %s", context, error, exc_info=error)
        self.fault = error
        self.fault_context = context
        self._channel.publish(PickerFaulted(error=error, context=context))

    def call(self, context: str, func: Callable, *args, default=None, **kwargs):
        """Run func, turning an unexpected exception into a recorded fault."""
        try:
            return func(*args, **kwargs)
        except Exception as e:
            self.record(e, context)
            return default

    def watch(self, task: asyncio.Task | None, context: str) -> asyncio.Task | None:
        """Record a fault if a background task dies with an exception."""
        if task is None:
            return None

        def _done(t: asyncio.Task) -> None:
            if t.cancelled():
                return
            error = t.exception()
            if error is not None:
                self.record(error, context)

        task.add_done_callback(_done)
        return task

    def clear(self) -> None:
        self.fault = None
        self.fault_context = None
