"""
Typed events the picker publishes to its host.

Hosts subscribe per event type instead of listening for ambient broadcasts.
Handlers run synchronously on the publishing thread (the event loop).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass

from .errors import PickerError
from .models import FileEntry, ResultSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResultsChanged:
    source: str
    results: ResultSet
    previous: ResultSet | None = None

    @property
    def entries_replaced(self) -> bool:
        return self.previous is None or self.previous.entries is not self.results.entries


@dataclass(frozen=True)
class FetchFailed:
    """A provider call failed. ``recovered`` means cached data stayed on screen."""

    source: str
    key: str | None
    error: PickerError
    recovered: bool


@dataclass(frozen=True)
class EntrySelected:
    entry: FileEntry


@dataclass(frozen=True)
class PickerClosed:
    pass


@dataclass(frozen=True)
class PickerFaulted:
    error: BaseException
    context: str


Event = ResultsChanged | FetchFailed | EntrySelected | PickerClosed | PickerFaulted


class EventChannel:
    """Synchronous publish/subscribe keyed by event class."""

    def __init__(self):
        self._handlers: dict[type, list[Callable]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Callable) -> Callable[[], None]:
        """
        Register handler for event_type.

        Returns:
            A callable that removes the subscription.
        """
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            try:
                self._handlers[event_type].remove(handler)
            except ValueError:
                pass

        return unsubscribe

    def publish(self, event) -> None:
        for handler in list(self._handlers.get(type(event), ())):
            handler(event)

    def handler_count(self, event_type: type) -> int:
        return len(self._handlers.get(event_type, ()))
