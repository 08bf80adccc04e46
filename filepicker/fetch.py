"""
Stale-while-revalidate fetching.

A FetchOrchestrator owns the ResultSet of one controller. Each ``resolve``
call synchronously shows whatever the cache holds for the key, then races the
provider call against a timeout and reconciles the display with the outcome.
Only the most recent resolve may commit: every new request bumps a generation
counter and cancels the task it supersedes.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import replace

from .cache import TTLCache
from .errors import (
    CapacityWarning,
    FetchTimeoutError,
    PickerError,
    ProviderError,
    ValidationError,
)
from .events import EventChannel, FetchFailed, ResultsChanged
from .models import FileEntry, ResultKind, ResultSet

logger = logging.getLogger(__name__)

FetchOp = Callable[[], Awaitable[Sequence]]


class FetchOrchestrator:
    def __init__(
        self,
        cache: TTLCache,
        channel: EventChannel,
        *,
        kind: ResultKind,
        source: str,
        label: str,
        timeout_seconds: float,
        max_entries: int,
        warn_on_truncate: bool = False,
    ):
        """
        Args:
            cache: Cache dedicated to this kind of result.
            channel: Where ResultsChanged/FetchFailed are published.
            kind: Kind stamped on every published ResultSet.
            source: Name of the owning controller, used in events and logs.
            label: Human label used in error messages ("Directory listing").
            timeout_seconds: Budget for one provider call.
            max_entries: Results beyond this are dropped before caching.
            warn_on_truncate: Attach a CapacityWarning when truncating.
        """
        self._cache = cache
        self._channel = channel
        self.kind = kind
        self.source = source
        self.label = label
        self.timeout_seconds = timeout_seconds
        self.max_entries = max_entries
        self.warn_on_truncate = warn_on_truncate

        self.results = ResultSet(kind=kind)
        self._generation = 0
        self._task: asyncio.Task | None = None
        # Called with every fetch task created, e.g. to supervise it
        self.task_hook: Callable[[asyncio.Task], object] | None = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending(self) -> asyncio.Task | None:
        if self._task is not None and not self._task.done():
            return self._task
        return None

    def _publish(self, results: ResultSet) -> None:
        previous, self.results = self.results, results
        self._channel.publish(ResultsChanged(source=self.source, results=results, previous=previous))

    def _supersede(self) -> int:
        """Invalidate every earlier request and cancel the in-flight one."""
        self._generation += 1
        task, self._task = self._task, None
        if task is not None and not task.done():
            logger.debug("%s: cancelling superseded fetch", self.source)
            task.cancel()
        return self._generation

    def resolve(
        self,
        cache_key: str,
        fetch_op: FetchOp,
        *,
        validate: Callable[[], object] | None = None,
    ) -> asyncio.Task | None:
        """
        Show cached data for cache_key now and start a fresh fetch.

        Must be called from a running event loop.

        Args:
            cache_key: Key in this orchestrator's cache.
            fetch_op: Zero-argument callable returning the provider awaitable.
            validate: Optional check of the key's components; raising
                ValidationError aborts before any provider call.

        Returns:
            The fetch task (resolving to the committed ResultSet, or None if
            superseded), or None if validation failed.
        """
        generation = self._supersede()

        if validate is not None:
            try:
                validate()
            except ValidationError as e:
                self._fail(generation, cache_key, e)
                return None

        # show_cached() already counted the read that put this key on screen
        if self.results.key == cache_key and self.results.is_showing_cached:
            cached = self._cache.peek(cache_key)
        else:
            cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("%s: showing cached results for %s", self.source, cache_key)
            self._publish(
                ResultSet(
                    kind=self.kind,
                    entries=cached,
                    key=cache_key,
                    is_showing_cached=True,
                    is_loading=True,
                )
            )
        else:
            self._publish(ResultSet(kind=self.kind, key=cache_key, is_loading=True))

        self._task = asyncio.get_running_loop().create_task(
            self._fetch(generation, cache_key, fetch_op)
        )
        if self.task_hook is not None:
            self.task_hook(self._task)
        return self._task

    async def _fetch(self, generation: int, cache_key: str, fetch_op: FetchOp) -> ResultSet | None:
        try:
            raw = await asyncio.wait_for(fetch_op(), timeout=self.timeout_seconds)
            entries = self._coerce(raw)
        except asyncio.TimeoutError:
            error = FetchTimeoutError(
                f"{self.label} timed out after {self.timeout_seconds:g} seconds"
            )
        except PickerError as e:
            error = e
        except Exception as e:
            error = ProviderError(f"{self.label} failed: {e}")
        else:
            return self._succeed(generation, cache_key, entries)
        return self._fail(generation, cache_key, error)

    def _coerce(self, raw) -> list[FileEntry]:
        if not isinstance(raw, (list, tuple)):
            raise ProviderError(f"Invalid response from {self.label.lower()}")
        entries = []
        for item in raw:
            if isinstance(item, FileEntry):
                entries.append(item)
            elif isinstance(item, Mapping):
                try:
                    entries.append(FileEntry.from_dict(item))
                except ValueError as e:
                    raise ProviderError(f"Invalid response from {self.label.lower()}: {e}") from e
            else:
                raise ProviderError(
                    f"Invalid response from {self.label.lower()}: unexpected {type(item).__name__}"
                )
        return entries

    def _succeed(self, generation: int, cache_key: str, entries: list[FileEntry]) -> ResultSet | None:
        if generation != self._generation:
            logger.debug("%s: discarding superseded result for %s", self.source, cache_key)
            return None

        total = len(entries)
        notice = None
        if total > self.max_entries:
            entries = entries[: self.max_entries]
            if self.warn_on_truncate:
                logger.warning("%s: large result for %s: %d items", self.source, cache_key, total)
                notice = CapacityWarning(total=total, shown=self.max_entries)
            else:
                logger.debug("%s: capped %d results to %d", self.source, total, self.max_entries)

        logger.debug("%s: loaded %d fresh entries for %s", self.source, len(entries), cache_key)
        data = tuple(entries)
        self._cache.set(cache_key, data)
        results = ResultSet(kind=self.kind, entries=data, key=cache_key, notice=notice)
        self._publish(results)
        return results

    def _fail(self, generation: int, cache_key: str, error: PickerError) -> ResultSet | None:
        if generation != self._generation:
            logger.debug("%s: ignoring failure of superseded request: %s", self.source, error)
            return None

        cached = self._cache.peek(cache_key) if cache_key else None
        recovered = cached is not None
        if recovered:
            logger.warning(
                "%s for %s failed, keeping cached data: %s", self.label, cache_key, error
            )
            if self.results.key == cache_key and self.results.is_showing_cached:
                results = replace(self.results, is_loading=False)
            else:
                results = ResultSet(
                    kind=self.kind, entries=cached, key=cache_key, is_showing_cached=True
                )
        else:
            logger.error("%s for %s failed: %s", self.label, cache_key, error)
            results = ResultSet(kind=self.kind, key=cache_key, error=error)

        self._publish(results)
        self._channel.publish(
            FetchFailed(source=self.source, key=cache_key, error=error, recovered=recovered)
        )
        return results

    def show_cached(self, cache_key: str) -> bool:
        """Display the cached value for cache_key, if any, without fetching."""
        cached = self._cache.get(cache_key)
        if cached is None:
            return False
        logger.debug("%s: immediately showing cached results for %s", self.source, cache_key)
        self._publish(
            ResultSet(kind=self.kind, entries=cached, key=cache_key, is_showing_cached=True)
        )
        return True

    def show_loading(self, cache_key: str) -> None:
        """Display an empty, loading set for cache_key until a fetch answers."""
        self._publish(ResultSet(kind=self.kind, key=cache_key, is_loading=True))

    def reject(self, cache_key: str, error: PickerError) -> None:
        """
        Report a request refused before it reached resolve().

        The current display is kept when it has something to show.
        """
        if self.results.entries:
            logger.warning("%s: rejected %r: %s", self.source, cache_key, error)
            self._channel.publish(
                FetchFailed(source=self.source, key=cache_key, error=error, recovered=True)
            )
            return
        self._fail(self._generation, cache_key, error)

    def cancel(self) -> None:
        """Drop any in-flight request, keeping what is displayed."""
        self._supersede()
        if self.results.is_loading:
            self._publish(replace(self.results, is_loading=False))

    def clear(self) -> None:
        """Drop any in-flight request and display nothing."""
        self._supersede()
        if self.results != ResultSet(kind=self.kind):
            self._publish(ResultSet(kind=self.kind))

    async def settle(self) -> None:
        """Wait until no fetch is in flight."""
        while self.pending is not None:
            await asyncio.wait([self.pending])
