"""
FilePicker - browse a directory tree and search it.

Composes the directory and search controllers, the navigation state machine,
the event channel and the supervisor behind the surface a host UI needs:
mount/unmount, keys, clicks, query changes, and read-only views of what to
render.
"""

import asyncio
import logging
from collections.abc import Callable

from .cache import CachePair, ensure_janitor
from .config import CacheConfig, FetchConfig, PickerConfig
from .directory import DirectoryController
from .events import EntrySelected, EventChannel, PickerClosed
from .models import FileEntry, NavigationState, ResultSet
from .navigation import Key, NavigationStateMachine
from .provider import FileProvider
from .search import SearchController
from .supervisor import Supervisor

logger = logging.getLogger(__name__)


class FilePicker:
    """
    Example:
        picker = FilePicker(provider, caches, PickerConfig("/srv/project"),
                            on_select=print, on_close=hide)
        picker.mount()
        picker.handle_key("ArrowDown")
    """

    def __init__(
        self,
        provider: FileProvider,
        caches: CachePair,
        config: PickerConfig,
        on_select: Callable[[FileEntry], None] | None = None,
        on_close: Callable[[], None] | None = None,
        fetch_config: FetchConfig | None = None,
        cache_config: CacheConfig | None = None,
        channel: EventChannel | None = None,
    ):
        self.config = config
        self.caches = caches
        self.channel = channel or EventChannel()
        self.supervisor = Supervisor(self.channel)
        self._cache_config = cache_config or CacheConfig()
        self._mounted = False
        self._on_select = on_select
        self._on_close = on_close
        self._subscriptions: list[Callable[[], None]] = []

        self.directory = DirectoryController(
            provider, caches.directories, self.channel, config.base_path, fetch_config
        )
        self.search = SearchController(
            provider, caches.searches, self.channel, config.base_path, fetch_config
        )
        self.navigation = NavigationStateMachine(
            self.directory,
            lambda: self.results,
            self.channel,
            on_select=self._select,
            on_close=self._close,
        )
        self.directory.orchestrator.task_hook = lambda t: self.supervisor.watch(t, "directory fetch")
        self.search.orchestrator.task_hook = lambda t: self.supervisor.watch(t, "search fetch")
        # The cursor follows results only while mounted
        self.navigation.detach()

    def _select(self, entry: FileEntry) -> None:
        logger.debug("Selected %s", entry.path)
        self.channel.publish(EntrySelected(entry=entry))

    def _close(self) -> None:
        self.channel.publish(PickerClosed())

    # Lifecycle

    @property
    def is_mounted(self) -> bool:
        return self._mounted

    def _subscribe_host(self) -> None:
        on_select, on_close = self._on_select, self._on_close
        if on_select is not None:
            self._subscriptions.append(
                self.channel.subscribe(EntrySelected, lambda e: on_select(e.entry))
            )
        if on_close is not None:
            self._subscriptions.append(self.channel.subscribe(PickerClosed, lambda e: on_close()))

    def mount(self) -> None:
        """
        Start browsing. Must be called from a running event loop.

        Every mount starts over at base_path with an empty query and the
        cursor on the first entry; only the caches carry over from an
        earlier mount.
        """
        if self._mounted:
            return
        self._mounted = True
        self.directory.reset()
        self.search.reset()
        self.navigation.attach()
        self._subscribe_host()
        ensure_janitor(
            self.caches.directories,
            self.caches.searches,
            interval_seconds=self._cache_config.cleanup_interval_seconds,
        )
        logger.debug("Mounting picker at %s", self.config.base_path)
        self.directory.load()
        if self.config.initial_query:
            self.set_query(self.config.initial_query)

    def unmount(self) -> None:
        """Stop browsing: cancel timers and fetches, drop subscriptions. Caches survive."""
        if not self._mounted:
            return
        self._mounted = False
        self.search.cancel()
        self.directory.cancel()
        self.navigation.detach()
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()
        logger.debug("Unmounted picker at %s", self.config.base_path)

    async def settle(self) -> None:
        """Wait until no debounce or fetch is pending."""
        await asyncio.gather(self.directory.settle(), self.search.settle())

    # Input

    def set_query(self, query: str) -> None:
        if not self._mounted:
            return
        task = self.supervisor.call("query change", self.search.set_query, query)
        self.supervisor.watch(task, "search debounce")
        # Switching between the listing and the search results may not publish
        self.navigation.sync()

    def handle_key(self, key: str) -> bool:
        """Route a key press. Returns False for keys the picker ignores."""
        if not self._mounted:
            return False
        if self.supervisor.has_fault and key != Key.ESCAPE:
            return False
        return self.supervisor.call(f"key {key}", self.navigation.handle_key, key, default=False)

    def click(self, index: int) -> FileEntry | None:
        if not self._mounted or self.supervisor.has_fault:
            return None
        return self.supervisor.call("click", self.navigation.click, index)

    def double_click(self, index: int) -> bool:
        if not self._mounted or self.supervisor.has_fault:
            return False
        return self.supervisor.call("double click", self.navigation.double_click, index, default=False)

    def hover(self, index: int) -> None:
        if self._mounted and not self.supervisor.has_fault:
            self.navigation.hover(index)

    def retry(self) -> None:
        """Clear a recorded fault and reload the current directory."""
        self.supervisor.clear()
        if self._mounted:
            self.directory.load()
            if self.search.is_active:
                self.search.search_now()

    # Views

    @property
    def fault(self) -> BaseException | None:
        return self.supervisor.fault

    @property
    def directory_results(self) -> ResultSet:
        return self.directory.results

    @property
    def search_results(self) -> ResultSet:
        return self.search.results

    @property
    def results(self) -> ResultSet:
        """Search results while a query is active, else the directory listing."""
        if self.search.is_active:
            return self.search.results
        return self.directory.results

    @property
    def selected_index(self) -> int:
        return self.navigation.selected_index

    @property
    def selected_entry(self) -> FileEntry | None:
        return self.navigation.selected_entry

    @property
    def navigation_state(self) -> NavigationState:
        return NavigationState(
            current_path=self.directory.current_path,
            path_history=tuple(self.directory.path_history),
            selected_index=self.navigation.selected_index,
        )

    @property
    def current_path(self) -> str:
        return self.directory.current_path

    @property
    def relative_path(self) -> str:
        return self.directory.relative_path

    @property
    def can_go_back(self) -> bool:
        return self.directory.can_go_back
