import asyncio
import logging
from functools import partial

from .cache import TTLCache
from .config import FetchConfig
from .errors import validate_search
from .events import EventChannel
from .fetch import FetchOrchestrator
from .models import ResultKind, ResultSet
from .provider import FileProvider

logger = logging.getLogger(__name__)


def search_key(base_path: str, query: str) -> str:
    return f"{base_path}:{query}"


class SearchController:
    """
    Debounced search under a fixed base path.

    Every query change cancels the pending debounce. Cached results for the
    new query are shown at once, otherwise an empty loading set; the provider
    is only asked once the query has been stable for the debounce delay.
    """

    def __init__(
        self,
        provider: FileProvider,
        cache: TTLCache,
        channel: EventChannel,
        base_path: str,
        fetch_config: FetchConfig | None = None,
    ):
        fetch_config = fetch_config or FetchConfig()
        self.provider = provider
        self.base_path = base_path
        self.query = ""
        self.debounce_seconds = fetch_config.search_debounce_seconds
        self._debounce: asyncio.Task | None = None
        self.orchestrator = FetchOrchestrator(
            cache,
            channel,
            kind=ResultKind.SEARCH,
            source="search",
            label="Search",
            timeout_seconds=fetch_config.search_timeout_seconds,
            max_entries=fetch_config.max_search_results,
        )

    @property
    def results(self) -> ResultSet:
        return self.orchestrator.results

    @property
    def is_active(self) -> bool:
        return bool(self.query.strip())

    @property
    def key(self) -> str:
        return search_key(self.base_path, self.query)

    def set_query(self, query: str) -> asyncio.Task | None:
        """
        Update the query.

        Returns:
            The debounce task for a non-blank query, else None.
        """
        self.query = query
        self._cancel_debounce()

        if not query.strip():
            self.orchestrator.clear()
            return None

        # A request for the previous query must not land on top of this one
        self.orchestrator.cancel()
        if not self.orchestrator.show_cached(self.key):
            self.orchestrator.show_loading(self.key)

        self._debounce = asyncio.get_running_loop().create_task(
            self._search_after_delay(query)
        )
        return self._debounce

    async def _search_after_delay(self, query: str) -> None:
        await asyncio.sleep(self.debounce_seconds)
        self._debounce = None
        self.search_now(query)

    def search_now(self, query: str | None = None) -> asyncio.Task | None:
        """Skip the debounce and fetch immediately."""
        query = self.query if query is None else query
        logger.debug("Searching for %r in %s", query, self.base_path)
        return self.orchestrator.resolve(
            search_key(self.base_path, query),
            partial(self.provider.search_files, self.base_path, query),
            validate=partial(validate_search, self.base_path, query),
        )

    def _cancel_debounce(self) -> None:
        task, self._debounce = self._debounce, None
        if task is not None and not task.done():
            task.cancel()

    def cancel(self) -> None:
        """Cancel the pending debounce and any in-flight search."""
        self._cancel_debounce()
        self.orchestrator.cancel()

    def reset(self) -> None:
        """Cancel everything and go back to an empty query."""
        self._cancel_debounce()
        self.query = ""
        self.orchestrator.clear()

    async def settle(self) -> None:
        """Wait for the debounce and the search it triggers to finish."""
        while True:
            pending = [t for t in (self._debounce, self.orchestrator.pending) if t is not None and not t.done()]
            if not pending:
                return
            await asyncio.wait(pending)
