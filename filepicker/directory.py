import asyncio
import logging
from functools import partial

from .cache import TTLCache
from .config import FetchConfig
from .errors import ValidationError, validate_path
from .events import EventChannel
from .fetch import FetchOrchestrator
from .models import ResultKind, ResultSet
from .provider import FileProvider

logger = logging.getLogger(__name__)


def is_within(path: str, base_path: str) -> bool:
    """True if path equals base_path or is nested under it."""
    if path == base_path:
        return True
    base = base_path.rstrip("/\\")
    return path.startswith(base + "/") or path.startswith(base + "\\")


class DirectoryController:
    """
    Tracks the directory being browsed and its history.

    ``path_history`` is a stack whose bottom is ``base_path`` and whose top is
    always ``current_path``. Back navigation never leaves ``base_path``.
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
        self.current_path = base_path
        self.path_history: list[str] = [base_path]
        self.orchestrator = FetchOrchestrator(
            cache,
            channel,
            kind=ResultKind.DIRECTORY,
            source="directory",
            label="Directory listing",
            timeout_seconds=fetch_config.directory_timeout_seconds,
            max_entries=fetch_config.max_directory_entries,
            warn_on_truncate=True,
        )

    @property
    def results(self) -> ResultSet:
        return self.orchestrator.results

    @property
    def can_go_back(self) -> bool:
        return len(self.path_history) > 1

    @property
    def relative_path(self) -> str:
        if is_within(self.current_path, self.base_path):
            return self.current_path[len(self.base_path.rstrip("/\\")):] or "/"
        return self.current_path

    def load(self) -> asyncio.Task | None:
        """(Re)load current_path through the orchestrator."""
        path = self.current_path
        logger.debug("Loading directory: %s", path)
        return self.orchestrator.resolve(
            path,
            partial(self.provider.list_directory, path),
            validate=partial(validate_path, path),
        )

    def navigate_into(self, path: str) -> asyncio.Task | None:
        """Descend into path, pushing it onto the history."""
        try:
            validate_path(path)
        except ValidationError as e:
            self.orchestrator.reject(path, e)
            return None
        self.path_history.append(path)
        self.current_path = path
        return self.load()

    def navigate_back(self) -> asyncio.Task | None:
        """
        Return to the previous directory.

        No-op when already at the bottom of the history or when the previous
        entry lies outside base_path.
        """
        if not self.can_go_back:
            return None
        target = self.path_history[-2]
        if not is_within(target, self.base_path):
            logger.warning("Refusing to navigate above %s to %s", self.base_path, target)
            return None
        self.path_history.pop()
        self.current_path = target
        return self.load()

    def reset(self) -> None:
        """Forget the browsing history and start over at base_path."""
        self.current_path = self.base_path
        self.path_history = [self.base_path]

    def cancel(self) -> None:
        self.orchestrator.cancel()

    async def settle(self) -> None:
        await self.orchestrator.settle()
