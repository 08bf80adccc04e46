"""
File provider protocol definition.

Defines the two asynchronous operations the picker core needs from a
filesystem backend. LocalFileProvider and SFTPProvider both implement it, and
tests substitute in-memory fakes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Protocol, runtime_checkable

from .errors import ProviderError
from .models import FileEntry

logger = logging.getLogger(__name__)


@runtime_checkable
class FileProvider(Protocol):
    """Protocol for the backend the picker browses.

    Implementations must be safe to call from the event loop; blocking work
    belongs in a worker thread (see run_blocking).
    """

    async def list_directory(self, path: str) -> Sequence[FileEntry]:
        """List the direct children of a directory.

        Args:
            path: Absolute path of the directory.

        Returns:
            Entries in display order.

        Raises:
            ProviderError: On I/O failure.
        """
        ...

    async def search_files(self, base_path: str, query: str) -> Sequence[FileEntry]:
        """Find entries under base_path matching query.

        Implementations are expected to cap results (50 by default), but
        callers must not rely on it.

        Raises:
            ProviderError: On I/O failure.
        """
        ...


def name_matches(name: str, query: str) -> bool:
    """Case-insensitive substring match used by the bundled providers."""
    return query.strip().lower() in name.lower()


def sort_entries(entries: list[FileEntry]) -> list[FileEntry]:
    """Directories first, then case-insensitive by name."""
    return sorted(entries, key=lambda e: (not e.is_directory, e.name.lower()))


async def run_blocking(operation: str, func: Callable, *args):
    """
    Run a blocking provider call in a worker thread.

    OSError (including FileNotFoundError/PermissionError) is translated to
    ProviderError so the orchestrator sees a single failure type.
    """
    try:
        return await asyncio.to_thread(func, *args)
    except ProviderError:
        raise
    except OSError as e:
        logger.debug("%s failed: %s", operation, e)
        raise ProviderError(f"{operation} failed: {e}") from e
