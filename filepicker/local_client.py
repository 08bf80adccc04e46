"""
Local filesystem provider.

Lists and searches directories on the machine running the picker. All disk
access happens in a worker thread so the event loop stays responsive.
"""

import logging
import os
from collections import deque

from .models import FileEntry, extension_of
from .provider import name_matches, run_blocking, sort_entries

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 50


class LocalFileProvider:
    def __init__(self, max_results: int = DEFAULT_MAX_RESULTS, show_hidden: bool = False):
        self.max_results = max_results
        self.show_hidden = show_hidden

    def _entry(self, dir_entry: os.DirEntry) -> FileEntry:
        is_dir = dir_entry.is_dir()
        size = 0
        if not is_dir:
            try:
                size = dir_entry.stat().st_size
            except OSError:
                # Broken symlinks and races with deletion
                size = 0
        return FileEntry(
            path=dir_entry.path,
            name=dir_entry.name,
            is_directory=is_dir,
            size=size,
            extension=None if is_dir else extension_of(dir_entry.name),
        )

    def _visible(self, name: str) -> bool:
        return self.show_hidden or not name.startswith(".")

    def list_dir(self, path: str) -> list[FileEntry]:
        """List contents of a directory."""
        logger.debug("Listing directory: %s", path)
        with os.scandir(path) as it:
            entries = [self._entry(e) for e in it if self._visible(e.name)]
        logger.debug("Listed %d entries in %s", len(entries), path)
        return sort_entries(entries)

    def search(self, base_path: str, query: str) -> list[FileEntry]:
        """Walk base_path breadth-first collecting names that contain query."""
        logger.debug("Searching %s for %r", base_path, query)
        results: list[FileEntry] = []
        pending = deque([base_path])
        while pending and len(results) < self.max_results:
            current = pending.popleft()
            try:
                with os.scandir(current) as it:
                    children = sorted(it, key=lambda e: e.name.lower())
            except OSError as e:
                if current == base_path:
                    raise
                logger.debug("Skipping unreadable directory %s: %s", current, e)
                continue

            for child in children:
                if not self._visible(child.name):
                    continue
                if name_matches(child.name, query):
                    results.append(self._entry(child))
                    if len(results) >= self.max_results:
                        break
                if child.is_dir(follow_symlinks=False):
                    pending.append(child.path)

        logger.debug("Search for %r in %s found %d entries", query, base_path, len(results))
        return results

    async def list_directory(self, path: str) -> list[FileEntry]:
        return await run_blocking(f"list_directory({path})", self.list_dir, path)

    async def search_files(self, base_path: str, query: str) -> list[FileEntry]:
        return await run_blocking(f"search_files({base_path}, {query})", self.search, base_path, query)
