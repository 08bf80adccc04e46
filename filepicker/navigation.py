"""
Keyboard and pointer handling over whichever result set is on screen.

The machine has no explicit state enum: its state is the selection cursor
plus the directory history depth held by the DirectoryController.
"""

import logging
from collections.abc import Callable
from enum import Enum

from .directory import DirectoryController
from .events import EventChannel, ResultsChanged
from .models import FileEntry, ResultSet

logger = logging.getLogger(__name__)


class Key(str, Enum):
    ESCAPE = "Escape"
    ENTER = "Enter"
    ARROW_UP = "ArrowUp"
    ARROW_DOWN = "ArrowDown"
    ARROW_LEFT = "ArrowLeft"
    ARROW_RIGHT = "ArrowRight"


class NavigationStateMachine:
    def __init__(
        self,
        directory: DirectoryController,
        active_results: Callable[[], ResultSet],
        channel: EventChannel,
        on_select: Callable[[FileEntry], None],
        on_close: Callable[[], None],
    ):
        """
        Args:
            directory: Controller driven by ArrowLeft/ArrowRight.
            active_results: Returns the result set currently displayed.
            channel: Source of ResultsChanged notifications.
            on_select: Called with the chosen entry.
            on_close: Called when the user dismisses the picker.
        """
        self._directory = directory
        self._active_results = active_results
        self._channel = channel
        self._on_select = on_select
        self._on_close = on_close
        self.selected_index = 0
        # (kind, key, entries) of the set the cursor was last placed on
        self._shown: tuple | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self.attach()

    def attach(self) -> None:
        """Start following ResultsChanged with a fresh cursor."""
        self.selected_index = 0
        self._shown = None
        if self._unsubscribe is None:
            self._unsubscribe = self._channel.subscribe(ResultsChanged, self._on_results_changed)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_results_changed(self, event: ResultsChanged) -> None:
        self.sync(reset=event.entries_replaced)

    def sync(self, reset: bool = False) -> None:
        """
        Reconcile the cursor with the result set now on screen.

        The cursor goes back to 0 when the active set is a different one
        (other kind or key, or a new entry sequence) or when reset is
        requested, and is otherwise clamped to the entries shown.
        """
        results = self.results
        shown = self._shown
        self._shown = (results.kind, results.key, results.entries)
        if (
            reset
            or shown is None
            or shown[:2] != self._shown[:2]
            or shown[2] is not results.entries
        ):
            self.selected_index = 0
        else:
            self.selected_index = max(0, min(self.selected_index, len(results) - 1))

    @property
    def results(self) -> ResultSet:
        return self._active_results()

    @property
    def selected_entry(self) -> FileEntry | None:
        results = self.results
        if 0 <= self.selected_index < len(results):
            return results[self.selected_index]
        return None

    def handle_key(self, key: str) -> bool:
        """
        Apply one key press.

        Returns:
            True if the key belongs to the picker, False if the host should
            handle it.
        """
        try:
            key = Key(key)
        except ValueError:
            return False

        count = len(self.results)
        if key is Key.ESCAPE:
            self._on_close()
        elif key is Key.ENTER:
            entry = self.selected_entry
            if entry is not None:
                self._on_select(entry)
        elif key is Key.ARROW_UP:
            self.selected_index = max(0, self.selected_index - 1)
        elif key is Key.ARROW_DOWN:
            self.selected_index = max(0, min(count - 1, self.selected_index + 1))
        elif key is Key.ARROW_RIGHT:
            entry = self.selected_entry
            if entry is not None and entry.is_directory:
                self._directory.navigate_into(entry.path)
        elif key is Key.ARROW_LEFT:
            if self._directory.can_go_back:
                self._directory.navigate_back()
        return True

    def hover(self, index: int) -> None:
        if 0 <= index < len(self.results):
            self.selected_index = index

    def click(self, index: int) -> FileEntry | None:
        """Single click selects the entry, directory or not."""
        if not 0 <= index < len(self.results):
            return None
        self.selected_index = index
        entry = self.results[index]
        self._on_select(entry)
        return entry

    def double_click(self, index: int) -> bool:
        """Double click descends into a directory; files are ignored."""
        if not 0 <= index < len(self.results):
            return False
        entry = self.results[index]
        if not entry.is_directory:
            return False
        self._directory.navigate_into(entry.path)
        return True
