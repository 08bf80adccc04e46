from __future__ import annotations

import posixpath
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from .errors import CapacityWarning, PickerError


@dataclass(frozen=True)
class FileEntry:
    """Immutable snapshot of one file or directory reported by a provider."""

    path: str
    name: str
    is_directory: bool
    size: int = 0
    extension: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping) -> FileEntry:
        """
        Build a FileEntry from a provider mapping.

        Accepts both ``is_directory`` and ``isDirectory`` spellings. The
        extension is derived from the name when the mapping omits it.

        Raises:
            ValueError: If a required field is missing or has the wrong type.
        """
        try:
            path = data["path"]
            name = data.get("name") or posixpath.basename(path.rstrip("/"))
            if "is_directory" in data:
                is_directory = data["is_directory"]
            else:
                is_directory = data["isDirectory"]
        except (KeyError, AttributeError, TypeError) as e:
            raise ValueError(f"Malformed file entry: {data!r}") from e

        if not isinstance(path, str) or not isinstance(name, str):
            raise ValueError(f"Malformed file entry: {data!r}")
        if not isinstance(is_directory, bool):
            raise ValueError(f"Malformed file entry: {data!r}")

        size = data.get("size") or 0
        if not isinstance(size, int) or size < 0:
            raise ValueError(f"Invalid size for {path}: {size!r}")

        extension = data.get("extension")
        if extension is None and not is_directory:
            extension = extension_of(name)

        return cls(
            path=path,
            name=name,
            is_directory=is_directory,
            size=size,
            extension=extension,
        )


def extension_of(name: str) -> str | None:
    """Return the extension of a file name without the dot, or None."""
    stem, ext = posixpath.splitext(name)
    if not ext or not stem:
        return None
    return ext[1:]


class ResultKind(str, Enum):
    DIRECTORY = "directory"
    SEARCH = "search"


@dataclass(frozen=True)
class ResultSet:
    """
    What the picker currently displays for one controller.

    A new ResultSet is published on every change. ``entries`` keeps its
    identity across loading/error toggles so observers can tell a fresh
    listing apart from a status change.
    """

    kind: ResultKind
    entries: tuple[FileEntry, ...] = ()
    key: str | None = None
    is_showing_cached: bool = False
    is_loading: bool = False
    error: PickerError | None = None
    notice: CapacityWarning | None = None

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, index: int) -> FileEntry:
        return self.entries[index]

    @property
    def error_message(self) -> str | None:
        return str(self.error) if self.error is not None else None


@dataclass(frozen=True)
class NavigationState:
    """Snapshot of where the user is and what is highlighted."""

    current_path: str
    path_history: tuple[str, ...] = field(default_factory=tuple)
    selected_index: int = 0

    @property
    def depth(self) -> int:
        return len(self.path_history)
