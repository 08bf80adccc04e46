"""
Error taxonomy for the picker core.

Expected failures never escape the data layer as exceptions: they are
captured into ``ResultSet.error`` (see fetch.py) and only surfaced when no
cached data is available to fall back on.
"""

from dataclasses import dataclass


class PickerError(Exception):
    """Base class for every failure the picker core knows how to recover from."""


class ValidationError(PickerError):
    """Empty or malformed path/query, rejected before any provider call."""


class ProviderError(PickerError):
    """Provider call rejected, raised, or returned a malformed shape."""


class FetchTimeoutError(PickerError, TimeoutError):
    """Provider call exceeded its time budget."""


@dataclass(frozen=True)
class CapacityWarning:
    """
    Informational notice that a result set was truncated.

    Not a failure: selection keeps working on the entries that are shown.
    """

    total: int
    shown: int
    label: str = "Directory"

    @property
    def message(self) -> str:
        return (
            f"{self.label} contains {self.total} items. "
            f"Showing first {self.shown} for performance."
        )

    def __str__(self) -> str:
        return self.message


def validate_path(path, what: str = "directory path") -> str:
    """
    Check that a path is a non-empty string.

    Returns:
        The path unchanged.

    Raises:
        ValidationError: If the path is not a string or is blank.
    """
    if not isinstance(path, str) or not path.strip():
        raise ValidationError(f"Invalid {what} provided")
    return path


def validate_search(base_path, query) -> None:
    """Check both components of a search cache key."""
    if not isinstance(query, str) or not query.strip():
        raise ValidationError("Invalid search query provided")
    if not isinstance(base_path, str) or not base_path.strip():
        raise ValidationError("Invalid base path for search")
