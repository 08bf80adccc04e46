__version__ = "0.1.0"

# Public API exports
from .cache import CacheEntry, CacheJanitor, CachePair, TTLCache, ensure_janitor
from .config import (
    AppConfig,
    CacheConfig,
    ConnectionConfig,
    FetchConfig,
    LogConfig,
    PickerConfig,
    SSHConfig,
    load_config,
)
from .directory import DirectoryController
from .errors import (
    CapacityWarning,
    FetchTimeoutError,
    PickerError,
    ProviderError,
    ValidationError,
)
from .events import (
    EntrySelected,
    EventChannel,
    FetchFailed,
    PickerClosed,
    PickerFaulted,
    ResultsChanged,
)
from .fetch import FetchOrchestrator
from .local_client import LocalFileProvider
from .models import FileEntry, NavigationState, ResultKind, ResultSet
from .navigation import Key, NavigationStateMachine
from .picker import FilePicker
from .provider import FileProvider
from .search import SearchController


def get_sftp_provider():
    """Lazy loader for SFTPProvider.

    Returns the SFTPProvider class, importing it on first use so that
    importing filepicker does not pull in paramiko.
    """
    from .sftp_client import SFTPProvider

    return SFTPProvider


__all__ = [
    "__version__",
    # Configuration
    "AppConfig",
    "PickerConfig",
    "CacheConfig",
    "FetchConfig",
    "ConnectionConfig",
    "SSHConfig",
    "LogConfig",
    "load_config",
    # Models and errors
    "FileEntry",
    "ResultKind",
    "ResultSet",
    "NavigationState",
    "PickerError",
    "ValidationError",
    "ProviderError",
    "FetchTimeoutError",
    "CapacityWarning",
    # Events
    "EventChannel",
    "ResultsChanged",
    "FetchFailed",
    "EntrySelected",
    "PickerClosed",
    "PickerFaulted",
    # Cache
    "CacheEntry",
    "TTLCache",
    "CachePair",
    "CacheJanitor",
    "ensure_janitor",
    # Providers
    "FileProvider",
    "LocalFileProvider",
    "get_sftp_provider",
    # Controllers
    "FetchOrchestrator",
    "DirectoryController",
    "SearchController",
    "Key",
    "NavigationStateMachine",
    "FilePicker",
]
