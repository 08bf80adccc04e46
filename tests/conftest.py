"""
Shared pytest fixtures for filepicker tests.
"""

import asyncio
from collections.abc import Generator
from pathlib import Path

import pytest

from filepicker.cache import CachePair, TTLCache, shutdown_janitor
from filepicker.config import CacheConfig, FetchConfig, PickerConfig
from filepicker.events import EventChannel
from filepicker.models import FileEntry


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """
    In-memory FileProvider.

    ``listings``/``searches`` map a path or (base, query) to a list of entries
    or an exception to raise. ``gates`` hold a call until the test sets the
    event, which is how tests order overlapping fetches.
    """

    def __init__(self):
        self.listings: dict = {}
        self.searches: dict = {}
        self.gates: dict = {}
        self.delay = 0.0
        self.list_calls: list[str] = []
        self.search_calls: list[tuple[str, str]] = []

    def gate(self, key) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[key] = event
        return event

    async def _respond(self, key, table):
        if self.delay:
            await asyncio.sleep(self.delay)
        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()
        result = table.get(key, [])
        if isinstance(result, BaseException):
            raise result
        return result

    async def list_directory(self, path: str):
        self.list_calls.append(path)
        return await self._respond(path, self.listings)

    async def search_files(self, base_path: str, query: str):
        self.search_calls.append((base_path, query))
        return await self._respond((base_path, query), self.searches)


def make_entries(prefix: str, count: int, directory: str = "/root") -> list[FileEntry]:
    return [
        FileEntry(
            path=f"{directory}/{prefix}{i}.txt",
            name=f"{prefix}{i}.txt",
            is_directory=False,
            size=i,
            extension="txt",
        )
        for i in range(count)
    ]


@pytest.fixture(autouse=True)
def _stop_janitor() -> Generator[None, None, None]:
    """Never leak the process-wide janitor thread between tests."""
    yield
    shutdown_janitor()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def channel() -> EventChannel:
    return EventChannel()


@pytest.fixture
def caches(clock: FakeClock) -> CachePair:
    """Isolated directory and search caches on the fake clock."""
    return CachePair.create(CacheConfig(), timer=clock)


@pytest.fixture
def directory_cache(caches: CachePair) -> TTLCache:
    return caches.directories


@pytest.fixture
def fetch_config() -> FetchConfig:
    """Production limits, but a short debounce and timeouts so tests stay fast."""
    return FetchConfig(
        directory_timeout_seconds=1,
        search_timeout_seconds=1,
        search_debounce_ms=50,
    )


@pytest.fixture
def picker_config() -> PickerConfig:
    return PickerConfig(base_path="/root")


@pytest.fixture
def root_listing() -> list[FileEntry]:
    return [
        FileEntry(path="/root/a", name="a", is_directory=True, size=0),
        FileEntry(path="/root/b.txt", name="b.txt", is_directory=False, size=120, extension="txt"),
    ]


@pytest.fixture
def tmp_config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Creates a temporary INI configuration file for config tests.

    Returns:
        Path to the temporary config file.
    """
    config_content = """[picker]
base_path = /srv/project
initial_query = readme

[cache]
ttl_seconds = 120
max_entries = 40
max_memory_mb = 8
cleanup_interval_seconds = 30

[fetch]
directory_timeout_seconds = 10
search_timeout_seconds = 20
search_debounce_ms = 150
max_directory_entries = 500
max_search_results = 25

[connection]
timeout_seconds = 45
retry_attempts = 5
retry_delay_seconds = 2

[logging]
level = DEBUG
file = test.log
console = false
"""
    config_path = tmp_path / "test_config.ini"
    config_path.write_text(config_content, encoding="utf-8")
    yield config_path


@pytest.fixture
def minimal_config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """Creates a minimal INI configuration file with only the base path."""
    config_path = tmp_path / "minimal_config.ini"
    config_path.write_text("[picker]\nbase_path = /data\n", encoding="utf-8")
    yield config_path


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    """
    A small directory tree on disk:

        tree/
          docs/readme.md
          docs/guide/intro.md
          src/main.py
          .hidden/secret.txt
          notes.txt
    """
    root = tmp_path / "tree"
    (root / "docs" / "guide").mkdir(parents=True)
    (root / "src").mkdir()
    (root / ".hidden").mkdir()
    (root / "docs" / "readme.md").write_text("# readme\n", encoding="utf-8")
    (root / "docs" / "guide" / "intro.md").write_text("intro\n", encoding="utf-8")
    (root / "src" / "main.py").write_text("print('hi')\n", encoding="utf-8")
    (root / ".hidden" / "secret.txt").write_text("x", encoding="utf-8")
    (root / "notes.txt").write_text("12345", encoding="utf-8")
    return root
