"""
SFTP provider implementation using paramiko.

Browses a remote host over SSH/SFTP. Calls are blocking and serialized by a
lock; the async FileProvider methods push them onto worker threads.
"""

import errno
import logging
import os
import posixpath
import stat
import threading
import time
from collections import deque
from pathlib import Path

import paramiko

from .config import ConnectionConfig, SSHConfig
from .errors import ProviderError
from .models import FileEntry, extension_of
from .provider import name_matches, run_blocking, sort_entries

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 50
# Remote walks are slow; stop descending after this many directories
DEFAULT_MAX_SEARCH_DIRS = 500

KNOWN_HOSTS = Path.home() / ".ssh" / "known_hosts"

# Checked in order: AuthenticationException is an SSHException and
# TimeoutError is an OSError.
CONNECT_ERRORS = (
    (paramiko.AuthenticationException, PermissionError, "SSH authentication failed"),
    (TimeoutError, TimeoutError, "SSH connection timeout"),
    (paramiko.SSHException, ConnectionError, "SSH error"),
    (OSError, ConnectionError, "SSH connection failed"),
)

IO_ERROR_MESSAGES = {
    errno.ENOENT: "No such file or directory",
    errno.EACCES: "Permission denied",
}


class TrustOnFirstUsePolicy(paramiko.MissingHostKeyPolicy):
    """
    Accept and remember unknown host keys, refuse changed ones.

    Same model as OpenSSH's ``StrictHostKeyChecking=accept-new``.
    """

    def __init__(self, known_hosts: Path = KNOWN_HOSTS):
        self.known_hosts = known_hosts

    def missing_host_key(self, client, hostname, key):
        host_keys = client.get_host_keys()
        recorded = (host_keys.lookup(hostname) or {}).get(key.get_name())
        if recorded is not None and recorded != key:
            raise paramiko.SSHException(
                f"Host key for {hostname} has CHANGED. Remove the stale entry from "
                f"{self.known_hosts} if the server key was legitimately replaced."
            )

        logger.info("Trusting new %s host key for %s", key.get_name(), hostname)
        host_keys.add(hostname, key.get_name(), key)
        try:
            self.known_hosts.parent.mkdir(parents=True, exist_ok=True)
            host_keys.save(str(self.known_hosts))
        except OSError as e:
            logger.warning("Could not save %s: %s", self.known_hosts, e)


class SFTPProvider:
    """
    Read-only SFTP backend for the picker.

    One SSH connection is shared by all calls. Transport failures trigger a
    reconnect and a bounded number of retries; server-side errors (missing
    path, permission) are reported immediately.
    """

    def __init__(
        self,
        ssh_config: SSHConfig,
        conn_config: ConnectionConfig,
        max_results: int = DEFAULT_MAX_RESULTS,
        max_search_dirs: int = DEFAULT_MAX_SEARCH_DIRS,
    ):
        self.ssh_config = ssh_config
        self.conn_config = conn_config
        self.max_results = max_results
        self.max_search_dirs = max_search_dirs
        self._ssh: paramiko.SSHClient | None = None
        self._sftp: paramiko.SFTPClient | None = None
        self._lock = threading.Lock()
        self._connected = False

    @property
    def address(self) -> str:
        return f"{self.ssh_config.host}:{self.ssh_config.port}"

    # Connection management

    def connect(self) -> None:
        """Open the SSH connection and SFTP session."""
        with self._lock:
            self._open()

    def _connect_kwargs(self) -> dict:
        """paramiko connect() arguments. Auth order: key file, password, agent/default keys."""
        ssh = self.ssh_config
        kwargs = {
            "hostname": ssh.host,
            "port": ssh.port,
            "timeout": self.conn_config.timeout_seconds,
            "allow_agent": ssh.use_agent,
            "look_for_keys": True,
        }
        if ssh.username:
            kwargs["username"] = ssh.username
        if ssh.key_file:
            kwargs["key_filename"] = os.path.expanduser(ssh.key_file)
            if ssh.key_passphrase:
                kwargs["passphrase"] = ssh.key_passphrase
        elif ssh.password:
            kwargs["password"] = ssh.password
            kwargs["look_for_keys"] = False
        return kwargs

    def _open(self) -> None:
        """Connect. Caller holds the lock."""
        client = paramiko.SSHClient()
        self._ssh = client
        try:
            client.load_system_host_keys()
            if KNOWN_HOSTS.exists():
                client.load_host_keys(str(KNOWN_HOSTS))
            client.set_missing_host_key_policy(TrustOnFirstUsePolicy())

            logger.debug("Connecting to SSH %s", self.address)
            client.connect(**self._connect_kwargs())
            self._sftp = client.open_sftp()
        except Exception as e:
            for source, target, prefix in CONNECT_ERRORS:
                if isinstance(e, source):
                    self._close()
                    logger.error("%s: %s", prefix, e)
                    raise target(f"{prefix}: {e}") from e
            raise

        self._connected = True
        logger.info("Connected to SSH server %s", self.address)

    def _close(self) -> None:
        """Close SFTP and SSH, logging rather than raising. Caller holds the lock."""
        sftp, ssh = self._sftp, self._ssh
        self._sftp = self._ssh = None
        self._connected = False
        for what, handle in (("SFTP session", sftp), ("SSH client", ssh)):
            if handle is None:
                continue
            try:
                handle.close()
            except Exception as e:
                logger.debug("Error closing %s: %s", what, e)

    def disconnect(self) -> None:
        """Close SFTP session and SSH connection."""
        with self._lock:
            self._close()
        logger.debug("SSH connection to %s closed", self.address)

    def _ensure_connected(self) -> None:
        """Reconnect if the session is missing or the transport died. Caller holds the lock."""
        if self._connected and self._sftp is not None and self._ssh is not None:
            transport = self._ssh.get_transport()
            if transport is not None and transport.is_active():
                return
            logger.debug("SSH transport to %s lost, reconnecting", self.address)
            self._close()
        self._open()

    # Blocking operations

    def _normalize_path(self, path: str) -> str:
        """Forward slashes, always absolute."""
        path = path.replace("\\", "/")
        return path if path.startswith("/") else "/" + path

    @staticmethod
    def _is_transient(error: BaseException) -> bool:
        # Errors carrying an errno came from the server and will not go away
        if isinstance(error, paramiko.SSHException):
            return True
        if isinstance(error, (PermissionError, FileNotFoundError)):
            return False
        return isinstance(error, OSError) and getattr(error, "errno", None) is None

    def _with_retry(self, operation: str, func, *args):
        """Run func under the lock, reconnecting and retrying on transport failures."""
        attempts = self.conn_config.retry_attempts
        last_error: BaseException | None = None

        for attempt in range(1, attempts + 1):
            try:
                with self._lock:
                    self._ensure_connected()
                    return func(*args)
            except (OSError, paramiko.SSHException) as e:
                if not self._is_transient(e):
                    raise
                last_error = e
                logger.warning("%s failed (attempt %d/%d): %s", operation, attempt, attempts, e)

            if attempt < attempts:
                time.sleep(self.conn_config.retry_delay_seconds)
                with self._lock:
                    self._close()

        logger.error("%s failed after %d attempts", operation, attempts)
        raise ProviderError(f"{operation} failed: {last_error}") from last_error

    def _translate_io_error(self, error: OSError, path: str) -> ProviderError:
        """Map an SFTP IOError to a ProviderError with a readable message."""
        message = IO_ERROR_MESSAGES.get(getattr(error, "errno", None))
        if message is None:
            return ProviderError(str(error))
        return ProviderError(f"{message}: {path}")

    def _entry(self, parent: str, attr: paramiko.SFTPAttributes) -> FileEntry:
        is_dir = stat.S_ISDIR(attr.st_mode) if attr.st_mode else False
        size = attr.st_size if attr.st_size and not is_dir else 0
        return FileEntry(
            path=posixpath.join(parent, attr.filename),
            name=attr.filename,
            is_directory=is_dir,
            size=size,
            extension=None if is_dir else extension_of(attr.filename),
        )

    def _listdir_attr(self, path: str) -> list:
        return [a for a in self._sftp.listdir_attr(path) if a.filename not in (".", "..")]

    def list_dir(self, path: str) -> list[FileEntry]:
        """List contents of a directory."""
        path = self._normalize_path(path)
        logger.debug("Listing directory: %s", path)

        def _list_dir_internal() -> list[FileEntry]:
            results = [self._entry(path, attr) for attr in self._listdir_attr(path)]
            logger.debug("Listed %d entries in %s", len(results), path)
            return sort_entries(results)

        try:
            return self._with_retry(f"list_dir({path})", _list_dir_internal)
        except IOError as e:
            raise self._translate_io_error(e, path) from e

    def search(self, base_path: str, query: str) -> list[FileEntry]:
        """Breadth-first name search under base_path, bounded in results and directories."""
        base_path = self._normalize_path(base_path)
        logger.debug("Searching %s for %r", base_path, query)

        def _search_internal() -> list[FileEntry]:
            results: list[FileEntry] = []
            pending = deque([base_path])
            visited = 0
            while pending and len(results) < self.max_results and visited < self.max_search_dirs:
                current = pending.popleft()
                visited += 1
                try:
                    attrs = self._listdir_attr(current)
                except IOError as e:
                    if current == base_path:
                        raise
                    logger.debug("Skipping unreadable directory %s: %s", current, e)
                    continue
                for attr in sorted(attrs, key=lambda a: a.filename.lower()):
                    entry = self._entry(current, attr)
                    if name_matches(entry.name, query):
                        results.append(entry)
                        if len(results) >= self.max_results:
                            break
                    if entry.is_directory:
                        pending.append(entry.path)
            logger.debug("Search for %r found %d entries in %d directories", query, len(results), visited)
            return results

        try:
            return self._with_retry(f"search({base_path}, {query})", _search_internal)
        except IOError as e:
            raise self._translate_io_error(e, base_path) from e

    async def list_directory(self, path: str) -> list[FileEntry]:
        return await run_blocking(f"list_directory({path})", self.list_dir, path)

    async def search_files(self, base_path: str, query: str) -> list[FileEntry]:
        return await run_blocking(
            f"search_files({base_path}, {query})", self.search, base_path, query
        )
