"""
filepicker - Main Entry Point

Command line front end that drives the picker core against the local
filesystem or an SFTP server and prints what a UI would render.
"""

import argparse
import asyncio
import logging
import sys

from .cache import CachePair, shutdown_janitor
from .config import AppConfig, load_config
from .local_client import LocalFileProvider
from .logger import setup_logging
from .models import FileEntry, ResultSet
from .picker import FilePicker
from .sftp_client import SFTPProvider

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="filepicker - Browse and search a directory tree",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  filepicker list ~/projects/app
  filepicker search ~/projects/app config
  filepicker list /var/www --protocol sftp --host myserver.com --key-file ~/.ssh/id_rsa
  filepicker list --config picker.ini
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Path to configuration file")
    common.add_argument("--protocol", choices=["local", "sftp"], default=None)
    common.add_argument("--host", help="SSH host (sftp only)")
    common.add_argument("--port", type=int, help="SSH port (sftp only)")
    common.add_argument("--user", help="SSH username")
    common.add_argument("--password", help="SSH password")
    common.add_argument("--key-file", help="Path to SSH private key")
    common.add_argument("--key-passphrase", help="Passphrase for encrypted SSH key")
    common.add_argument("--verbose", action="store_true", help="Enable debug logging")

    list_parser = subparsers.add_parser("list", parents=[common], help="List a directory")
    list_parser.add_argument("path", nargs="?", help="Directory to list")

    search_parser = subparsers.add_parser("search", parents=[common], help="Search under a directory")
    search_parser.add_argument("path", nargs="?", help="Directory to search under")
    search_parser.add_argument("query", help="Text to look for in file names")

    return parser.parse_args(argv)


def build_provider(config: AppConfig):
    """Create the provider for the configured protocol."""
    if config.protocol == "sftp":
        provider = SFTPProvider(
            config.ssh, config.connection, max_results=config.fetch.max_search_results
        )
        provider.connect()
        return provider
    return LocalFileProvider(max_results=config.fetch.max_search_results)


def format_size(size: int) -> str:
    """Human readable size; empty for zero."""
    if size == 0:
        return ""
    value = float(size)
    for unit in ["B", "KB", "MB", "GB"]:
        if value < 1024 or unit == "GB":
            return f"{value:.1f}".rstrip("0").rstrip(".") + f" {unit}"
        value /= 1024
    return ""


def format_entry(entry: FileEntry) -> str:
    if entry.is_directory:
        return f"  {entry.name}/"
    size = format_size(entry.size)
    return f"  {entry.name}  {size}" if size else f"  {entry.name}"


def print_results(results: ResultSet, header: str, empty_message: str) -> int:
    print(header)
    if results.error is not None:
        print(f"[ERROR] {results.error_message}")
        return 1
    if results.notice is not None:
        print(f"[WARN] {results.notice}")
    if not results.entries:
        print(f"  ({empty_message})")
    for entry in results.entries:
        print(format_entry(entry))
    print(f"[OK] {len(results)} entries")
    return 0


async def run_picker(config: AppConfig, provider) -> ResultSet:
    picker = FilePicker(
        provider,
        CachePair.create(config.cache),
        config.picker,
        fetch_config=config.fetch,
        cache_config=config.cache,
    )
    picker.mount()
    try:
        await picker.settle()
        return picker.results
    finally:
        picker.unmount()


def cmd_browse(args) -> int:
    """
    Handle the list and search commands.

    Loads configuration, builds the provider, runs one picker to completion
    and prints the result set.
    """
    provider = None
    try:
        config = load_config(
            config_path=args.config,
            base_path=args.path,
            initial_query=getattr(args, "query", None),
            protocol=args.protocol,
            host=args.host,
            port=args.port,
            username=args.user,
            password=args.password,
            key_file=args.key_file,
            key_passphrase=args.key_passphrase,
            debug=args.verbose,
        )
        if not args.verbose:
            config.logging.console = False
        setup_logging(config.logging)
        logger.info("Browsing %s (%s)", config.picker.base_path, config.protocol)

        try:
            provider = build_provider(config)
        except (ConnectionError, PermissionError, TimeoutError) as e:
            logger.error("Failed to connect: %s", e)
            print(f"[ERROR] Could not connect: {e}")
            return 1

        results = asyncio.run(run_picker(config, provider))

        if config.picker.initial_query:
            header = f"Search for '{config.picker.initial_query}' in {config.picker.base_path}"
            return print_results(results, header, "No files found")
        return print_results(results, config.picker.base_path, "Empty directory")

    except ValueError as e:
        print(f"[ERROR] Configuration error: {e}")
        return 1
    except FileNotFoundError as e:
        print(f"[ERROR] {e}")
        return 1
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        print(f"[ERROR] Fatal error: {e}")
        return 1
    finally:
        if isinstance(provider, SFTPProvider):
            try:
                provider.disconnect()
            except Exception as e:
                logger.warning("Error disconnecting: %s", e)
        shutdown_janitor()


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    if args.command in ("list", "search"):
        return cmd_browse(args)

    print("Usage: filepicker <command> [options]")
    print()
    print("Commands:")
    print("  list     List a directory")
    print("  search   Search file names under a directory")
    print()
    print("Run 'filepicker <command> --help' for more information.")
    return 1


if __name__ == "__main__":
    sys.exit(main() or 0)
