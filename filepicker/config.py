import configparser
from dataclasses import dataclass, field
from pathlib import Path

PROTOCOLS = ("local", "sftp")


@dataclass
class PickerConfig:
    base_path: str
    initial_query: str = ""


@dataclass
class CacheConfig:
    ttl_seconds: int = 300
    max_entries: int = 100
    max_memory_mb: int = 50
    cleanup_interval_seconds: int = 60


@dataclass
class FetchConfig:
    directory_timeout_seconds: int = 30
    search_timeout_seconds: int = 45
    search_debounce_ms: int = 300
    max_directory_entries: int = 1000
    max_search_results: int = 50

    @property
    def search_debounce_seconds(self) -> float:
        return self.search_debounce_ms / 1000.0


@dataclass
class SSHConfig:
    host: str
    port: int = 22
    username: str | None = None
    password: str | None = None
    key_file: str | None = None  # Path to SSH private key
    key_passphrase: str | None = None  # Passphrase for encrypted keys
    use_agent: bool = True  # Try SSH agent for auth
    encoding: str = "utf-8"


@dataclass
class ConnectionConfig:
    timeout_seconds: int = 30
    retry_attempts: int = 3
    retry_delay_seconds: int = 1


@dataclass
class LogConfig:
    level: str = "INFO"
    file: str = "filepicker.log"
    console: bool = True


@dataclass
class AppConfig:
    picker: PickerConfig
    cache: CacheConfig = field(default_factory=CacheConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    logging: LogConfig = field(default_factory=LogConfig)
    protocol: str = "local"  # "local" or "sftp"
    ssh: SSHConfig | None = None


def _is_true(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _read_section(section: configparser.SectionProxy, target: dict, label: str = "") -> None:
    """
    Copy the options of one INI section into target.

    Each option is parsed according to the type of its default in target;
    blank values keep the default.

    Raises:
        ValueError: If an integer option is not an integer.
    """
    for key, default in target.items():
        raw = section.get(key)
        if not raw:
            continue
        if isinstance(default, bool):
            target[key] = _is_true(raw)
        elif isinstance(default, int):
            try:
                target[key] = int(raw)
            except ValueError:
                raise ValueError(
                    f"Invalid {label}{key} value in config: '{raw}' - must be an integer"
                )
        else:
            target[key] = raw


# CLI argument -> (section, option). Values of None mean "not given".
CLI_OVERRIDES = {
    "base_path": ("picker", "base_path"),
    "initial_query": ("picker", "initial_query"),
    "host": ("ssh", "host"),
    "port": ("ssh", "port"),
    "username": ("ssh", "username"),
    "password": ("ssh", "password"),
    "key_file": ("ssh", "key_file"),
    "key_passphrase": ("ssh", "key_passphrase"),
}


def _defaults() -> dict[str, dict]:
    return {
        "picker": {"base_path": "", "initial_query": ""},
        "cache": {
            "ttl_seconds": 300,
            "max_entries": 100,
            "max_memory_mb": 50,
            "cleanup_interval_seconds": 60,
        },
        "fetch": {
            "directory_timeout_seconds": 30,
            "search_timeout_seconds": 45,
            "search_debounce_ms": 300,
            "max_directory_entries": 1000,
            "max_search_results": 50,
        },
        "connection": {"timeout_seconds": 30, "retry_attempts": 3, "retry_delay_seconds": 1},
        "logging": {"level": "INFO", "file": "filepicker.log", "console": True},
        "ssh": {
            "host": "",
            "port": 22,
            "username": "",
            "password": "",
            "key_file": "",
            "key_passphrase": "",
            "use_agent": True,
            "encoding": "utf-8",
        },
    }


def load_config(config_path: str | None = None, **cli_args) -> AppConfig:
    """
    Build the application config from an INI file and CLI arguments.

    Sections: [general] (protocol), [picker], [cache], [fetch], [connection],
    [logging] and [ssh]. CLI arguments win over the file.

    Args:
        config_path: Optional INI file.
        **cli_args: Overrides named as in CLI_OVERRIDES, plus ``protocol``
            and ``debug``.

    Returns:
        AppConfig: The populated configuration object.

    Raises:
        FileNotFoundError: If config_path is given but does not exist.
        ValueError: If base_path is missing, a number is malformed, or the
            protocol is unknown or lacks a host.
    """
    values = _defaults()
    protocol = "local"

    if config_path is not None:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        parser = configparser.ConfigParser()
        parser.read(config_file, encoding="utf-8")
        for name, target in values.items():
            if parser.has_section(name):
                _read_section(parser[name], target, label="SSH " if name == "ssh" else "")
        if parser.has_section("general") and parser["general"].get("protocol"):
            protocol = parser["general"]["protocol"]

    for arg, (section, option) in CLI_OVERRIDES.items():
        value = cli_args.get(arg)
        if value is not None:
            values[section][option] = int(value) if option == "port" else value
    if cli_args.get("protocol") is not None:
        protocol = cli_args["protocol"]
    if cli_args.get("debug"):
        values["logging"].update(level="DEBUG", console=True)

    protocol = protocol.lower()
    if protocol not in PROTOCOLS:
        raise ValueError(f"Unknown protocol: {protocol}. Must be one of: {', '.join(PROTOCOLS)}")

    missing = [] if values["picker"]["base_path"] else ["base_path"]
    if protocol == "sftp" and not values["ssh"]["host"]:
        missing.append("host")
    if missing:
        raise ValueError(f"Missing required configuration fields: {', '.join(missing)}")

    ssh = None
    if protocol == "sftp":
        # Empty credentials mean "not configured"
        ssh = SSHConfig(**{k: (v if v != "" else None) for k, v in values["ssh"].items()})

    return AppConfig(
        picker=PickerConfig(**values["picker"]),
        cache=CacheConfig(**values["cache"]),
        fetch=FetchConfig(**values["fetch"]),
        connection=ConnectionConfig(**values["connection"]),
        logging=LogConfig(**values["logging"]),
        protocol=protocol,
        ssh=ssh,
    )
