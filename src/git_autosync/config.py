import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEBOUNCE_SECONDS,
    DEFAULT_DEVICE,
    DEFAULT_LEVEL,
    DEFAULT_PATH,
    LOCAL_CONFIG_NAME,
    LOG_LEVELS,
)

logger = logging.getLogger(APP_NAME)


class ConfigError(Exception):
    """Raised when explicitly requested configuration cannot be honoured."""


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | float | str) -> float:
    """Converts human-readable time strings (e.g., '5s', '2m') to seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value < 0:
            raise ValueError(f"Negative duration '{value}'")
        return float(value)
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(ms|s|sec|m|min|h|hr)?s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2) or "s"
    multiplier = {
        "ms": 0.001,
        "s": 1,
        "sec": 1,
        "m": 60,
        "min": 60,
        "h": 3600,
        "hr": 3600,
    }
    return num * multiplier[unit]


def parse_level(value: str) -> str:
    """Normalizes a log verbosity name, rejecting unknown values."""
    level = str(value).strip().lower()
    if level == "warning":
        level = "warn"
    if level not in LOG_LEVELS:
        raise ValueError(
            f"Invalid log level '{value}' (expected one of: {', '.join(LOG_LEVELS)})"
        )
    return level


def resolve_log_level(level: str) -> int:
    """Maps a verbosity name to a `logging` level.

    'off' (and anything unrecognised) keeps only fatal messages.
    """
    return {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warn": logging.WARNING,
        "error": logging.ERROR,
    }.get(level, logging.CRITICAL)


@dataclass(frozen=True)
class WatchTarget:
    """The directory under observation and the device it is synced from.

    Attributes:
        path (Path): The watched directory (also the git working tree).
        device (str): Identifier embedded in commit messages.
    """

    path: Path
    device: str


@dataclass
class WatchConfig:
    """Watch settings.

    Attributes:
        path (str): Directory to watch and sync.
        device (str): Device name used in commit messages.
        recursive (bool): Whether to watch subdirectories as well.
    """

    path: str = DEFAULT_PATH
    device: str = DEFAULT_DEVICE
    recursive: bool = False


@dataclass
class DaemonConfig:
    """Event loop settings.

    Attributes:
        debounce (float): Quiet window in seconds after an accepted change.
    """

    debounce: float = DEBOUNCE_SECONDS


@dataclass
class LogConfig:
    """Logging settings.

    Attributes:
        level (str): One of debug, info, warn, error, off.
        file (str | None): Optional log file path (rotated).
        max_size (int): Max bytes for the log file before rotation.
    """

    level: str = DEFAULT_LEVEL
    file: str | None = None
    max_size: int = 5 * 1024 * 1024


# Keys routed through a parser before being stored.
_PARSERS = {
    "debounce": parse_time,
    "max_size": parse_size,
    "level": parse_level,
}


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        watch (WatchConfig): What to watch and how commits are labelled.
        daemon (DaemonConfig): Event loop behavior.
        log (LogConfig): Logging behavior.
    """

    watch: WatchConfig = field(default_factory=WatchConfig)
    daemon: DaemonConfig = field(default_factory=DaemonConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @classmethod
    def load(
        cls,
        config_file: Path | None = None,
        overrides: dict[str, dict[str, Any]] | None = None,
    ) -> "Config":
        """Loads and merges configuration from defaults, files, and overrides.

        Precedence (lowest first): defaults, the global config file, the
        `autosync.toml` inside the watched directory, then `overrides`
        (normally the command-line flags).

        Args:
            config_file (Path | None): An explicit global config file. When
                given it must exist; otherwise the default location is used
                if present.
            overrides (dict | None): Section -> key -> value updates.

        Returns:
            Config: The fully merged configuration object.

        Raises:
            ConfigError: If `config_file` is missing or an override is invalid.
        """
        instance = cls()
        overrides = overrides or {}

        # 1. Global Config
        if config_file is not None:
            if not config_file.is_file():
                raise ConfigError(f"Config file not found: {config_file}")
            instance._merge_from_file(config_file)
        elif CONFIG_FILE.exists():
            instance._merge_from_file(CONFIG_FILE)

        # 2. Local Config (the watched path may itself come from overrides)
        watch_path = overrides.get("watch", {}).get("path") or instance.watch.path
        local_toml = Path(watch_path) / LOCAL_CONFIG_NAME
        if local_toml.is_file():
            instance._merge_from_file(local_toml)

        # 3. Overrides are validated strictly.
        for section, updates in overrides.items():
            current = getattr(instance, section, None)
            if current is None:
                raise ConfigError(f"Unknown config section '{section}'")
            values = {k: v for k, v in updates.items() if v is not None}
            try:
                setattr(
                    instance,
                    section,
                    cls._update_dataclass(section, current, values, strict=True),
                )
            except ValueError as e:
                raise ConfigError(str(e)) from e

        return instance

    def target(self) -> WatchTarget:
        """Builds the immutable watch target for this process."""
        return WatchTarget(
            path=Path(self.watch.path).expanduser().resolve(),
            device=self.watch.device,
        )

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            for section in ("watch", "daemon", "log"):
                if section in data:
                    setattr(
                        self,
                        section,
                        self._update_dataclass(
                            section, getattr(self, section), data[section]
                        ),
                    )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(
        section_name: str, instance: Any, updates: dict, strict: bool = False
    ) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats.

        With `strict`, unknown keys and unparsable values raise `ValueError`
        instead of being skipped.
        """
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            if strict:
                raise ValueError(
                    f"Unknown config keys in [{section_name}]: "
                    f"{', '.join(sorted(invalid_keys))}"
                )
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            parser = _PARSERS.get(k)
            try:
                filtered_updates[k] = parser(v) if parser else v
            except ValueError as e:
                if strict:
                    raise ValueError(f"[{section_name}].{k}: {e}") from e
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
