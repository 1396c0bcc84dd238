import os
from pathlib import Path

"""Global constants and path definitions for git-autosync.

This module defines the filesystem layout (adhering to XDG standards where applicable),
the application identifier, and the defaults used when no configuration is given.
"""

# --- Identity ---
APP_NAME = "git-autosync"
"""str: The human-readable application name, also used as the logger name."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-autosync"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The default file path for daemon logs when file logging is enabled."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-autosync"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""

LOCAL_CONFIG_NAME = "autosync.toml"
"""str: Name of the per-directory configuration file inside the watched path."""

# --- Defaults ---
DEFAULT_PATH = "."
DEFAULT_DEVICE = "my-device"
DEFAULT_LEVEL = "off"

DEBOUNCE_SECONDS = 5.0
"""float: Quiet window after an accepted change during which events are skipped."""

POLL_INTERVAL = 1.0
"""float: Max seconds the event loop blocks before re-checking cancellation."""

COMMIT_MESSAGE_TEMPLATE = "auto sync from {device}"

LOG_LEVELS = ("debug", "info", "warn", "error", "off")
"""tuple[str, ...]: Accepted values for the log verbosity option."""

IGNORED_EVENT_TYPES = frozenset({"opened", "closed_no_write"})
"""frozenset[str]: watchdog event types that never indicate a content change."""
