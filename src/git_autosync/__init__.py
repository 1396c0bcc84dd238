"""git-autosync: Keep a directory in sync with its git remote.

This package provides the command-line entry point, the filesystem watcher,
and the debounced event loop that turns file changes into ordered
pull/add/commit/push runs.
"""

from . import (
    cli,
    config,
    constants,
    daemon,
    debounce,
    events,
    git_wrapper,
    watcher,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "daemon",
    "debounce",
    "events",
    "git_wrapper",
    "watcher",
]
