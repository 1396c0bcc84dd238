import argparse
import logging
import sys
from logging.handlers import BufferingHandler
from pathlib import Path

from rich.console import Console

from . import daemon
from .config import Config, ConfigError
from .constants import APP_NAME, DEFAULT_DEVICE, DEFAULT_PATH, LOG_FILE, LOG_LEVELS
from .git_wrapper import CommandFailed, GitRepo
from .watcher import WatcherError

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)


def build_parser() -> argparse.ArgumentParser:
    """Builds the argument parser for the daemon's startup options."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=(
            "Watch a directory and sync every change to its git remote "
            "(pull, add, commit, push)."
        ),
    )
    # Flags default to None so values from config files are only overridden
    # when given explicitly.
    parser.add_argument(
        "--path", default=None, help=f"Path to watch (default: '{DEFAULT_PATH}')"
    )
    parser.add_argument(
        "--device",
        default=None,
        help=f"Device name used in commit messages (default: '{DEFAULT_DEVICE}')",
    )
    parser.add_argument(
        "--level",
        default=None,
        choices=LOG_LEVELS,
        help="Log level (default: off)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Global config file (default: ~/.config/git-autosync/config.toml)",
    )
    parser.add_argument(
        "--log-file",
        nargs="?",
        const=str(LOG_FILE),
        default=None,
        help=f"Also log to this file, rotated (bare flag: {LOG_FILE})",
    )
    parser.add_argument(
        "--debounce",
        default=None,
        help="Quiet window after a sync, e.g. '5s' (default: 5s)",
    )
    parser.add_argument(
        "--recursive",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Watch subdirectories too (default: off)",
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict[str, dict]:
    """Maps parsed flags onto config sections."""
    return {
        "watch": {
            "path": args.path,
            "device": args.device,
            "recursive": args.recursive,
        },
        "daemon": {"debounce": args.debounce},
        "log": {"level": args.level, "file": args.log_file},
    }


def load_config(args: argparse.Namespace) -> Config:
    """Loads the merged config, then sets up logging from it.

    Config files are read before the log level is known, so their warnings
    are held back and replayed through the configured handlers.

    Raises:
        ConfigError: If an explicit config file or an override is invalid.
    """
    pending = BufferingHandler(capacity=1000)
    logger.addHandler(pending)
    try:
        config = Config.load(args.config, overrides_from_args(args))
    finally:
        logger.removeHandler(pending)

    daemon.setup_logging(config.log)
    for record in pending.buffer:
        if logger.isEnabledFor(record.levelno):
            logger.handle(record)
    pending.close()
    return config


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the git-autosync CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args)
    except ConfigError as e:
        err_console.print(f"[bold red]FATAL:[/bold red] {e}")
        sys.exit(1)

    target = config.target()
    if target.path.is_dir() and not GitRepo(target.path).is_repository():
        err_console.print(
            f"[bold yellow]WARNING:[/bold yellow] {target.path} has no .git "
            "directory; git commands will run against the enclosing repository."
        )

    console.print(
        f"[bold]{APP_NAME}[/bold] watching [cyan]{target.path}[/cyan] "
        f"as '{target.device}' (debounce {config.daemon.debounce:g}s)"
    )

    try:
        reason = daemon.main(config)
    except WatcherError as e:
        logger.critical(f"FATAL: {e}")
        sys.exit(1)
    except CommandFailed as e:
        logger.critical(f"FATAL: Startup pull failed in {target.path}: {e}")
        sys.exit(1)

    if reason is not daemon.ExitReason.CANCELLED:
        logger.critical(f"FATAL: Event loop stopped ({reason.value}).")
        sys.exit(1)


if __name__ == "__main__":
    main()
