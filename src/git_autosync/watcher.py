import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path
from types import TracebackType

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from .constants import APP_NAME, IGNORED_EVENT_TYPES
from .events import ChangeEvent, EventInbox

logger = logging.getLogger(APP_NAME)


class WatcherError(Exception):
    """Raised when the filesystem watcher cannot be created, registered, or released."""


def is_git_internal(path: str, root: Path) -> bool:
    """Returns True if `path` lies inside the repository's `.git` directory."""
    try:
        rel = Path(path).relative_to(root)
    except ValueError:
        return False
    return ".git" in rel.parts


class ChangeForwarder(FileSystemEventHandler):
    """Forwards watchdog events from the observer thread into the inbox.

    Runs on watchdog's dispatch thread, so it does nothing but enqueue. Any
    failure while translating an event is posted as an error message rather
    than killing the observer.
    """

    def __init__(self, inbox: EventInbox, root: Path):
        super().__init__()
        self.inbox = inbox
        self.root = root

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            if event.event_type in IGNORED_EVENT_TYPES:
                return
            src = os.fsdecode(event.src_path)
            if is_git_internal(src, self.root):
                return
            if event.event_type == "deleted" and Path(src) == self.root:
                # watchdog stops emitting for a removed root; nothing more will arrive.
                self.inbox.put_error(WatcherError(f"Watched path removed: {src}"))
                self.inbox.close_changes()
                return
            dest = os.fsdecode(event.dest_path) if event.dest_path else None
            self.inbox.put_change(
                ChangeEvent(path=src, kind=event.event_type, dest_path=dest)
            )
        except Exception as e:
            self.inbox.put_error(e)


class Watcher:
    """Owns the watchdog observer for one directory.

    If the observer thread dies while the watcher is not being closed, both
    inbox sources are closed so the event loop terminates instead of waiting
    forever.

    Attributes:
        path (Path): The watched directory.
        recursive (bool): Whether subdirectories are watched.
    """

    def __init__(
        self,
        path: Path,
        inbox: EventInbox,
        recursive: bool = False,
        observer_factory: Callable[[], BaseObserver] = Observer,
        join_timeout: float = 5.0,
    ):
        self.path = path
        self.recursive = recursive
        self.inbox = inbox
        self._observer_factory = observer_factory
        self._join_timeout = join_timeout
        self._observer: BaseObserver | None = None
        self._monitor: threading.Thread | None = None
        self._closing = threading.Event()

    def start(self) -> None:
        """Creates the observer, registers the path, and starts watching.

        Raises:
            WatcherError: If the observer cannot be created or the path cannot
                be registered.
        """
        try:
            observer = self._observer_factory()
        except Exception as e:
            raise WatcherError(f"Failed to create watcher: {e}") from e

        if not self.path.is_dir():
            raise WatcherError(f"Failed to add watch: {self.path} is not a directory")

        handler = ChangeForwarder(self.inbox, self.path)
        try:
            observer.schedule(handler, str(self.path), recursive=self.recursive)
            observer.start()
        except Exception as e:
            raise WatcherError(f"Failed to add watch on {self.path}: {e}") from e

        self._observer = observer
        self._monitor = threading.Thread(
            target=self._watch_observer,
            args=(observer,),
            name="watcher-monitor",
            daemon=True,
        )
        self._monitor.start()
        logger.debug(f"WATCH {self.path} (recursive={self.recursive})")

    def _watch_observer(self, observer: BaseObserver) -> None:
        observer.join()
        if self._closing.is_set():
            return
        logger.debug("Observer thread exited unexpectedly.")
        self.inbox.put_error(WatcherError("Watcher stopped unexpectedly"))
        self.inbox.close_changes()
        self.inbox.close_errors()

    def close(self) -> None:
        """Stops the observer and waits for it to exit.

        Raises:
            WatcherError: If the observer cannot be stopped in time.
        """
        self._closing.set()
        if self._observer is None:
            return
        try:
            self._observer.stop()
            self._observer.join(self._join_timeout)
        except Exception as e:
            raise WatcherError(f"Failed to close watcher: {e}") from e
        if self._observer.is_alive():
            raise WatcherError("Failed to close watcher: observer did not stop")
        self._observer = None

    def __enter__(self) -> "Watcher":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
