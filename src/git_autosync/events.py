"""Event fan-in for the sync loop.

The watcher thread, its error reporting, and the signal handler all post
tagged `LoopMessage`s onto one FIFO (`EventInbox`). The event loop is the only
consumer, so messages are handled one at a time in arrival order.
"""

import enum
import queue
import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class ChangeEvent:
    """A filesystem entry under the watched path changed.

    Attributes:
        path (str): The affected path.
        kind (str): The event type (created, modified, deleted, moved, ...).
        dest_path (str | None): The new path for moves.
    """

    path: str
    kind: str
    dest_path: str | None = None


class MessageKind(enum.Enum):
    CHANGE = "change"
    ERROR = "error"
    CHANGES_CLOSED = "changes_closed"
    ERRORS_CLOSED = "errors_closed"
    CANCEL = "cancel"


@dataclass(frozen=True)
class LoopMessage:
    """One tagged delivery to the event loop."""

    kind: MessageKind
    event: ChangeEvent | None = None
    error: BaseException | None = None


class EventInbox:
    """Single ordered channel carrying every input of the event loop.

    Once a source has been closed, further posts from it are dropped so the
    loop sees exactly one closed message per source.
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[LoopMessage] = queue.Queue()
        self._lock = threading.Lock()
        self._changes_open = True
        self._errors_open = True

    def put_change(self, event: ChangeEvent) -> None:
        with self._lock:
            if self._changes_open:
                self._queue.put(LoopMessage(MessageKind.CHANGE, event=event))

    def put_error(self, error: BaseException) -> None:
        with self._lock:
            if self._errors_open:
                self._queue.put(LoopMessage(MessageKind.ERROR, error=error))

    def close_changes(self) -> None:
        with self._lock:
            if self._changes_open:
                self._changes_open = False
                self._queue.put(LoopMessage(MessageKind.CHANGES_CLOSED))

    def close_errors(self) -> None:
        with self._lock:
            if self._errors_open:
                self._errors_open = False
                self._queue.put(LoopMessage(MessageKind.ERRORS_CLOSED))

    def wake(self) -> None:
        """Posts a cancel marker so a blocked consumer re-checks its token."""
        self._queue.put(LoopMessage(MessageKind.CANCEL))

    def get(self, timeout: float | None = None) -> LoopMessage | None:
        """Blocks for the next message.

        Returns:
            LoopMessage | None: The next message, or None if `timeout` expired.
        """
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()


class CancelToken:
    """Cancellation flag checked by the event loop between iterations.

    Setting it is safe from any thread. Signal handlers should only call
    `set()`; the loop's bounded wait picks the flag up without a wake-up.
    """

    def __init__(self, inbox: EventInbox | None = None) -> None:
        self._event = threading.Event()
        self._inbox = inbox

    def set(self) -> None:
        self._event.set()

    def cancel(self) -> None:
        """Sets the flag and wakes the loop. Not for use inside signal handlers."""
        self._event.set()
        if self._inbox is not None:
            self._inbox.wake()

    def is_set(self) -> bool:
        return self._event.is_set()
