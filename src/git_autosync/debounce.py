import time
from collections.abc import Callable

from .constants import DEBOUNCE_SECONDS


class DebounceGate:
    """Suppresses change events that arrive within a quiet window.

    A single "last accepted" timestamp is kept for the whole watched tree, so a
    burst of changes to different files collapses into one sync attempt. The
    working-tree changes made by the sync itself (pull, commit) land inside the
    same window and are absorbed the same way.

    Attributes:
        window (float): Quiet period in seconds.
        last_accepted (float): Clock reading of the last accepted event.
    """

    def __init__(
        self,
        window: float = DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        start: float | None = None,
    ):
        """Initializes the gate.

        Args:
            window (float, optional): Quiet period in seconds. Defaults to 5.
            clock (Callable[[], float], optional): Time source. Defaults to
                `time.monotonic`.
            start (float | None, optional): Initial "last accepted" time.
                Defaults to the clock's current reading (the loop start).
        """
        if window < 0:
            raise ValueError(f"Debounce window must be non-negative, got {window}")
        self.window = window
        self._clock = clock
        self.last_accepted = clock() if start is None else start

    def elapsed(self, now: float | None = None) -> float:
        """Seconds since the last accepted event."""
        if now is None:
            now = self._clock()
        return now - self.last_accepted

    def offer(self, now: float | None = None) -> bool:
        """Decides whether an event arriving at `now` should trigger a sync.

        An accepted event moves the timestamp to `now`; a suppressed one leaves
        it untouched. An event exactly one window after the last accepted one
        is accepted.

        Returns:
            bool: True if the event is accepted.
        """
        if now is None:
            now = self._clock()
        if now - self.last_accepted < self.window:
            return False
        self.last_accepted = now
        return True
