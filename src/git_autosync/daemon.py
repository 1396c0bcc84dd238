import enum
import logging
import signal
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import FrameType
from typing import Any

from .config import Config, LogConfig, WatchTarget, resolve_log_level
from .constants import APP_NAME, DEBOUNCE_SECONDS, POLL_INTERVAL
from .debounce import DebounceGate
from .events import CancelToken, ChangeEvent, EventInbox, LoopMessage, MessageKind
from .git_wrapper import CommandFailed, GitRepo
from .watcher import Watcher

logger = logging.getLogger(APP_NAME)

NOTHING_TO_COMMIT_MARKERS = (
    "nothing to commit",
    "nothing added to commit",
    "no changes added to commit",
)
"""tuple[str, ...]: git output fragments reported when a commit has nothing staged."""


class SyncStep(enum.Enum):
    PULL = "pull"
    STAGE = "add"
    COMMIT = "commit"
    PUSH = "push"


class SyncOutcome(enum.Enum):
    SYNCED = "synced"
    FAILED = "failed"
    NOTHING_TO_COMMIT = "nothing_to_commit"


class LoopState(enum.Enum):
    RUNNING = "running"
    DRAINING = "draining"
    TERMINATED = "terminated"


class ExitReason(enum.Enum):
    CANCELLED = "cancelled"
    CHANGES_CLOSED = "changes_closed"
    ERRORS_CLOSED = "errors_closed"


@dataclass
class SyncReport:
    """Summary of one sync attempt.

    Attributes:
        completed (list[SyncStep]): Steps that succeeded, in order.
        failed_step (SyncStep | None): The step that aborted the attempt.
        outcome (SyncOutcome): How the attempt ended.
        error (CommandFailed | None): The failure of `failed_step`.
    """

    completed: list[SyncStep] = field(default_factory=list)
    failed_step: SyncStep | None = None
    outcome: SyncOutcome = SyncOutcome.SYNCED
    error: CommandFailed | None = None


def is_nothing_to_commit(output: str) -> bool:
    """Checks whether a failed commit only reported a clean tree."""
    lowered = output.lower()
    return any(marker in lowered for marker in NOTHING_TO_COMMIT_MARKERS)


class Orchestrator:
    """Turns change notifications into ordered pull/add/commit/push attempts.

    The loop is single-threaded: messages from the inbox are handled one at a
    time and a sync attempt blocks the loop until it finishes or aborts.
    Cancellation is checked at the top of every iteration, so an attempt in
    progress always runs to completion.

    Attributes:
        target (WatchTarget): The watched directory and device name.
        repo (GitRepo): The sync operations for the target.
        inbox (EventInbox): The fan-in of every loop input.
        cancel (CancelToken): Set to stop the loop.
        gate (DebounceGate | None): Created at loop start unless supplied.
        state (LoopState): Current loop state.
    """

    def __init__(
        self,
        target: WatchTarget,
        repo: GitRepo,
        inbox: EventInbox,
        cancel: CancelToken,
        gate: DebounceGate | None = None,
        debounce: float = DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: float = POLL_INTERVAL,
    ):
        self.target = target
        self.repo = repo
        self.inbox = inbox
        self.cancel = cancel
        self.gate = gate
        self.debounce = debounce
        self.state = LoopState.RUNNING
        self.attempts = 0
        self._clock = clock
        self._poll_interval = poll_interval

    def startup_sync(self) -> None:
        """Performs the mandatory pull before any event is processed.

        Raises:
            CommandFailed: If the pull fails. Callers treat this as fatal.
        """
        logger.info(f"STARTUP {self.target.path.name}: Pulling before watch.")
        self.repo.pull()

    def run(self) -> ExitReason:
        """Runs the startup pull, then the event loop until it terminates.

        Returns:
            ExitReason: Why the loop stopped.

        Raises:
            CommandFailed: If the startup pull fails.
        """
        self.startup_sync()
        return self.loop()

    def loop(self) -> ExitReason:
        """Consumes inbox messages until cancelled or a source closes.

        The debounce gate is created here unless one was supplied, so the
        first window starts when the loop does.
        """
        if self.gate is None:
            self.gate = DebounceGate(self.debounce, clock=self._clock)

        while True:
            if self.cancel.is_set():
                logger.info("Exiting.")
                self.state = LoopState.TERMINATED
                return ExitReason.CANCELLED

            message = self.inbox.get(timeout=self._poll_interval)
            if message is None:
                continue

            reason = self.dispatch(message)
            if reason is not None:
                self.state = LoopState.TERMINATED
                return reason

    def dispatch(self, message: LoopMessage) -> ExitReason | None:
        """Handles one inbox message.

        Returns:
            ExitReason | None: A reason to stop the loop, or None to continue.
        """
        if message.kind is MessageKind.CANCEL:
            return None

        if message.kind is MessageKind.CHANGE:
            if message.event is None:
                logger.error("Change delivery without an event; ignored.")
                return None
            self.handle_change(message.event)
            return None

        if message.kind is MessageKind.ERROR:
            logger.error(f"WATCH ERROR {self.target.path.name}: {message.error}")
            return None

        self.state = LoopState.DRAINING
        if message.kind is MessageKind.CHANGES_CLOSED:
            logger.error("Watcher events channel closed.")
            return ExitReason.CHANGES_CLOSED

        logger.error("Watcher errors channel closed.")
        return ExitReason.ERRORS_CLOSED

    def handle_change(self, event: ChangeEvent) -> SyncReport | None:
        """Applies the debounce gate to a change and syncs if it passes.

        Runs inside `loop`, which owns the gate.

        Returns:
            SyncReport | None: The attempt's report, or None if suppressed.
        """
        if not self.gate.offer():
            logger.debug(f"SKIP {event.kind} {event.path}: Within debounce window.")
            return None

        logger.info(f"EVENT {event.kind} {event.path}")
        return self.run_sync_attempt()

    def run_sync_attempt(self) -> SyncReport:
        """Runs pull, add, commit and push in order, stopping at the first failure.

        Failures are logged with the command output and never raised. Nothing
        is rolled back: a failed commit leaves the staged changes in place.

        Returns:
            SyncReport: What ran and how the attempt ended.
        """
        self.attempts += 1
        name = self.target.path.name
        report = SyncReport()
        steps: tuple[tuple[SyncStep, Callable[[], Any]], ...] = (
            (SyncStep.PULL, self.repo.pull),
            (SyncStep.STAGE, self.repo.add_all),
            (SyncStep.COMMIT, lambda: self.repo.commit(self.target.device)),
            (SyncStep.PUSH, self.repo.push),
        )

        for step, action in steps:
            try:
                action()
            except CommandFailed as e:
                report.failed_step = step
                report.error = e
                if step is SyncStep.COMMIT and is_nothing_to_commit(e.output):
                    report.outcome = SyncOutcome.NOTHING_TO_COMMIT
                    logger.info(f"SYNC {name}: Nothing to commit. Push skipped.")
                else:
                    report.outcome = SyncOutcome.FAILED
                    logger.error(
                        f"{step.value.upper()} ERROR {name}: {e}\n{e.output.strip()}"
                    )
                return report
            report.completed.append(step)

        logger.info(f"SUCCESS {name}: Synced from '{self.target.device}'.")
        return report


def setup_logging(log_config: LogConfig) -> None:
    """Configures the application logger.

    Logs always go to stdout. When a log file is configured, a rotating file
    handler is added as well. 'off' keeps only fatal messages.

    Args:
        log_config (LogConfig): Verbosity, optional file, and rotation size.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    logger.setLevel(resolve_log_level(log_config.level))

    # Re-running setup (tests, repeated CLI invocations) must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_config.file:
        log_path = Path(log_config.file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=log_config.max_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def install_signal_handlers(cancel: CancelToken) -> dict[int, Any]:
    """Routes SIGINT and SIGTERM to the cancel token.

    Returns:
        dict[int, Any]: The previous handlers, for `restore_signal_handlers`.
    """

    def handler(signum: int, _frame: FrameType | None) -> None:
        cancel.set()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, handler)
    return previous


def restore_signal_handlers(previous: dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def main(config: Config) -> ExitReason:
    """Watches the configured directory and syncs it until stopped.

    Order: create and register the watcher, pull once, then run the event
    loop. The watcher is released on every exit path. Logging is expected to
    be configured already with `setup_logging`.

    Args:
        config (Config): The merged configuration.

    Returns:
        ExitReason: Why the loop stopped.

    Raises:
        WatcherError: If the watcher cannot be created, registered, or released.
        CommandFailed: If the startup pull fails.
    """
    target = config.target()

    inbox = EventInbox()
    cancel = CancelToken(inbox)
    repo = GitRepo(target.path)
    orchestrator = Orchestrator(
        target, repo, inbox, cancel, debounce=config.daemon.debounce
    )

    with Watcher(target.path, inbox, recursive=config.watch.recursive):
        previous = install_signal_handlers(cancel)
        try:
            return orchestrator.run()
        finally:
            restore_signal_handlers(previous)
