import logging
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, COMMIT_MESSAGE_TEMPLATE

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class CommandResult:
    """The outcome of one external command invocation.

    Attributes:
        command (str): The executable that was run (e.g. 'git').
        args (tuple[str, ...]): The arguments passed to it.
        cwd (Path): The working directory of the process.
        output (str): Combined stdout and stderr.
        returncode (int | None): Exit status, or None if the process never started.
    """

    command: str
    args: tuple[str, ...]
    cwd: Path
    output: str
    returncode: int | None

    @property
    def display(self) -> str:
        """The command line as a human-readable string."""
        return " ".join([self.command, *self.args])


class CommandFailed(Exception):
    """Raised when an external command exits non-zero or cannot be started.

    Attributes:
        result (CommandResult): What was run and the output it produced.
        error (BaseException): The underlying error.
    """

    def __init__(self, result: CommandResult, error: BaseException):
        self.result = result
        self.error = error
        super().__init__(f"'{result.display}' failed: {error}")

    @property
    def output(self) -> str:
        return self.result.output


Executor = Callable[[Path, str, Sequence[str]], CommandResult]
"""Signature of a command runner: (cwd, command, args) -> CommandResult."""


def run_command(cwd: Path, command: str, args: Sequence[str]) -> CommandResult:
    """Executes an external command synchronously and captures its output.

    stderr is merged into stdout so diagnostics from the tool end up in the
    captured output. Output is decoded as UTF-8 with invalid bytes replaced.
    The child runs in its own session so a terminal Ctrl-C reaches only the
    daemon, which lets an in-flight command finish. No timeout is imposed.

    Args:
        cwd (Path): The working directory for the process.
        command (str): The executable name.
        args (Sequence[str]): Ordered arguments.

    Returns:
        CommandResult: The result of a zero-exit invocation.

    Raises:
        CommandFailed: If the process exits non-zero or cannot be started.
    """
    args = tuple(args)
    try:
        proc = subprocess.run(
            [command, *args],
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=True,
            start_new_session=True,
        )
    except subprocess.CalledProcessError as e:
        result = CommandResult(command, args, Path(cwd), e.output or "", e.returncode)
        logger.error(f"COMMAND FAILED {result.display}: {e}\n{result.output.strip()}")
        raise CommandFailed(result, e) from e
    except OSError as e:
        result = CommandResult(command, args, Path(cwd), "", None)
        logger.error(f"COMMAND FAILED {result.display}: could not start: {e}")
        raise CommandFailed(result, e) from e

    result = CommandResult(command, args, Path(cwd), proc.stdout or "", 0)
    logger.info(f"COMMAND OK {result.display}: {result.output.strip()}")
    return result


def commit_message(device: str) -> str:
    """Builds the automatic commit message for a device."""
    return COMMIT_MESSAGE_TEMPLATE.format(device=device)


class GitRepo:
    """The four git operations used to sync a working tree.

    Each method runs a fixed git subcommand inside the repository and returns
    the executor's result unchanged; failures surface as `CommandFailed`.

    Attributes:
        path (Path): The repository working tree.
    """

    def __init__(self, path: Path, executor: Executor = run_command):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository working tree.
            executor (Executor, optional): The command runner. Defaults to
                `run_command`; tests substitute a fake.
        """
        self.path = path
        self._executor = executor

    def _git(self, *args: str) -> CommandResult:
        return self._executor(self.path, "git", args)

    def is_repository(self) -> bool:
        """Checks whether the path looks like a git working tree."""
        return (self.path / ".git").exists()

    def pull(self) -> CommandResult:
        """Runs `git pull`."""
        return self._git("pull")

    def add_all(self) -> CommandResult:
        """Stages all changes (modified, deleted, and untracked files)."""
        return self._git("add", ".")

    def commit(self, device: str) -> CommandResult:
        """Commits the staged changes as an automatic sync from `device`.

        A clean tree makes git exit non-zero, which surfaces as `CommandFailed`.
        """
        return self._git("commit", "-m", commit_message(device))

    def push(self) -> CommandResult:
        """Runs `git push`."""
        return self._git("push")
