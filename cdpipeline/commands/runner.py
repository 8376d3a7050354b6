"""CommandRunner - runs commands as subprocesses with timeout and abort."""

import logging
import subprocess
import time
from pathlib import Path
from typing import IO, Optional

from .abort import AbortSignal
from .exceptions import RunAbortedError
from .models import NOT_FOUND_EXIT_CODE, TIMEOUT_EXIT_CODE, Command, CommandResult

logger = logging.getLogger(__name__)

# Seconds a terminated process gets before it is killed
TERMINATE_GRACE_SECONDS = 5.0


class BackgroundProcess:
    """Handle on a long-running process started with CommandRunner.spawn().

    Output goes to a log file so it can be attached to error reports
    without holding pipes open.
    """

    def __init__(self, command: str, process: subprocess.Popen, log_path: Path, log_file: IO):
        self.command = command
        self._process = process
        self._log_path = log_path
        self._log_file = log_file

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def log_path(self) -> Path:
        return self._log_path

    def poll(self) -> Optional[int]:
        """Return the exit code if the process has exited, else None."""
        return self._process.poll()

    @property
    def running(self) -> bool:
        return self._process.poll() is None

    def log_tail(self, lines: int = 20) -> str:
        """Return the last ``lines`` lines of the process output."""
        self._log_file.flush()
        try:
            text = self._log_path.read_text(errors="replace")
        except OSError:
            return ""
        return "\n".join(text.splitlines()[-lines:])

    def stop(self, grace: float = TERMINATE_GRACE_SECONDS) -> Optional[int]:
        """Terminate the process, killing it if it outlives ``grace`` seconds."""
        if self._process.poll() is None:
            logger.debug("Stopping background process %d (%s)", self.pid, self.command)
            self._process.terminate()
            try:
                self._process.wait(timeout=grace)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait()
        self._log_file.close()
        return self._process.returncode


class CommandRunner:
    """Runs commands as subprocesses.

    Output is captured, a per-command timeout kills the process, and an
    AbortSignal interrupts it immediately (terminate, then kill after a
    grace period) by raising RunAbortedError.

    Example usage:
        runner = CommandRunner()
        result = runner.run(Command(["git", "--version"]))
        print(result.stdout)
    """

    def __init__(self, abort: Optional[AbortSignal] = None, poll_interval: float = 0.2):
        """Initialize the runner.

        Args:
            abort: Signal observed while commands run. Defaults to a fresh
                signal that is never set.
            poll_interval: Seconds between abort checks while waiting.
        """
        self._abort = abort or AbortSignal()
        self._poll_interval = poll_interval

    @property
    def abort_signal(self) -> AbortSignal:
        return self._abort

    def run(
        self,
        command: Command,
        argv: Optional[list[str]] = None,
        cwd: Optional[Path] = None,
        env: Optional[dict[str, str]] = None,
    ) -> CommandResult:
        """Run a command to completion.

        Args:
            command: The command to run.
            argv: Final argument vector to execute, when the caller wraps the
                command (e.g. in a container launcher). Defaults to the
                command's own args.
            cwd: Working directory.
            env: Complete environment for the process.

        Returns:
            CommandResult; a non-zero exit is reported, not raised.

        Raises:
            RunAbortedError: If the abort signal was set while running.
        """
        if self._abort.is_set():
            raise RunAbortedError(command.display, self._abort.reason or "aborted")

        args = argv if argv is not None else command.args
        shell = argv is None and command.is_shell
        start = time.monotonic()
        logger.debug("Running: %s", command.display)

        try:
            process = subprocess.Popen(
                args,
                shell=shell,
                cwd=str(cwd) if cwd else None,
                env=env,
                stdin=subprocess.PIPE if command.stdin is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except FileNotFoundError as e:
            return CommandResult(
                command=command.display,
                exit_code=NOT_FOUND_EXIT_CODE,
                stderr=f"executable not found: {e.filename or e}",
                duration_seconds=round(time.monotonic() - start, 2),
            )

        deadline = start + command.timeout if command.timeout else None
        while True:
            try:
                stdout, stderr = process.communicate(
                    input=command.stdin, timeout=self._poll_interval
                )
                break
            except subprocess.TimeoutExpired:
                if self._abort.is_set():
                    self._terminate(process)
                    raise RunAbortedError(command.display, self._abort.reason or "aborted")
                if deadline is not None and time.monotonic() >= deadline:
                    process.kill()
                    stdout, stderr = process.communicate()
                    logger.warning(
                        "Command '%s' timed out after %.0fs", command.label, command.timeout
                    )
                    return CommandResult(
                        command=command.display,
                        exit_code=TIMEOUT_EXIT_CODE,
                        stdout=stdout or "",
                        stderr=stderr or "",
                        duration_seconds=round(time.monotonic() - start, 2),
                        timed_out=True,
                    )

        return CommandResult(
            command=command.display,
            exit_code=process.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration_seconds=round(time.monotonic() - start, 2),
        )

    def spawn(
        self,
        command: Command,
        log_path: Path,
        argv: Optional[list[str]] = None,
        cwd: Optional[Path] = None,
        env: Optional[dict[str, str]] = None,
    ) -> BackgroundProcess:
        """Start a command in the background, writing its output to ``log_path``."""
        args = argv if argv is not None else command.args
        shell = argv is None and command.is_shell
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_file = open(log_path, "w")
        try:
            process = subprocess.Popen(
                args,
                shell=shell,
                cwd=str(cwd) if cwd else None,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError:
            log_file.close()
            raise
        logger.info("Started background process %d: %s", process.pid, command.label)
        return BackgroundProcess(command.display, process, log_path, log_file)

    @staticmethod
    def _terminate(process: subprocess.Popen) -> None:
        process.terminate()
        try:
            process.communicate(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            process.kill()
            process.communicate()
