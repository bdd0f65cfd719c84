# sonar_runner/process/executor.py
"""
Executors spawn a Command as a child process and report its exit status.

Implementations subclass `CommandExecutor` and provide `execute`, which
blocks until the child is gone and returns its exit status. Output lines are
pushed to the two StreamConsumers as they arrive.
"""

from __future__ import annotations

import subprocess
import threading
import time
from abc import ABC, abstractmethod
from typing import IO, List, Optional

from sonar_runner.errors import CommandException, CommandTimeoutError
from sonar_runner.utils.logging import get_logger
from .command import Command
from .consumers import StreamConsumer
from .monitor import ProcessMonitor

# 128 + SIGTERM, what a JVM or a shell reports for a process stopped from outside
STOP_STATUS = 143


def normalize_status(returncode: int) -> int:
    """Maps Python's -N (killed by signal N) to the shell convention 128 + N."""
    if returncode < 0:
        return 128 - returncode
    return returncode


class CommandExecutor(ABC):
    """
    Abstract base class for command executors.
    """

    @abstractmethod
    def execute(
        self,
        command: Command,
        stdout_consumer: StreamConsumer,
        stderr_consumer: StreamConsumer,
        timeout: Optional[float],
        process_monitor: Optional[ProcessMonitor] = None,
    ) -> int:
        """
        Execute a command and wait for it.

        Args:
            command: The command to spawn.
            stdout_consumer: Receives each line the child writes to stdout.
            stderr_consumer: Receives each line the child writes to stderr.
            timeout: Maximum time to wait, in seconds. None waits forever.
            process_monitor: Consulted while waiting; a stop request terminates the child.

        Returns:
            The exit status of the child, or STOP_STATUS if it was stopped
            on request of the monitor.
        """
        raise NotImplementedError


class _StreamGobbler(threading.Thread):
    """Reads one pipe line by line until end of input."""

    def __init__(self, stream: IO[str], consumer: StreamConsumer, name: str):
        super().__init__(name=name, daemon=True)
        self.stream = stream
        self.consumer = consumer
        self.error: Optional[BaseException] = None
        self.detached = False

    def detach(self) -> None:
        """Stops delivering lines. The thread itself ends when the pipe is closed."""
        self.detached = True

    def run(self) -> None:
        try:
            for line in iter(self.stream.readline, ""):
                if line.endswith("\n"):
                    line = line[:-1]
                if self.error is None and not self.detached:
                    try:
                        self.consumer.consume_line(line)
                    except Exception as e:
                        # keep draining so the child never blocks on a full pipe
                        self.error = e
        finally:
            self.stream.close()


class LocalCommandExecutor(CommandExecutor):
    """
    Runs the command on the local machine with one reader thread per output stream.

    The timeout covers the whole call. Once the child is gone its pipes may
    still be held open by a process it started; the readers are then waited
    for only until the deadline, and abandoned if it passes.
    """

    def __init__(self, poll_interval: float = 0.5, kill_grace: float = 5.0):
        self.poll_interval = poll_interval
        self.kill_grace = kill_grace

    def execute(
        self,
        command: Command,
        stdout_consumer: StreamConsumer,
        stderr_consumer: StreamConsumer,
        timeout: Optional[float],
        process_monitor: Optional[ProcessMonitor] = None,
    ) -> int:
        log = get_logger(__name__)
        log.debug("Executing command: %s", command)

        try:
            process = subprocess.Popen(
                command.to_strings(),
                cwd=command.directory,
                env=dict(command.env),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            raise CommandException(f"Fail to execute command: {command}", command) from e

        gobblers = [
            _StreamGobbler(process.stdout, stdout_consumer, f"stdout-{process.pid}"),
            _StreamGobbler(process.stderr, stderr_consumer, f"stderr-{process.pid}"),
        ]
        for gobbler in gobblers:
            gobbler.start()

        deadline = time.monotonic() + timeout if timeout is not None else None
        try:
            status = self._wait_for(process, command, timeout, deadline, process_monitor)
        except BaseException:
            self._destroy(process)
            self._join(gobblers, self.kill_grace)
            self._detach(gobblers)
            raise

        self._drain(gobblers, command, timeout, deadline, process_monitor)
        for gobbler in gobblers:
            if gobbler.error is not None:
                raise CommandException(
                    f"Error inside stream consumer ({gobbler.name}): {gobbler.error}", command
                ) from gobbler.error

        log.debug("Command finished with exit code: %d", status)
        return status

    def _wait_for(
        self,
        process: subprocess.Popen,
        command: Command,
        timeout: Optional[float],
        deadline: Optional[float],
        process_monitor: Optional[ProcessMonitor],
    ) -> int:
        log = get_logger(__name__)
        while True:
            wait = self._slice(command, timeout, deadline)
            try:
                return normalize_status(process.wait(timeout=wait))
            except subprocess.TimeoutExpired:
                pass
            if process_monitor is not None and process_monitor.stop():
                log.info("Stop requested, terminating process %d", process.pid)
                self._destroy(process)
                return STOP_STATUS

    def _drain(
        self,
        gobblers: List[_StreamGobbler],
        command: Command,
        timeout: Optional[float],
        deadline: Optional[float],
        process_monitor: Optional[ProcessMonitor],
    ) -> None:
        """Waits for both readers to reach end of input, within the deadline."""
        log = get_logger(__name__)
        try:
            while any(gobbler.is_alive() for gobbler in gobblers):
                wait = self._slice(command, timeout, deadline)
                for gobbler in gobblers:
                    gobbler.join(wait)
                    if gobbler.is_alive():
                        break
                else:
                    return
                if process_monitor is not None and process_monitor.stop():
                    log.info("Stop requested, no longer reading output of %s", command)
                    self._detach(gobblers)
                    return
        except CommandTimeoutError:
            # output pipes are still open, most likely inherited by a descendant
            self._detach(gobblers)
            raise

    def _slice(self, command: Command, timeout: Optional[float], deadline: Optional[float]) -> float:
        """Time to block before the next check; raises once the deadline has passed."""
        if deadline is None:
            return self.poll_interval
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            get_logger(__name__).error("Command timed out after %s seconds", timeout)
            raise CommandTimeoutError(f"Timeout exceeded: {timeout} s", command)
        return min(self.poll_interval, remaining)

    def _destroy(self, process: subprocess.Popen) -> None:
        if process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=self.kill_grace)
        except subprocess.TimeoutExpired:
            get_logger(__name__).warning("Process %d ignored SIGTERM, killing it", process.pid)
            process.kill()
            process.wait()

    @staticmethod
    def _join(gobblers: List[_StreamGobbler], timeout: Optional[float]) -> None:
        for gobbler in gobblers:
            gobbler.join(timeout)

    @staticmethod
    def _detach(gobblers: List[_StreamGobbler]) -> None:
        for gobbler in gobblers:
            gobbler.detach()
