"""
Exceptions raised by the runner and the process plumbing.
"""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from sonar_runner.process.command import Command


class RunnerError(RuntimeError):
    """Base class for every failure reported by sonar_runner."""


class CommandException(RunnerError):
    """The command could not be run to completion (spawn, stream, timeout)."""

    def __init__(self, message: str, command: Optional["Command"] = None):
        super().__init__(message)
        self.command = command


class CommandTimeoutError(CommandException):
    """The child did not terminate within the allotted time."""


class ExecutionFailedError(RunnerError):
    """The child terminated with a non-zero status that was not a requested stop."""

    def __init__(self, command: "Command", status: int):
        super().__init__(f"Error status [command: {command}]: {status}")
        self.command = command
        self.status = status
