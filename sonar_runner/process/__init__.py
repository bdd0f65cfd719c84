"""
Process plumbing for forked analyses.

Exposes the command model, the executors, the stream consumers and the
monitors so callers do not need to know the individual module paths.
"""

from __future__ import annotations

from .command import Command, CommandBuilder, java_command
from .consumers import LogStreamConsumer, PrintStreamConsumer, StreamConsumer
from .executor import STOP_STATUS, CommandExecutor, LocalCommandExecutor, normalize_status
from .monitor import ProcessMonitor, StopRequestMonitor

__all__ = [
    "Command",
    "CommandBuilder",
    "java_command",
    "StreamConsumer",
    "PrintStreamConsumer",
    "LogStreamConsumer",
    "CommandExecutor",
    "LocalCommandExecutor",
    "STOP_STATUS",
    "normalize_status",
    "ProcessMonitor",
    "StopRequestMonitor",
]
