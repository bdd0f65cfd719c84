# sonar_runner/process/consumers.py
"""
Per-line sinks attached to the output streams of a child process.
"""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from typing import Optional, TextIO

from sonar_runner.utils.logging import Level, Logs


class StreamConsumer(ABC):
    """Called once for every line read from a stream, newline stripped."""

    @abstractmethod
    def consume_line(self, line: str) -> None:
        raise NotImplementedError


class PrintStreamConsumer(StreamConsumer):
    """
    Writes each line to a text stream and flushes immediately.

    Given a stream, writes there. Given only `std_name` ("stdout" or "stderr"),
    looks the stream up on `sys` at each call so a redirected stream is honoured.
    """

    def __init__(self, stream: Optional[TextIO] = None, std_name: str = "stdout"):
        if std_name not in ("stdout", "stderr"):
            raise ValueError(f"Unknown standard stream: {std_name}")
        self._stream = stream
        self.std_name = std_name

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else getattr(sys, self.std_name)

    def consume_line(self, line: str) -> None:
        stream = self.stream
        stream.write(line + "\n")
        stream.flush()


class LogStreamConsumer(StreamConsumer):
    """
    Routes lines to the listener registered in `Logs` with a fixed severity.
    When no listener is registered the line goes to `fallback` instead.
    """

    def __init__(self, level: Level, fallback: StreamConsumer):
        self.level = level
        self.fallback = fallback

    @classmethod
    def stdout(cls) -> "LogStreamConsumer":
        return cls(Level.INFO, PrintStreamConsumer(std_name="stdout"))

    @classmethod
    def stderr(cls) -> "LogStreamConsumer":
        return cls(Level.ERROR, PrintStreamConsumer(std_name="stderr"))

    def consume_line(self, line: str) -> None:
        listener = Logs.get_listener()
        if listener is not None:
            listener.log(line, self.level)
        else:
            self.fallback.consume_line(line)
