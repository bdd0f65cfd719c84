# sonar_runner/process/monitor.py
"""
Process monitors let a caller ask a running analysis to stop.
"""

from __future__ import annotations

import signal
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterable, Iterator

from sonar_runner.utils.logging import get_logger


class ProcessMonitor(ABC):
    """
    Polled by the executor while the child runs, and by the runner when the
    child ends with a non-zero status.
    """

    @abstractmethod
    def stop(self) -> bool:
        """Returns True once a stop of the running child has been requested."""
        raise NotImplementedError


class StopRequestMonitor(ProcessMonitor):
    """A monitor backed by a threading.Event; `request_stop` may be called from any thread."""

    def __init__(self):
        self._requested = threading.Event()

    def request_stop(self) -> None:
        self._requested.set()

    def stop(self) -> bool:
        return self._requested.is_set()

    @contextmanager
    def stop_on_signals(self, signals: Iterable[int] = (signal.SIGINT, signal.SIGTERM)) -> Iterator["StopRequestMonitor"]:
        """
        Turns the given signals into stop requests for the duration of the block,
        then restores the previous handlers. Must be entered from the main thread.
        """
        log = get_logger(__name__)

        def _handler(signum, frame):
            log.warning("Received signal %s, stopping the analysis", signal.Signals(signum).name)
            self.request_stop()

        previous = {sig: signal.signal(sig, _handler) for sig in signals}
        try:
            yield self
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
