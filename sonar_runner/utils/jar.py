# sonar_runner/utils/jar.py
"""
Locating the analysis engine jar.

The forked JVM runs from a private copy of the jar so that the original can be
upgraded while an analysis is in flight. The runner deletes the copy afterwards.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from sonar_runner.errors import RunnerError
from .logging import get_logger

log = get_logger(__name__)

JAR_DIR_ENV = "SONAR_RUNNER_JAR_DIR"


class JarExtractor(ABC):
    """Resolves a jar by logical name to a temporary file the caller owns."""

    @abstractmethod
    def extract_to_temp(self, name: str) -> Path:
        raise NotImplementedError


class DirectoryJarExtractor(JarExtractor):
    """
    Copies `<name>.jar` out of a directory.

    The directory defaults to $SONAR_RUNNER_JAR_DIR, then to the current
    working directory.
    """

    def __init__(self, directory: Optional[Union[str, Path]] = None):
        if directory is None:
            directory = os.environ.get(JAR_DIR_ENV) or Path.cwd()
        self.directory = Path(directory)

    def extract_to_temp(self, name: str) -> Path:
        source = self.directory / f"{name}.jar"
        if not source.is_file():
            raise RunnerError(f"Fail to find the jar '{name}' in {self.directory}")
        try:
            fd, target = tempfile.mkstemp(prefix=f"{name}-", suffix=".jar")
            with os.fdopen(fd, "wb") as out, open(source, "rb") as src:
                shutil.copyfileobj(src, out)
        except OSError as e:
            raise RunnerError(f"Fail to extract {name}") from e
        log.debug("Copied %s to %s", source, target)
        return Path(target)
