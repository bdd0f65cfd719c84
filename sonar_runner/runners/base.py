"""
Abstract runner holding the analysis properties shared by every way of
launching an analysis.

Implementations subclass `Runner` and provide `do_execute`, which receives
the caller's properties completed with computed defaults. Caller values
always win over defaults.
"""

from __future__ import annotations

import locale
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Mapping, Optional

from sonar_runner import __version__
from sonar_runner.utils.logging import get_logger
from sonar_runner.utils.properties import write_properties

HOST_URL = "sonar.host.url"
SOURCE_ENCODING = "sonar.sourceEncoding"
PROJECT_BASEDIR = "sonar.projectBaseDir"
WORK_DIR = "sonar.working.directory"
TASK = "sonar.task"

RUNNER_APP = "sonarRunner.app"
RUNNER_APP_VERSION = "sonarRunner.appVersion"
RUNNER_DUMP_TO_FILE = "sonarRunner.dumpToFile"

DEFAULT_HOST_URL = "http://localhost:9000"
DEFAULT_APP = "SonarQubeRunnerAPI"


def task_requires_project(properties: Mapping[str, str]) -> bool:
    task = properties.get(TASK) or ""
    return task in ("", "scan")


class Runner(ABC):
    """
    Abstract base class for analysis runners.
    """

    def __init__(self):
        self._global_properties: Dict[str, str] = {}

    # ---- Global properties ----
    def global_properties(self) -> Dict[str, str]:
        """Returns a copy of the global properties."""
        return dict(self._global_properties)

    def global_property(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._global_properties.get(key, default)

    def set_global_property(self, key: str, value: str) -> "Runner":
        self._global_properties[str(key)] = str(value)
        return self

    def add_global_properties(self, properties: Mapping[str, str]) -> "Runner":
        for key, value in properties.items():
            self.set_global_property(key, value)
        return self

    def set_app(self, app: str, version: str) -> "Runner":
        """Identifies the tool embedding the runner, forwarded to the server."""
        self.set_global_property(RUNNER_APP, app)
        self.set_global_property(RUNNER_APP_VERSION, version)
        return self

    def app(self) -> Optional[str]:
        return self.global_property(RUNNER_APP)

    def app_version(self) -> Optional[str]:
        return self.global_property(RUNNER_APP_VERSION)

    # ---- Execution ----
    def execute(self) -> None:
        """Runs an analysis with the global properties."""
        self._run(self.global_properties())

    def run_analysis(self, properties: Mapping[str, str]) -> None:
        """Runs an analysis with `properties` layered over the global properties."""
        merged = self.global_properties()
        merged.update({str(k): str(v) for k, v in properties.items()})
        self._run(merged)

    def _run(self, properties: Dict[str, str]) -> None:
        log = get_logger(__name__)
        self.init_default_values(properties)
        self.init_dirs(properties)
        self.init_source_encoding(properties)

        dump_to_file = properties.get(RUNNER_DUMP_TO_FILE)
        if dump_to_file:
            dump_path = Path(dump_to_file).resolve()
            write_properties(dump_path, properties, comment="Generated by sonar-runner")
            log.info("Simulation mode. Configuration written to %s", dump_path)
            return
        self.do_execute(properties)

    @abstractmethod
    def do_execute(self, properties: Dict[str, str]) -> None:
        raise NotImplementedError

    # ---- Computed defaults ----
    @staticmethod
    def init_default_values(properties: Dict[str, str]) -> None:
        properties.setdefault(HOST_URL, DEFAULT_HOST_URL)
        properties.setdefault(RUNNER_APP, DEFAULT_APP)
        properties.setdefault(RUNNER_APP_VERSION, __version__)

    @staticmethod
    def init_dirs(properties: Dict[str, str]) -> None:
        """
        Makes the base and working directories absolute. For project tasks the
        working directory is resolved against the project base directory.
        """
        if task_requires_project(properties):
            base_dir = Path(properties.get(PROJECT_BASEDIR) or Path.cwd()).resolve()
            properties[PROJECT_BASEDIR] = str(base_dir)
            work_dir = Path(properties.get(WORK_DIR) or ".sonar")
            if not work_dir.is_absolute():
                work_dir = base_dir / work_dir
        else:
            work_dir = Path(properties.get(WORK_DIR) or ".")
            if not work_dir.is_absolute():
                work_dir = Path.cwd() / work_dir
        properties[WORK_DIR] = str(work_dir.resolve())

    @staticmethod
    def init_source_encoding(properties: Dict[str, str]) -> None:
        if not task_requires_project(properties):
            return
        log = get_logger(__name__)
        encoding = properties.get(SOURCE_ENCODING) or ""
        platform_dependent = False
        if not encoding:
            encoding = locale.getpreferredencoding(False)
            platform_dependent = True
            properties[SOURCE_ENCODING] = encoding
        log.info(
            'Default locale: "%s", source code encoding: "%s"%s',
            locale.getlocale()[0],
            encoding,
            " (analysis is platform dependent)" if platform_dependent else "",
        )
