# sonar_runner/runners/forked.py
"""
Runs the analysis in a child JVM.

The analysis properties are written to a temporary properties file whose
path is the only program argument of the engine's main class. JVM arguments
and environment variables go on the command line and into the child
environment, never into that file.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from sonar_runner.errors import ExecutionFailedError, RunnerError
from sonar_runner.process.command import Command, java_command
from sonar_runner.process.consumers import LogStreamConsumer, StreamConsumer
from sonar_runner.process.executor import STOP_STATUS, CommandExecutor, LocalCommandExecutor
from sonar_runner.process.monitor import ProcessMonitor
from sonar_runner.utils.config import ONE_DAY_IN_SECONDS
from sonar_runner.utils.jar import DirectoryJarExtractor, JarExtractor
from sonar_runner.utils.java import find_java_executable
from sonar_runner.utils.logging import get_logger
from sonar_runner.utils.properties import write_properties
from .base import Runner

IMPL_JAR = "sonar-runner-impl"
MAIN_CLASS = "org.sonar.runner.impl.BatchLauncherMain"
PROPERTIES_COMMENT = "Generated by sonar-runner"


@dataclass(frozen=True)
class ForkCommand:
    """A command together with the temporary files it references."""
    command: Command
    jar_file: Path
    properties_file: Path


class ForkedRunner(Runner):
    """
    Forks a JVM running the analysis engine and waits for it.
    """

    def __init__(
        self,
        jar_extractor: JarExtractor,
        command_executor: CommandExecutor,
        process_monitor: Optional[ProcessMonitor] = None,
    ):
        super().__init__()
        self.jar_extractor = jar_extractor
        self.command_executor = command_executor
        self.process_monitor = process_monitor
        self._jvm_arguments: List[str] = []
        self._jvm_env_variables: Dict[str, str] = {}
        self._java_executable: Optional[str] = None
        self._stdout: Optional[StreamConsumer] = None
        self._stderr: Optional[StreamConsumer] = None
        self._timeout: float = ONE_DAY_IN_SECONDS

    @classmethod
    def create(cls, process_monitor: Optional[ProcessMonitor] = None) -> "ForkedRunner":
        return cls(DirectoryJarExtractor(), LocalCommandExecutor(), process_monitor)

    # ---- JVM ----
    def set_java_executable(self, java_executable: Optional[str]) -> "ForkedRunner":
        """Path to the java binary. When unset, JAVA_HOME and then the PATH are searched."""
        self._java_executable = java_executable
        return self

    def java_executable(self) -> Optional[str]:
        return self._java_executable

    def add_jvm_arguments(self, *arguments: str) -> "ForkedRunner":
        self._jvm_arguments.extend(str(a) for a in arguments)
        return self

    def jvm_arguments(self) -> List[str]:
        return list(self._jvm_arguments)

    def set_jvm_env_variable(self, key: str, value: str) -> "ForkedRunner":
        self._jvm_env_variables[str(key)] = str(value)
        return self

    def add_jvm_env_variables(self, variables: Mapping[str, str]) -> "ForkedRunner":
        for key, value in variables.items():
            self.set_jvm_env_variable(key, value)
        return self

    def jvm_env_variables(self) -> Dict[str, str]:
        return dict(self._jvm_env_variables)

    # ---- Output and time limits ----
    def set_stdout(self, consumer: StreamConsumer) -> "ForkedRunner":
        self._stdout = consumer
        return self

    def set_stderr(self, consumer: StreamConsumer) -> "ForkedRunner":
        self._stderr = consumer
        return self

    def set_timeout(self, seconds: float) -> "ForkedRunner":
        if seconds <= 0:
            raise ValueError(f"Timeout must be positive, got {seconds}")
        self._timeout = seconds
        return self

    def timeout(self) -> float:
        return self._timeout

    # ---- Execution ----
    def do_execute(self, properties: Dict[str, str]) -> None:
        fork_command = self.create_command(properties)
        try:
            self._fork(fork_command)
        finally:
            self._delete_temp_files(fork_command)

    def create_command(self, properties: Mapping[str, str]) -> ForkCommand:
        """
        Writes `properties` to a temporary file and builds the java command
        that reads it. The caller owns both temporary files.
        """
        properties_file = self.write_properties(properties)
        try:
            jar_file = self.jar_extractor.extract_to_temp(IMPL_JAR)
        except BaseException:
            properties_file.unlink(missing_ok=True)
            raise

        java = self._java_executable or find_java_executable()
        command = java_command(
            java,
            self._jvm_arguments,
            jar_file.resolve(),
            MAIN_CLASS,
            properties_file.resolve(),
            env=self._jvm_env_variables,
        )
        return ForkCommand(command=command, jar_file=jar_file, properties_file=properties_file)

    def write_properties(self, properties: Mapping[str, str]) -> Path:
        try:
            fd, name = tempfile.mkstemp(prefix="sonar-runner-", suffix=".properties")
            os.close(fd)
        except OSError as e:
            raise RunnerError("Fail to create temporary properties file") from e
        path = Path(name)
        try:
            write_properties(path, properties, comment=PROPERTIES_COMMENT)
        except (OSError, UnicodeError) as e:
            path.unlink(missing_ok=True)
            raise RunnerError(f"Fail to write properties to {path}") from e
        return path

    def _fork(self, fork_command: ForkCommand) -> None:
        log = get_logger(__name__)
        stdout = self._stdout if self._stdout is not None else LogStreamConsumer.stdout()
        stderr = self._stderr if self._stderr is not None else LogStreamConsumer.stderr()

        status = self.command_executor.execute(
            fork_command.command, stdout, stderr, self._timeout, self.process_monitor
        )
        if status == 0:
            log.debug("Analysis process finished successfully")
            return
        if status == STOP_STATUS and self.process_monitor is not None and self.process_monitor.stop():
            stdout.consume_line(f"SonarQube Runner was stopped [status={status}]")
            return
        raise ExecutionFailedError(fork_command.command, status)

    @staticmethod
    def _delete_temp_files(fork_command: ForkCommand) -> None:
        log = get_logger(__name__)
        for path in (fork_command.jar_file, fork_command.properties_file):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                log.warning("Fail to delete temporary file %s: %s", path, e)
