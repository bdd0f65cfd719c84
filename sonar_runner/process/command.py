# sonar_runner/process/command.py
"""
Immutable description of an external process and the builder that assembles it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

PathLike = Union[str, Path]


@dataclass(frozen=True)
class Command:
    """
    An executable, its ordered arguments and the full environment to run it with.
    """
    executable: str
    arguments: Tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    directory: Optional[Path] = None

    def to_strings(self) -> List[str]:
        """Returns the argument vector, executable first."""
        return [self.executable, *self.arguments]

    def __str__(self) -> str:
        return " ".join(self.to_strings())


class CommandBuilder:
    """
    Accumulates the pieces of a Command. The environment starts as a snapshot
    of the current process environment; variables set on the builder override it.
    """

    def __init__(self, base_env: Optional[Mapping[str, str]] = None):
        self._executable: Optional[str] = None
        self._arguments: List[str] = []
        self._env: Dict[str, str] = dict(os.environ if base_env is None else base_env)
        self._directory: Optional[Path] = None

    def set_executable(self, executable: PathLike) -> "CommandBuilder":
        self._executable = str(executable)
        return self

    def add_argument(self, argument: PathLike) -> "CommandBuilder":
        self._arguments.append(str(argument))
        return self

    def add_arguments(self, arguments: Iterable[PathLike]) -> "CommandBuilder":
        for argument in arguments:
            self.add_argument(argument)
        return self

    def set_env_variable(self, key: str, value: str) -> "CommandBuilder":
        self._env[str(key)] = str(value)
        return self

    def add_env_variables(self, variables: Mapping[str, str]) -> "CommandBuilder":
        for key, value in variables.items():
            self.set_env_variable(key, value)
        return self

    def set_directory(self, directory: Optional[PathLike]) -> "CommandBuilder":
        self._directory = Path(directory) if directory is not None else None
        return self

    def build(self) -> Command:
        if not self._executable:
            raise ValueError("Command executable is not set")
        return Command(
            executable=self._executable,
            arguments=tuple(self._arguments),
            env=MappingProxyType(dict(self._env)),
            directory=self._directory,
        )


def java_command(
    java_executable: PathLike,
    jvm_args: Sequence[str],
    classpath: PathLike,
    main_class: str,
    settings_file: PathLike,
    env: Optional[Mapping[str, str]] = None,
    base_env: Optional[Mapping[str, str]] = None,
) -> Command:
    """
    Builds the command launching `main_class` from `classpath` with the given JVM.

    The argument vector is always
    `[java, *jvm_args, "-cp", classpath, main_class, settings_file]`.

    Args:
        java_executable: Path or name of the java binary.
        jvm_args: Arguments passed to the JVM itself (e.g. -Xmx512m).
        classpath: The jar holding `main_class`.
        main_class: Fully qualified class name to run.
        settings_file: Properties file handed to the main class as its only argument.
        env: Variables overlaid on `base_env`; these win on collision.
        base_env: Starting environment, defaults to the current process environment.

    Returns:
        The built Command.
    """
    return (
        CommandBuilder(base_env)
        .set_executable(java_executable)
        .add_arguments(jvm_args)
        .add_arguments(["-cp", str(classpath), main_class, str(settings_file)])
        .add_env_variables(env or {})
        .build()
    )
