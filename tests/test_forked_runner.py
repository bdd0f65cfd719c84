import os
import re
from pathlib import Path
from unittest import mock

import pytest

from sonar_runner.errors import ExecutionFailedError, RunnerError
from sonar_runner.process.command import Command
from sonar_runner.process.consumers import LogStreamConsumer, StreamConsumer
from sonar_runner.process.executor import CommandExecutor, LocalCommandExecutor
from sonar_runner.process.monitor import ProcessMonitor
from sonar_runner.runners.forked import MAIN_CLASS, ForkedRunner
from sonar_runner.utils.jar import DirectoryJarExtractor, JarExtractor
from sonar_runner.utils.logging import Level, LogListener, Logs
from sonar_runner.utils.properties import load_properties


class RecordingConsumer(StreamConsumer):
    def __init__(self):
        self.lines = []

    def consume_line(self, line):
        self.lines.append(line)


@pytest.fixture
def jar_extractor(tmp_path):
    """Hands out a fresh copy of a fake jar on every call, like the real extractor."""
    extractor = mock.create_autospec(JarExtractor, instance=True)
    counter = iter(range(1000))

    def _extract(name):
        jar = tmp_path / f"{name}-{next(counter)}.jar"
        jar.write_bytes(b"jar")
        return jar

    extractor.extract_to_temp.side_effect = _extract
    return extractor


def executor_returning(status):
    executor = mock.create_autospec(CommandExecutor, instance=True)
    executor.execute.return_value = status
    return executor


def test_create_forked_runner():
    runner = ForkedRunner.create()
    assert isinstance(runner, ForkedRunner)
    assert isinstance(runner.jar_extractor, DirectoryJarExtractor)
    assert isinstance(runner.command_executor, LocalCommandExecutor)
    assert runner.process_monitor is None


def test_create_forked_runner_with_process_monitor():
    monitor = mock.create_autospec(ProcessMonitor, instance=True)
    runner = ForkedRunner.create(monitor)
    assert runner.process_monitor is monitor


def test_default_consumers_route_to_log_listener(jar_extractor):
    executor = executor_returning(0)
    runner = ForkedRunner(jar_extractor, executor)
    runner.execute()

    listener = mock.create_autospec(LogListener, instance=True)
    Logs.set_listener(listener)

    _, out, err, _, _ = executor.execute.call_args.args
    assert isinstance(out, LogStreamConsumer)
    assert isinstance(err, LogStreamConsumer)
    out.consume_line("test1")
    err.consume_line("test2")

    assert listener.log.call_args_list == [mock.call("test1", Level.INFO), mock.call("test2", Level.ERROR)]


def test_custom_consumers_are_passed_to_executor(jar_extractor):
    consumer = RecordingConsumer()
    executor = executor_returning(0)
    runner = ForkedRunner(jar_extractor, executor)
    runner.set_stdout(consumer)
    runner.set_stderr(consumer)
    runner.execute()

    executor.execute.assert_called_once()
    _, out, err, timeout, monitor = executor.execute.call_args.args
    assert out is consumer
    assert err is consumer
    assert timeout == runner.timeout()
    assert monitor is None


def test_properties_are_written_in_temp_file(jar_extractor):
    runner = ForkedRunner(jar_extractor, executor_returning(0))
    runner.set_global_property("sonar.dynamicAnalysis", "false")
    runner.set_global_property("sonar.login", "admin")
    runner.add_jvm_arguments("-Xmx512m")
    runner.add_jvm_env_variables(dict(os.environ))
    runner.set_jvm_env_variable("SONAR_HOME", "/path/to/sonar")

    fork_command = runner.create_command(runner.global_properties())
    try:
        properties = load_properties(fork_command.properties_file)
        assert properties == {"sonar.dynamicAnalysis": "false", "sonar.login": "admin"}
        assert "-Xmx512m" not in properties
        assert "SONAR_HOME" not in properties
    finally:
        fork_command.properties_file.unlink()


def test_defaults_are_merged_with_global_properties(jar_extractor):
    runner = ForkedRunner(jar_extractor, executor_returning(0), None)
    runner.set_global_property("sonar.login", "admin")

    with mock.patch.object(runner, "write_properties", wraps=runner.write_properties) as spy:
        runner.execute()

    written = spy.call_args.args[0]
    for key in ("sonar.working.directory", "sonar.host.url", "sonar.sourceEncoding", "sonar.login"):
        assert key in written
    assert written["sonar.login"] == "admin"


def test_caller_values_win_over_defaults(jar_extractor, tmp_path):
    runner = ForkedRunner(jar_extractor, executor_returning(0))
    runner.set_global_property("sonar.host.url", "https://sonar.example.com")
    runner.set_global_property("sonar.sourceEncoding", "ISO-8859-15")
    runner.set_global_property("sonar.projectBaseDir", str(tmp_path))

    with mock.patch.object(runner, "write_properties", wraps=runner.write_properties) as spy:
        runner.execute()

    written = spy.call_args.args[0]
    assert written["sonar.host.url"] == "https://sonar.example.com"
    assert written["sonar.sourceEncoding"] == "ISO-8859-15"
    assert written["sonar.working.directory"] == str((tmp_path / ".sonar").resolve())


def test_last_global_property_value_wins(jar_extractor):
    runner = ForkedRunner(jar_extractor, executor_returning(0))
    runner.set_global_property("sonar.login", "admin")
    runner.set_global_property("sonar.login", "guest")

    fork_command = runner.create_command(runner.global_properties())
    try:
        assert load_properties(fork_command.properties_file) == {"sonar.login": "guest"}
    finally:
        fork_command.properties_file.unlink()


def test_java_command(jar_extractor, tmp_path):
    jar = tmp_path / "impl.jar"
    jar.write_bytes(b"jar")
    jar_extractor.extract_to_temp.side_effect = None
    jar_extractor.extract_to_temp.return_value = jar
    executor = executor_returning(0)

    runner = ForkedRunner(jar_extractor, executor)
    runner.set_java_executable("java")
    runner.set_global_property("sonar.dynamicAnalysis", "false")
    runner.set_global_property("sonar.login", "admin")
    runner.add_jvm_arguments("-Xmx512m")
    runner.add_jvm_env_variables(dict(os.environ))
    runner.set_jvm_env_variable("SONAR_HOME", "/path/to/sonar")
    runner.set_stdout(RecordingConsumer())
    runner.set_stderr(RecordingConsumer())

    assert "-Xmx512m" in runner.jvm_arguments()
    runner.execute()

    jar_extractor.extract_to_temp.assert_called_once_with("sonar-runner-impl")
    command = executor.execute.call_args.args[0]
    assert isinstance(command, Command)
    strings = command.to_strings()
    assert len(strings) == 6
    assert strings[0] == "java"
    assert strings[1] == "-Xmx512m"
    assert strings[2] == "-cp"
    assert strings[3] == str(jar.resolve())
    assert strings[4] == MAIN_CLASS
    assert strings[5].endswith(".properties")

    assert len(command.env) > 1
    assert command.env["SONAR_HOME"] == "/path/to/sonar"


def test_command_shape_only_grows_in_the_middle(jar_extractor):
    shapes = []
    for jvm_args in ([], ["-Xmx512m"], ["-Xmx512m", "-Dfoo=bar", "-server"]):
        runner = ForkedRunner(jar_extractor, executor_returning(0))
        runner.set_java_executable("/opt/java/bin/java")
        runner.add_jvm_arguments(*jvm_args)
        fork_command = runner.create_command({})
        fork_command.properties_file.unlink()
        strings = fork_command.command.to_strings()
        assert strings[1:1 + len(jvm_args)] == jvm_args
        shapes.append(strings[-4:])
    for tail in shapes:
        assert tail[0] == "-cp"
        assert tail[2] == MAIN_CLASS
        assert tail[3].endswith(".properties")


def test_failure_of_java_command(jar_extractor):
    monitor = mock.create_autospec(ProcessMonitor, instance=True)
    monitor.stop.return_value = False
    runner = ForkedRunner(jar_extractor, executor_returning(3), monitor)
    runner.set_java_executable("java")
    runner.set_stdout(RecordingConsumer())
    runner.set_stderr(RecordingConsumer())

    with pytest.raises(ExecutionFailedError) as excinfo:
        runner.execute()

    assert re.fullmatch(r"Error status \[command: .*java.*\]: 3", str(excinfo.value))
    assert excinfo.value.status == 3


def test_runner_was_requested_to_stop(jar_extractor):
    monitor = mock.create_autospec(ProcessMonitor, instance=True)
    monitor.stop.return_value = True
    out = RecordingConsumer()
    err = RecordingConsumer()
    runner = ForkedRunner(jar_extractor, executor_returning(143), monitor)
    runner.set_stdout(out)
    runner.set_stderr(err)

    runner.execute()

    assert out.lines == ["SonarQube Runner was stopped [status=143]"]
    assert err.lines == []


def test_stop_status_without_monitor_is_a_failure(jar_extractor):
    runner = ForkedRunner(jar_extractor, executor_returning(143))
    runner.set_stdout(RecordingConsumer())

    with pytest.raises(ExecutionFailedError, match=r"\]: 143$"):
        runner.execute()


def test_temp_files_are_removed_on_success_and_failure(jar_extractor):
    seen = []

    def _record(command, *args):
        strings = command.to_strings()
        seen.append((Path(strings[-3]), Path(strings[-1])))
        assert all(path.exists() for path in seen[-1])
        return 0 if len(seen) == 1 else 1

    executor = mock.create_autospec(CommandExecutor, instance=True)
    executor.execute.side_effect = _record
    runner = ForkedRunner(jar_extractor, executor)

    runner.execute()
    with pytest.raises(ExecutionFailedError):
        runner.execute()

    assert len(seen) == 2
    for jar_file, properties_file in seen:
        assert not jar_file.exists()
        assert not properties_file.exists()


def test_temp_files_are_removed_when_executor_raises(jar_extractor):
    seen = []

    def _boom(command, *args):
        seen.append(Path(command.to_strings()[-1]))
        raise RunnerError("cannot spawn")

    executor = mock.create_autospec(CommandExecutor, instance=True)
    executor.execute.side_effect = _boom
    runner = ForkedRunner(jar_extractor, executor)

    with pytest.raises(RunnerError, match="cannot spawn"):
        runner.execute()
    assert seen and not seen[0].exists()


def test_missing_jar_aborts_before_spawning(tmp_path):
    executor = executor_returning(0)
    runner = ForkedRunner(DirectoryJarExtractor(tmp_path), executor)

    with pytest.raises(RunnerError, match="sonar-runner-impl"):
        runner.execute()
    executor.execute.assert_not_called()


def test_run_analysis_layers_properties_without_touching_globals(jar_extractor):
    runner = ForkedRunner(jar_extractor, executor_returning(0))
    runner.set_global_property("sonar.login", "admin")
    runner.set_global_property("sonar.projectKey", "global")

    with mock.patch.object(runner, "write_properties", wraps=runner.write_properties) as spy:
        runner.run_analysis({"sonar.projectKey": "per-call"})

    written = spy.call_args.args[0]
    assert written["sonar.projectKey"] == "per-call"
    assert written["sonar.login"] == "admin"
    assert runner.global_property("sonar.projectKey") == "global"


def test_dump_to_file_does_not_fork(jar_extractor, tmp_path):
    executor = executor_returning(0)
    dump = tmp_path / "dump.properties"
    runner = ForkedRunner(jar_extractor, executor)
    runner.set_global_property("sonar.login", "admin")
    runner.set_global_property("sonarRunner.dumpToFile", str(dump))

    runner.execute()

    executor.execute.assert_not_called()
    jar_extractor.extract_to_temp.assert_not_called()
    dumped = load_properties(dump)
    assert dumped["sonar.login"] == "admin"
    assert dumped["sonar.host.url"] == "http://localhost:9000"


def test_app_and_jvm_accessors(jar_extractor):
    runner = ForkedRunner(jar_extractor, executor_returning(0))
    runner.set_app("Eclipse", "3.1")
    runner.set_jvm_env_variable("A", "1")
    runner.add_jvm_env_variables({"B": "2"})

    assert runner.app() == "Eclipse"
    assert runner.app_version() == "3.1"
    assert runner.global_property("sonarRunner.app") == "Eclipse"
    assert runner.global_property("missing", "fallback") == "fallback"
    assert runner.jvm_env_variables() == {"A": "1", "B": "2"}

    with pytest.raises(ValueError):
        runner.set_timeout(0)


def test_other_status_is_a_failure_even_when_stop_requested(jar_extractor):
    monitor = mock.create_autospec(ProcessMonitor, instance=True)
    monitor.stop.return_value = True
    out = RecordingConsumer()
    runner = ForkedRunner(jar_extractor, executor_returning(1), monitor)
    runner.set_stdout(out)

    with pytest.raises(ExecutionFailedError, match=r"\]: 1$"):
        runner.execute()
    assert out.lines == []
