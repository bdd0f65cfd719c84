# sonar_runner/cli.py
"""
Command-line interface for the forked runner, powered by Typer.
"""

import typer
from pathlib import Path
from typing import Dict, List, Optional

from sonar_runner.errors import RunnerError
from sonar_runner.process.executor import LocalCommandExecutor
from sonar_runner.process.monitor import StopRequestMonitor
from sonar_runner.runners.base import RUNNER_DUMP_TO_FILE
from sonar_runner.runners.forked import ForkedRunner
from sonar_runner.utils.config import RunnerSettings, load_config, runner_settings
from sonar_runner.utils.jar import DirectoryJarExtractor
from sonar_runner.utils.properties import load_properties
from sonar_runner.utils.logging import ANALYSIS_LOGGER, LoggerLogListener, Logs, setup_logger, get_logger

app = typer.Typer(
    no_args_is_help=True,
    help="Run a SonarQube analysis in a forked JVM.",
    context_settings={"help_option_names": ["-h", "--help"]},
)

# A shared dictionary to store global state from the callback
state = {}

_CONFIG_ARG = typer.Argument(
    ...,
    exists=True,
    file_okay=True,
    dir_okay=False,
    readable=True,
    resolve_path=True,
    help="Path to the runner configuration file.",
)
_DEFINE_OPT = typer.Option(
    None, "--define", "-D", help="Analysis property as key=value. May be repeated."
)
_PROPERTIES_OPT = typer.Option(
    None,
    "--properties-file",
    "-p",
    exists=True,
    dir_okay=False,
    readable=True,
    help="Project properties file (e.g. sonar-project.properties). -D values override it.",
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose (DEBUG) logging."
    ),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", help="Also write logs, including the analysis output, to this file."
    ),
):
    """
    Main callback to set up logging and global state.
    """
    state["verbose"] = verbose
    state["log_file"] = log_file
    setup_logger(logfile=log_file, verbose=verbose)
    get_logger(__name__).debug("CLI context initialized. verbose=%s", verbose)


def _parse_defines(defines: Optional[List[str]]) -> Dict[str, str]:
    parsed = {}
    for item in defines or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got '{item}'", param_hint="--define")
        parsed[key.strip()] = value
    return parsed


def _analysis_properties(properties_file: Optional[Path], defines: Optional[List[str]]) -> Dict[str, str]:
    """Properties layered over the configuration: the project file, then -D values."""
    overrides = _parse_defines(defines)
    properties = {}
    if properties_file:
        try:
            properties = load_properties(properties_file)
        except (ValueError, OSError) as e:
            raise typer.BadParameter(str(e), param_hint="--properties-file")
    properties.update(overrides)
    return properties


def _build_runner(settings: RunnerSettings, monitor: Optional[StopRequestMonitor]) -> ForkedRunner:
    runner = ForkedRunner(DirectoryJarExtractor(settings.jar_dir), LocalCommandExecutor(), monitor)
    runner.set_java_executable(settings.java_executable)
    runner.add_jvm_arguments(*settings.jvm_args)
    runner.add_jvm_env_variables(settings.env)
    runner.set_timeout(settings.timeout)
    if settings.app:
        runner.set_app(settings.app, settings.app_version or "")
    runner.add_global_properties(settings.properties)
    return runner


@app.command()
def run(
    config_path: Path = _CONFIG_ARG,
    define: Optional[List[str]] = _DEFINE_OPT,
    properties_file: Optional[Path] = _PROPERTIES_OPT,
):
    """
    Fork the analysis engine and wait for it to finish.
    """
    log = get_logger(__name__)
    overrides = _analysis_properties(properties_file, define)

    monitor = StopRequestMonitor()
    Logs.set_listener(LoggerLogListener(get_logger(ANALYSIS_LOGGER)))
    try:
        settings = runner_settings(load_config(config_path))
        runner = _build_runner(settings, monitor)
        runner.add_global_properties(overrides)
        log.info("Starting analysis with configuration %s", config_path)
        with monitor.stop_on_signals():
            runner.execute()
    except (RunnerError, ValueError, OSError) as e:
        log.exception("Analysis failed: %s", e)
        raise typer.Exit(code=1)
    finally:
        Logs.set_listener(None)

    if monitor.stop():
        log.warning("Analysis was stopped before completion.")
    else:
        log.info("Analysis finished successfully.")


@app.command()
def dump(
    config_path: Path = _CONFIG_ARG,
    output: Path = typer.Argument(..., dir_okay=False, help="Where to write the analysis properties."),
    define: Optional[List[str]] = _DEFINE_OPT,
    properties_file: Optional[Path] = _PROPERTIES_OPT,
):
    """
    Write the effective analysis properties to a file instead of forking.
    """
    log = get_logger(__name__)
    overrides = _analysis_properties(properties_file, define)
    try:
        settings = runner_settings(load_config(config_path))
        runner = _build_runner(settings, None)
        runner.add_global_properties(overrides)
        runner.set_global_property(RUNNER_DUMP_TO_FILE, str(output))
        runner.execute()
    except (RunnerError, ValueError, OSError) as e:
        log.exception("Failed to dump analysis properties: %s", e)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
