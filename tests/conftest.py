import pytest
from typer.testing import CliRunner

from sonar_runner.utils.logging import Logs


@pytest.fixture
def cli_runner():
    """Reusable Typer CLI runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def clear_log_listener():
    """The listener slot is process-wide; never let one test leak it into another."""
    Logs.set_listener(None)
    yield
    Logs.set_listener(None)


@pytest.fixture
def impl_jar(tmp_path):
    """A stand-in for the engine jar, in a directory of its own."""
    jar_dir = tmp_path / "lib"
    jar_dir.mkdir()
    jar = jar_dir / "sonar-runner-impl.jar"
    jar.write_bytes(b"PK\x03\x04 not really a jar")
    return jar
