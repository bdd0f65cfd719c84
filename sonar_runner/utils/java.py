# sonar_runner/utils/java.py
"""
Finds the java binary used to fork the analysis.
"""

import os
import shutil
from pathlib import Path
from typing import Mapping, Optional


def java_binary_name() -> str:
    return "java.exe" if os.name == "nt" else "java"


def find_java_executable(env: Optional[Mapping[str, str]] = None) -> str:
    """
    Returns the java executable to run.

    Looks in $JAVA_HOME/bin first, then on the PATH. Falls back to the bare
    binary name and lets process creation report it if missing.
    """
    env = os.environ if env is None else env
    binary = java_binary_name()
    java_home = env.get("JAVA_HOME")
    if java_home:
        candidate = Path(java_home) / "bin" / binary
        if candidate.is_file():
            return str(candidate)
    found = shutil.which(binary, path=env.get("PATH"))
    return found or binary
