# sonar_runner/utils/config.py
"""
Configuration loading utility.
Reads the YAML runner configuration and normalises its `runner:` block.
"""

import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

ONE_DAY_IN_SECONDS = 24 * 60 * 60

_RUNNER_KEYS = {"java_executable", "jvm_args", "env", "timeout", "jar_dir", "app", "app_version"}


@dataclass
class RunnerSettings:
    """
    Launcher settings read from the `runner:` block. Analysis properties
    live separately under `properties:`.
    """
    java_executable: Optional[str] = None
    jvm_args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    timeout: float = ONE_DAY_IN_SECONDS
    jar_dir: Optional[Path] = None
    app: Optional[str] = None
    app_version: Optional[str] = None
    properties: Dict[str, str] = field(default_factory=dict)


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Loads a YAML configuration file.

    Args:
        path: The path to the YAML file.

    Returns:
        A dictionary containing the configuration (empty for an empty file).
    """
    with open(path, 'r') as f:
        return yaml.safe_load(f) or {}


def _stringify(value: Any) -> str:
    # YAML booleans must reach Java as "true"/"false"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def runner_settings(cfg: Dict[str, Any]) -> RunnerSettings:
    """
    Builds RunnerSettings from a loaded configuration.

    Raises:
        ValueError: on unknown keys in the `runner:` block or malformed values.
    """
    runner_cfg = cfg.get("runner") or {}
    unknown = set(runner_cfg) - _RUNNER_KEYS
    if unknown:
        raise ValueError(f"Unknown keys in 'runner' configuration: {', '.join(sorted(unknown))}")

    jvm_args = runner_cfg.get("jvm_args") or []
    if isinstance(jvm_args, str):
        jvm_args = jvm_args.split()

    timeout = runner_cfg.get("timeout")
    jar_dir = runner_cfg.get("jar_dir")
    app_version = runner_cfg.get("app_version")

    return RunnerSettings(
        java_executable=runner_cfg.get("java_executable"),
        jvm_args=[str(a) for a in jvm_args],
        env={str(k): _stringify(v) for k, v in (runner_cfg.get("env") or {}).items()},
        timeout=float(timeout) if timeout not in (None, "") else ONE_DAY_IN_SECONDS,
        jar_dir=Path(jar_dir) if jar_dir else None,
        app=runner_cfg.get("app"),
        app_version=str(app_version) if app_version is not None else None,
        properties={str(k): _stringify(v) for k, v in (cfg.get("properties") or {}).items()},
    )
