"""YAML settings loader with environment overrides."""

import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from .settings import EngineSettings


DEFAULT_CONFIG_FILE = "converge.yaml"

# Environment variable -> settings location
ENV_OVERRIDES = {
    "CONVERGE_LOG_LEVEL": ("log_level",),
    "CONVERGE_OWNER": ("owner",),
    "CONVERGE_AWS_REGION": ("aws", "region"),
    "CONVERGE_AWS_PROFILE": ("aws", "profile"),
}


class ConfigValidationError(Exception):
    """Exception raised when settings validation fails."""

    def __init__(self, message: str, errors: Optional[List[Dict]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(self.message)

    def __str__(self) -> str:
        """Format validation errors for display."""
        if not self.errors:
            return self.message

        error_lines = [self.message, ""]
        for error in self.errors:
            location = " -> ".join(str(loc) for loc in error.get("loc", []))
            msg = error.get("msg", "Unknown error")
            error_lines.append(f"  - {location}: {msg}")

        return "\n".join(error_lines)


def load_settings(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> EngineSettings:
    """Load engine settings from YAML and the environment.

    A missing default file is not an error; a missing explicit path is.

    Args:
        path: Settings file; defaults to ./converge.yaml when present
        env: Environment mapping, defaults to os.environ

    Returns:
        Validated EngineSettings

    Raises:
        ConfigValidationError: If the file cannot be parsed or fails validation
        FileNotFoundError: If an explicit path does not exist
    """
    env = os.environ if env is None else env
    data: Dict = {}

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
    else:
        config_path = Path.cwd() / DEFAULT_CONFIG_FILE

    if config_path.exists():
        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML: {e}")

        if not isinstance(data, dict):
            raise ConfigValidationError(
                "Configuration validation failed with 1 error(s)",
                [{"loc": [], "msg": "top level must be a mapping"}],
            )

    _apply_env_overrides(data, env)

    try:
        return EngineSettings(**data)
    except ValidationError as e:
        errors = [{"loc": list(error["loc"]), "msg": error["msg"]} for error in e.errors()]
        raise ConfigValidationError(
            f"Configuration validation failed with {len(errors)} error(s)", errors
        )


def _apply_env_overrides(data: Dict, env: Mapping[str, str]) -> None:
    """Overlay CONVERGE_* environment variables onto raw settings data."""
    for variable, location in ENV_OVERRIDES.items():
        value = env.get(variable)
        if not value:
            continue

        target = data
        for key in location[:-1]:
            section = target.get(key)
            if not isinstance(section, dict):
                section = {}
                target[key] = section
            target = section
        target[location[-1]] = value
