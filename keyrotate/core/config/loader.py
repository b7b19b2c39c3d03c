"""
Configuration loader — reads config.json into a RotationConfig.

Bootstrapping is intentionally two-step: when no config file exists a
template with placeholder values is written and the run stops, asking
the operator to fill it in and rerun.

Platform credentials come from the environment, never from the file.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import ValidationError

from keyrotate.core.models.config import PlatformCredentials, RotationConfig, template_config

logger = logging.getLogger(__name__)

# Default config filename (relative to the working directory)
CONFIG_FILE = "config.json"

ENV_USERNAME = "CODESHIP_USERNAME"
ENV_PASSWORD = "CODESHIP_PASSWORD"
ENV_ORGANIZATION = "CODESHIP_ORGANIZATION"


class ConfigError(Exception):
    """Raised when configuration or credentials are invalid or missing."""


class ConfigTemplateCreated(Exception):
    """Raised after a template config was written; the run must stop."""

    def __init__(self, path: Path):
        super().__init__(
            f"a local config file was not found, so one was created for you at {path}. "
            "update it and run again"
        )
        self.path = path


def default_config_path(base_dir: Path | None = None) -> Path:
    return (base_dir or Path.cwd()) / CONFIG_FILE


def write_template(path: Path) -> None:
    """Write the placeholder config document (owner read/write only)."""
    content = json.dumps(template_config(), indent=2) + "\n"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        path.chmod(0o600)
    except OSError as e:
        raise ConfigError(
            f"a local config file was not found and writing a template to {path} failed: {e}"
        ) from e
    logger.info("Wrote config template to %s", path)


def load_config(path: Path | None = None) -> RotationConfig:
    """Load and validate the rotation configuration.

    Args:
        path: Explicit path to config.json. Defaults to ./config.json.

    Returns:
        Validated RotationConfig.

    Raises:
        ConfigTemplateCreated: The file was missing and a template was written.
        ConfigError: The file is unreadable, not JSON, or fails validation.
    """
    if path is None:
        path = default_config_path()

    if not path.exists():
        write_template(path)
        raise ConfigTemplateCreated(path)

    logger.debug("Loading rotation config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"failed to load config file {path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a JSON object in {path}, got {type(data).__name__}")

    try:
        config = RotationConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid rotation configuration in {path}: {e}") from e

    logger.info(
        "Loaded config: %d encrypted-file patterns, %d replacements, batch size %d",
        len(config.encrypted_file_patterns),
        len(config.replacements),
        config.max_projects_per_run,
    )
    return config


def load_credentials(environ: Mapping[str, str] | None = None) -> PlatformCredentials:
    """Read platform credentials from the environment.

    Raises:
        ConfigError: If any of the three variables is unset or empty.
    """
    env = os.environ if environ is None else environ
    missing = [
        name for name in (ENV_USERNAME, ENV_PASSWORD, ENV_ORGANIZATION) if not env.get(name)
    ]
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

    return PlatformCredentials(
        username=env[ENV_USERNAME],
        password=env[ENV_PASSWORD],
        organization=env[ENV_ORGANIZATION],
    )
