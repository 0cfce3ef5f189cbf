"""Configuration template substitution utilities."""

import os
import re
from pathlib import Path

import yaml
from loguru import logger
from pydantic_core import ValidationError

from src.identity_sync.runtime.config.config_data import ConfigData

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(text: str) -> str:
    """
    Substitute environment variable placeholders in text.

    Supports formats:
    - ${VAR_NAME} - required variable (raises error if missing)
    - ${VAR_NAME:-default} - optional with default value
    - ${VAR_NAME:?error_message} - required with custom error message
    """

    def replacer(match: re.Match[str]) -> str:
        var_expr = match.group(1)

        if ":-" in var_expr:
            var_name, default = var_expr.split(":-", 1)
            return os.getenv(var_name, default)

        if ":?" in var_expr:
            var_name, error_msg = var_expr.split(":?", 1)
            value = os.getenv(var_name)
            if value is None:
                raise ValueError(f"Required environment variable {var_name}: {error_msg}")
            return value

        value = os.getenv(var_expr)
        if value is None:
            raise ValueError(f"Required environment variable {var_expr} not set")
        return value

    return _PLACEHOLDER.sub(replacer, text)


def apply_environment_overrides(env_mode: str) -> None:
    """Promote ``<ENV>_``-prefixed variables to their unprefixed names.

    ``PRODUCTION_PROVIDER_API_KEY`` becomes ``PROVIDER_API_KEY`` when the
    application runs with ``APP_ENVIRONMENT=production``.
    """
    prefix = f"{env_mode.upper()}_"
    overrides = [(var, value) for var, value in os.environ.items() if var.startswith(prefix)]
    if overrides:
        logger.info(
            "Applying environment-specific overrides: {}",
            [name for name, _ in overrides],
        )
    for var_name, var_value in overrides:
        os.environ[var_name[len(prefix):]] = var_value


def load_templated_yaml(file_path: Path) -> ConfigData:
    """
    Load a YAML file with environment variable substitution.

    Args:
        file_path: Path to the YAML file

    Returns:
        Parsed and validated configuration. A missing file yields defaults.

    Raises:
        ValueError: If required environment variables are missing or the
            file does not validate
    """
    env_mode = os.getenv("APP_ENVIRONMENT", "development")
    logger.info("Loading configuration for environment: {}", env_mode)
    apply_environment_overrides(env_mode)

    if not file_path.exists():
        logger.warning("{} not found; using built-in configuration defaults", file_path)
        return ConfigData()

    content = substitute_env_vars(file_path.read_text())

    try:
        loaded = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML: {e}") from e

    try:
        config = ConfigData(**loaded.get("config", {}))
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e

    if not config.provider.configured:
        logger.warning(
            "Identity provider is not configured; sync operations will be refused"
        )
    return config
