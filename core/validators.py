"""Configuration loading and validation for lambda-http-bridge.

Configuration comes from the LAMBDA_BRIDGE_CONFIG environment variable
(JSON, set by the deployment) or, for local testing, from config.yaml.
"""

import importlib
import json
import logging
import os
from typing import Any, Callable, Optional

import yaml
from pydantic import ValidationError

from core.config_schema import BridgeConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "LAMBDA_BRIDGE_CONFIG"
DEFAULT_CONFIG_PATH = "config.yaml"


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


def _format_validation_error(error: ValidationError) -> str:
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        lines.append(f"  • {location}: {item['msg']}")
    return "\n".join(lines)


def validate_config(config: Any) -> BridgeConfig:
    """Validate a parsed configuration dictionary.

    Args:
        config: Parsed configuration (from YAML or JSON)

    Returns:
        Validated BridgeConfig

    Raises:
        ConfigurationError: If the structure or any value is invalid
    """
    if not isinstance(config, dict):
        raise ConfigurationError("Configuration must be a dictionary")

    try:
        return BridgeConfig.model_validate(config)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration:\n{_format_validation_error(e)}"
        ) from e


def load_and_validate_config(config_path: str = DEFAULT_CONFIG_PATH) -> BridgeConfig:
    """Load and validate configuration from a YAML file.

    Args:
        config_path: Path to config.yaml file

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If validation fails
        FileNotFoundError: If config file doesn't exist
    """
    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n"
            "Create config.yaml or set the "
            f"{CONFIG_ENV_VAR} environment variable."
        )
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")

    if config is None:
        raise ConfigurationError(f"Configuration file {config_path} is empty")

    validated = validate_config(config)
    logger.info(
        f"Configuration validated from {config_path}",
        extra={"binary_media_types": validated.binary_media_types},
    )
    return validated


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> BridgeConfig:
    """Load configuration from the environment, falling back to a YAML file.

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If the environment value is not valid JSON or
            the configuration is invalid
        FileNotFoundError: If neither source is available
    """
    config_json = os.environ.get(CONFIG_ENV_VAR)
    if config_json:
        try:
            config = json.loads(config_json)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Failed to parse {CONFIG_ENV_VAR} as JSON: {e}"
            ) from e
        logger.info(f"Loaded configuration from {CONFIG_ENV_VAR}")
        return validate_config(config)

    return load_and_validate_config(config_path)


def load_app_factory(import_string: Optional[str]) -> Callable[[], Any]:
    """Import the service factory callable named by ``module:attribute``.

    Args:
        import_string: e.g. "myapp.service:create_factory"

    Returns:
        The imported callable

    Raises:
        ConfigurationError: If the import string is missing, cannot be
            imported, or does not name a callable
    """
    if not import_string:
        raise ConfigurationError(
            "No service configured. Set 'app' to 'module:attribute' "
            "naming the service factory callable."
        )

    module_name, _, attribute = import_string.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Failed to import {module_name}: {e}") from e

    target: Any = module
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise ConfigurationError(
                f"{module_name} has no attribute {attribute!r}"
            ) from e

    if not callable(target):
        raise ConfigurationError(f"{import_string} is not callable")

    return target
