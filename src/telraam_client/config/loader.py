# telraam_client/config/loader.py
"""
Configuration Loading Logic.

This module reads the YAML configuration file and validates it into the
TelraamConfig model hierarchy.

Responsibilities:
    1.  File I/O: Locating and reading the configuration file.
    2.  Parsing: Converting YAML text into Python dictionaries.
    3.  Token override: Injecting a token given on the command line or in the
        environment, so the file does not have to hold a secret.
    4.  Validation: Instantiating TelraamConfig and logging failures with
        context before raising.
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from telraam_client.config.config_models import TelraamConfig

__all__: list[str] = ['DEFAULT_CONFIG_PATH', 'load_config']

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH: Path = Path('config/telraam_config.yaml')


def load_config(
    config_path: Path | str | None = None,
    api_key: str | None = None,
) -> TelraamConfig:
    """Load and validate the client configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file. If None, defaults
            to 'config/telraam_config.yaml' relative to the working directory.
        api_key: Token that replaces (or supplies) api.api_key from the file.

    Returns:
        Validated TelraamConfig instance.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file cannot be parsed.
        ValueError: If the configuration fails validation.

    Example:
        >>> config = load_config('config/telraam_config.yaml')
        >>> config.traffic.max_span_days
        90.0
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
        logger.debug('No config path provided, using default: %s', config_path)
    else:
        config_path = Path(config_path)

    logger.info('Loading Telraam configuration from: %s', config_path)

    if not config_path.exists():
        error_message: str = f'Configuration file not found: {config_path}'
        logger.error(error_message)
        raise FileNotFoundError(error_message)

    try:
        with Path.open(config_path, encoding='utf-8') as config_file:
            raw_config_data: Any = yaml.safe_load(config_file)
    except yaml.YAMLError as error:
        error_message = f'Failed to parse YAML configuration: {error}'
        logger.error(error_message)
        raise yaml.YAMLError(error_message) from error

    if raw_config_data is None:
        raw_config_data = {}
    if not isinstance(raw_config_data, dict):
        error_message = (
            f'Configuration root must be a mapping, got {type(raw_config_data).__name__}'
        )
        logger.error(error_message)
        raise ValueError(error_message)

    if api_key is not None:
        api_section: Any = raw_config_data.setdefault('api', {})
        if not isinstance(api_section, dict):
            raise ValueError("Configuration section 'api' must be a mapping")
        api_section['api_key'] = api_key

    try:
        validated_config = TelraamConfig(**raw_config_data)
    except ValueError as error:
        # The message may echo the input, but SecretStr keeps the token masked
        error_message = f'Configuration validation failed: {error}'
        logger.error(error_message)
        raise ValueError(error_message) from error

    logger.info('Configuration loaded and validated successfully')
    return validated_config
