# telraam_client/common/logger.py
"""
Logging configuration for the telraam_client package.

Every module logs through logging.getLogger(__name__), so configuring the
package logger here sets up output for the whole client.
"""

import logging
import sys
from pathlib import Path

from telraam_client.config import LoggingConfig

__all__: list[str] = ['PACKAGE_LOGGER_NAME', 'setup_logger']

PACKAGE_LOGGER_NAME: str = 'telraam_client'


def setup_logger(
    logging_level: int | None = None,
    config: LoggingConfig | None = None,
) -> logging.Logger:
    """
    Set up logging for the telraam_client package.

    Idempotent: each call removes the handlers installed by the previous one
    and rebuilds them from the arguments.

    Args:
        logging_level: Console level used when no config is given
            (default logging.INFO).
        config: Validated logging configuration. When given, its
            console_level wins over logging_level and file logging is enabled
            if file_path is set.

    Returns:
        The package-level logger ('telraam_client').

    Example:
        >>> setup_logger(logging_level=logging.DEBUG)
        >>> setup_logger(config=load_config().logging)
    """
    package_logger: logging.Logger = logging.getLogger(PACKAGE_LOGGER_NAME)

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    log_format: logging.Formatter = logging.Formatter(
        fmt='%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )

    # --- Console ---
    if config:
        console_level: int = config.get_console_level_int()
    else:
        console_level = logging.INFO if logging_level is None else logging_level

    # stderr keeps stdout clean for the CLI's JSON output
    console_handler: logging.Handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(log_format)
    console_handler.setLevel(console_level)
    package_logger.addHandler(console_handler)

    # --- File (config only) ---
    file_level: int | None = config.get_file_level_int() if config else None

    if config and config.file_path and file_level is not None:
        log_file_path: Path = config.file_path
        log_file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler: logging.FileHandler = logging.FileHandler(
            filename=str(log_file_path),
            mode='a',
            encoding='utf-8',
        )
        file_handler.setFormatter(log_format)
        file_handler.setLevel(file_level)
        package_logger.addHandler(file_handler)

        package_logger.debug('Logging to file: %s', log_file_path)

    # The logger level must admit the most verbose handler
    effective_level: int = console_level
    if file_level is not None:
        effective_level = min(console_level, file_level)

    package_logger.setLevel(effective_level)

    return package_logger
