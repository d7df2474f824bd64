"""
Configuration Package for the Telraam client.

Exposes the configuration models and the loader function.
"""

from telraam_client.config.config_models import (
    ApiConfig,
    LoggingConfig,
    RetryConfig,
    TelraamConfig,
    TrafficConfig,
)
from telraam_client.config.loader import load_config

__all__: list[str] = [
    'ApiConfig',
    'LoggingConfig',
    'RetryConfig',
    'TelraamConfig',
    'TrafficConfig',
    'load_config',
]
