# telraam_client/config/config_models.py
"""
Configuration models for the Telraam client.

This module provides the Pydantic models behind the YAML configuration file.
The file is optional: TelraamConfig.from_token() builds a configuration with
defaults for one-off CLI calls.

Design Decisions:
-----------------
- All models use `extra='forbid'` to catch typos and invalid fields in YAML
  configuration files early, preventing silent misconfiguration.

- No logging occurs within this module because the logging configuration itself
  is defined here. Logging must be configured by the caller after loading config.

- SecretStr is used for the API token to prevent accidental exposure in logs,
  repr(), or error messages. The value is unwrapped only when a request is sent.

- The traffic endpoint's maximum span is a setting, not a constant: Telraam
  owns the limit and may change it.

Usage:
------
    import yaml
    from telraam_client.config.config_models import TelraamConfig

    with open('telraam.yaml', 'r') as config_file:
        raw_config = yaml.safe_load(config_file)

    config = TelraamConfig.model_validate(raw_config)
"""

from datetime import timedelta
from pathlib import Path
from typing import Literal, Self

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)

from telraam_client.models.requests import (
    DEFAULT_AUTH_HEADER,
    DEFAULT_BASE_URL,
    ApiCredentials,
    TrafficFormat,
    TrafficLevel,
)

# =============================================================================
# Public API
# =============================================================================

__all__: list[str] = [
    'ApiConfig',
    'LogLevelName',
    'LoggingConfig',
    'RetryConfig',
    'TelraamConfig',
    'TrafficConfig',
]

# =============================================================================
# Type Aliases
# =============================================================================

# Valid logging level names recognized by Python's logging module.
LogLevelName = Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']

# Numeric equivalents of log level names for validation purposes.
LOG_LEVEL_VALUES: frozenset[int] = frozenset({10, 20, 30, 40, 50})

# Mapping from level name to numeric value, avoiding import of logging module
# in the model layer.
LOG_LEVEL_NAME_TO_INT: dict[LogLevelName, int] = {
    'DEBUG': 10,
    'INFO': 20,
    'WARNING': 30,
    'ERROR': 40,
    'CRITICAL': 50,
}

# Rate limiting and gateway failures; everything else is a caller problem
DEFAULT_RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 502, 503, 504})

# Telraam documents "maximum 3 months at a time" for reports/traffic
DEFAULT_MAX_SPAN_DAYS: float = 90.0


# =============================================================================
# API Connection
# =============================================================================


class ApiConfig(BaseModel):
    """Connection settings for the Telraam API.

    Attributes:
        base_url: Root API URL. Must include scheme (https://); a trailing
            slash is removed.
        api_version: Version path segment, e.g. 'v1'.
        api_key: Personal API token from the Telraam account page. Stored as
            SecretStr. Access via api_key.get_secret_value().
        auth_header: Request header that carries the token.
        request_timeout: [connect, read] timeouts in seconds.
        verify_ssl: False disables verification, True uses the system CA
            store, a string is a path to a CA bundle.
    """

    model_config = ConfigDict(extra='forbid')

    base_url: str = Field(
        default=DEFAULT_BASE_URL,
        description='Root API endpoint URL with scheme, without trailing slash',
    )
    api_version: str = Field(
        default='v1',
        pattern=r'^v\d+$',
        description="API version path segment, e.g. 'v1'",
    )
    api_key: SecretStr = Field(
        description='API authentication token (masked in logs and repr)',
    )
    auth_header: str = Field(
        default=DEFAULT_AUTH_HEADER,
        min_length=1,
        description='Header carrying the API token',
    )
    request_timeout: tuple[int, int] = Field(
        default=(10, 60),
        description='[connect_timeout, read_timeout] in seconds; both must be positive',
    )
    verify_ssl: bool | str = Field(
        default=True,
        description='False to disable SSL, True for system CA, or path to CA bundle',
    )

    @field_validator('base_url')
    @classmethod
    def validate_base_url(cls, base_url: str) -> str:
        """Require an http(s) scheme and strip the trailing slash.

        Raises:
            ValueError: If URL is empty or missing http/https scheme.
        """
        if not base_url:
            raise ValueError('base_url cannot be empty')

        if not base_url.startswith(('http://', 'https://')):
            raise ValueError(
                f"base_url must start with 'http://' or 'https://', got: {base_url!r}"
            )

        return base_url.rstrip('/')

    @field_validator('api_key')
    @classmethod
    def validate_api_key_not_empty(cls, api_key: SecretStr) -> SecretStr:
        """Ensure the token is not empty or whitespace-only."""
        secret_value: str = api_key.get_secret_value()
        if not secret_value or not secret_value.strip():
            raise ValueError('api_key cannot be empty or whitespace-only')
        return api_key

    @field_validator('request_timeout')
    @classmethod
    def validate_timeout_values_positive(
        cls, timeout: tuple[int, int]
    ) -> tuple[int, int]:
        """Ensure both timeout values are positive."""
        connect_timeout, read_timeout = timeout

        if connect_timeout <= 0:
            raise ValueError(
                f'connect_timeout must be positive, got: {connect_timeout}'
            )
        if read_timeout <= 0:
            raise ValueError(f'read_timeout must be positive, got: {read_timeout}')

        return timeout

    @field_validator('verify_ssl')
    @classmethod
    def validate_ssl_configuration(cls, verify_ssl: bool | str) -> bool | str:
        """Check that a CA bundle path points at an existing file."""
        if isinstance(verify_ssl, str):
            cert_path = Path(verify_ssl)

            if not cert_path.is_file():
                raise ValueError(f'SSL certificate bundle file not found: {verify_ssl}')

        return verify_ssl

    def to_credentials(self) -> ApiCredentials:
        """Build the credentials object passed into request construction."""
        return ApiCredentials(
            base_url=self.base_url,
            api_version=self.api_version,
            api_key=self.api_key,
            auth_header=self.auth_header,
            timeout=self.request_timeout,
            verify_ssl=self.verify_ssl,
        )


# =============================================================================
# Retry Policy
# =============================================================================


class RetryConfig(BaseModel):
    """Retry behaviour for transient failures.

    The delay before retry n (1-based) is
    `min(backoff_base_seconds * 2 ** (n - 1), backoff_max_seconds)`,
    unless the server sent a Retry-After header, which wins but is capped at
    retry_after_max_seconds.

    Example with backoff_base_seconds=1.0 and backoff_max_seconds=5.0:
      Attempt 1 fails: wait 1.0 seconds
      Attempt 2 fails: wait 2.0 seconds
      Attempt 3 fails: wait 4.0 seconds
      Attempt 4 fails: wait 5.0 seconds (capped)

    Attributes:
        max_attempts: Total attempts per request, including the first (1-10).
        backoff_base_seconds: Delay after the first failed attempt.
        backoff_max_seconds: Upper bound for any computed delay.
        retry_after_max_seconds: Upper bound for a server-suggested delay.
        retryable_status_codes: HTTP statuses treated as transient.
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    max_attempts: int = Field(
        default=5,
        ge=1,
        le=10,
        description='Total attempts per request, including the first (1-10)',
    )
    backoff_base_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description='Delay after the first failure; doubles on each retry',
    )
    backoff_max_seconds: float = Field(
        default=60.0,
        ge=0.0,
        le=600.0,
        description='Cap for the computed backoff delay',
    )
    retry_after_max_seconds: float = Field(
        default=300.0,
        ge=0.0,
        le=3600.0,
        description='Cap for a delay requested through Retry-After',
    )
    retryable_status_codes: frozenset[int] = Field(
        default=DEFAULT_RETRYABLE_STATUS_CODES,
        description='HTTP status codes treated as transient',
    )

    @field_validator('retryable_status_codes')
    @classmethod
    def validate_status_codes_are_errors(cls, codes: frozenset[int]) -> frozenset[int]:
        """Only 4xx/5xx statuses can be retried."""
        invalid_codes: list[int] = sorted(code for code in codes if not 400 <= code <= 599)  # noqa: PLR2004
        if invalid_codes:
            raise ValueError(
                f'retryable_status_codes must be HTTP error statuses (400-599), '
                f'got: {invalid_codes}'
            )
        return codes

    @model_validator(mode='after')
    def validate_backoff_cap(self) -> Self:
        """The cap must not be below the base delay."""
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError(
                f'backoff_max_seconds ({self.backoff_max_seconds}) must be >= '
                f'backoff_base_seconds ({self.backoff_base_seconds})'
            )
        return self


# =============================================================================
# Traffic Fetching
# =============================================================================


class TrafficConfig(BaseModel):
    """Settings for traffic report fetching.

    Attributes:
        max_span_days: Longest range a single reports/traffic call may cover.
            Longer requests are split into chunks. Fractional days allowed.
        level: Aggregation level sent with every request.
        format: Default bucket granularity.
        max_concurrent_chunks: Chunk requests in flight at once. 1 fetches
            sequentially; higher values use a bounded thread pool.
    """

    model_config = ConfigDict(extra='forbid')

    max_span_days: float = Field(
        default=DEFAULT_MAX_SPAN_DAYS,
        gt=0.0,
        le=366.0,
        description='Maximum days per reports/traffic call',
    )
    level: TrafficLevel = Field(
        default=TrafficLevel.SEGMENTS,
        description="'segments' or 'instance'",
    )
    format: TrafficFormat = Field(
        default=TrafficFormat.PER_HOUR,
        description="'per-hour' or 'per-quarter'",
    )
    max_concurrent_chunks: int = Field(
        default=1,
        ge=1,
        le=8,
        description='Concurrent chunk requests (1 = sequential)',
    )

    @property
    def max_span(self) -> timedelta:
        """Maximum span as a timedelta."""
        return timedelta(days=self.max_span_days)


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Configuration for application logging output.

    Console output is always enabled. File output is enabled by giving a
    file_path; its level defaults to DEBUG.

    Attributes:
        file_path: Path to log file (.log appended if missing). None disables
            file logging.
        console_level: Minimum level for console output (name or number).
        file_level: Minimum level for file output.
    """

    model_config = ConfigDict(extra='forbid')

    file_path: Path | None = Field(
        default=None,
        description='Log file path (.log extension auto-added). None disables file logging.',
    )
    console_level: LogLevelName | int = Field(
        default='INFO',
        description="Console log level: 'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL', or int",
    )
    file_level: LogLevelName | int | None = Field(
        default=None,
        description='File log level. None disables file logging.',
    )

    @field_validator('file_path', mode='before')
    @classmethod
    def normalize_log_file_path(cls, path_value: str | Path | None) -> Path | None:
        """Normalize path and ensure a .log extension."""
        if path_value is None:
            return None

        path_string: str = str(path_value)
        if not path_string.lower().endswith('.log'):
            path_string = f'{path_string}.log'

        return Path(path_string)

    @field_validator('console_level', 'file_level', mode='after')
    @classmethod
    def validate_numeric_log_level(
        cls, level_value: LogLevelName | int | None
    ) -> LogLevelName | int | None:
        """Numeric levels must be standard logging values."""
        if level_value is None or isinstance(level_value, str):
            return level_value

        if level_value not in LOG_LEVEL_VALUES:
            raise ValueError(
                f'Numeric log level must be one of {sorted(LOG_LEVEL_VALUES)}, '
                f'got: {level_value}'
            )

        return level_value

    @model_validator(mode='after')
    def ensure_file_logging_configuration_consistency(self) -> Self:
        """Default file_level to DEBUG; reject file_level without file_path."""
        if self.file_path is not None and self.file_level is None:
            self.file_level = 'DEBUG'

        if self.file_level is not None and self.file_path is None:
            raise ValueError(
                'file_level is specified but file_path is missing. '
                'Provide file_path to enable file logging, or remove file_level.'
            )

        return self

    def get_console_level_int(self) -> int:
        """Console level as a logging module integer."""
        if isinstance(self.console_level, int):
            return self.console_level
        return LOG_LEVEL_NAME_TO_INT[self.console_level]

    def get_file_level_int(self) -> int | None:
        """File level as a logging module integer, or None if disabled."""
        if self.file_level is None:
            return None
        if isinstance(self.file_level, int):
            return self.file_level
        return LOG_LEVEL_NAME_TO_INT[self.file_level]


# =============================================================================
# Root Configuration
# =============================================================================


class TelraamConfig(BaseModel):
    """Root configuration model.

    Only the `api` section is required, and within it only `api_key`.

    Loading Example:
    ```python
        config = load_config('config/telraam.yaml')
        api = TelraamApi.from_config(config)
    ```

    Attributes:
        api: Connection settings and token.
        retry: Retry policy for transient failures.
        traffic: Chunking and concurrency for traffic reports.
        logging: Console and file logging.
    """

    model_config = ConfigDict(extra='forbid')

    api: ApiConfig = Field(description='Telraam API connection settings')
    retry: RetryConfig = Field(
        default_factory=RetryConfig,
        description='Retry policy for transient failures',
    )
    traffic: TrafficConfig = Field(
        default_factory=TrafficConfig,
        description='Traffic report chunking and concurrency',
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description='Application logging configuration',
    )

    @classmethod
    def from_token(cls, api_key: str) -> Self:
        """Build a default configuration around a token.

        Raises:
            ValueError: If the token is empty or whitespace-only.
        """
        return cls(api=ApiConfig(api_key=SecretStr(api_key)))
