"""Core domain types and logic."""

from .config import ApiConfig, Config, ConfigError, RetryConfig, load_config, load_config_or_default
from .context import RunContext
from .errors import ErrorCode
from .result import Err, Ok, Result, is_err, is_ok

__all__ = [
    # config
    "ApiConfig",
    "Config",
    "ConfigError",
    "RetryConfig",
    "load_config",
    "load_config_or_default",
    # context
    "RunContext",
    # errors
    "ErrorCode",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
]
