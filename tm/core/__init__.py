"""Core domain types and logic."""

from .config import ConfigError, HostConfig, load_config
from .errors import ErrorCode, ErrorKind, ToolError
from .result import Err, Ok, Result, is_err, is_ok
from .store import Store

__all__ = [
    # config
    "ConfigError",
    "HostConfig",
    "load_config",
    # errors
    "ErrorCode",
    "ErrorKind",
    "ToolError",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
    # store
    "Store",
]
