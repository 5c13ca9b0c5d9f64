"""
Custom exceptions for troublemaker.

Every failure is terminal to the run, so these carry an error code and a
message for the fatal log line rather than recovery hints.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Standard error codes for troublemaker."""
    # General errors (1xxx)
    UNKNOWN_ERROR = "E1000"
    CONFIGURATION_ERROR = "E1002"

    # Command line errors (2xxx)
    DURATION_INVALID = "E2000"
    SUBCOMMAND_INVALID = "E2001"

    # Service errors (4xxx)
    LISTEN_FAILED = "E4000"


class TroublemakerError(Exception):
    """
    Base exception for troublemaker.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"


class ConfigurationError(TroublemakerError):
    """Error raised when configuration cannot be parsed or is invalid."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            **kwargs,
        )
        self.config_key = config_key


class DurationParseError(TroublemakerError, ValueError):
    """Error raised when a duration string is malformed."""

    def __init__(self, value: str, **kwargs):
        super().__init__(
            message=f"invalid duration {value!r}",
            error_code=ErrorCode.DURATION_INVALID,
            **kwargs,
        )
        self.value = value


class SubcommandError(TroublemakerError):
    """Error raised when a subcommand is unknown or its arguments are bad."""

    def __init__(self, message: str, subcommand: str = "", **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.SUBCOMMAND_INVALID,
            **kwargs,
        )
        self.subcommand = subcommand


class ListenError(TroublemakerError):
    """Error raised when the HTTP listener cannot bind."""

    def __init__(self, address: str, **kwargs):
        super().__init__(
            message=f"could not listen on {address}",
            error_code=ErrorCode.LISTEN_FAILED,
            **kwargs,
        )
        self.address = address
