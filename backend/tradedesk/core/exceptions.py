"""
Exception Handling System
Custom exceptions for the realtime update layer
"""

from typing import Any, Dict, Optional
from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for the realtime layer"""

    # General system errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Wire protocol errors
    FRAME_PARSE_ERROR = "FRAME_PARSE_ERROR"
    UNKNOWN_MESSAGE_TYPE = "UNKNOWN_MESSAGE_TYPE"

    # Connection errors
    CONNECTION_FAILED = "CONNECTION_FAILED"
    RECONNECT_EXHAUSTED = "RECONNECT_EXHAUSTED"

    # Data provider errors
    PROVIDER_ERROR = "PROVIDER_ERROR"


class TradeDeskException(Exception):
    """Base exception for all TradeDesk errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestion = suggestion
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses"""
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result


class FrameParseError(TradeDeskException):
    """Frame is not valid JSON or fails payload validation"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.FRAME_PARSE_ERROR, details)


class UnknownMessageType(TradeDeskException):
    """Frame carries a type discriminator nobody routes"""

    def __init__(self, message_type: Any):
        self.message_type = message_type
        super().__init__(
            f"Unknown message type: {message_type}",
            ErrorCode.UNKNOWN_MESSAGE_TYPE,
            {"type": message_type}
        )


class ConnectionFailure(TradeDeskException):
    """Push connection could not be established"""

    def __init__(self, url: str, reason: str):
        super().__init__(
            f"Could not connect to {url}: {reason}",
            ErrorCode.CONNECTION_FAILED,
            {"url": url, "reason": reason},
            suggestion="Check that the push endpoint is reachable"
        )


class ReconnectExhausted(TradeDeskException):
    """Reconnect attempt cap reached"""

    def __init__(self, attempts: int):
        super().__init__(
            f"Gave up after {attempts} reconnect attempts",
            ErrorCode.RECONNECT_EXHAUSTED,
            {"attempts": attempts},
            suggestion="Call connect() to start a fresh reconnect cycle"
        )


class ProviderError(TradeDeskException):
    """Quote or portfolio provider failed"""

    def __init__(self, provider: str, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"{provider} provider failed: {reason}",
            ErrorCode.PROVIDER_ERROR,
            details
        )


__all__ = [
    "ErrorCode",
    "TradeDeskException",
    "FrameParseError",
    "UnknownMessageType",
    "ConnectionFailure",
    "ReconnectExhausted",
    "ProviderError",
]
