"""
Centralized Exceptions
Error taxonomy for watchers, transports and configuration.
"""

import re
from typing import Dict, Any, Optional


class SlotWatchError(Exception):
    """Base exception for slotwatch."""

    def __init__(self, message: str, error_code: str = "UNKNOWN", details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(SlotWatchError):
    """Configuration error."""

    def __init__(self, message: str = "Configuration error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIG_ERROR", details)


class WatcherConfigError(SlotWatchError):
    """Invalid arguments passed when constructing a watcher."""

    def __init__(self, message: str = "Invalid watcher arguments", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "WATCHER_CONFIG", details)


class SubscriptionTimeoutError(SlotWatchError):
    """Push subscription was not established within the connect timeout."""

    def __init__(self, message: str = "ws connect timeout", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "WS_CONNECT_TIMEOUT", details)


class SubscriptionError(SlotWatchError):
    """Push subscription failed to establish or broke mid-stream."""

    def __init__(self, message: str = "Subscription failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "SUBSCRIPTION_ERROR", details)


class RpcError(SlotWatchError):
    """JSON-RPC error object returned by the node."""

    def __init__(self, message: str = "RPC error", code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        self.code = code
        super().__init__(message, "RPC_ERROR", details)


class NetworkError(SlotWatchError):
    """Network connectivity error."""

    def __init__(self, message: str = "Network error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NETWORK_ERROR", details)


class ValidationError(SlotWatchError):
    """Wire payload failed validation."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


def sanitize_error_message(message: str) -> str:
    """Sanitize error messages to prevent information leakage."""
    # compound names before the words they contain
    sensitive_patterns = [
        "access_token", "refresh_token", "api_key",
        "password", "private", "secret", "token",
    ]

    sanitized = message
    for pattern in sensitive_patterns:
        sanitized = re.sub(re.escape(pattern), "***", sanitized, flags=re.IGNORECASE)

    return sanitized


def create_structured_error_response(error: BaseException) -> Dict[str, Any]:
    """Create structured error payload for logging."""
    if isinstance(error, SlotWatchError):
        return {
            "error_type": error.error_code,
            "message": sanitize_error_message(error.message),
            "details": error.details,
        }
    else:
        return {
            "error_type": type(error).__name__,
            "message": sanitize_error_message(str(error)),
            "details": {},
        }
