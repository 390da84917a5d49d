"""
Webcast relay error types.

Frame-local failures (SchemaError, DecompressionError) are logged and the unit
dropped; ConnectError and CredentialError feed the reconnect policy.
"""

from typing import Any, Optional


class WebcastError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class SchemaError(WebcastError):
    """Unknown message type, malformed bytes, or an invalid object to encode."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("schema_error", message, details)


class DecompressionError(WebcastError):
    def __init__(self, message: str):
        super().__init__("decompression_error", message)


class ConnectError(WebcastError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("connect_error", message, details)


class CredentialError(WebcastError):
    def __init__(self, message: str, code: str = "credential_error", details: Optional[dict[str, Any]] = None):
        super().__init__(code, message, details)


class NotLiveError(CredentialError):
    def __init__(self, username: str, status: Optional[int] = None):
        super().__init__(
            f"@{username} is not live (status: {status})",
            code="not_live",
            details={"username": username, "status": status},
        )


class CredentialTimeoutError(CredentialError):
    def __init__(self, username: str, timeout: float):
        super().__init__(
            f"Timed out acquiring connection parameters for @{username} after {timeout}s",
            code="credential_timeout",
            details={"username": username, "timeout": timeout},
        )
