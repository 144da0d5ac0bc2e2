"""Exceptions raised by the translation core."""

from typing import Any, Optional


class ProxyError(Exception):
    """Base exception for proxy errors."""

    error_type = "proxy_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ProxyError):
    """Raised when the proxy is missing required configuration."""

    error_type = "configuration_error"


class BackendContractError(ProxyError):
    """Raised when the backend rejects a request or returns an unexpected shape."""

    error_type = "backend_error"
    status_code = 502

    def __init__(
        self,
        message: str,
        backend_status: Optional[int] = None,
        detail: Any = None,
    ) -> None:
        super().__init__(message)
        self.backend_status = backend_status
        self.detail = detail


class DecodeError(ProxyError):
    """Raised when a single stream event cannot be decoded."""

    error_type = "decode_error"


class TransportError(ProxyError):
    """Raised when the connection to the backend fails or times out."""

    error_type = "transport_error"
    status_code = 502

    def __init__(self, message: str, timed_out: bool = False) -> None:
        super().__init__(message)
        if timed_out:
            self.status_code = 504
