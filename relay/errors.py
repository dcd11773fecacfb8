"""Error types raised while relaying a chat completion."""

from __future__ import annotations

from typing import Optional


class RelayError(Exception):
    """Base exception for relay failures."""


class UpstreamError(RelayError):
    """The upstream completion endpoint could not produce a full stream."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        is_retryable: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.is_retryable = is_retryable


class UpstreamStatusError(UpstreamError):
    """Raised when the upstream answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(
            f"HTTP error! status: {status_code}",
            status_code=status_code,
            is_retryable=status_code == 429 or status_code >= 500,
        )
        self.body = body


class UpstreamTransportError(UpstreamError):
    """Raised when the connection to the upstream fails mid-request."""

    def __init__(self, message: str):
        super().__init__(message, is_retryable=True)


class UpstreamProtocolError(UpstreamError):
    """Raised when the upstream stream ends without a completion signal."""


class PersistenceError(RelayError):
    """Raised when long-term memory cannot be read from or written to storage."""
