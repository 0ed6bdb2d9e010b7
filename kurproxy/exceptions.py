# kurproxy/exceptions.py
"""
Shared exception classes used across the codebase.

Upstream failures (status / timeout / network) are retried by the fetch engine
and then degrade to a stale cache entry or a 502 JSON error. Normalization
failures never reach the caller: the engine turns them into an empty payload
carrying an error marker.
"""

from __future__ import annotations


class UpstreamError(Exception):
    """
    Base class for a failed upstream attempt.

    `category` is the machine-readable label surfaced in 502 error bodies.
    `status` is the upstream HTTP status when one was received.
    """

    category = "upstream"

    def __init__(self, message: str, *, url: str | None = None, status: int | None = None):
        super().__init__(message)
        self.url = url
        self.status = status


class UpstreamStatusError(UpstreamError):
    """
    Raised when the upstream replied, but with a non-2xx status.

    Examples:
        - 500 / 502 / 503 from the provider
        - 403 from a WAF in front of the provider
    """

    category = "upstream_status"

    def __init__(self, status: int, *, url: str | None = None):
        super().__init__(f"upstream returned HTTP {status}", url=url, status=status)


class UpstreamTimeoutError(UpstreamError):
    """Raised when no complete reply arrived within the route's timeout."""

    category = "upstream_timeout"


class UpstreamNetworkError(UpstreamError):
    """
    Raised on transport-level failures.

    Examples:
        - DNS resolution failure
        - Connection refused / reset
        - TLS handshake errors
    """

    category = "upstream_network"


class NormalizationError(Exception):
    """
    Raised by a provider normalizer when the upstream body cannot be
    interpreted at all (invalid JSON, unparseable XML, unexpected top-level
    shape). Partial problems are recorded on the result instead.
    """

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


__all__ = [
    "UpstreamError",
    "UpstreamStatusError",
    "UpstreamTimeoutError",
    "UpstreamNetworkError",
    "NormalizationError",
]
