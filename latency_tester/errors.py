"""
Error types for the Network Latency Tester.

Probe-level failures are never raised to callers; they are recorded as
``FailureKind`` values on the outcome. The exceptions here cover invalid
configuration and the resolver's internal signalling.
"""


class LatencyTesterError(Exception):
    """Base class for all errors raised by this package."""

    category = "INTERNAL"
    exit_code = 99

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def user_message(self) -> str:
        return f"[{self.category}] {self.message}"


class ConfigurationError(LatencyTesterError, ValueError):
    """Invalid URL, DNS server, DoH endpoint, count or timeout."""

    category = "CONFIG"
    exit_code = 1


class InvalidRunError(ConfigurationError):
    """Structurally invalid executor input (no targets, no strategies)."""

    category = "VALIDATION"


class ResolutionError(LatencyTesterError):
    """A DNS strategy could not resolve a host name."""

    category = "DNS"
    exit_code = 2

    def __init__(self, host: str, reason: str):
        super().__init__(f"Could not resolve {host}: {reason}")
        self.host = host
        self.reason = reason
