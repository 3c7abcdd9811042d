"""
Exceptions raised by the platform-adapter subsystem.

Bad input never raises: adapters turn it into a failed ParseResult or
ExportResult. These exceptions cover the network boundary (caught by the
adapters themselves) and caller contract violations (allowed to escape).
"""


class PlatformAdapterError(Exception):
    """Base exception for platform adapter errors."""
    pass


class AdapterTimeoutError(PlatformAdapterError):
    """Raised when an adapter operation exceeds its time budget."""

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"Operation timed out after {timeout_ms}ms")


class FetchError(PlatformAdapterError):
    """Raised when a deck URL cannot be fetched."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class FetchCircuitOpenError(FetchError):
    """Raised when the platform's circuit breaker is open."""
    pass


class AdapterRegistrationError(PlatformAdapterError, ValueError):
    """Raised when an adapter fails registry validation."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Invalid adapter: {', '.join(errors)}")


class FormatDefinitionError(PlatformAdapterError):
    """Raised for missing or incomplete custom format definitions."""
    pass
