"""Custom exception classes for the similarity engine."""

__all__ = [
    "CopyscanError",
    "FormatMismatch",
    "InvalidWeightConfig",
    "ConfigurationError",
    "ProviderError",
    "ProviderTimeout",
    "ProviderUnreachable",
    "ProviderResponseError",
]


class CopyscanError(Exception):
    """Base exception for all copyscan errors."""
    pass


class FormatMismatch(CopyscanError, ValueError):
    """Raised when comparator inputs are structurally incompatible."""
    pass


class InvalidWeightConfig(CopyscanError, ValueError):
    """Raised when caller-supplied weights cannot be used."""
    pass


class ConfigurationError(CopyscanError):
    """Raised when configuration is invalid."""
    pass


class ProviderError(CopyscanError):
    """Base class for embedding/classification backend failures."""

    def __init__(self, message: str, provider: str = "unknown"):
        super().__init__(message)
        self.provider = provider


class ProviderTimeout(ProviderError):
    """Raised when a backend call exceeds its timeout."""
    pass


class ProviderUnreachable(ProviderError):
    """Raised when a backend cannot be reached or is not configured."""
    pass


class ProviderResponseError(ProviderError):
    """Raised when a backend returns a malformed response."""
    pass
